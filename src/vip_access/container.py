"""
Builds the service graph once per process from Settings.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from .channel.base import ChannelGateway
from .config import Settings, VerificationMode
from .db.base import BaseDBManager
from .db.memory import InMemoryDBManager
from .db.mongo import MongoDBManager
from .logging.ledger_logger import LedgerLogger
from .models.plan import Currency
from .notifications.base import Notifier
from .services.expiration_service import ExpirationService
from .services.membership_service import MembershipService
from .services.payment_service import PaymentService
from .services.plan_catalog import PlanCatalog
from .services.retry import RetryPolicy
from .services.subscription_service import SubscriptionService
from .services.verification_service import (
    DelayedTrustStrategy,
    ManualReviewStrategy,
    OnChainStrategy,
    VerificationService,
    VerificationStrategy,
)
from .verifiers.ton import TonCenterVerifier

logger = logging.getLogger(__name__)


@dataclass
class Services:
    settings: Settings
    db: BaseDBManager
    ledger: LedgerLogger
    catalog: PlanCatalog
    notifier: Notifier
    payments: PaymentService
    subscriptions: SubscriptionService
    membership: MembershipService
    verification: VerificationService
    expiration: ExpirationService

    async def aclose(self) -> None:
        await self.verification.aclose()


def create_db_manager(settings: Settings) -> BaseDBManager:
    if settings.mongo_uri:
        return MongoDBManager.from_client_uri(
            settings.mongo_uri,
            settings.mongo_db,
            timeout_ms=int(settings.collaborator_timeout * 1000),
        )
    logger.warning("mongo_uri not set, using in-memory store")
    return InMemoryDBManager()


def build_strategy(settings: Settings) -> VerificationStrategy:
    mode = settings.verification_mode
    if mode == VerificationMode.ON_CHAIN:
        return OnChainStrategy(
            {
                Currency.TON: TonCenterVerifier(
                    base_url=settings.toncenter_url,
                    api_key=settings.toncenter_api_key,
                    tolerance=settings.amount_tolerance,
                    timeout=settings.collaborator_timeout,
                )
            }
        )
    if mode == VerificationMode.MANUAL_REVIEW:
        return ManualReviewStrategy(settings.admin_chat_id)
    return DelayedTrustStrategy(delay=settings.delayed_trust_seconds)


def build_services(
    settings: Settings,
    notifier: Notifier,
    gateway: ChannelGateway,
    db: Optional[BaseDBManager] = None,
    strategy: Optional[VerificationStrategy] = None,
) -> Services:
    db = db or create_db_manager(settings)
    ledger = LedgerLogger(db=db, file_path=Path(settings.ledger_file))
    catalog = settings.to_catalog()
    retry = RetryPolicy(
        attempts=settings.retry_attempts,
        base_delay=settings.retry_base_delay,
        timeout=settings.collaborator_timeout,
    )

    payments = PaymentService(db=db, ledger=ledger, catalog=catalog, retry=retry)
    subscriptions = SubscriptionService(db=db, ledger=ledger, catalog=catalog, retry=retry)
    membership = MembershipService(
        db=db,
        ledger=ledger,
        gateway=gateway,
        channel_id=settings.vip_channel_id,
        timeout=settings.collaborator_timeout,
    )
    verification = VerificationService(
        db=db,
        ledger=ledger,
        catalog=catalog,
        subscriptions=subscriptions,
        membership=membership,
        notifier=notifier,
        strategy=strategy or build_strategy(settings),
        retry=retry,
        support_handle=settings.support_handle,
    )
    expiration = ExpirationService(
        db=db,
        subscriptions=subscriptions,
        membership=membership,
        notifier=notifier,
        interval_seconds=settings.sweep_interval_seconds,
        initial_delay=settings.sweep_initial_delay,
        retry=retry,
    )
    logger.info(
        "services_built",
        extra={"strategy": verification.strategy.name, "count": len(catalog.list_plans())},
    )
    return Services(
        settings=settings,
        db=db,
        ledger=ledger,
        catalog=catalog,
        notifier=notifier,
        payments=payments,
        subscriptions=subscriptions,
        membership=membership,
        verification=verification,
        expiration=expiration,
    )
