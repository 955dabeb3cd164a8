"""
Transaction hash submission: shape check, global dedup, then one of three
verification strategies chosen once per deployment.

- DelayedTrustStrategy: accepts any well-formed, unused hash after a fixed
  delay. It proves nothing about the payment and is a placeholder, not a
  security control.
- OnChainStrategy: asks a block explorer to confirm destination and amount.
- ManualReviewStrategy: records the hash for an operator and stops there.
"""
from __future__ import annotations

import asyncio
import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Mapping, Optional, Set

from ..db.base import BaseDBManager
from ..errors import (
    ChannelOperationFailed,
    CurrencyUnavailable,
    DuplicateTransaction,
    NoPendingPayment,
    SubmissionRejected,
    TransientFailure,
    UnknownPlan,
    VerificationFailed,
)
from ..logging.ledger_logger import LedgerLogger
from ..models.payment import PaymentAttempt
from ..models.plan import Currency
from ..models.transaction import TransactionStatus
from ..models.user import SubscriberAccount
from ..notifications import messages
from ..notifications.base import Notice, Notifier
from ..verifiers.base import OnChainVerifier
from .membership_service import AdmissionResult, MembershipService
from .plan_catalog import PlanCatalog
from .retry import RetryPolicy
from .subscription_service import SubscriptionService

logger = logging.getLogger(__name__)

TX_HASH_PATTERN = re.compile(r"^[0-9a-fA-F]{64}$")


def looks_like_tx_hash(text: Optional[str]) -> bool:
    """64 hex characters; anything else is ordinary chat text."""
    return bool(text) and TX_HASH_PATTERN.match(text.strip()) is not None


class SubmissionState(str, Enum):
    SCHEDULED = "scheduled"
    ACTIVATED = "activated"
    AWAITING_REVIEW = "awaiting_review"


@dataclass(frozen=True)
class SubmissionReceipt:
    state: SubmissionState
    tx_hash: str
    payment_id: str
    expires_at: Optional[datetime] = None
    admission: Optional[AdmissionResult] = None


class VerificationStrategy(ABC):
    name: str

    @abstractmethod
    async def verify(
        self,
        service: "VerificationService",
        user: SubscriberAccount,
        attempt: PaymentAttempt,
        tx_hash: str,
    ) -> SubmissionReceipt:
        ...

    async def aclose(self) -> None:
        return None


class DelayedTrustStrategy(VerificationStrategy):
    """
    Activates after `delay` seconds without checking anything.

    The timer is bound to the payment id captured at submission; if the user
    opened a different payment meanwhile, activation fails with
    NoPendingPayment instead of granting the newer plan.
    """

    name = "delayed_trust"

    def __init__(self, delay: float = 10.0) -> None:
        self._delay = delay
        self._tasks: Set[asyncio.Task] = set()

    async def verify(self, service, user, attempt, tx_hash) -> SubmissionReceipt:
        task = asyncio.create_task(
            self._fire(service, user.user_id, attempt.payment_id, tx_hash),
            name=f"delayed-trust-{attempt.payment_id}",
        )
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return SubmissionReceipt(
            state=SubmissionState.SCHEDULED, tx_hash=tx_hash, payment_id=attempt.payment_id
        )

    async def _fire(
        self, service: "VerificationService", user_id: int, payment_id: str, tx_hash: str
    ) -> None:
        await asyncio.sleep(self._delay)
        try:
            await service.accept(user_id, payment_id, tx_hash, TransactionStatus.COMPLETED)
        except SubmissionRejected as exc:
            await service.report_rejection(user_id, exc)
        except Exception:
            logger.exception(
                "delayed_verification_failed",
                extra={"user_id": user_id, "payment_id": payment_id, "tx_hash": tx_hash},
            )
            await service.notify(user_id, messages.contact_support(service.support_handle))

    async def drain(self) -> None:
        """Wait for every scheduled verification to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def aclose(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        await asyncio.gather(*list(self._tasks), return_exceptions=True)


class OnChainStrategy(VerificationStrategy):
    """
    Confirms the transfer with the currency's OnChainVerifier. Currencies
    without a verifier fail closed.
    """

    name = "on_chain"

    def __init__(self, verifiers: Mapping[Currency, OnChainVerifier]) -> None:
        self._verifiers = dict(verifiers)

    async def verify(self, service, user, attempt, tx_hash) -> SubmissionReceipt:
        verifier = self._verifiers.get(attempt.currency)
        wallet = service.catalog.wallet_for(attempt.currency)
        if verifier is None or wallet is None:
            raise VerificationFailed(
                f"no on-chain verification for {attempt.currency.value}",
                detail={"currency": attempt.currency.value},
            )

        confirmed = await service.retry.run(
            lambda: verifier.confirm(tx_hash, attempt.amount, wallet),
            name="onchain_confirm",
        )
        if not confirmed:
            raise VerificationFailed(
                "transaction not confirmed on chain",
                detail={"tx_hash": tx_hash, "currency": attempt.currency.value},
            )
        return await service.accept(
            user.user_id, attempt.payment_id, tx_hash, TransactionStatus.VERIFIED
        )

    async def aclose(self) -> None:
        for verifier in self._verifiers.values():
            close = getattr(verifier, "aclose", None)
            if close is not None:
                await close()


class ManualReviewStrategy(VerificationStrategy):
    """Records the hash as awaiting a manual check and pings the operator chat."""

    name = "manual_review"

    def __init__(self, operator_chat_id: int) -> None:
        self._operator_chat_id = operator_chat_id

    async def verify(self, service, user, attempt, tx_hash) -> SubmissionReceipt:
        recorded = await service.subscriptions.record_for_review(user.user_id, attempt, tx_hash)
        if not recorded:
            raise NoPendingPayment("pending payment changed", detail={"user_id": user.user_id})
        if self._operator_chat_id:
            await service.notify(
                self._operator_chat_id,
                messages.review_request(user.user_id, user.handle, attempt, tx_hash),
            )
        else:
            logger.warning("manual_review_no_operator", extra={"user_id": user.user_id})
        return SubmissionReceipt(
            state=SubmissionState.AWAITING_REVIEW,
            tx_hash=tx_hash,
            payment_id=attempt.payment_id,
        )


class VerificationService:
    """
    Entry point for submitted transaction identifiers.

    `submit` returns None for text that is not shaped like a hash, raises a
    SubmissionRejected subclass for terminal rejections and TransientFailure
    when a collaborator stays unavailable. Nothing is recorded on rejection
    and the pending payment is left for a retry.
    """

    def __init__(
        self,
        db: BaseDBManager,
        ledger: LedgerLogger,
        catalog: PlanCatalog,
        subscriptions: SubscriptionService,
        membership: MembershipService,
        notifier: Notifier,
        strategy: VerificationStrategy,
        retry: Optional[RetryPolicy] = None,
        support_handle: str = "@support",
    ) -> None:
        self._db = db
        self._ledger = ledger
        self.catalog = catalog
        self.subscriptions = subscriptions
        self._membership = membership
        self._notifier = notifier
        self.strategy = strategy
        self.retry = retry or RetryPolicy()
        self.support_handle = support_handle

    async def submit(self, user_id: int, text: Optional[str]) -> Optional[SubmissionReceipt]:
        if not looks_like_tx_hash(text):
            return None
        tx_hash = text.strip().lower()  # type: ignore[union-attr]

        user = await self.retry.run(lambda: self._db.get_user(user_id), name="get_user")
        if user is None or user.pending_payment is None:
            raise NoPendingPayment("no pending payment", detail={"user_id": user_id})
        attempt = user.pending_payment

        owner = await self.retry.run(
            lambda: self._db.find_user_by_transaction_hash(tx_hash),
            name="find_user_by_transaction_hash",
        )
        if owner is not None:
            await self._ledger.log_error(
                message="Duplicate transaction hash submitted",
                details={"tx_hash": tx_hash, "owner_id": owner.user_id},
                user_id=user_id,
                correlation_id=attempt.payment_id,
            )
            raise DuplicateTransaction("transaction hash already used", detail={"tx_hash": tx_hash})

        logger.info(
            "tx_submitted",
            extra={
                "user_id": user_id,
                "payment_id": attempt.payment_id,
                "tx_hash": tx_hash,
                "strategy": self.strategy.name,
            },
        )
        try:
            return await self.strategy.verify(self, user, attempt, tx_hash)
        except VerificationFailed as exc:
            await self._ledger.log_error(
                message="Transaction verification failed",
                details={"tx_hash": tx_hash, **exc.detail},
                user_id=user_id,
                correlation_id=attempt.payment_id,
            )
            raise

    async def accept(
        self,
        user_id: int,
        payment_id: str,
        tx_hash: str,
        status: TransactionStatus,
    ) -> SubmissionReceipt:
        """
        Activate the subscription for `payment_id`, then admit to the channel
        and tell the user. A channel failure never undoes the activation.
        """
        user = await self.retry.run(lambda: self._db.get_user(user_id), name="get_user")
        attempt = user.pending_payment if user else None
        if attempt is None or attempt.payment_id != payment_id:
            raise NoPendingPayment(
                "pending payment changed before activation",
                detail={"user_id": user_id, "payment_id": payment_id},
            )

        activated = await self.subscriptions.activate(user_id, attempt, tx_hash, status)
        if not activated:
            raise NoPendingPayment(
                "pending payment already consumed",
                detail={"user_id": user_id, "payment_id": payment_id},
            )

        admission = await self._membership.admit(user_id)
        try:
            expires_at = (await self.subscriptions.get_status(user_id)).expires_at
        except TransientFailure:
            logger.warning(
                "status_reread_failed", extra={"user_id": user_id, "payment_id": payment_id}
            )
            expires_at = None
        await self.notify(
            user_id,
            messages.payment_verified(
                attempt.plan,
                expires_at,
                admission.invite_link,
                admission.ok,
                self.support_handle,
            ),
        )
        return SubmissionReceipt(
            state=SubmissionState.ACTIVATED,
            tx_hash=tx_hash,
            payment_id=payment_id,
            expires_at=expires_at,
            admission=admission,
        )

    async def report_rejection(self, user_id: int, exc: Exception) -> None:
        """Render a submission error as exactly one chat message."""
        await self.notify(user_id, rejection_notice(exc, self.support_handle))

    async def notify(self, chat_id: int, notice: Notice) -> None:
        try:
            await self._notifier.send(chat_id, notice)
        except Exception:
            logger.exception("notify_failed", extra={"user_id": chat_id})

    async def aclose(self) -> None:
        await self.strategy.aclose()


def rejection_notice(exc: Exception, support_handle: str) -> Notice:
    if isinstance(exc, NoPendingPayment):
        return messages.no_pending_payment()
    if isinstance(exc, DuplicateTransaction):
        return messages.duplicate_transaction()
    if isinstance(exc, VerificationFailed):
        return messages.verification_failed()
    if isinstance(exc, UnknownPlan):
        return messages.unknown_plan()
    if isinstance(exc, CurrencyUnavailable):
        return messages.currency_unavailable()
    if isinstance(exc, ChannelOperationFailed):
        return messages.channel_failed(support_handle)
    if isinstance(exc, TransientFailure):
        return messages.temporarily_unavailable(support_handle)
    return messages.try_again_later()
