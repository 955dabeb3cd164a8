from __future__ import annotations

import math
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Optional

from ..db.base import BaseDBManager
from ..errors import DuplicateTransaction, UnknownPlan
from ..logging.ledger_logger import LedgerLogger
from ..models.payment import PaymentAttempt
from ..models.subscription import SubscriptionStatus
from ..models.transaction import TransactionRecord, TransactionStatus
from ..models.user import SubscriberAccount
from ..utils import add_months, utcnow
from .plan_catalog import PlanCatalog
from .retry import RetryPolicy

DAY = timedelta(days=1)


class SubscriptionService:
    """
    Authoritative subscription ledger: activation, expiry and status.

    Every transition goes through a single conditional store update, so two
    concurrent activations for one user cannot both apply.
    """

    def __init__(
        self,
        db: BaseDBManager,
        ledger: LedgerLogger,
        catalog: PlanCatalog,
        retry: Optional[RetryPolicy] = None,
    ) -> None:
        self._db = db
        self._ledger = ledger
        self._catalog = catalog
        self._retry = retry or RetryPolicy()

    async def activate(
        self,
        user_id: int,
        attempt: PaymentAttempt,
        tx_hash: str,
        status: TransactionStatus = TransactionStatus.COMPLETED,
        now: Optional[datetime] = None,
    ) -> bool:
        """
        Activate or extend the subscription paid for by `attempt`.

        Renewals extend from max(now, current expiry). Returns False, with
        nothing written, when `attempt` is no longer the user's pending
        payment (stale replay or a concurrent activation won).
        """
        plan = self._catalog.get_plan(attempt.plan)
        if plan is None:
            raise UnknownPlan(f"unknown plan {attempt.plan!r}", detail={"plan": attempt.plan})
        now = now or utcnow()

        user = await self._retry.run(lambda: self._db.get_user(user_id), name="get_user")
        if (
            user is None
            or user.pending_payment is None
            or user.pending_payment.payment_id != attempt.payment_id
        ):
            return False

        base = max(now, user.expires_at) if user.expires_at else now
        expires_at = add_months(base, plan.months)
        record = TransactionRecord(
            hash=tx_hash,
            amount=attempt.amount,
            currency=attempt.currency,
            status=status,
            timestamp=now,
            payment_id=attempt.payment_id,
        )

        applied = await self._apply_once(
            lambda: self._db.conditional_activate(
                user_id,
                expected_payment_id=attempt.payment_id,
                expected_expires_at=user.expires_at,
                record=record,
                subscription=plan.id,
                expires_at=expires_at,
            ),
            "conditional_activate",
            user_id,
            attempt,
            tx_hash,
        )
        if not applied:
            return False

        await self._ledger.log_subscription(
            user_id=user_id,
            message="Subscription activated",
            details={
                "plan": plan.id,
                "expires_at": expires_at.isoformat(),
                "previous_expires_at": user.expires_at.isoformat() if user.expires_at else None,
                "tx_hash": tx_hash,
                "status": status.value,
            },
            correlation_id=attempt.payment_id,
        )
        return True

    async def record_for_review(
        self, user_id: int, attempt: PaymentAttempt, tx_hash: str
    ) -> bool:
        """Record the transaction as awaiting a manual check; no activation."""
        record = TransactionRecord(
            hash=tx_hash,
            amount=attempt.amount,
            currency=attempt.currency,
            status=TransactionStatus.AWAITING_MANUAL_CHECK,
            payment_id=attempt.payment_id,
        )
        applied = await self._apply_once(
            lambda: self._db.conditional_record(user_id, attempt.payment_id, record),
            "conditional_record",
            user_id,
            attempt,
            tx_hash,
        )
        if applied:
            await self._ledger.log_payment(
                user_id=user_id,
                message="Transaction queued for manual review",
                details={"tx_hash": tx_hash, "plan": attempt.plan, "amount": attempt.amount},
                correlation_id=attempt.payment_id,
            )
        return applied

    async def _apply_once(
        self,
        operation: Callable[[], Awaitable[bool]],
        name: str,
        user_id: int,
        attempt: PaymentAttempt,
        tx_hash: str,
    ) -> bool:
        """
        Run a conditional transition under the retry policy.

        A retried write can miss its precondition because an earlier attempt
        landed and only the acknowledgement was lost. A miss therefore counts
        as applied when the user already holds this hash for this payment.
        """
        try:
            applied = await self._retry.run(operation, name=name)
        except DuplicateTransaction:
            if await self._holds_transaction(user_id, attempt.payment_id, tx_hash):
                return True
            raise
        if applied:
            return True
        return await self._holds_transaction(user_id, attempt.payment_id, tx_hash)

    async def _holds_transaction(self, user_id: int, payment_id: str, tx_hash: str) -> bool:
        user = await self._retry.run(lambda: self._db.get_user(user_id), name="get_user")
        if user is None:
            return False
        return any(t.hash == tx_hash and t.payment_id == payment_id for t in user.transactions)

    async def expire(self, user_id: int, now: Optional[datetime] = None) -> bool:
        """
        Demote an expired subscription to `none`. History and `expires_at`
        are kept. Returns False if there was nothing to expire.
        """
        now = now or utcnow()
        expired = await self._retry.run(
            lambda: self._db.expire_subscription(user_id, now), name="expire_subscription"
        )
        if expired:
            await self._ledger.log_subscription(
                user_id=user_id,
                message="Subscription expired",
                details={"as_of": now.isoformat()},
            )
        return expired

    async def get_status(self, user_id: int, now: Optional[datetime] = None) -> SubscriptionStatus:
        user = await self._retry.run(lambda: self._db.get_user(user_id), name="get_user")
        if user is None:
            return SubscriptionStatus()
        return self.status_of(user, now)

    @staticmethod
    def status_of(user: SubscriberAccount, now: Optional[datetime] = None) -> SubscriptionStatus:
        if not user.has_subscription or user.expires_at is None:
            return SubscriptionStatus(in_channel=user.in_channel)
        now = now or utcnow()
        remaining = (user.expires_at - now) / DAY
        return SubscriptionStatus(
            plan=user.subscription,
            expires_at=user.expires_at,
            days_remaining=max(0, math.ceil(remaining)),
            expired=user.expires_at <= now,
            in_channel=user.in_channel,
        )
