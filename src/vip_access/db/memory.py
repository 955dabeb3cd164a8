from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Sequence

from ..errors import DuplicateTransaction
from ..models.ledger import LedgerEntry
from ..models.payment import PaymentAttempt
from ..models.transaction import TransactionRecord
from ..models.user import NO_SUBSCRIPTION, SubscriberAccount
from .base import BaseDBManager


class InMemoryDBManager(BaseDBManager):
    """
    Simple in-memory implementation used for tests and local development.
    NOT suitable for production, but honours the same atomic preconditions.

    Every method body runs without awaiting, so under asyncio each one is
    atomic with respect to other coroutines.
    """

    def __init__(self) -> None:
        self._users: Dict[int, SubscriberAccount] = {}
        self._ledger: List[LedgerEntry] = []
        self._id_counter: int = 0

    def _next_id(self) -> str:
        self._id_counter += 1
        return str(self._id_counter)

    @property
    def ledger_entries(self) -> List[LedgerEntry]:
        return list(self._ledger)

    def _hash_owner(self, tx_hash: str) -> Optional[SubscriberAccount]:
        for user in self._users.values():
            if any(t.hash == tx_hash for t in user.transactions):
                return user
        return None

    # User operations
    async def get_user(self, user_id: int) -> Optional[SubscriberAccount]:
        user = self._users.get(user_id)
        return user.model_copy(deep=True) if user else None

    async def upsert_user(
        self, user_id: int, fields: Mapping[str, Any]
    ) -> SubscriberAccount:
        user = self._users.get(user_id) or SubscriberAccount(user_id=user_id)
        self._users[user_id] = user.model_copy(update=dict(fields))
        return self._users[user_id].model_copy(deep=True)

    async def set_pending_payment(
        self, user_id: int, attempt: PaymentAttempt
    ) -> None:
        user = self._users.get(user_id) or SubscriberAccount(user_id=user_id)
        user.pending_payment = attempt.model_copy()
        self._users[user_id] = user

    async def set_in_channel(self, user_id: int, in_channel: bool) -> None:
        user = self._users.get(user_id)
        if user is not None:
            user.in_channel = in_channel

    # Transaction queries
    async def find_user_by_transaction_hash(
        self, tx_hash: str
    ) -> Optional[SubscriberAccount]:
        owner = self._hash_owner(tx_hash)
        return owner.model_copy(deep=True) if owner else None

    def _pending_matches(self, user_id: int, expected_payment_id: str) -> bool:
        user = self._users.get(user_id)
        return (
            user is not None
            and user.pending_payment is not None
            and user.pending_payment.payment_id == expected_payment_id
        )

    def _append(self, user: SubscriberAccount, record: TransactionRecord) -> None:
        if self._hash_owner(record.hash) is not None:
            raise DuplicateTransaction(
                "transaction hash already recorded", detail={"tx_hash": record.hash}
            )
        user.transactions.append(record.model_copy())
        user.pending_payment = None

    # Subscription transitions
    async def conditional_activate(
        self,
        user_id: int,
        expected_payment_id: str,
        expected_expires_at: Optional[datetime],
        record: TransactionRecord,
        subscription: str,
        expires_at: datetime,
    ) -> bool:
        if not self._pending_matches(user_id, expected_payment_id):
            return False
        user = self._users[user_id]
        if user.expires_at != expected_expires_at:
            return False
        self._append(user, record)
        user.subscription = subscription
        user.expires_at = expires_at
        return True

    async def conditional_record(
        self,
        user_id: int,
        expected_payment_id: str,
        record: TransactionRecord,
    ) -> bool:
        if not self._pending_matches(user_id, expected_payment_id):
            return False
        self._append(self._users[user_id], record)
        return True

    async def find_expired_active(self, now: datetime) -> Sequence[SubscriberAccount]:
        return [
            u.model_copy(deep=True)
            for u in self._users.values()
            if u.subscription != NO_SUBSCRIPTION
            and u.expires_at is not None
            and u.expires_at < now
        ]

    async def expire_subscription(self, user_id: int, now: datetime) -> bool:
        user = self._users.get(user_id)
        if (
            user is None
            or user.subscription == NO_SUBSCRIPTION
            or user.expires_at is None
            or user.expires_at >= now
        ):
            return False
        user.subscription = NO_SUBSCRIPTION
        return True

    # Ledger
    async def add_ledger_entry(self, entry: LedgerEntry) -> LedgerEntry:
        if entry.id is None:
            entry.id = self._next_id()
        self._ledger.append(entry)
        return entry
