from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Mapping, Optional, Sequence

from ..models.ledger import LedgerEntry
from ..models.payment import PaymentAttempt
from ..models.transaction import TransactionRecord
from ..models.user import SubscriberAccount


class BaseDBManager(ABC):
    """
    DB-agnostic async repository interface.

    Concrete implementations (MongoDB, in-memory) must make every
    `conditional_*` method a single atomic update guarded by its
    precondition; services never read-modify-write user documents.
    Implementations raise DuplicateTransaction when a transaction hash is
    already attached to any user.
    """

    # User operations
    @abstractmethod
    async def get_user(self, user_id: int) -> Optional[SubscriberAccount]: ...

    @abstractmethod
    async def upsert_user(
        self, user_id: int, fields: Mapping[str, Any]
    ) -> SubscriberAccount:
        """Create the user if missing and set the given profile fields."""
        ...

    @abstractmethod
    async def set_pending_payment(
        self, user_id: int, attempt: PaymentAttempt
    ) -> None:
        """Store `attempt` as the user's pending payment, replacing any prior one."""
        ...

    @abstractmethod
    async def set_in_channel(self, user_id: int, in_channel: bool) -> None: ...

    # Transaction queries
    @abstractmethod
    async def find_user_by_transaction_hash(
        self, tx_hash: str
    ) -> Optional[SubscriberAccount]: ...

    # Subscription transitions
    @abstractmethod
    async def conditional_activate(
        self,
        user_id: int,
        expected_payment_id: str,
        expected_expires_at: Optional[datetime],
        record: TransactionRecord,
        subscription: str,
        expires_at: datetime,
    ) -> bool:
        """
        Atomically set subscription/expiry, clear the pending payment and
        append `record`, only if the pending payment id and the current expiry
        still equal the expected values. Returns False when the precondition
        no longer holds.
        """
        ...

    @abstractmethod
    async def conditional_record(
        self,
        user_id: int,
        expected_payment_id: str,
        record: TransactionRecord,
    ) -> bool:
        """Append `record` and clear the pending payment, without activation."""
        ...

    @abstractmethod
    async def find_expired_active(self, now: datetime) -> Sequence[SubscriberAccount]:
        """Users whose subscription is not `none` and whose expiry is before `now`."""
        ...

    @abstractmethod
    async def expire_subscription(self, user_id: int, now: datetime) -> bool:
        """Set subscription to `none` if still active and past expiry."""
        ...

    # Ledger
    @abstractmethod
    async def add_ledger_entry(self, entry: LedgerEntry) -> LedgerEntry: ...

    async def ensure_indexes(self) -> None:
        """Create backing indexes; stores without indexes do nothing."""
        return None
