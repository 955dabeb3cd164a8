from __future__ import annotations

from datetime import datetime
from typing import ClassVar, List, Optional

from pydantic import Field

from ..utils import utcnow
from .base import DBSerializableModel
from .payment import PaymentAttempt
from .transaction import TransactionRecord

NO_SUBSCRIPTION = "none"


class SubscriberAccount(DBSerializableModel):
    """
    One document per Telegram account.

    `subscription`, `expires_at` and `transactions` are only changed by the
    subscription ledger; `pending_payment` only by the payment session manager.
    """

    collection_name: ClassVar[str] = "vip_users"
    indexes: ClassVar[list] = [
        ([("user_id", 1)], {"unique": True}),
        (
            [("transactions.hash", 1)],
            {
                "unique": True,
                "partialFilterExpression": {"transactions.hash": {"$exists": True}},
            },
        ),
        ([("subscription", 1), ("expires_at", 1)], {}),
    ]

    user_id: int
    display_name: Optional[str] = None
    handle: Optional[str] = None
    subscription: str = NO_SUBSCRIPTION
    expires_at: Optional[datetime] = None
    pending_payment: Optional[PaymentAttempt] = None
    transactions: List[TransactionRecord] = Field(default_factory=list)
    in_channel: bool = False
    joined_at: datetime = Field(default_factory=utcnow)

    @property
    def has_subscription(self) -> bool:
        return self.subscription != NO_SUBSCRIPTION
