from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, ClassVar, Optional

from pydantic import Field

from ..utils import utcnow
from .base import DBSerializableModel


class LedgerEventType(str, Enum):
    PAYMENT = "payment"
    SUBSCRIPTION = "subscription"
    CHANNEL = "channel"
    ERROR = "error"


class LedgerEntry(DBSerializableModel):
    """
    Structured audit entry persisted to DB and mirrored to a JSONL file.
    """

    collection_name: ClassVar[str] = "vip_ledger"

    id: Optional[str] = Field(default=None)
    event_type: LedgerEventType
    user_id: Optional[int] = None
    correlation_id: Optional[str] = Field(
        default=None,
        description="Payment id tying together the entries of one payment flow.",
    )
    message: str
    details: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)
