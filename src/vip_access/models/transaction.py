from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from ..utils import utcnow
from .plan import Currency


class TransactionStatus(str, Enum):
    PENDING = "pending"
    AWAITING_MANUAL_CHECK = "awaiting_manual_check"
    VERIFIED = "verified"
    COMPLETED = "completed"
    FAILED = "failed"


class TransactionRecord(BaseModel):
    """
    Append-only record of a submitted transaction hash.

    `hash` is unique across all users; the store enforces it.
    """

    hash: str
    amount: float
    currency: Currency
    status: TransactionStatus = TransactionStatus.PENDING
    timestamp: datetime = Field(default_factory=utcnow)
    payment_id: Optional[str] = None
