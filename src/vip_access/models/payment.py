from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from ..utils import utcnow
from .plan import Currency


class PaymentAttempt(BaseModel):
    """
    A user's single in-flight payment attempt, embedded in the user document.
    """

    plan: str
    currency: Currency
    amount: float
    payment_id: str = Field(description="Opaque random identifier for this attempt.")
    created_at: datetime = Field(default_factory=utcnow)
