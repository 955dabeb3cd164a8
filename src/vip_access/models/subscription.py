from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class SubscriptionStatus(BaseModel):
    """Read-only projection of a user's subscription."""

    plan: Optional[str] = None
    expires_at: Optional[datetime] = None
    days_remaining: int = 0
    expired: bool = False
    in_channel: bool = False

    @property
    def active(self) -> bool:
        return self.plan is not None and not self.expired
