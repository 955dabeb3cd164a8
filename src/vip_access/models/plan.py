from __future__ import annotations

from enum import Enum
from typing import Dict

from pydantic import BaseModel, ConfigDict, Field


class Currency(str, Enum):
    USDT = "USDT"
    TON = "TON"
    BTC = "BTC"


class Plan(BaseModel):
    """
    Immutable catalog entry: a named subscription duration with per-currency pricing.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    label: str
    months: int = Field(gt=0, description="Subscription length in calendar months.")
    prices: Dict[Currency, float] = Field(default_factory=dict)
