from __future__ import annotations

from datetime import datetime
from typing import Dict, List

from pydantic import BaseModel


class HealthResponse(BaseModel):
    status: str
    service: str
    timestamp: datetime
    features: List[str]


class PlanResponse(BaseModel):
    id: str
    label: str
    months: int
    prices: Dict[str, float]
