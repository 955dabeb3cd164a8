from __future__ import annotations

import calendar
from datetime import datetime, timezone


def utcnow() -> datetime:
    """Naive UTC timestamp, matching what the Mongo driver hands back."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def add_months(moment: datetime, months: int) -> datetime:
    """
    Calendar month arithmetic; the day is clamped to the last day of the
    target month (Jan 31 + 1 month -> Feb 28/29).
    """
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)
