from __future__ import annotations

import calendar
from datetime import datetime

from community_lifecycle.community.types import BillingInterval

INTERVAL_MONTHS: dict[BillingInterval, int] = {
    BillingInterval.MONTHLY: 1,
    BillingInterval.QUARTERLY: 3,
    BillingInterval.ANNUAL: 12,
}


def add_months(value: datetime, months: int) -> datetime:
    """Calendar month arithmetic; the day is clamped to the target month's length."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def add_interval(value: datetime, interval: BillingInterval) -> datetime | None:
    if interval == BillingInterval.LIFETIME:
        return None
    return add_months(value, INTERVAL_MONTHS[interval])
