from __future__ import annotations

from datetime import datetime, timedelta
from enum import Enum

from smokefree.core.clock import as_utc


class MembershipStatus(str, Enum):
    ACTIVE = "active"
    EXPIRED = "expired"
    CANCELLED = "cancelled"


# statuses that still grant access until end_at
ENTITLED_STATUSES = (MembershipStatus.ACTIVE.value, MembershipStatus.CANCELLED.value)


def subscription_end(start: datetime, duration_days: int) -> datetime:
    return as_utc(start) + timedelta(days=duration_days)


def renewal_end(current_end: datetime, now: datetime, duration_days: int) -> datetime:
    """Extend from whichever is later, so renewing early never shortens access
    and renewing after a lapse restarts coverage from now."""
    base = max(as_utc(current_end), as_utc(now))
    return base + timedelta(days=duration_days)


def grants_access(status: str, end_at: datetime, at: datetime) -> bool:
    return status in ENTITLED_STATUSES and as_utc(end_at) > as_utc(at)


def days_remaining(end_at: datetime, now: datetime) -> int:
    delta = as_utc(end_at) - as_utc(now)
    return max(0, delta.days)
