"""
UTC billing period helpers.

Every period boundary is computed in UTC. Local-time arithmetic near the end of
a month shifts invoices into the wrong billing period.
"""

import calendar
import uuid
from datetime import date, datetime, timezone
from typing import Optional

from ..config import INVOICE_DUE_DAY

# Day used to anchor "now" before stepping between months
PERIOD_ANCHOR_DAY = 15


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_utc(value: Optional[datetime] = None) -> datetime:
    """Normalize to an aware UTC datetime. Naive values are taken as UTC."""
    if value is None:
        return utc_now()
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def get_invoice_period_utc(value: Optional[datetime] = None) -> str:
    """Billing period key, e.g. ``2025-01``"""
    return to_utc(value).strftime("%Y-%m")


def get_full_date_utc(value: Optional[datetime] = None) -> str:
    return to_utc(value).strftime("%Y-%m-%d")


def get_due_date_utc(value: Optional[datetime] = None, due_day: int = INVOICE_DUE_DAY) -> str:
    """Due date on ``due_day`` of the invoice month, clamped to the month length"""
    current = to_utc(value)
    last_day = calendar.monthrange(current.year, current.month)[1]
    day = max(1, min(due_day, last_day))
    return date(current.year, current.month, day).isoformat()


def get_payment_period_from_date(value: datetime) -> str:
    """Billing period containing ``value`` (used for payment checks on session dates)"""
    return get_invoice_period_utc(value)


def get_previous_payment_period(value: Optional[datetime] = None) -> str:
    """
    Period key of the month before ``value``.

    The reference is pinned to the 15th of its UTC month first, so a run at
    ``2025-03-01T00:00:00Z`` (or late on the last day of a month in any local
    timezone) still resolves to the intended previous month.
    """
    anchored = to_utc(value).replace(day=PERIOD_ANCHOR_DAY, hour=12, minute=0, second=0, microsecond=0)
    year, month = anchored.year, anchored.month - 1
    if month == 0:
        year, month = year - 1, 12
    return f"{year:04d}-{month:02d}"


def parse_iso_date(value: str) -> date:
    return date.fromisoformat(value)


def generate_invoice_no(period: str) -> str:
    """Invoice number ``{period}-{8 char random id}``"""
    return f"{period}-{uuid.uuid4().hex[:8].upper()}"
