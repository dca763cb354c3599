# FILE: hms_billing/utils/timezone.py
from __future__ import annotations

from datetime import datetime, date, time
from zoneinfo import ZoneInfo

IST = ZoneInfo("Asia/Kolkata")


def now_ist() -> datetime:
    """
    Returns a *naive* datetime representing IST time.
    Bill and receipt DateTime columns are naive.
    """
    return datetime.now(IST).replace(tzinfo=None)


def day_bounds(d_from: date | None, d_to: date | None):
    """Inclusive [start-of-day, end-of-day] bounds for report date filters."""
    start = datetime.combine(d_from, time.min) if d_from else None
    end = datetime.combine(d_to, time.max) if d_to else None
    return start, end
