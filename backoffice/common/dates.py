"""
Date helpers shared by discount windows and check payments
"""
from datetime import date, datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes coming from the catalog service as UTC"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def within_window(start: datetime, end: datetime, now: Optional[datetime] = None) -> bool:
    """Inclusive window check: start <= now <= end"""
    current = ensure_utc(now or utc_now())
    return ensure_utc(start) <= current <= ensure_utc(end)


def today() -> date:
    return date.today()
