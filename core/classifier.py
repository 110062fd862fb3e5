"""
core/classifier.py -- Map an expiry timestamp to an urgency status.

Pure and deterministic: the same (expiry, now) pair always yields the same
Classification. Used for the sweep's authoritative recomputation and for the
read path, which recomputes status from the cached expiry on every request so
the stored status column can never drift into a source of truth.
"""

import math
from datetime import date, datetime, time, timezone
from typing import Optional, Union

from core.models import Classification, Status

_SECONDS_PER_DAY = 86400

# (upper bound on days_remaining, status), evaluated in order, first match wins.
_BANDS: tuple[tuple[float, Status], ...] = (
    (0, Status.EXPIRED),
    (7, Status.CRITICAL),
    (30, Status.WARNING),
    (math.inf, Status.HEALTHY),
)


def to_utc_datetime(value: Union[date, datetime, str]) -> datetime:
    """Normalize a date, datetime or ISO string to an aware UTC datetime.

    Bare dates are read as midnight UTC. Naive datetimes are assumed UTC.
    """
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    if isinstance(value, datetime):
        return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value.astimezone(timezone.utc)
    return datetime.combine(value, time.min, tzinfo=timezone.utc)


def days_remaining(expiry: Union[date, datetime, str], now: Optional[datetime] = None) -> int:
    """Return ceil((expiry - now) / 1 day). Zero or negative means expired."""
    now = to_utc_datetime(now) if now is not None else datetime.now(timezone.utc)
    delta = (to_utc_datetime(expiry) - now).total_seconds()
    # int() turns a -0.0 ceiling into 0
    return int(math.ceil(delta / _SECONDS_PER_DAY))


def status_for_days(days: int) -> Status:
    for upper, status in _BANDS:
        if days <= upper:
            return status
    return Status.HEALTHY


def classify(expiry: Union[date, datetime, str], now: Optional[datetime] = None) -> Classification:
    """Return (status, days_remaining) for an expiry relative to now."""
    days = days_remaining(expiry, now)
    return Classification(status=status_for_days(days), days_remaining=days)
