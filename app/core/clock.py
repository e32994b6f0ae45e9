"""Injectable "now" so due-date comparisons can be tested deterministically."""

from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC already."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def fixed_clock(moment: datetime) -> Clock:
    moment = as_utc(moment)
    return lambda: moment


def get_clock() -> Clock:
    """FastAPI dependency; tests override it with a fixed clock."""
    return utc_now
