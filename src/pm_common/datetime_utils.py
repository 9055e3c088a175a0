"""UTC datetime utilities."""

from datetime import date, datetime, timedelta, timezone


def utc_now() -> datetime:
    """Return timezone-aware UTC now."""
    return datetime.now(timezone.utc)


def to_millis(dt: datetime) -> int:
    """Epoch milliseconds for an aware datetime (price-history timestamps)."""
    return int(dt.timestamp() * 1000)


def from_millis(ms: int) -> datetime:
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc)


def utc_day(dt: datetime) -> date:
    """Calendar day of ``dt`` in UTC; streaks roll over at UTC midnight."""
    return dt.astimezone(timezone.utc).date()


def is_previous_utc_day(earlier: datetime, later: datetime) -> bool:
    return utc_day(earlier) == utc_day(later) - timedelta(days=1)
