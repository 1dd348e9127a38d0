"""Time utilities."""

from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


def utc_now() -> datetime:
    """Return a timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


def resolve_timezone(name: str) -> ZoneInfo:
    """Return the IANA zone for ``name``; raises ValueError when unknown."""
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ValueError(f"Unknown timezone: {name}") from e


def local_day_bounds(start: date, end: date, tz: ZoneInfo) -> tuple[datetime, datetime]:
    """
    Convert an inclusive calendar-date range into UTC instants.

    ``start`` is read as local midnight in ``tz`` and the upper bound is the
    local midnight that follows ``end``, so the returned pair is half-open:
    ``[lower, upper)``.
    """
    lower = datetime.combine(start, time.min, tzinfo=tz)
    upper = datetime.combine(end + timedelta(days=1), time.min, tzinfo=tz)
    return lower.astimezone(timezone.utc), upper.astimezone(timezone.utc)


def local_date(moment: datetime, tz: ZoneInfo) -> date:
    """Calendar date of ``moment`` as seen in ``tz``."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(tz).date()
