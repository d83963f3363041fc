"""Datetime conversions between PST values and Graph payloads."""

from __future__ import annotations

from datetime import UTC, datetime, time, timedelta, tzinfo
from zoneinfo import ZoneInfo


def to_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime.

    Naive values are treated as UTC, which is how PST FILETIME values decode.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def resolve_timezone(name: str | None) -> tzinfo:
    """Return the configured zone, or the system zone when unset.

    Args:
        name: IANA timezone name.

    Returns:
        tzinfo instance.
    """
    if name:
        return ZoneInfo(name)
    local = datetime.now().astimezone().tzinfo
    return local if local is not None else UTC


def odata_datetime(value: datetime) -> str:
    """Format a DateTimeOffset literal for ``$filter`` (``2024-01-31T09:00:00Z``)."""
    return to_utc(value).strftime("%Y-%m-%dT%H:%M:%SZ")


def graph_datetime(value: datetime) -> str:
    """Format a ``dateTimeTimeZone.dateTime`` string in UTC.

    Graph returns event times with seven fractional digits; using the same
    shape on create keeps ``start/dateTime eq`` probes exact.
    """
    return to_utc(value).strftime("%Y-%m-%dT%H:%M:%S.0000000")


def is_local_midnight(value: datetime, tz: tzinfo) -> bool:
    """Return whether ``value`` falls exactly on midnight in ``tz``."""
    local = to_utc(value).astimezone(tz)
    return local.time() == time(0, 0)


def all_day_bounds(start: datetime, tz: tzinfo) -> tuple[datetime, datetime]:
    """Return the UTC-midnight span of the local day containing ``start``.

    Args:
        start: Source start instant.
        tz: Zone the source calendar day is read in.

    Returns:
        ``(day 00:00 UTC, next day 00:00 UTC)``.
    """
    day = to_utc(start).astimezone(tz).date()
    day_start = datetime.combine(day, time(0, 0), tzinfo=UTC)
    return day_start, day_start + timedelta(days=1)
