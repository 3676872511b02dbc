"""Calendar and timezone helpers shared by the scheduling core.

Instants are handled as timezone-aware UTC datetimes inside the core and as
naive UTC values in the database. Studio-local wall-clock values are only
produced at the edges: when a booking request names a date and a time, and
when sessions are grouped by calendar day for display.

A studio without a configured zone uses the server's local zone. That zone is
represented as ``None`` so conversions go through the platform's own rules
(``datetime.astimezone()`` without an argument), which follow DST changes.
"""
from __future__ import annotations

import logging
import re
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from typing import Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from studio_common.config import get_settings
from studio_common.errors import InvalidInputError

logger = logging.getLogger(__name__)

DATE_KEY_PATTERN = re.compile(r"\d{4}-\d{2}-\d{2}")
CLOCK_PATTERN = re.compile(r"([0-1][0-9]|2[0-3]):[0-5][0-9]")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def resolve_timezone(name: Optional[str]) -> Optional[tzinfo]:
    """Map a studio's zone name to a tzinfo; ``None`` means server-local."""

    candidate = name or get_settings().default_timezone
    if not candidate:
        return None
    try:
        return ZoneInfo(candidate)
    except (ZoneInfoNotFoundError, ValueError):
        logger.warning("Unknown timezone %r, falling back to server local time", candidate)
        return None


def parse_date_key(value: Optional[str], label: str = "date") -> date:
    if not value or not DATE_KEY_PATTERN.fullmatch(value):
        raise InvalidInputError(f"Invalid {label} format. Expected YYYY-MM-DD")
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise InvalidInputError(f"Invalid {label}: {value} is not a calendar date") from exc


def parse_clock(value: Optional[str], label: str = "start time") -> time:
    if not value or not CLOCK_PATTERN.fullmatch(value):
        raise InvalidInputError(f"Invalid {label} format. Expected HH:MM (24-hour format)")
    hours, minutes = value.split(":")
    return time(hour=int(hours), minute=int(minutes))


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive values read from storage; convert aware ones."""

    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_storage(value: datetime) -> datetime:
    return as_utc(value).replace(tzinfo=None)


def localize(wall_clock: datetime, tz: Optional[tzinfo]) -> datetime:
    """Interpret a naive wall-clock value in ``tz`` and return it in UTC."""

    if tz is None:
        return wall_clock.astimezone(timezone.utc)
    return wall_clock.replace(tzinfo=tz).astimezone(timezone.utc)


def to_local(instant: datetime, tz: Optional[tzinfo]) -> datetime:
    instant = as_utc(instant)
    if tz is None:
        return instant.astimezone()
    return instant.astimezone(tz)


def combine_local(day: date, clock: time, tz: Optional[tzinfo]) -> datetime:
    return localize(datetime.combine(day, clock), tz)


def parse_instant(value: str, tz: Optional[tzinfo], label: str = "datetime") -> datetime:
    """Parse an ISO-8601 timestamp; values without an offset are studio-local."""

    if not value or not value.strip():
        raise InvalidInputError(f"Invalid {label}")
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as exc:
        raise InvalidInputError(f"Invalid {label}") from exc
    if parsed.tzinfo is None:
        return localize(parsed, tz)
    return parsed.astimezone(timezone.utc)


def iso_date_in_timezone(instant: datetime, tz: Optional[tzinfo]) -> str:
    """Project an instant onto a ``YYYY-MM-DD`` key in the studio's calendar."""

    return to_local(instant, tz).date().isoformat()


def shift_iso_date(date_key: str, days: int) -> str:
    """Move a day key by whole calendar days; no clock or zone is involved."""

    return (date.fromisoformat(date_key) + timedelta(days=days)).isoformat()


def local_day_bounds(
    start_key: Optional[str],
    end_key: Optional[str],
    tz: Optional[tzinfo],
) -> Tuple[Optional[datetime], Optional[datetime]]:
    """Expand inclusive day keys into ``[lower, upper)`` UTC instants."""

    lower = upper = None
    if start_key:
        lower = combine_local(parse_date_key(start_key, "start date"), time.min, tz)
    if end_key:
        day_after = parse_date_key(end_key, "end date") + timedelta(days=1)
        upper = combine_local(day_after, time.min, tz)
    return lower, upper
