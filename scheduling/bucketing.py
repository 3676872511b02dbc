"""Active / upcoming / recently finished views of a studio's sessions.

Classification compares calendar day keys in the studio's timezone, never
the server's, so a session at 23:30 studio time stays on its own day wherever
the service runs. Nothing here writes to the store.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, tzinfo
from typing import Callable, Dict, Iterable, List, Optional

from sqlalchemy.orm import Session

from studio_common.config import Settings, get_settings
from studio_common.dependencies import StudioAccess
from studio_common.models import Booking, SessionStatus

from .lifecycle import list_sessions, studio_timezone
from .status import current_status, display_status, is_active
from .timeutils import as_utc, iso_date_in_timezone, shift_iso_date, to_local, utc_now


@dataclass
class BucketEntry:
    session: Booking
    display_status: SessionStatus
    time_range: str


@dataclass
class SessionGroup:
    date_key: str
    header: Optional[str]
    items: List[BucketEntry] = field(default_factory=list)


@dataclass
class Bucket:
    header: Optional[str]
    total: int
    groups: List[SessionGroup] = field(default_factory=list)


@dataclass
class SessionBuckets:
    today: str
    timezone: Optional[str]
    active: Bucket
    upcoming: Bucket
    recently_finished: Bucket


def is_upcoming(session: Booking, now: datetime, today_key: str, tz: Optional[tzinfo]) -> bool:
    if current_status(session) == SessionStatus.CANCELLED:
        return False
    return iso_date_in_timezone(session.start_time, tz) >= today_key and not is_active(session, now)


def is_recently_finished(
    session: Booking, now: datetime, today_key: str, tz: Optional[tzinfo], window_days: int
) -> bool:
    if current_status(session) == SessionStatus.CANCELLED:
        return False
    if not as_utc(session.end_time) < as_utc(now):
        return False
    return iso_date_in_timezone(session.end_time, tz) >= shift_iso_date(today_key, -window_days)


def format_clock(instant: datetime, tz: Optional[tzinfo]) -> str:
    local = to_local(instant, tz)
    return f"{local.hour % 12 or 12}:{local:%M} {'AM' if local.hour < 12 else 'PM'}"


def format_time_range(session: Booking, tz: Optional[tzinfo]) -> str:
    """``"2:00 PM - 4:00 PM"`` in studio-local time."""

    return f"{format_clock(session.start_time, tz)} - {format_clock(session.end_time, tz)}"


def format_day_header(date_key: str, today_key: str) -> str:
    day = date.fromisoformat(date_key)
    absolute = f"{day:%a, %b} {day.day}"
    if date_key == today_key:
        return f"Today · {absolute}"
    if date_key == shift_iso_date(today_key, 1):
        return f"Tomorrow · {absolute}"
    return absolute


def matches_search(session: Booking, query: str, tz: Optional[tzinfo]) -> bool:
    needle = query.strip().lower()
    if not needle:
        return True
    client = session.client.name if session.client is not None else ""
    room = session.room.name if session.room is not None else ""
    title = f"{client or 'Unknown Client'} - {room or 'No Room'}"
    parts = [title, format_time_range(session, tz), iso_date_in_timezone(session.start_time, tz), room, client]
    return needle in " • ".join(part for part in parts if part).lower()


def _build_bucket(
    sessions: List[Booking],
    key_of: Callable[[Booking], str],
    today_key: str,
    now: datetime,
    tz: Optional[tzinfo],
    descending: bool,
    total: int,
) -> Bucket:
    groups: Dict[str, SessionGroup] = {}
    for session in sessions:
        key = key_of(session)
        group = groups.get(key)
        if group is None:
            group = groups[key] = SessionGroup(date_key=key, header=format_day_header(key, today_key))
        group.items.append(
            BucketEntry(
                session=session,
                display_status=display_status(session, now),
                time_range=format_time_range(session, tz),
            )
        )

    ordered = [groups[key] for key in sorted(groups, reverse=descending)]
    header = None
    if len(ordered) == 1:
        header, ordered[0].header = ordered[0].header, None
    return Bucket(header=header, total=total, groups=ordered)


def bucket_sessions(
    sessions: Iterable[Booking],
    now: datetime,
    tz: Optional[tzinfo],
    *,
    query: Optional[str] = None,
    upcoming_all: bool = False,
    recent_all: bool = False,
    timezone_name: Optional[str] = None,
    settings: Optional[Settings] = None,
) -> SessionBuckets:
    """Classify sessions relative to ``now`` in the studio's calendar.

    Upcoming sessions later today are always listed; the upcoming limit caps
    the sessions on later days. ``total`` on each bucket counts every listed
    candidate before limits apply.
    """

    settings = settings or get_settings()
    today_key = iso_date_in_timezone(now, tz)

    candidates = [session for session in sessions if matches_search(session, query or "", tz)]

    def start_key(session: Booking) -> str:
        return iso_date_in_timezone(session.start_time, tz)

    def end_key(session: Booking) -> str:
        return iso_date_in_timezone(session.end_time, tz)

    def by_start(session: Booking) -> datetime:
        return as_utc(session.start_time)

    def by_end(session: Booking) -> datetime:
        return as_utc(session.end_time)

    active_all = sorted((s for s in candidates if is_active(s, now)), key=by_start)
    active = active_all[: settings.active_bucket_limit]

    upcoming_matches = sorted((s for s in candidates if is_upcoming(s, now, today_key, tz)), key=by_start)
    upcoming_limit = settings.expanded_bucket_limit if upcoming_all else settings.upcoming_bucket_limit
    # Completed sessions and ones that began earlier today are not listed.
    shown = [s for s in upcoming_matches if current_status(s) != SessionStatus.COMPLETED]
    upcoming_today = [s for s in shown if start_key(s) == today_key and by_start(s) > as_utc(now)]
    upcoming_later = [s for s in shown if start_key(s) > today_key]
    upcoming_total = len(upcoming_today) + len(upcoming_later)

    recent_matches = sorted(
        (
            s
            for s in candidates
            if is_recently_finished(s, now, today_key, tz, settings.recently_finished_window_days)
        ),
        key=by_end,
        reverse=True,
    )
    recent_limit = settings.expanded_bucket_limit if recent_all else settings.recent_bucket_limit
    recent = recent_matches[:recent_limit]

    return SessionBuckets(
        today=today_key,
        timezone=timezone_name,
        active=_build_bucket(active, start_key, today_key, now, tz, False, len(active_all)),
        upcoming=_build_bucket(
            upcoming_today + upcoming_later[:upcoming_limit], start_key, today_key, now, tz, False, upcoming_total
        ),
        recently_finished=_build_bucket(recent, end_key, today_key, now, tz, True, len(recent_matches)),
    )


def load_buckets(
    db: Session,
    access: StudioAccess,
    *,
    query: Optional[str] = None,
    upcoming_all: bool = False,
    recent_all: bool = False,
    now: Optional[datetime] = None,
) -> SessionBuckets:
    """Fetch the listing window around today and bucket it."""

    settings = get_settings()
    now = now or utc_now()
    tz = studio_timezone(access)
    today_key = iso_date_in_timezone(now, tz)
    sessions = list_sessions(
        db,
        access,
        start_date=shift_iso_date(today_key, -settings.listing_window_past_days),
        end_date=shift_iso_date(today_key, settings.listing_window_future_days),
    )
    return bucket_sessions(
        sessions,
        now,
        tz,
        query=query,
        upcoming_all=upcoming_all,
        recent_all=recent_all,
        timezone_name=access.studio.timezone,
        settings=settings,
    )
