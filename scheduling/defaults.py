"""Per-studio scheduling defaults, seeded on first read."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from studio_common.cache import StudioCache
from studio_common.config import get_settings
from studio_common.dependencies import StudioAccess
from studio_common.errors import InvalidInputError, StorageError
from studio_common.models import StudioDefaults

logger = logging.getLogger(__name__)

MIN_SESSION_LENGTH_HOURS = 1
MAX_SESSION_LENGTH_HOURS = 24
MIN_BUFFER_MINUTES = 0
MAX_BUFFER_MINUTES = 60


@dataclass(frozen=True)
class Defaults:
    length_hours: int
    buffer_minutes: int


def fallback_defaults() -> Defaults:
    settings = get_settings()
    return Defaults(
        length_hours=settings.default_session_length_hours,
        buffer_minutes=settings.default_buffer_minutes,
    )


defaults_cache: StudioCache[Defaults] = StudioCache("studio-defaults", ttl=get_settings().defaults_cache_ttl)


def _snapshot(row: StudioDefaults, fallback: Defaults) -> Defaults:
    length = row.default_session_length_hours
    buffer = row.default_buffer_minutes
    return Defaults(
        length_hours=length if length and length > 0 else fallback.length_hours,
        buffer_minutes=buffer if buffer is not None and buffer >= 0 else fallback.buffer_minutes,
    )


def _ensure_row(db: Session, studio_id: str, fallback: Defaults) -> StudioDefaults:
    row = db.get(StudioDefaults, studio_id)
    if row is not None:
        return row
    row = StudioDefaults(
        studio_id=studio_id,
        default_session_length_hours=fallback.length_hours,
        default_buffer_minutes=fallback.buffer_minutes,
    )
    db.add(row)
    try:
        db.commit()
    except IntegrityError:
        # Another request seeded the row first.
        db.rollback()
        existing = db.get(StudioDefaults, studio_id)
        if existing is None:
            raise
        return existing
    logger.info("Seeded scheduling defaults for studio %s (%sh, %smin)", studio_id, fallback.length_hours, fallback.buffer_minutes)
    return row


def get_defaults(
    db: Session, studio_id: str, fallback: Optional[Defaults] = None, *, fresh: bool = False
) -> Defaults:
    """Return the studio's defaults, creating the row from ``fallback`` if absent.

    ``fresh`` skips the cache and always reads the row; booking paths use it
    so a change made by another worker applies to the next session created.
    """

    fallback = fallback or fallback_defaults()

    def load() -> Defaults:
        try:
            return _snapshot(_ensure_row(db, studio_id, fallback), fallback)
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error("Failed to load defaults for studio %s: %s", studio_id, exc)
            raise StorageError(f"Failed to fetch studio defaults: {exc}") from exc

    if fresh:
        return load()
    return defaults_cache.get_or_load(studio_id, load)


def set_defaults(
    db: Session,
    access: StudioAccess,
    length_hours: Optional[int] = None,
    buffer_minutes: Optional[int] = None,
    fallback: Optional[Defaults] = None,
) -> Defaults:
    access.require_admin("update studio defaults")

    if length_hours is not None and not MIN_SESSION_LENGTH_HOURS <= length_hours <= MAX_SESSION_LENGTH_HOURS:
        raise InvalidInputError(
            f"Session length must be between {MIN_SESSION_LENGTH_HOURS} and {MAX_SESSION_LENGTH_HOURS} hours"
        )
    if buffer_minutes is not None and not MIN_BUFFER_MINUTES <= buffer_minutes <= MAX_BUFFER_MINUTES:
        raise InvalidInputError(f"Buffer minutes must be between {MIN_BUFFER_MINUTES} and {MAX_BUFFER_MINUTES}")

    fallback = fallback or fallback_defaults()
    if length_hours is None and buffer_minutes is None:
        return get_defaults(db, access.studio_id, fallback)

    try:
        row = _ensure_row(db, access.studio_id, fallback)
        if length_hours is not None:
            row.default_session_length_hours = length_hours
        if buffer_minutes is not None:
            row.default_buffer_minutes = buffer_minutes
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise StorageError(f"Failed to update studio defaults: {exc}") from exc
    finally:
        defaults_cache.invalidate(access.studio_id)

    logger.info("Studio %s defaults updated by %s", access.studio_id, access.user.id)
    return _snapshot(row, fallback)
