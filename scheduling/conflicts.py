"""Overlap detection for rooms and engineers.

Bookings occupy half-open intervals ``[start_time, end_time)``: a session
ending at 14:00 and one starting at 14:00 can share a room. Cancelled
sessions release their resources and are ignored.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from studio_common.errors import EngineerConflictError, RoomConflictError, StorageError
from studio_common.models import Booking, Client, SessionStatus

from .timeutils import as_utc, to_storage

logger = logging.getLogger(__name__)


class ResourceKind(str, Enum):
    ROOM = "room"
    ENGINEER = "engineer"


_RESOURCE_COLUMNS = {
    ResourceKind.ROOM: Booking.room_id,
    ResourceKind.ENGINEER: Booking.engineer_id,
}


@dataclass(frozen=True)
class ConflictDetails:
    conflicting_session_id: str
    conflicting_client_name: Optional[str]
    conflicting_start_time: datetime
    conflicting_end_time: datetime

    def as_dict(self) -> Dict[str, Any]:
        return {
            "conflicting_session_id": self.conflicting_session_id,
            "conflicting_client_name": self.conflicting_client_name,
            "conflicting_start_time": self.conflicting_start_time.isoformat(),
            "conflicting_end_time": self.conflicting_end_time.isoformat(),
        }


def find_conflict(
    db: Session,
    studio_id: str,
    kind: ResourceKind,
    resource_id: str,
    start: datetime,
    end: datetime,
    exclude_session_id: Optional[str] = None,
) -> Optional[ConflictDetails]:
    """Return the first non-cancelled booking of the resource overlapping ``[start, end)``."""

    column = _RESOURCE_COLUMNS[kind]
    query = (
        db.query(Booking.id, Booking.start_time, Booking.end_time, Client.name)
        .outerjoin(Client, Client.id == Booking.client_id)
        .filter(
            column == resource_id,
            Booking.studio_id == studio_id,
            Booking.status != SessionStatus.CANCELLED.value,
            Booking.start_time < to_storage(end),
            Booking.end_time > to_storage(start),
        )
    )
    if exclude_session_id is not None:
        query = query.filter(Booking.id != exclude_session_id)

    try:
        row = query.order_by(Booking.start_time).first()
    except SQLAlchemyError as exc:
        raise StorageError(f"Failed to check for {kind.value} conflicts: {exc}") from exc

    if row is None:
        return None
    session_id, conflict_start, conflict_end, client_name = row
    return ConflictDetails(
        conflicting_session_id=session_id,
        conflicting_client_name=client_name,
        conflicting_start_time=as_utc(conflict_start),
        conflicting_end_time=as_utc(conflict_end),
    )


def ensure_no_conflict(
    db: Session,
    studio_id: str,
    kind: ResourceKind,
    resource_id: str,
    start: datetime,
    end: datetime,
    exclude_session_id: Optional[str] = None,
) -> None:
    conflict = find_conflict(db, studio_id, kind, resource_id, start, end, exclude_session_id)
    if conflict is None:
        return
    logger.info(
        "Rejected %s booking for %s %s-%s: overlaps session %s",
        kind.value,
        resource_id,
        start.isoformat(),
        end.isoformat(),
        conflict.conflicting_session_id,
    )
    if kind is ResourceKind.ROOM:
        raise RoomConflictError("Room is already booked for this time", conflict)
    raise EngineerConflictError("Engineer is already assigned to a session during this time", conflict)
