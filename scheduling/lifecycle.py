"""Create, update, transition and remove booked studio sessions.

Every mutating entry point follows the same order: the caller's role is
checked first, then the cheap format checks, then tenancy lookups, and only
then the overlap queries. Nothing is written until all of them pass.

The overlap query and the write share one database transaction but are not
serialised against concurrent requests, so two simultaneous bookings for the
same slot can both pass the check.
"""
from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta, tzinfo
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.orm import Session, joinedload, selectinload

from studio_common.dependencies import StudioAccess
from studio_common.errors import InvalidInputError, NotFoundError
from studio_common.models import Booking, Client, GearAssignment, Room, SessionStatus, StudioMembership
from studio_common.schemas import SessionCreate, SessionUpdate

from .conflicts import ResourceKind, ensure_no_conflict, find_conflict
from .defaults import get_defaults
from .status import RELEASED, check_transition, current_status, normalize_status
from .storage import storage_guard
from .timeutils import (
    as_utc,
    combine_local,
    local_day_bounds,
    parse_clock,
    parse_date_key,
    parse_instant,
    resolve_timezone,
    to_storage,
)

logger = logging.getLogger(__name__)


def _clean_notes(notes: Optional[str]) -> Optional[str]:
    if notes is None:
        return None
    notes = notes.strip()
    return notes or None


def _required_id(value: Optional[str], label: str) -> str:
    if value is None or not value.strip():
        raise InvalidInputError(f"{label} is required")
    return value.strip()


def _optional_id(value: Optional[str]) -> Optional[str]:
    if value is None or not value.strip():
        return None
    return value.strip()


def studio_timezone(access: StudioAccess) -> Optional[tzinfo]:
    return resolve_timezone(access.studio.timezone)


def _with_relations(query):
    return query.options(
        joinedload(Booking.room),
        joinedload(Booking.client),
        joinedload(Booking.engineer),
        selectinload(Booking.gear_assignments).joinedload(GearAssignment.gear),
    )


def load_session(db: Session, studio_id: str, session_id: str, with_relations: bool = False) -> Booking:
    """Fetch a session of this studio; other studios' sessions read as missing."""

    query = db.query(Booking).filter(Booking.id == session_id, Booking.studio_id == studio_id)
    if with_relations:
        query = _with_relations(query)
    with storage_guard(db, "fetch session"):
        session = query.first()
    if session is None:
        raise NotFoundError("Session not found")
    return session


def _ensure_room(db: Session, studio_id: str, room_id: str) -> None:
    with storage_guard(db, "fetch room"):
        room = db.query(Room).filter(Room.id == room_id, Room.studio_id == studio_id).first()
    if room is None:
        raise NotFoundError("Room not found or does not belong to this studio")


def _ensure_client(db: Session, studio_id: str, client_id: str) -> None:
    with storage_guard(db, "fetch client"):
        client = db.query(Client).filter(Client.id == client_id, Client.studio_id == studio_id).first()
    if client is None:
        raise NotFoundError("Client not found or does not belong to this studio")


def _ensure_engineer(db: Session, studio_id: str, engineer_id: str) -> None:
    with storage_guard(db, "fetch engineer membership"):
        membership = (
            db.query(StudioMembership)
            .filter(StudioMembership.studio_id == studio_id, StudioMembership.user_id == engineer_id)
            .first()
        )
    if membership is None:
        raise NotFoundError("Engineer must be a member of this studio")


def _ensure_resources_free(
    db: Session,
    studio_id: str,
    room_id: str,
    engineer_id: Optional[str],
    start: datetime,
    end: datetime,
    exclude_session_id: Optional[str] = None,
) -> None:
    ensure_no_conflict(db, studio_id, ResourceKind.ROOM, room_id, start, end, exclude_session_id)
    if engineer_id:
        ensure_no_conflict(db, studio_id, ResourceKind.ENGINEER, engineer_id, start, end, exclude_session_id)


def booking_window(
    day: date,
    start_at: time,
    end_at: Optional[time],
    length_hours: int,
    tz: Optional[tzinfo],
) -> Tuple[datetime, datetime]:
    """Turn the calendar form's date and clock values into UTC instants.

    An end time at or before the start time belongs to the next day, so
    22:00-02:00 is a four hour overnight session. Without an end time the
    session lasts ``length_hours``.
    """

    start = combine_local(day, start_at, tz)
    if end_at is None:
        return start, start + timedelta(hours=length_hours)
    end = combine_local(day, end_at, tz)
    if end <= start:
        end = combine_local(day + timedelta(days=1), end_at, tz)
    return start, end


def create_session(db: Session, access: StudioAccess, payload: SessionCreate) -> Booking:
    access.require_admin("create sessions")

    day = parse_date_key(payload.date, "date")
    start_at = parse_clock(payload.start_time, "start time")
    end_at = parse_clock(payload.end_time, "end time") if payload.end_time else None
    room_id = _required_id(payload.room_id, "Room")
    client_id = _required_id(payload.client_id, "Client")
    engineer_id = _optional_id(payload.engineer_id)

    length_hours = 0
    if end_at is None:
        length_hours = get_defaults(db, access.studio_id, fresh=True).length_hours
    start, end = booking_window(day, start_at, end_at, length_hours, studio_timezone(access))

    _ensure_room(db, access.studio_id, room_id)
    _ensure_client(db, access.studio_id, client_id)
    if engineer_id:
        _ensure_engineer(db, access.studio_id, engineer_id)

    _ensure_resources_free(db, access.studio_id, room_id, engineer_id, start, end)

    session = Booking(
        studio_id=access.studio_id,
        room_id=room_id,
        client_id=client_id,
        engineer_id=engineer_id,
        start_time=to_storage(start),
        end_time=to_storage(end),
        status=SessionStatus.SCHEDULED.value,
        notes=_clean_notes(payload.notes),
    )
    with storage_guard(db, "create session"):
        db.add(session)
        db.commit()

    logger.info(
        "Session %s booked in studio %s: room=%s engineer=%s %s-%s",
        session.id,
        access.studio_id,
        room_id,
        engineer_id or "-",
        start.isoformat(),
        end.isoformat(),
    )
    return load_session(db, access.studio_id, session.id, with_relations=True)


def update_session(db: Session, access: StudioAccess, session_id: str, payload: SessionUpdate) -> Booking:
    access.require_admin("update sessions")

    session = load_session(db, access.studio_id, session_id)
    data = payload.model_dump(exclude_unset=True)
    tz = studio_timezone(access)

    start = parse_instant(data["start_at"], tz, "start datetime") if "start_at" in data else as_utc(session.start_time)
    end = parse_instant(data["end_at"], tz, "end datetime") if "end_at" in data else as_utc(session.end_time)
    if start >= end:
        raise InvalidInputError("End time must be after start time")

    room_id = _required_id(data["room_id"], "Room") if "room_id" in data else session.room_id
    client_id = _required_id(data["client_id"], "Client") if "client_id" in data else session.client_id
    engineer_id = _optional_id(data["engineer_id"]) if "engineer_id" in data else session.engineer_id

    status = current_status(session)
    if data.get("status") is not None:
        target = normalize_status(data["status"])
        check_transition(status, target)
        status = target

    if "room_id" in data:
        _ensure_room(db, access.studio_id, room_id)
    if "client_id" in data:
        _ensure_client(db, access.studio_id, client_id)
    if engineer_id and "engineer_id" in data:
        _ensure_engineer(db, access.studio_id, engineer_id)

    if status not in RELEASED:
        _ensure_resources_free(db, access.studio_id, room_id, engineer_id, start, end, exclude_session_id=session.id)

    with storage_guard(db, "update session"):
        session.start_time = to_storage(start)
        session.end_time = to_storage(end)
        session.room_id = room_id
        session.client_id = client_id
        session.engineer_id = engineer_id
        session.status = status.value
        if "notes" in data:
            session.notes = _clean_notes(data["notes"])
        db.commit()

    logger.info("Session %s updated in studio %s", session.id, access.studio_id)
    return load_session(db, access.studio_id, session.id, with_relations=True)


def update_session_status(db: Session, access: StudioAccess, session_id: str, requested: str) -> SessionStatus:
    access.require_admin("update session status")

    target = normalize_status(requested)
    session = load_session(db, access.studio_id, session_id)
    current = current_status(session)
    check_transition(current, target)

    if current in RELEASED and target not in RELEASED:
        # A restored booking takes its room and engineer back.
        _ensure_resources_free(
            db,
            access.studio_id,
            session.room_id,
            session.engineer_id,
            as_utc(session.start_time),
            as_utc(session.end_time),
            exclude_session_id=session.id,
        )

    with storage_guard(db, "update session status"):
        session.status = target.value
        db.commit()

    logger.info("Session %s status %s -> %s", session.id, current.value, target.value)
    return target


def delete_session(db: Session, access: StudioAccess, session_id: str) -> None:
    access.require_admin("delete sessions")

    session = load_session(db, access.studio_id, session_id)
    with storage_guard(db, "delete session"):
        db.delete(session)
        db.commit()
    logger.info("Session %s deleted from studio %s by %s", session_id, access.studio_id, access.user.id)


def get_session(db: Session, access: StudioAccess, session_id: str) -> Booking:
    return load_session(db, access.studio_id, session_id, with_relations=True)


def list_sessions(
    db: Session,
    access: StudioAccess,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
) -> List[Booking]:
    """Sessions starting within the inclusive studio-local day range."""

    lower, upper = local_day_bounds(start_date, end_date, studio_timezone(access))

    query = _with_relations(db.query(Booking).filter(Booking.studio_id == access.studio_id))
    if lower is not None:
        query = query.filter(Booking.start_time >= to_storage(lower))
    if upper is not None:
        query = query.filter(Booking.start_time < to_storage(upper))

    with storage_guard(db, "fetch sessions"):
        return query.order_by(Booking.start_time.asc()).all()


def check_availability(
    db: Session,
    access: StudioAccess,
    room_id: Optional[str],
    engineer_id: Optional[str],
    start_at: str,
    end_at: str,
    exclude_session_id: Optional[str] = None,
) -> Dict[str, Any]:
    """Dry run of the overlap checks a booking for this slot would face."""

    tz = studio_timezone(access)
    start = parse_instant(start_at, tz, "start datetime")
    end = parse_instant(end_at, tz, "end datetime")
    if start >= end:
        raise InvalidInputError("End time must be after start time")
    room_id = _optional_id(room_id)
    engineer_id = _optional_id(engineer_id)
    if room_id is None and engineer_id is None:
        raise InvalidInputError("Room or engineer is required")

    result: Dict[str, Any] = {"available": True, "room_conflict": None, "engineer_conflict": None}
    if room_id:
        conflict = find_conflict(db, access.studio_id, ResourceKind.ROOM, room_id, start, end, exclude_session_id)
        if conflict is not None:
            result["room_conflict"] = conflict.as_dict()
    if engineer_id:
        conflict = find_conflict(
            db, access.studio_id, ResourceKind.ENGINEER, engineer_id, start, end, exclude_session_id
        )
        if conflict is not None:
            result["engineer_conflict"] = conflict.as_dict()
    result["available"] = result["room_conflict"] is None and result["engineer_conflict"] is None
    return result
