"""Session status normalisation, transition guard and the derived live state."""
from __future__ import annotations

from datetime import datetime
from typing import Dict, FrozenSet, Union

from studio_common.errors import InvalidInputError
from studio_common.models import Booking, SessionStatus

from .timeutils import as_utc

ALIASES: Dict[SessionStatus, SessionStatus] = {
    SessionStatus.FINISHED: SessionStatus.COMPLETED,
}

# Values the status entry point will persist. NO_SHOW and LIVE are valid
# enum members but are not set through this path.
SETTABLE_STATUSES: FrozenSet[SessionStatus] = frozenset(
    {
        SessionStatus.SCHEDULED,
        SessionStatus.IN_PROGRESS,
        SessionStatus.COMPLETED,
        SessionStatus.CANCELLED,
    }
)

TRANSITIONS: Dict[SessionStatus, FrozenSet[SessionStatus]] = {
    SessionStatus.SCHEDULED: frozenset({SessionStatus.IN_PROGRESS, SessionStatus.COMPLETED, SessionStatus.CANCELLED}),
    SessionStatus.IN_PROGRESS: frozenset({SessionStatus.COMPLETED, SessionStatus.CANCELLED}),
    SessionStatus.CANCELLED: frozenset({SessionStatus.SCHEDULED}),
    SessionStatus.COMPLETED: frozenset(),
    SessionStatus.NO_SHOW: frozenset(),
}

# Statuses that never occupy a room or an engineer.
RELEASED: FrozenSet[SessionStatus] = frozenset({SessionStatus.CANCELLED})


def normalize_status(value: Union[str, SessionStatus]) -> SessionStatus:
    """Resolve aliases and reject anything the status entry point cannot store."""

    try:
        status = SessionStatus(value)
    except ValueError as exc:
        raise InvalidInputError("Unsupported status transition") from exc
    status = ALIASES.get(status, status)
    if status not in SETTABLE_STATUSES:
        raise InvalidInputError("Unsupported status transition")
    return status


def current_status(session: Booking) -> SessionStatus:
    status = SessionStatus(session.status)
    return ALIASES.get(status, status)


def check_transition(current: SessionStatus, target: SessionStatus) -> None:
    if current == target:
        return
    if target not in TRANSITIONS.get(current, frozenset()):
        raise InvalidInputError(
            f"Unsupported status transition from {current.value} to {target.value}",
            details={"current_status": current.value, "requested_status": target.value},
        )


def is_active(session: Booking, now: datetime) -> bool:
    """True while ``now`` falls inside the session and it is still on."""

    if current_status(session) in (SessionStatus.CANCELLED, SessionStatus.COMPLETED):
        return False
    return as_utc(session.start_time) <= as_utc(now) < as_utc(session.end_time)


def display_status(session: Booking, now: datetime) -> SessionStatus:
    if is_active(session, now):
        return SessionStatus.LIVE
    return current_status(session)
