"""Equipment attached to a booked session.

Gear is shared studio inventory and an assignment only records that a session
intends to use a piece. Over-assignment produces warnings, never errors.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from sqlalchemy.orm import Session, joinedload

from studio_common.dependencies import StudioAccess
from studio_common.errors import InvalidInputError, NotFoundError
from studio_common.models import Gear, GearAssignment

from .lifecycle import load_session
from .storage import storage_guard

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GearRequest:
    gear_id: str
    quantity: int = 1
    note: Optional[str] = None


@dataclass(frozen=True)
class AvailabilityWarning:
    gear_id: str
    requested: int
    available: int

    @property
    def message(self) -> str:
        return f"Requested {self.requested} but only {self.available} available for gear {self.gear_id}"

    def as_dict(self) -> Dict[str, Any]:
        return {
            "gear_id": self.gear_id,
            "requested": self.requested,
            "available": self.available,
            "message": self.message,
        }


def _clean_note(note: Any) -> Optional[str]:
    if note is None:
        return None
    note = str(note).strip()
    return note or None


def _coerce_quantity(value: Any) -> int:
    try:
        quantity = float(value)
    except (TypeError, ValueError):
        return 1
    if quantity != quantity or quantity <= 0:
        return 1
    rounded = int(round(quantity))
    return rounded if rounded > 0 else 1


def normalize_requests(inputs: Iterable[Mapping[str, Any]]) -> List[GearRequest]:
    """Clean raw gear rows from a form.

    Blank gear ids are dropped, missing or non-positive quantities become 1,
    fractional quantities are rounded and blank notes become ``None``.
    """

    requests = []
    for item in inputs:
        gear_id = str(item.get("gear_id") or "").strip()
        if not gear_id:
            continue
        requests.append(
            GearRequest(
                gear_id=gear_id,
                quantity=_coerce_quantity(item.get("quantity")),
                note=_clean_note(item.get("note")),
            )
        )
    return requests


def compute_availability_warnings(
    requests: Iterable[GearRequest],
    inventory: Mapping[str, int],
) -> List[AvailabilityWarning]:
    """Warn where one assignment set asks for more than the studio owns.

    Quantities are summed per gear id within ``requests`` only; other
    sessions' assignments are not counted. Gear with zero or unknown stock
    is not tracked and never warns.
    """

    totals: Dict[str, int] = {}
    for request in requests:
        totals[request.gear_id] = totals.get(request.gear_id, 0) + request.quantity

    warnings = []
    for gear_id, requested in totals.items():
        available = inventory.get(gear_id) or 0
        if available > 0 and requested > available:
            warnings.append(AvailabilityWarning(gear_id=gear_id, requested=requested, available=available))
    return warnings


def _assignments(db: Session, session_id: str) -> List[GearAssignment]:
    with storage_guard(db, "fetch session gear"):
        return (
            db.query(GearAssignment)
            .options(joinedload(GearAssignment.gear))
            .filter(GearAssignment.session_id == session_id)
            .order_by(GearAssignment.created_at.asc())
            .all()
        )


def _listing(db: Session, session_id: str) -> Tuple[List[GearAssignment], List[AvailabilityWarning]]:
    assignments = _assignments(db, session_id)
    requests = normalize_requests({"gear_id": item.gear_id, "note": item.note} for item in assignments)
    inventory = {item.gear_id: item.gear.quantity for item in assignments if item.gear is not None}
    return assignments, compute_availability_warnings(requests, inventory)


def list_assignments(
    db: Session, access: StudioAccess, session_id: str
) -> Tuple[List[GearAssignment], List[AvailabilityWarning]]:
    load_session(db, access.studio_id, session_id)
    return _listing(db, session_id)


def add_assignment(
    db: Session,
    access: StudioAccess,
    session_id: str,
    gear_id: Optional[str],
    note: Optional[str] = None,
) -> Tuple[List[GearAssignment], List[AvailabilityWarning]]:
    """Attach gear to a session; adding the same gear twice keeps one row."""

    access.require_admin("assign gear")

    gear_id = (gear_id or "").strip()
    if not gear_id:
        raise InvalidInputError("Gear is required")
    note = _clean_note(note)

    session = load_session(db, access.studio_id, session_id)
    with storage_guard(db, "fetch gear"):
        gear = db.query(Gear).filter(Gear.id == gear_id, Gear.studio_id == access.studio_id).first()
    if gear is None:
        raise NotFoundError("Gear not found or does not belong to this studio")

    with storage_guard(db, "assign gear"):
        existing = (
            db.query(GearAssignment)
            .filter(GearAssignment.session_id == session.id, GearAssignment.gear_id == gear.id)
            .first()
        )
        if existing is None:
            db.add(GearAssignment(session_id=session.id, gear_id=gear.id, note=note))
            logger.info("Gear %s assigned to session %s", gear.id, session.id)
        elif note is not None:
            existing.note = note
        db.commit()

    return _listing(db, session.id)


def remove_assignment(
    db: Session, access: StudioAccess, session_id: str, gear_id: str
) -> Tuple[List[GearAssignment], List[AvailabilityWarning]]:
    access.require_admin("remove gear")

    session = load_session(db, access.studio_id, session_id)
    with storage_guard(db, "remove gear"):
        removed = (
            db.query(GearAssignment)
            .filter(GearAssignment.session_id == session.id, GearAssignment.gear_id == gear_id.strip())
            .delete(synchronize_session="fetch")
        )
        db.commit()
    if removed:
        logger.info("Gear %s removed from session %s", gear_id, session.id)

    return _listing(db, session.id)
