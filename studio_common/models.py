"""SQLAlchemy models for studios, their resources and booked sessions."""
from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    Enum as SqlEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .database import Base


def _uuid() -> str:
    return str(uuid4())


def utcnow() -> datetime:
    """Naive UTC timestamp; all DateTime columns hold UTC without tzinfo."""

    return datetime.now(timezone.utc).replace(tzinfo=None)


class MembershipRole(str, Enum):
    OWNER = "owner"
    ADMIN = "admin"
    ENGINEER = "engineer"
    MEMBER = "member"


ADMIN_ROLES = frozenset({MembershipRole.OWNER, MembershipRole.ADMIN})


class SessionStatus(str, Enum):
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"
    # Accepted on input only, stored as COMPLETED.
    FINISHED = "finished"
    # Derived at read time, never stored.
    LIVE = "live"


class Studio(Base):
    __tablename__ = "studios"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    name: Mapped[str] = mapped_column(String(120))
    timezone: Mapped[Optional[str]] = mapped_column(String(64), default=None)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    memberships: Mapped[List["StudioMembership"]] = relationship(back_populates="studio", cascade="all, delete-orphan")
    defaults: Mapped[Optional["StudioDefaults"]] = relationship(back_populates="studio", cascade="all, delete-orphan")


class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    username: Mapped[str] = mapped_column(String(50), unique=True, index=True)
    full_name: Mapped[Optional[str]] = mapped_column(String(100), default=None)
    email: Mapped[Optional[str]] = mapped_column(String(255), unique=True, default=None)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    memberships: Mapped[List["StudioMembership"]] = relationship(back_populates="user", cascade="all, delete-orphan")


class StudioMembership(Base):
    __tablename__ = "studio_memberships"
    __table_args__ = (UniqueConstraint("studio_id", "user_id", name="uq_studio_memberships_studio_user"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    studio_id: Mapped[str] = mapped_column(ForeignKey("studios.id", ondelete="CASCADE"), index=True)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id", ondelete="CASCADE"), index=True)
    role: Mapped[MembershipRole] = mapped_column(SqlEnum(MembershipRole), default=MembershipRole.MEMBER)

    studio: Mapped[Studio] = relationship(back_populates="memberships")
    user: Mapped[User] = relationship(back_populates="memberships")


class StudioDefaults(Base):
    __tablename__ = "studio_defaults"

    studio_id: Mapped[str] = mapped_column(ForeignKey("studios.id", ondelete="CASCADE"), primary_key=True)
    default_session_length_hours: Mapped[int] = mapped_column(Integer, default=2)
    default_buffer_minutes: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    studio: Mapped[Studio] = relationship(back_populates="defaults")


class Room(Base):
    __tablename__ = "rooms"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    studio_id: Mapped[str] = mapped_column(ForeignKey("studios.id", ondelete="CASCADE"), index=True)
    name: Mapped[str] = mapped_column(String(100))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)


class Client(Base):
    __tablename__ = "clients"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    studio_id: Mapped[str] = mapped_column(ForeignKey("studios.id", ondelete="CASCADE"), index=True)
    name: Mapped[str] = mapped_column(String(120))


class Gear(Base):
    __tablename__ = "gear"
    __table_args__ = (CheckConstraint("quantity >= 0", name="ck_gear_quantity_non_negative"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    studio_id: Mapped[str] = mapped_column(ForeignKey("studios.id", ondelete="CASCADE"), index=True)
    brand: Mapped[Optional[str]] = mapped_column(String(100), default=None)
    model: Mapped[Optional[str]] = mapped_column(String(100), default=None)
    category: Mapped[Optional[str]] = mapped_column(String(60), default=None)
    quantity: Mapped[int] = mapped_column(Integer, default=1)


class Booking(Base):
    """A booked studio session; the table keeps the product's name, ``sessions``."""

    __tablename__ = "sessions"
    __table_args__ = (
        CheckConstraint("end_time > start_time", name="ck_sessions_end_after_start"),
        Index("ix_sessions_room_time", "room_id", "start_time", "end_time"),
        Index("ix_sessions_engineer_time", "engineer_id", "start_time", "end_time"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    studio_id: Mapped[str] = mapped_column(ForeignKey("studios.id", ondelete="CASCADE"), index=True)
    room_id: Mapped[str] = mapped_column(ForeignKey("rooms.id", ondelete="CASCADE"), index=True)
    client_id: Mapped[str] = mapped_column(ForeignKey("clients.id", ondelete="CASCADE"), index=True)
    engineer_id: Mapped[Optional[str]] = mapped_column(ForeignKey("users.id", ondelete="SET NULL"), default=None, index=True)
    start_time: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    end_time: Mapped[datetime] = mapped_column(DateTime, nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(30), default=SessionStatus.SCHEDULED.value, index=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, default=None)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    room: Mapped[Room] = relationship()
    client: Mapped[Client] = relationship()
    engineer: Mapped[Optional[User]] = relationship()
    gear_assignments: Mapped[List["GearAssignment"]] = relationship(
        back_populates="session",
        cascade="all, delete-orphan",
    )


class GearAssignment(Base):
    __tablename__ = "session_gear"
    __table_args__ = (UniqueConstraint("session_id", "gear_id", name="uq_session_gear_session_gear"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    session_id: Mapped[str] = mapped_column(ForeignKey("sessions.id", ondelete="CASCADE"), index=True)
    gear_id: Mapped[str] = mapped_column(ForeignKey("gear.id", ondelete="CASCADE"), index=True)
    note: Mapped[Optional[str]] = mapped_column(Text, default=None)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    session: Mapped[Booking] = relationship(back_populates="gear_assignments")
    gear: Mapped[Gear] = relationship()
