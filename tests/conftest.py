import os
from types import SimpleNamespace
from typing import Generator

import pytest
from fastapi.testclient import TestClient

os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")
os.environ.setdefault("RATE_LIMITING_ENABLED", "false")

from studio_common.config import reset_settings_cache  # noqa: E402

reset_settings_cache()

from scheduling.defaults import defaults_cache  # noqa: E402
from services.sessions.app import app as sessions_app  # noqa: E402
from studio_common.auth import create_access_token  # noqa: E402
from studio_common.database import Base, SessionLocal, engine  # noqa: E402
from studio_common.models import (  # noqa: E402
    Client,
    Gear,
    MembershipRole,
    Room,
    Studio,
    StudioMembership,
    User,
)

STUDIO_TIMEZONE = "America/New_York"


def auth_header(user_id: str) -> dict[str, str]:
    token = create_access_token({"sub": user_id})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture(autouse=True, scope="function")
def _create_test_database() -> Generator[None, None, None]:
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    defaults_cache.clear()
    yield
    defaults_cache.clear()
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def db_session() -> Generator:
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def sessions_client() -> Generator[TestClient, None, None]:
    with TestClient(sessions_app) as client:
        yield client


def _add_user(db, username: str, full_name: str) -> User:
    user = User(username=username, full_name=full_name, email=f"{username}@example.com")
    db.add(user)
    db.flush()
    return user


@pytest.fixture()
def studio(db_session) -> SimpleNamespace:
    """A studio with one user per role, two rooms, two clients and some gear.

    A second studio with its own room, client and gear is seeded for
    cross-tenant checks.
    """

    db = db_session
    home = Studio(name="Blue Door", timezone=STUDIO_TIMEZONE)
    other = Studio(name="Other Place", timezone="UTC")
    db.add_all([home, other])
    db.flush()

    owner = _add_user(db, "owner", "Olive Owner")
    admin = _add_user(db, "admin", "Adam Admin")
    engineer = _add_user(db, "engineer", "Erin Engineer")
    second_engineer = _add_user(db, "engineer2", "Evan Engineer")
    member = _add_user(db, "member", "Mia Member")
    outsider = _add_user(db, "outsider", "Oscar Outsider")

    db.add_all(
        [
            StudioMembership(studio_id=home.id, user_id=owner.id, role=MembershipRole.OWNER),
            StudioMembership(studio_id=home.id, user_id=admin.id, role=MembershipRole.ADMIN),
            StudioMembership(studio_id=home.id, user_id=engineer.id, role=MembershipRole.ENGINEER),
            StudioMembership(studio_id=home.id, user_id=second_engineer.id, role=MembershipRole.ENGINEER),
            StudioMembership(studio_id=home.id, user_id=member.id, role=MembershipRole.MEMBER),
            StudioMembership(studio_id=other.id, user_id=outsider.id, role=MembershipRole.OWNER),
        ]
    )

    room_a = Room(studio_id=home.id, name="Room A")
    room_b = Room(studio_id=home.id, name="Room B")
    closed_room = Room(studio_id=home.id, name="Old Booth", is_active=False)
    foreign_room = Room(studio_id=other.id, name="Their Room")
    client = Client(studio_id=home.id, name="The Lumens")
    other_client = Client(studio_id=home.id, name="Night Shift")
    foreign_client = Client(studio_id=other.id, name="Elsewhere Band")
    mic = Gear(studio_id=home.id, brand="Neumann", model="U87", category="microphone", quantity=1)
    amp = Gear(studio_id=home.id, brand="Fender", model="Twin", category="amp", quantity=0)
    foreign_gear = Gear(studio_id=other.id, brand="Shure", model="SM7B", category="microphone", quantity=3)
    db.add_all([room_a, room_b, closed_room, foreign_room, client, other_client, foreign_client, mic, amp, foreign_gear])
    db.commit()

    return SimpleNamespace(
        id=home.id,
        other_id=other.id,
        owner=owner,
        admin=admin,
        engineer=engineer,
        second_engineer=second_engineer,
        member=member,
        outsider=outsider,
        room_a=room_a,
        room_b=room_b,
        closed_room=closed_room,
        foreign_room=foreign_room,
        client=client,
        other_client=other_client,
        foreign_client=foreign_client,
        mic=mic,
        amp=amp,
        foreign_gear=foreign_gear,
        owner_headers=auth_header(owner.id),
        admin_headers=auth_header(admin.id),
        member_headers=auth_header(member.id),
        engineer_headers=auth_header(engineer.id),
        outsider_headers=auth_header(outsider.id),
    )


@pytest.fixture()
def book(sessions_client, studio):
    """POST a session as the studio owner and return the response."""

    def _book(**overrides):
        payload = {
            "date": "2030-03-12",
            "start_time": "10:00",
            "end_time": "12:00",
            "room_id": studio.room_a.id,
            "client_id": studio.client.id,
        }
        payload.update(overrides)
        return sessions_client.post(f"/studios/{studio.id}/sessions", json=payload, headers=studio.owner_headers)

    return _book
