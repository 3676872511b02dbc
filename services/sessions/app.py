from contextlib import asynccontextmanager
from typing import List, Optional

from circuitbreaker import circuit
from fastapi import Depends, FastAPI, Query, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator
from sqlalchemy.orm import Session

from scheduling import bucketing, defaults, gear, lifecycle
from studio_common.config import get_settings
from studio_common.database import Base, engine, get_db
from studio_common.dependencies import StudioAccess, get_studio_access, require_studio_admin
from studio_common.errors import StorageError, register_error_handlers
from studio_common.logging_middleware import add_audit_middleware
from studio_common.rate_limit import apply_rate_limiter, limiter
from studio_common.schemas import (
    AvailabilityRead,
    DefaultsRead,
    DefaultsUpdate,
    GearAssignmentCreate,
    GearAssignmentRead,
    GearWarning,
    SessionBucketsRead,
    SessionCreate,
    SessionGearRead,
    SessionRead,
    SessionUpdate,
    StatusRead,
    StatusUpdate,
)

settings = get_settings()


@asynccontextmanager
async def lifespan(_: FastAPI):
    if settings.run_db_migrations:
        Base.metadata.create_all(bind=engine)
    yield


def create_app() -> FastAPI:
    fastapi_app = FastAPI(title="Sessions Service", version="0.1.0", lifespan=lifespan)
    fastapi_app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    apply_rate_limiter(fastapi_app)
    add_audit_middleware(fastapi_app, "sessions")
    register_error_handlers(fastapi_app)
    Instrumentator().instrument(fastapi_app).expose(fastapi_app)
    return fastapi_app


app = create_app()


def _defaults_read(values: defaults.Defaults) -> DefaultsRead:
    return DefaultsRead(
        default_session_length_hours=values.length_hours,
        default_buffer_minutes=values.buffer_minutes,
    )


def _gear_read(listing) -> SessionGearRead:
    assignments, warnings = listing
    return SessionGearRead(
        gear=[GearAssignmentRead.model_validate(item) for item in assignments],
        warnings=[GearWarning.model_validate(warning) for warning in warnings],
    )


@app.get("/health", tags=["health"])
def health() -> dict[str, str]:
    return {"status": "ok", "service": "sessions"}


@app.get("/studios/{studio_id}/defaults", response_model=DefaultsRead)
@limiter.limit("30/minute")
def read_defaults(
    request: Request,
    access: StudioAccess = Depends(get_studio_access),
    db: Session = Depends(get_db),
) -> DefaultsRead:
    return _defaults_read(defaults.get_defaults(db, access.studio_id))


@app.patch("/studios/{studio_id}/defaults", response_model=DefaultsRead)
@limiter.limit("20/minute")
def update_defaults(
    request: Request,
    defaults_in: DefaultsUpdate,
    access: StudioAccess = Depends(require_studio_admin),
    db: Session = Depends(get_db),
) -> DefaultsRead:
    values = defaults.set_defaults(
        db,
        access,
        length_hours=defaults_in.default_session_length_hours,
        buffer_minutes=defaults_in.default_buffer_minutes,
    )
    return _defaults_read(values)


@app.post("/studios/{studio_id}/sessions", response_model=SessionRead, status_code=status.HTTP_201_CREATED)
@limiter.limit("20/minute")
def create_session(
    request: Request,
    session_in: SessionCreate,
    access: StudioAccess = Depends(require_studio_admin),
    db: Session = Depends(get_db),
) -> SessionRead:
    return SessionRead.model_validate(lifecycle.create_session(db, access, session_in))


@app.get("/studios/{studio_id}/sessions", response_model=List[SessionRead])
@circuit(failure_threshold=5, recovery_timeout=60, expected_exception=StorageError)
def list_sessions(
    request: Request,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    access: StudioAccess = Depends(get_studio_access),
    db: Session = Depends(get_db),
) -> List[SessionRead]:
    sessions = lifecycle.list_sessions(db, access, start_date=start_date, end_date=end_date)
    return [SessionRead.model_validate(session) for session in sessions]


# Registered before /sessions/{session_id} so "buckets" is not read as an id.
@app.get("/studios/{studio_id}/sessions/buckets", response_model=SessionBucketsRead)
@limiter.limit("30/minute")
def session_buckets(
    request: Request,
    q: Optional[str] = None,
    upcoming: Optional[str] = None,
    recent: Optional[str] = None,
    access: StudioAccess = Depends(get_studio_access),
    db: Session = Depends(get_db),
) -> SessionBucketsRead:
    buckets = bucketing.load_buckets(
        db,
        access,
        query=q,
        upcoming_all=upcoming == "all",
        recent_all=recent == "all",
    )
    return SessionBucketsRead.model_validate(buckets)


@app.get("/studios/{studio_id}/sessions/{session_id}", response_model=SessionRead)
@limiter.limit("30/minute")
def read_session(
    request: Request,
    session_id: str,
    access: StudioAccess = Depends(get_studio_access),
    db: Session = Depends(get_db),
) -> SessionRead:
    return SessionRead.model_validate(lifecycle.get_session(db, access, session_id))


@app.put("/studios/{studio_id}/sessions/{session_id}", response_model=SessionRead)
@limiter.limit("20/minute")
def update_session(
    request: Request,
    session_id: str,
    session_update: SessionUpdate,
    access: StudioAccess = Depends(require_studio_admin),
    db: Session = Depends(get_db),
) -> SessionRead:
    return SessionRead.model_validate(lifecycle.update_session(db, access, session_id, session_update))


@app.patch("/studios/{studio_id}/sessions/{session_id}/status", response_model=StatusRead)
@limiter.limit("20/minute")
def update_session_status(
    request: Request,
    session_id: str,
    status_in: StatusUpdate,
    access: StudioAccess = Depends(require_studio_admin),
    db: Session = Depends(get_db),
) -> StatusRead:
    return StatusRead(status=lifecycle.update_session_status(db, access, session_id, status_in.status))


@app.delete("/studios/{studio_id}/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
@limiter.limit("20/minute")
def delete_session(
    request: Request,
    session_id: str,
    access: StudioAccess = Depends(require_studio_admin),
    db: Session = Depends(get_db),
) -> Response:
    lifecycle.delete_session(db, access, session_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.get("/studios/{studio_id}/sessions/{session_id}/gear", response_model=SessionGearRead)
@limiter.limit("30/minute")
def list_session_gear(
    request: Request,
    session_id: str,
    access: StudioAccess = Depends(get_studio_access),
    db: Session = Depends(get_db),
) -> SessionGearRead:
    return _gear_read(gear.list_assignments(db, access, session_id))


@app.post("/studios/{studio_id}/sessions/{session_id}/gear", response_model=SessionGearRead)
@limiter.limit("20/minute")
def add_session_gear(
    request: Request,
    session_id: str,
    gear_in: GearAssignmentCreate,
    access: StudioAccess = Depends(require_studio_admin),
    db: Session = Depends(get_db),
) -> SessionGearRead:
    return _gear_read(gear.add_assignment(db, access, session_id, gear_in.gear_id, gear_in.note))


@app.delete("/studios/{studio_id}/sessions/{session_id}/gear/{gear_id}", response_model=SessionGearRead)
@limiter.limit("20/minute")
def remove_session_gear(
    request: Request,
    session_id: str,
    gear_id: str,
    access: StudioAccess = Depends(require_studio_admin),
    db: Session = Depends(get_db),
) -> SessionGearRead:
    return _gear_read(gear.remove_assignment(db, access, session_id, gear_id))


@app.get("/studios/{studio_id}/availability", response_model=AvailabilityRead)
@limiter.limit("40/minute")
def check_availability(
    request: Request,
    start_at: str = Query(...),
    end_at: str = Query(...),
    room_id: Optional[str] = None,
    engineer_id: Optional[str] = None,
    exclude_session_id: Optional[str] = None,
    access: StudioAccess = Depends(get_studio_access),
    db: Session = Depends(get_db),
) -> AvailabilityRead:
    result = lifecycle.check_availability(
        db,
        access,
        room_id=room_id,
        engineer_id=engineer_id,
        start_at=start_at,
        end_at=end_at,
        exclude_session_id=exclude_session_id,
    )
    return AvailabilityRead(**result)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("services.sessions.app:app", host="0.0.0.0", port=settings.sessions_service_port)
