"""Typed scheduling errors and the FastAPI handler that renders them."""
from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse


class SchedulingError(Exception):
    """Base class for every error the scheduling core reports."""

    code = "SCHEDULING_ERROR"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str, *, code: Optional[str] = None, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details = details or {}

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"error": self.code, "message": self.message}
        payload.update(self.details)
        return payload


class AuthorizationError(SchedulingError):
    code = "INSUFFICIENT_PERMISSIONS"
    status_code = status.HTTP_403_FORBIDDEN


class AuthenticationRequiredError(AuthorizationError):
    code = "AUTHENTICATION_REQUIRED"
    status_code = status.HTTP_401_UNAUTHORIZED


class NotAMemberError(AuthorizationError):
    code = "NOT_A_MEMBER"


class InvalidInputError(SchedulingError):
    code = "VALIDATION_ERROR"
    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(SchedulingError):
    code = "NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(SchedulingError):
    code = "CONFLICT"
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, message: str, conflict: Any) -> None:
        super().__init__(message, details={"conflict_details": conflict.as_dict()})
        self.conflict = conflict


class RoomConflictError(ConflictError):
    code = "ROOM_CONFLICT"


class EngineerConflictError(ConflictError):
    code = "ENGINEER_CONFLICT"


class StorageError(SchedulingError):
    code = "DATABASE_ERROR"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


def scheduling_error_handler(_: Request, exc: SchedulingError) -> JSONResponse:
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, AuthenticationRequiredError) else None
    return JSONResponse(status_code=exc.status_code, content=jsonable_encoder(exc.to_payload()), headers=headers)


def request_validation_handler(_: Request, exc: RequestValidationError) -> JSONResponse:
    """Report malformed request bodies in the scheduling error shape."""

    first = exc.errors()[0] if exc.errors() else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = first.get("msg", "Invalid request")
    if location:
        message = f"{location}: {message}"
    payload = InvalidInputError(message).to_payload()
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content=payload)


def register_error_handlers(app: FastAPI) -> None:
    """Attach the scheduling error handlers to an app."""

    app.add_exception_handler(SchedulingError, scheduling_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, request_validation_handler)  # type: ignore[arg-type]
