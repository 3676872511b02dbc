"""Per-caller request limits for the scheduling API using SlowAPI.

Authenticated callers are limited per user so that a studio team behind one
office address does not share a single budget. Requests without a readable
bearer token fall back to the client address.
"""
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

from .auth import decode_token
from .config import get_settings
from .errors import AuthenticationRequiredError


def caller_key(request: Request) -> str:
    scheme, _, token = request.headers.get("authorization", "").partition(" ")
    if scheme.lower() == "bearer" and token:
        try:
            subject = decode_token(token).get("sub")
        except AuthenticationRequiredError:
            subject = None
        if subject:
            return f"user:{subject}"
    return f"ip:{get_remote_address(request)}"


settings = get_settings()
limiter = Limiter(
    key_func=caller_key,
    default_limits=[settings.default_rate_limit],
    enabled=settings.rate_limiting_enabled,
)


def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    return JSONResponse(
        status_code=429,
        content={
            "error": "RATE_LIMITED",
            "message": f"Too many requests for this caller: {exc.detail}",
            "caller": caller_key(request).split(":", 1)[0],
        },
    )


def apply_rate_limiter(app: FastAPI) -> None:
    app.state.limiter = limiter
    app.add_middleware(SlowAPIMiddleware)
    app.add_exception_handler(RateLimitExceeded, rate_limit_handler)  # type: ignore[arg-type]
