"""Audit trail of scheduling API calls.

Every request gets an ``X-Request-ID`` (the caller's, or a new one) that is
echoed on the response and written to ``<log_dir>/<service>.log`` together
with the studio the call was scoped to.
"""
from __future__ import annotations

import logging
import re
from pathlib import Path
from time import perf_counter
from typing import Optional
from uuid import uuid4

from fastapi import FastAPI, Request

from .config import get_settings

REQUEST_ID_HEADER = "X-Request-ID"

_PROJECT_ROOT = Path(__file__).resolve().parent.parent
_STUDIO_PATH = re.compile(r"^/studios/([^/]+)")


def studio_from_path(path: str) -> Optional[str]:
    match = _STUDIO_PATH.match(path)
    return match.group(1) if match else None


def _audit_logger(service_name: str) -> logging.Logger:
    logger = logging.getLogger(f"audit.{service_name}")
    if logger.handlers:
        return logger

    log_dir = _PROJECT_ROOT / get_settings().log_dir
    log_dir.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_dir / f"{service_name}.log")
    handler.setFormatter(logging.Formatter("%(asctime)s | %(levelname)s | %(message)s", datefmt="%Y-%m-%d %H:%M:%S"))
    logger.addHandler(handler)
    logger.setLevel(logging.INFO)
    return logger


def add_audit_middleware(app: FastAPI, service_name: str) -> None:
    audit = _audit_logger(service_name)

    @app.middleware("http")
    async def audit_request(request: Request, call_next):  # type: ignore[override]
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid4().hex
        started = perf_counter()
        response = await call_next(request)
        response.headers[REQUEST_ID_HEADER] = request_id

        # Server errors stand out from the routine 4xx rejections.
        level = logging.ERROR if response.status_code >= 500 else logging.INFO
        audit.log(
            level,
            "%s %s %s | studio=%s | status=%s | client=%s | %.1fms",
            request_id,
            request.method,
            request.url.path,
            studio_from_path(request.url.path) or "-",
            response.status_code,
            request.client.host if request.client else "unknown",
            (perf_counter() - started) * 1000,
        )
        return response
