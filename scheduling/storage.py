"""Wrapping of persistence failures into scheduling storage errors."""
import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from studio_common.errors import StorageError

logger = logging.getLogger(__name__)


@contextmanager
def storage_guard(db: Session, action: str) -> Iterator[None]:
    """Roll back and re-raise store failures as ``StorageError``.

    ``action`` completes the phrase "Failed to ...".
    """

    try:
        yield
    except SQLAlchemyError as exc:
        db.rollback()
        logger.error("Failed to %s: %s", action, exc)
        raise StorageError(f"Failed to {action}: {exc}") from exc
