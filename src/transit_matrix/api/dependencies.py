"""Shared helpers for the API routers: stores bound to the data root and error mapping."""

from __future__ import annotations

import logging

from fastapi import HTTPException, status

from ..config import settings
from ..persistence.catalog import CatalogStore
from ..persistence.filesystem import FileStorage
from ..persistence.matrix_store import RouteMatrixStore
from ..services.analytics.base import AlreadyCalculatedError
from ..services.events import ProgressTracker, create_progress_emitter

logger = logging.getLogger(__name__)

progress_tracker = ProgressTracker()
progress_emitter = create_progress_emitter(progress_tracker)


def get_stores() -> tuple[RouteMatrixStore, CatalogStore]:
    storage = FileStorage(settings.data_root)
    return RouteMatrixStore(storage), CatalogStore(storage)


def to_http_error(exc: Exception, action: str) -> HTTPException:
    if isinstance(exc, AlreadyCalculatedError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, ValueError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))
    logger.exception(f"Failed to {action}: {exc}")
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"Failed to {action}: {exc}",
    )
