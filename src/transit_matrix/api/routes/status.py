"""Pipeline status endpoint."""

from __future__ import annotations

from fastapi import APIRouter, status

from ...models.domain import TransportMode
from ...services.status import pipeline_status
from ..dependencies import get_stores, progress_tracker, to_http_error

router = APIRouter(tags=["status"])


@router.get("/status", status_code=status.HTTP_200_OK)
def get_status(mode: TransportMode | None = None) -> dict:
    """Matrix completion per period, derived dataset freshness and the latest progress events."""
    try:
        store, catalog_store = get_stores()
        modes = (mode,) if mode else tuple(TransportMode)
        summary = pipeline_status(store, catalog_store, modes)
    except Exception as exc:
        raise to_http_error(exc, "read pipeline status") from exc
    summary["progress"] = progress_tracker.snapshot()
    return summary
