"""Route matrix endpoints: initialize, reset, compute and simplify."""

from __future__ import annotations

from fastapi import APIRouter, HTTPException, status

from ...config import PlannerConfig, planner_config_from_settings, settings
from ...models.domain import ALL_PERIODS, CellStatus
from ...schemas.matrix import (
    BuildRoutesRequest,
    BuildRoutesResponse,
    InitializeMatrixRequest,
    InitializeMatrixResponse,
    ResetMatrixRequest,
    ResetMatrixResponse,
    SimplifyRoutesRequest,
    SimplifyRoutesResponse,
)
from ...services.routing.planner_client import TripPlannerClient
from ...services.routing.polyline import simplify_route_files
from ...services.routing.scheduler import build_routes
from ..dependencies import get_stores, progress_emitter, to_http_error

router = APIRouter(prefix="/matrix", tags=["matrix"])


def _open_planner(config: PlannerConfig) -> TripPlannerClient:
    return TripPlannerClient(config)


@router.post("/initialize", response_model=InitializeMatrixResponse, status_code=status.HTTP_200_OK)
def initialize(payload: InitializeMatrixRequest) -> InitializeMatrixResponse:
    """Create every origin file with all destinations PENDING, overwriting existing files."""
    try:
        store, catalog_store = get_stores()
        zone_ids = catalog_store.require_catalog().zone_ids()
        periods = payload.periods or list(ALL_PERIODS)
        written = store.initialize(zone_ids, periods, payload.modes)
    except Exception as exc:
        raise to_http_error(exc, "initialize route matrix") from exc
    return InitializeMatrixResponse(
        files_written=written,
        zones=len(zone_ids),
        periods=periods,
        modes=payload.modes,
    )


@router.post("/reset", response_model=ResetMatrixResponse, status_code=status.HTTP_200_OK)
def reset(payload: ResetMatrixRequest) -> ResetMatrixResponse:
    try:
        statuses = [CellStatus[name.upper()] for name in payload.statuses]
    except KeyError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown cell status {exc.args[0]!r}",
        ) from exc
    try:
        store, catalog_store = get_stores()
        zone_ids = payload.zone_ids or catalog_store.require_catalog().zone_ids()
        count = store.reset_cells(zone_ids, payload.periods or ALL_PERIODS, payload.mode, statuses)
    except Exception as exc:
        raise to_http_error(exc, "reset route matrix") from exc
    return ResetMatrixResponse(reset=count)


@router.post("/build", response_model=BuildRoutesResponse, status_code=status.HTTP_200_OK)
async def build(payload: BuildRoutesRequest) -> BuildRoutesResponse:
    """Compute every PENDING cell in scope; returns when the run has finished."""
    try:
        store, catalog_store = get_stores()
        config = planner_config_from_settings()
        config.require_credentials()
        async with _open_planner(config) as planner:
            result = await build_routes(
                store,
                catalog_store,
                config,
                period=payload.period,
                mode=payload.mode,
                zones=payload.zones,
                limit=payload.limit,
                retry_failed=payload.retry_failed,
                emitter=progress_emitter,
                client=planner,
                flush_batch_size=settings.flush_batch_size,
            )
    except Exception as exc:
        raise to_http_error(exc, "compute routes") from exc
    return BuildRoutesResponse(
        processed=result.processed,
        ok=result.ok,
        no_route=result.no_route,
        errors=result.errors,
        pending=result.pending,
    )


@router.post("/simplify", response_model=SimplifyRoutesResponse, status_code=status.HTTP_200_OK)
def simplify(payload: SimplifyRoutesRequest) -> SimplifyRoutesResponse:
    try:
        store, catalog_store = get_stores()
        result = simplify_route_files(
            store,
            catalog_store.require_catalog().zone_ids(),
            payload.periods or list(ALL_PERIODS),
            payload.mode,
            tolerance=payload.tolerance or settings.route_simplify_tolerance,
            dry_run=payload.dry_run,
            emitter=progress_emitter,
        )
    except Exception as exc:
        raise to_http_error(exc, "simplify routes") from exc
    return SimplifyRoutesResponse(
        files_processed=result.files_processed,
        legs_simplified=result.legs_simplified,
        original_bytes=result.original_bytes,
        new_bytes=result.new_bytes,
        reduction_percent=round(result.reduction_percent, 1),
    )
