"""Analytics endpoints: time buckets, deciles and reachability."""

from __future__ import annotations

from fastapi import APIRouter, status

from ...models.domain import TimeBucket
from ...schemas.analytics import (
    HistogramRequest,
    HistogramResponse,
    RankedZoneModel,
    ReachabilityRequest,
    ReachabilityResponse,
    TimeBucketModel,
)
from ...services.analytics.histograms import calculate_deciles, calculate_time_buckets
from ...services.analytics.reachability import calculate_reachability
from ..dependencies import get_stores, progress_emitter, to_http_error

router = APIRouter(prefix="/analytics", tags=["analytics"])


def _histogram_response(buckets: list[TimeBucket]) -> HistogramResponse:
    return HistogramResponse(buckets=[TimeBucketModel(**bucket.to_dict()) for bucket in buckets])


@router.post("/time-buckets", response_model=HistogramResponse, status_code=status.HTTP_200_OK)
def time_buckets(payload: HistogramRequest) -> HistogramResponse:
    try:
        store, catalog_store = get_stores()
        buckets = calculate_time_buckets(store, catalog_store, payload.mode, payload.force, progress_emitter)
    except Exception as exc:
        raise to_http_error(exc, "calculate time buckets") from exc
    return _histogram_response(buckets)


@router.post("/deciles", response_model=HistogramResponse, status_code=status.HTTP_200_OK)
def deciles(payload: HistogramRequest) -> HistogramResponse:
    try:
        store, catalog_store = get_stores()
        buckets = calculate_deciles(store, catalog_store, payload.mode, payload.force, progress_emitter)
    except Exception as exc:
        raise to_http_error(exc, "calculate deciles") from exc
    return _histogram_response(buckets)


@router.post("/reachability", response_model=ReachabilityResponse, status_code=status.HTTP_200_OK)
def reachability(payload: ReachabilityRequest) -> ReachabilityResponse:
    try:
        store, catalog_store = get_stores()
        result = calculate_reachability(
            store, catalog_store, payload.period, payload.mode, payload.force, progress_emitter
        )
    except Exception as exc:
        raise to_http_error(exc, "calculate reachability") from exc

    def ranked(entry: tuple[str, float] | None) -> RankedZoneModel | None:
        return RankedZoneModel(zone_id=entry[0], score=entry[1]) if entry else None

    return ReachabilityResponse(
        zones_processed=result.zones_processed,
        zones_with_data=result.zones_with_data,
        best_connected=ranked(result.best_connected),
        worst_connected=ranked(result.worst_connected),
    )
