"""Pipeline status summary: matrix completion and derived dataset freshness."""

from __future__ import annotations

from typing import Any, Sequence

from ..models.domain import ALL_PERIODS, CellStatus, TransportMode
from ..persistence.catalog import (
    DECILES_CALCULATED_AT,
    LAST_ROUTE_CALCULATION,
    REACHABILITY_CALCULATED_AT,
    TIME_BUCKETS_CALCULATED_AT,
    CatalogStore,
)
from ..persistence.matrix_store import RouteMatrixStore


def matrix_summary(
    store: RouteMatrixStore,
    zone_ids: Sequence[str],
    modes: Sequence[TransportMode] = (TransportMode.WALK,),
) -> list[dict[str, Any]]:
    rows = []
    for mode in modes:
        for period in ALL_PERIODS:
            counts = store.count_by_status(zone_ids, period, mode)
            total = sum(counts.values())
            done = total - counts[CellStatus.PENDING]
            rows.append(
                {
                    "period": period.value,
                    "mode": mode.value,
                    "total": total,
                    "ok": counts[CellStatus.OK],
                    "noRoute": counts[CellStatus.NO_ROUTE],
                    "errors": counts[CellStatus.ERROR],
                    "pending": counts[CellStatus.PENDING],
                    "percentComplete": round(done / total * 100, 1) if total else 0.0,
                }
            )
    return rows


def pipeline_status(
    store: RouteMatrixStore,
    catalog_store: CatalogStore,
    modes: Sequence[TransportMode] = (TransportMode.WALK,),
) -> dict[str, Any]:
    catalog = catalog_store.read_catalog()
    zone_ids = catalog.zone_ids() if catalog else []
    pipeline = catalog_store.read_pipeline()

    def stage(key: str, present: bool) -> dict[str, Any]:
        return {
            "calculated": present,
            "calculatedAt": pipeline.get(key),
            "stale": catalog_store.is_stale(key),
        }

    return {
        "zones": len(zone_ids),
        "matrix": matrix_summary(store, zone_ids, modes),
        "lastRouteCalculation": pipeline.get(LAST_ROUTE_CALCULATION),
        "timeBuckets": stage(TIME_BUCKETS_CALCULATED_AT, bool(catalog and catalog.time_buckets)),
        "deciles": stage(DECILES_CALCULATED_AT, bool(catalog and catalog.deciles)),
        "reachability": stage(
            REACHABILITY_CALCULATED_AT,
            bool(catalog and any(zone.reachability for zone in catalog.zones)),
        ),
    }
