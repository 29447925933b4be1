"""Composite reachability scores per origin zone."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from ...models.domain import CellStatus, TimePeriod, TransportMode, ZoneReachability
from ...persistence.catalog import REACHABILITY_CALCULATED_AT, CatalogStore, utc_now_iso
from ...persistence.matrix_store import RouteMatrixStore
from ..events import CALCULATE_REACHABILITY, ProgressEmitter
from .base import AlreadyCalculatedError

logger = logging.getLogger(__name__)

THRESHOLD_15 = 15 * 60
THRESHOLD_30 = 30 * 60
THRESHOLD_45 = 45 * 60

WEIGHT_15 = 0.4
WEIGHT_30 = 0.3
WEIGHT_45 = 0.2
WEIGHT_MEDIAN = 0.1


@dataclass(slots=True)
class ZoneMetrics:
    zone_id: str
    zones_15: int
    zones_30: int
    zones_45: int
    median_time: float
    reachable_count: int


@dataclass(slots=True)
class ReachabilityResult:
    zones_processed: int
    zones_with_data: int
    best_connected: Optional[tuple[str, float]]
    worst_connected: Optional[tuple[str, float]]


def zone_metrics(zone_id: str, durations: Sequence[float]) -> ZoneMetrics | None:
    values = np.asarray([d for d in durations if d is not None and d > 0], dtype=float)
    if values.size == 0:
        return None
    return ZoneMetrics(
        zone_id=zone_id,
        zones_15=int(np.count_nonzero(values <= THRESHOLD_15)),
        zones_30=int(np.count_nonzero(values <= THRESHOLD_30)),
        zones_45=int(np.count_nonzero(values <= THRESHOLD_45)),
        median_time=float(np.median(values)),
        reachable_count=int(values.size),
    )


def compute_score(metrics: ZoneMetrics, total_zones: int, max_median_time: float) -> float:
    """0.4·(≤15/N) + 0.3·(≤30/N) + 0.2·(≤45/N) + 0.1·(1 − median/max median)."""
    denominator = max(total_zones, 1)
    norm_median = 1 - metrics.median_time / max_median_time if max_median_time > 0 else 1.0
    return (
        WEIGHT_15 * metrics.zones_15 / denominator
        + WEIGHT_30 * metrics.zones_30 / denominator
        + WEIGHT_45 * metrics.zones_45 / denominator
        + WEIGHT_MEDIAN * norm_median
    )


def rank_zones(
    zone_ids: Sequence[str], durations_by_zone: dict[str, Sequence[float]]
) -> dict[str, ZoneReachability]:
    """Score and rank every zone; zones without data get score 0 and distinct trailing ranks."""
    metrics = [m for m in (zone_metrics(z, durations_by_zone.get(z, ())) for z in zone_ids) if m is not None]
    max_median = max((m.median_time for m in metrics), default=0.0)

    scored = [(m, compute_score(m, len(zone_ids), max_median)) for m in metrics]
    # Stable sort keeps encounter order for equal scores.
    scored.sort(key=lambda item: -item[1])

    results: dict[str, ZoneReachability] = {}
    for rank, (m, score) in enumerate(scored, start=1):
        results[m.zone_id] = ZoneReachability(
            rank=rank,
            score=round(score, 3),
            zones_15=m.zones_15,
            zones_30=m.zones_30,
            zones_45=m.zones_45,
            median_time=round(m.median_time),
        )

    next_rank = len(scored) + 1
    for zone_id in zone_ids:
        if zone_id not in results:
            results[zone_id] = ZoneReachability(next_rank, 0.0, 0, 0, 0, 0)
            next_rank += 1
    return results


def calculate_reachability(
    store: RouteMatrixStore,
    catalog_store: CatalogStore,
    period: TimePeriod = TimePeriod.MORNING,
    mode: TransportMode = TransportMode.WALK,
    force: bool = False,
    emitter: ProgressEmitter | None = None,
) -> ReachabilityResult:
    """Recompute reachability for all zones and write it onto the zone catalog."""
    if emitter:
        emitter.emit_start(CALCULATE_REACHABILITY, 4, "Calculating reachability scores...")
    try:
        catalog = catalog_store.require_catalog()
        if any(zone.reachability for zone in catalog.zones) and not force:
            raise AlreadyCalculatedError("Reachability already calculated. Use force to recalculate.")

        zone_ids = catalog.zone_ids()
        durations_by_zone: dict[str, list[float]] = {}
        for zone_id in zone_ids:
            data = store.read(zone_id, period, mode)
            if data is None:
                continue
            durations_by_zone[zone_id] = [
                cell.duration for cell in data.cells if cell.status is CellStatus.OK and cell.duration is not None
            ]
        if emitter:
            emitter.emit_progress(CALCULATE_REACHABILITY, 1, 4, f"Read routes for {len(durations_by_zone)} zones")

        zones_with_data = sum(
            1 for zone_id in zone_ids if any(d > 0 for d in durations_by_zone.get(zone_id, ()))
        )
        if zones_with_data == 0:
            raise ValueError("No route data found. Run route calculation first.")
        if emitter:
            emitter.emit_progress(CALCULATE_REACHABILITY, 2, 4, f"Scoring {zones_with_data} zones")

        reachability = rank_zones(zone_ids, durations_by_zone)

        for zone in catalog.zones:
            zone.reachability = reachability[zone.zone_id]
        catalog_store.write_catalog(catalog)
        catalog_store.update_pipeline(REACHABILITY_CALCULATED_AT, utc_now_iso())
    except Exception as exc:
        if emitter:
            emitter.emit_error(CALCULATE_REACHABILITY, exc, "Failed to calculate reachability")
        raise

    ranked = sorted((r.rank, zone_id, r.score) for zone_id, r in reachability.items() if r.rank <= zones_with_data)
    result = ReachabilityResult(
        zones_processed=len(zone_ids),
        zones_with_data=zones_with_data,
        best_connected=(ranked[0][1], ranked[0][2]) if ranked else None,
        worst_connected=(ranked[-1][1], ranked[-1][2]) if ranked else None,
    )
    logger.info(f"Reachability calculated for {zones_with_data}/{len(zone_ids)} zones ({period.value}, {mode.value})")
    if emitter:
        emitter.emit_complete(
            CALCULATE_REACHABILITY,
            f"Reachability calculated for {zones_with_data} zones (period: {period.value})",
        )
    return result
