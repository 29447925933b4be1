"""Duration histograms for heatmap colouring: fixed 15-minute buckets and deciles."""

from __future__ import annotations

import logging
import math
from typing import Sequence

import numpy as np

from ...models.domain import ALL_PERIODS, TimeBucket, TransportMode
from ...persistence.catalog import (
    DECILES_CALCULATED_AT,
    TIME_BUCKETS_CALCULATED_AT,
    CatalogStore,
    utc_now_iso,
)
from ...persistence.matrix_store import RouteMatrixStore
from ..events import CALCULATE_DECILES, CALCULATE_TIME_BUCKETS, ProgressEmitter
from .base import NO_ROUTES_MESSAGE, AlreadyCalculatedError

logger = logging.getLogger(__name__)

OPEN_ENDED = -1

# Fastest to slowest
TIME_BUCKET_COLORS = (
    "#1b9e77",
    "#66c2a5",
    "#fc8d62",
    "#8da0cb",
    "#4574b4",
    "#1e3a8a",
)

# (min minutes, max minutes, label); the last bucket is open-ended
TIME_BUCKETS = (
    (0, 15, "15min"),
    (15, 30, "30min"),
    (30, 45, "45min"),
    (45, 60, "1h"),
    (60, 75, "1h 15min"),
    (75, 90, "1h 30min"),
)

DECILE_COLORS = (
    "#E76F51",
    "#F4A261",
    "#F9C74F",
    "#90BE6D",
    "#43AA8B",
    "#277DA1",
    "#4D5061",
    "#6C5B7B",
    "#8B5A8C",
    "#355C7D",
)


def fixed_time_buckets() -> list[TimeBucket]:
    buckets = []
    last = len(TIME_BUCKETS) - 1
    for index, (min_minutes, max_minutes, label) in enumerate(TIME_BUCKETS):
        buckets.append(
            TimeBucket(
                number=index + 1,
                min_duration=min_minutes * 60,
                max_duration=OPEN_ENDED if index == last else max_minutes * 60,
                color=TIME_BUCKET_COLORS[index],
                label=label,
            )
        )
    return buckets


def decile_sizes(total: int) -> list[int]:
    """Items per decile; the remainder goes to the earliest deciles."""
    size, remainder = divmod(total, 10)
    return [size + 1 if number <= remainder else size for number in range(1, 11)]


def _minutes(seconds: float) -> int:
    return math.floor(seconds / 60 + 0.5)


def format_decile_label(min_duration: float, max_duration: float | None, number: int) -> str:
    min_minutes = _minutes(min_duration)
    if number == 10 and max_duration is None:
        return f">{min_minutes} min"
    if max_duration is None:
        return f"{min_minutes}+ min"
    max_minutes = _minutes(max_duration)
    if min_minutes == max_minutes:
        return f"{min_minutes} min"
    return f"{min_minutes}-{max_minutes} min"


def compute_deciles(durations: Sequence[float]) -> list[TimeBucket]:
    """Split sorted durations into 10 equal-count quantiles; the last one is open-ended."""
    if len(durations) == 0:
        raise ValueError(NO_ROUTES_MESSAGE)
    ordered = np.sort(np.asarray(durations, dtype=float))
    total = len(ordered)

    deciles: list[TimeBucket] = []
    start = 0
    for number, size in enumerate(decile_sizes(total), start=1):
        color = DECILE_COLORS[number - 1]
        if size == 0 or start >= total:
            # Fewer than ten durations: empty deciles reuse the previous boundary.
            previous = float(ordered[start - 1]) if start > 0 else 0.0
            deciles.append(
                TimeBucket(number, previous, OPEN_ENDED, color, format_decile_label(previous, None, number))
            )
            continue

        end = start + size - 1
        min_duration = float(ordered[start])
        max_duration = float(ordered[end]) if end < total - 1 else None
        deciles.append(
            TimeBucket(
                number=number,
                min_duration=min_duration,
                max_duration=OPEN_ENDED if max_duration is None else max_duration,
                color=color,
                label=format_decile_label(min_duration, max_duration, number),
            )
        )
        start = end + 1
    return deciles


def calculate_time_buckets(
    store: RouteMatrixStore,
    catalog_store: CatalogStore,
    mode: TransportMode = TransportMode.WALK,
    force: bool = False,
    emitter: ProgressEmitter | None = None,
) -> list[TimeBucket]:
    """Store the fixed bucket set on the zone catalog once OK routes exist."""
    if emitter:
        emitter.emit_start(CALCULATE_TIME_BUCKETS, 3, "Calculating time buckets...")
    try:
        catalog = catalog_store.require_catalog()
        if catalog.time_buckets and not force:
            raise AlreadyCalculatedError(
                f"Time buckets already exist ({len(catalog.time_buckets)} rows). Use force to recalculate."
            )

        durations = store.all_durations(catalog.zone_ids(), ALL_PERIODS, mode)
        if not durations:
            raise ValueError(NO_ROUTES_MESSAGE)
        if emitter:
            emitter.emit_progress(CALCULATE_TIME_BUCKETS, 1, 3, f"Found {len(durations)} successful routes")

        catalog.time_buckets = fixed_time_buckets()
        catalog_store.write_catalog(catalog)
        catalog_store.update_pipeline(TIME_BUCKETS_CALCULATED_AT, utc_now_iso())
        if emitter:
            emitter.emit_progress(CALCULATE_TIME_BUCKETS, 2, 3, "Updated zone catalog")
    except Exception as exc:
        if emitter:
            emitter.emit_error(CALCULATE_TIME_BUCKETS, exc, "Failed to calculate time buckets")
        raise

    logger.info(f"Calculated {len(catalog.time_buckets)} time buckets over {len(durations)} routes")
    if emitter:
        emitter.emit_complete(
            CALCULATE_TIME_BUCKETS,
            f"Time buckets calculated ({len(durations)} routes processed)",
        )
    return catalog.time_buckets


def calculate_deciles(
    store: RouteMatrixStore,
    catalog_store: CatalogStore,
    mode: TransportMode = TransportMode.WALK,
    force: bool = False,
    emitter: ProgressEmitter | None = None,
) -> list[TimeBucket]:
    if emitter:
        emitter.emit_start(CALCULATE_DECILES, 3, "Calculating deciles...")
    try:
        catalog = catalog_store.require_catalog()
        if catalog.deciles and not force:
            raise AlreadyCalculatedError(
                f"Deciles already exist ({len(catalog.deciles)} rows). Use force to recalculate."
            )

        durations = store.all_durations(catalog.zone_ids(), ALL_PERIODS, mode)
        if not durations:
            raise ValueError(NO_ROUTES_MESSAGE)
        if emitter:
            emitter.emit_progress(CALCULATE_DECILES, 1, 3, f"Found {len(durations)} successful routes")

        catalog.deciles = compute_deciles(durations)
        catalog_store.write_catalog(catalog)
        catalog_store.update_pipeline(DECILES_CALCULATED_AT, utc_now_iso())
        if emitter:
            emitter.emit_progress(CALCULATE_DECILES, 2, 3, "Updated zone catalog")
    except Exception as exc:
        if emitter:
            emitter.emit_error(CALCULATE_DECILES, exc, "Failed to calculate deciles")
        raise

    logger.info(f"Calculated deciles over {len(durations)} routes")
    if emitter:
        emitter.emit_complete(CALCULATE_DECILES, f"Deciles calculated ({len(durations)} routes processed)")
    return catalog.deciles
