import asyncio

import pytest

from transit_matrix.models.domain import Cell, CellStatus, Leg, TimePeriod
from transit_matrix.persistence.catalog import (
    DECILES_CALCULATED_AT,
    REACHABILITY_CALCULATED_AT,
    TIME_BUCKETS_CALCULATED_AT,
)
from transit_matrix.services.analytics import (
    AlreadyCalculatedError,
    calculate_deciles,
    calculate_reachability,
    calculate_time_buckets,
    compute_deciles,
    fixed_time_buckets,
    rank_zones,
)
from transit_matrix.services.analytics.histograms import decile_sizes
from transit_matrix.services.events import ProgressEmitter
from transit_matrix.services.routing.scheduler import build_routes

from .conftest import StubPlanner

ZONES = ["A", "B", "C"]
MORNING = TimePeriod.MORNING


def _ok(destination: str, duration: float) -> Cell:
    return Cell.ok(destination, duration, 0, 100.0, [Leg("WALK", duration)])


def _seed_morning(matrix_store) -> None:
    matrix_store.initialize(ZONES, [MORNING])
    matrix_store.update_cells("A", MORNING, [_ok("B", 600), Cell.failed("C", CellStatus.NO_ROUTE)])
    matrix_store.update_cells("B", MORNING, [_ok("A", 600), _ok("C", 900)])
    matrix_store.update_cells("C", MORNING, [_ok("A", 1200), _ok("B", 300)])


def test_fixed_buckets_cover_fifteen_minute_steps() -> None:
    buckets = fixed_time_buckets()

    assert [b.label for b in buckets] == ["15min", "30min", "45min", "1h", "1h 15min", "1h 30min"]
    assert buckets[0].min_duration == 0
    assert buckets[0].max_duration == 900
    assert buckets[-1].min_duration == 4500
    assert buckets[-1].max_duration == -1
    for previous, current in zip(buckets, buckets[1:]):
        assert current.min_duration == previous.max_duration


def test_decile_sizes_spread_remainder_first() -> None:
    assert decile_sizes(25) == [3, 3, 3, 3, 3, 2, 2, 2, 2, 2]
    assert decile_sizes(3) == [1, 1, 1, 0, 0, 0, 0, 0, 0, 0]
    assert sum(decile_sizes(1234)) == 1234


def test_deciles_of_a_hundred_minutes() -> None:
    durations = [minute * 60 for minute in range(100, 0, -1)]

    deciles = compute_deciles(durations)

    assert len(deciles) == 10
    assert deciles[0].min_duration == 60
    assert deciles[0].max_duration == 600
    assert deciles[0].label == "1-10 min"
    assert deciles[0].color == "#E76F51"
    assert deciles[-1].min_duration == 91 * 60
    assert deciles[-1].max_duration == -1
    assert deciles[-1].label == ">91 min"
    for previous, current in zip(deciles, deciles[1:]):
        assert current.min_duration > previous.max_duration


def test_deciles_with_fewer_than_ten_routes() -> None:
    deciles = compute_deciles([180, 60, 120])

    assert [d.label for d in deciles[:3]] == ["1 min", "2 min", "3+ min"]
    assert deciles[2].max_duration == -1
    assert all(d.min_duration == 180 and d.max_duration == -1 for d in deciles[3:])
    assert deciles[-1].label == ">3 min"


def test_histograms_need_successful_routes(matrix_store, catalog_store) -> None:
    matrix_store.initialize(ZONES, [MORNING])

    with pytest.raises(ValueError, match="No successful routes"):
        calculate_time_buckets(matrix_store, catalog_store)
    with pytest.raises(ValueError, match="No successful routes"):
        calculate_deciles(matrix_store, catalog_store)


def test_histograms_refuse_to_overwrite_without_force(matrix_store, catalog_store) -> None:
    _seed_morning(matrix_store)
    events = []
    emitter = ProgressEmitter()
    emitter.subscribe(events.append)

    calculate_time_buckets(matrix_store, catalog_store)
    deciles = calculate_deciles(matrix_store, catalog_store)

    catalog = catalog_store.require_catalog()
    assert len(catalog.time_buckets) == 6
    assert catalog.deciles == deciles
    pipeline = catalog_store.read_pipeline()
    assert TIME_BUCKETS_CALCULATED_AT in pipeline
    assert DECILES_CALCULATED_AT in pipeline

    with pytest.raises(AlreadyCalculatedError):
        calculate_time_buckets(matrix_store, catalog_store, emitter=emitter)
    with pytest.raises(AlreadyCalculatedError):
        calculate_deciles(matrix_store, catalog_store)
    assert events[-1].type == "error"

    assert len(calculate_deciles(matrix_store, catalog_store, force=True)) == 10


def test_rank_zones_scores_and_trailing_ranks() -> None:
    durations = {
        "A": [600, 1200, 3000],
        "B": [300],
        "D": [3000, 4000],
    }

    results = rank_zones(["A", "B", "C", "D"], durations)

    assert [results[z].rank for z in ("A", "B", "D", "C")] == [1, 2, 3, 4]
    assert results["A"].score == pytest.approx(0.416)
    assert results["B"].score == pytest.approx(0.316)
    assert results["D"].score == 0.0
    assert results["A"].zones_15 == 1
    assert results["A"].zones_30 == 2
    assert results["A"].zones_45 == 2
    assert results["A"].median_time == 1200
    assert results["D"].median_time == 3500
    assert results["C"].median_time == 0


def test_zero_durations_are_ignored() -> None:
    results = rank_zones(["A", "B"], {"A": [0, 600]})

    assert results["A"].zones_15 == 1
    assert results["A"].score == pytest.approx(0.4 / 2 + 0.3 / 2 + 0.2 / 2 + 0.0)
    assert (results["B"].rank, results["B"].score) == (2, 0.0)


def test_reachability_requires_route_data(matrix_store, catalog_store) -> None:
    matrix_store.initialize(ZONES, [MORNING])

    with pytest.raises(ValueError, match="No route data"):
        calculate_reachability(matrix_store, catalog_store)


def test_reachability_refuses_to_overwrite_without_force(matrix_store, catalog_store) -> None:
    _seed_morning(matrix_store)
    calculate_reachability(matrix_store, catalog_store)

    with pytest.raises(AlreadyCalculatedError):
        calculate_reachability(matrix_store, catalog_store)

    result = calculate_reachability(matrix_store, catalog_store, force=True)
    assert result.zones_with_data == 3
    assert REACHABILITY_CALCULATED_AT in catalog_store.read_pipeline()


def test_end_to_end_three_zones(matrix_store, catalog_store, local_config) -> None:
    matrix_store.initialize(ZONES, [MORNING])

    asyncio.run(build_routes(matrix_store, catalog_store, local_config, period=MORNING, client=StubPlanner()))

    counts = matrix_store.count_by_status(ZONES, MORNING)
    assert counts[CellStatus.OK] == 5
    assert counts[CellStatus.NO_ROUTE] == 1

    result = calculate_reachability(matrix_store, catalog_store)
    catalog = catalog_store.require_catalog()
    reachability = {zone.zone_id: zone.reachability for zone in catalog.zones}

    assert reachability["A"].median_time == 600
    assert sorted(r.rank for r in reachability.values()) == [1, 2, 3]
    assert result.best_connected[0] == "B"
    assert result.worst_connected[0] == "A"
    assert all(0.0 <= r.score <= 1.0 for r in reachability.values())
    assert len(calculate_time_buckets(matrix_store, catalog_store)) == 6
