import json
import os
from pathlib import Path

import msgpack
import pytest

from transit_matrix.models.domain import (
    ALL_PERIODS,
    Cell,
    CellStatus,
    Leg,
    TimePeriod,
    TransportMode,
)
from transit_matrix.persistence.catalog import (
    LAST_ROUTE_CALCULATION,
    TIME_BUCKETS_CALCULATED_AT,
    CatalogStore,
)
from transit_matrix.persistence.filesystem import FileStorage
from transit_matrix.persistence.matrix_store import RouteMatrixStore

ZONES = ["A", "B", "C"]


def test_file_storage_writes_json(tmp_path: Path) -> None:
    storage = FileStorage(root=tmp_path)
    path = storage.path_for("nested", "summary.json")

    storage.write_json(path, {"hello": "world"})

    assert path.read_text(encoding="utf-8") == '{\n  "hello": "world"\n}'
    assert storage.read_json(path) == {"hello": "world"}
    assert storage.read_json(storage.path_for("missing.json")) is None


def test_failed_write_keeps_previous_content(tmp_path: Path, monkeypatch) -> None:
    storage = FileStorage(root=tmp_path)
    path = storage.path_for("state.json")
    storage.write_json(path, {"version": 1})

    def broken_replace(src, dst):
        raise OSError("disk full")

    monkeypatch.setattr(os, "replace", broken_replace)
    with pytest.raises(OSError, match="disk full"):
        storage.write_json(path, {"version": 2})

    assert json.loads(path.read_text(encoding="utf-8")) == {"version": 1}
    assert [p.name for p in tmp_path.iterdir()] == ["state.json"]


def test_initialize_creates_pending_cells_without_self(matrix_store: RouteMatrixStore) -> None:
    written = matrix_store.initialize(ZONES, ALL_PERIODS)

    assert written == 9
    data = matrix_store.read("A", TimePeriod.MORNING)
    assert [cell.destination_id for cell in data.cells] == ["B", "C"]
    assert all(cell.status is CellStatus.PENDING for cell in data.cells)
    counts = matrix_store.count_by_status(ZONES)
    assert counts[CellStatus.PENDING] == 18
    assert counts[CellStatus.OK] == 0


def test_route_file_naming_and_compact_format(matrix_store: RouteMatrixStore) -> None:
    matrix_store.initialize(["A", "B"], [TimePeriod.MIDNIGHT], [TransportMode.WALK, TransportMode.BICYCLE])

    walk = matrix_store.routes_dir / "A-midnight.msgpack"
    bike = matrix_store.routes_dir / "A-midnight-bicycle.msgpack"
    assert walk.exists()
    assert bike.exists()

    raw = msgpack.unpackb(walk.read_bytes(), raw=False)
    assert raw["f"] == "A"
    assert raw["p"] == "N"
    assert raw["r"] == [{"i": "B", "d": None, "t": None, "w": None, "s": 3}]
    assert [p.name for p in matrix_store.list_route_files()] == [
        "A-midnight-bicycle.msgpack",
        "A-midnight.msgpack",
        "B-midnight-bicycle.msgpack",
        "B-midnight.msgpack",
    ]


def test_file_storage_round_trips_msgpack(tmp_path: Path) -> None:
    storage = FileStorage(root=tmp_path)
    path = storage.path_for("routes", "Z-morning.msgpack")

    storage.write_msgpack(path, {"f": "Z", "r": [{"i": "Y", "d": 60.5}]})

    assert storage.read_msgpack(path) == {"f": "Z", "r": [{"i": "Y", "d": 60.5}]}
    assert storage.read_msgpack(storage.path_for("routes", "missing.msgpack")) is None


def test_initialize_twice_resets_to_pending(matrix_store: RouteMatrixStore) -> None:
    matrix_store.initialize(ZONES, [TimePeriod.MORNING])
    matrix_store.update_cell("A", "B", TimePeriod.MORNING, Cell.ok("B", 600, 0, 700.0, [Leg("WALK", 600)]))

    matrix_store.initialize(ZONES, [TimePeriod.MORNING])

    counts = matrix_store.count_by_status(ZONES, TimePeriod.MORNING)
    assert counts[CellStatus.PENDING] == 6
    assert counts[CellStatus.OK] == 0


def test_update_cell_persists_ok_route(matrix_store: RouteMatrixStore) -> None:
    matrix_store.initialize(ZONES, [TimePeriod.MORNING])
    leg = Leg(mode="BUS", duration=500, distance=4000.0, geometry="_p~iF~ps|U", route_short_name="550")

    matrix_store.update_cell("A", "B", TimePeriod.MORNING, Cell.ok("B", 620, 1, 350.0, [leg]))

    cell = matrix_store.read("A", TimePeriod.MORNING).cell_for("B")
    assert cell.status is CellStatus.OK
    assert cell.duration == 620
    assert cell.legs[0].route_short_name == "550"
    assert matrix_store.pending_destinations("A", TimePeriod.MORNING) == ["C"]
    assert matrix_store.all_durations(ZONES, TimePeriod.MORNING) == [620]


def test_update_cell_requires_initialized_file(matrix_store: RouteMatrixStore) -> None:
    with pytest.raises(ValueError, match="No route file"):
        matrix_store.update_cell("A", "B", TimePeriod.MORNING, Cell.failed("B", CellStatus.ERROR))


def test_update_cell_rejects_unknown_destination(matrix_store: RouteMatrixStore) -> None:
    matrix_store.initialize(ZONES, [TimePeriod.MORNING])

    with pytest.raises(ValueError, match="not found"):
        matrix_store.update_cell("A", "Z", TimePeriod.MORNING, Cell.failed("Z", CellStatus.ERROR))


def test_terminal_cells_need_reset_before_recompute(matrix_store: RouteMatrixStore) -> None:
    matrix_store.initialize(ZONES, [TimePeriod.MORNING])
    matrix_store.update_cell("A", "B", TimePeriod.MORNING, Cell.failed("B", CellStatus.ERROR))
    matrix_store.update_cell("A", "C", TimePeriod.MORNING, Cell.failed("C", CellStatus.NO_ROUTE))

    with pytest.raises(ValueError, match="already ERROR"):
        matrix_store.update_cell("A", "B", TimePeriod.MORNING, Cell.ok("B", 10, 0, 1.0, [Leg("WALK", 10)]))

    reset = matrix_store.reset_cells(ZONES, TimePeriod.MORNING)

    assert reset == 1
    data = matrix_store.read("A", TimePeriod.MORNING)
    assert data.cell_for("B").status is CellStatus.PENDING
    assert data.cell_for("C").status is CellStatus.NO_ROUTE


def test_missing_catalog_is_rejected(storage: FileStorage) -> None:
    catalog_store = CatalogStore(storage)

    assert catalog_store.read_catalog() is None
    with pytest.raises(ValueError, match="No zones"):
        catalog_store.require_catalog()


def test_catalog_round_trip_and_staleness(catalog_store: CatalogStore) -> None:
    catalog = catalog_store.require_catalog()
    assert catalog.zone_ids() == ZONES
    assert catalog.generated is not None
    assert catalog.zones[0].routing_point == (60.17, 24.94)

    catalog_store.update_pipeline(TIME_BUCKETS_CALCULATED_AT, "2025-01-01T10:00:00+00:00")
    assert catalog_store.is_stale(TIME_BUCKETS_CALCULATED_AT) is False

    catalog_store.update_pipeline(LAST_ROUTE_CALCULATION, {"timestamp": "2025-01-02T10:00:00+00:00"})
    assert catalog_store.is_stale(TIME_BUCKETS_CALCULATED_AT) is True
