import asyncio
from pathlib import Path

import pytest

from transit_matrix.config import PlannerConfig
from transit_matrix.models.domain import CellStatus, Leg, TransportMode, Zone, ZoneCatalog
from transit_matrix.persistence.catalog import CatalogStore
from transit_matrix.persistence.filesystem import FileStorage
from transit_matrix.persistence.matrix_store import RouteMatrixStore
from transit_matrix.services.routing.planner_client import RouteResult

POINTS = {
    "A": (60.170, 24.940),
    "B": (60.180, 24.950),
    "C": (60.190, 24.960),
}

# A->C has no route; every other ordered pair succeeds.
DURATIONS = {
    ("A", "B"): 600,
    ("A", "C"): None,
    ("B", "A"): 600,
    ("B", "C"): 900,
    ("C", "A"): 1200,
    ("C", "B"): 300,
}


class StubPlanner:
    """Answers from a fixed (origin, destination) table and records every call."""

    def __init__(self, durations=None, errors=(), fail_after=None):
        self.durations = dict(DURATIONS if durations is None else durations)
        self.errors = set(errors)
        self.fail_after = fail_after
        self.calls = []
        self._by_point = {point: zone_id for zone_id, point in POINTS.items()}

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc_info):
        return None

    async def fetch_route(self, origin, destination, clock_time, mode=TransportMode.WALK):
        pair = (self._by_point[tuple(origin)], self._by_point[tuple(destination)])
        if self.fail_after is not None and len(self.calls) >= self.fail_after:
            raise asyncio.CancelledError()
        self.calls.append((pair, clock_time, mode))
        if pair in self.errors:
            return RouteResult(CellStatus.ERROR, message="HTTP 500")
        duration = self.durations.get(pair)
        if duration is None:
            return RouteResult(CellStatus.NO_ROUTE)
        return RouteResult(
            CellStatus.OK,
            duration=duration,
            transfers=0,
            walk_distance=duration * 1.2,
            legs=[Leg(mode="WALK", duration=duration, distance=duration * 1.2)],
        )


def make_catalog(zone_ids=("A", "B", "C")) -> ZoneCatalog:
    zones = [
        Zone(zone_id=zone_id, name=f"Zone {zone_id}", city="Helsinki", routing_point=POINTS.get(zone_id))
        for zone_id in zone_ids
    ]
    return ZoneCatalog(version=1, zones=zones)


@pytest.fixture
def storage(tmp_path: Path) -> FileStorage:
    return FileStorage(root=tmp_path)


@pytest.fixture
def matrix_store(storage: FileStorage) -> RouteMatrixStore:
    return RouteMatrixStore(storage)


@pytest.fixture
def catalog_store(storage: FileStorage) -> CatalogStore:
    store = CatalogStore(storage)
    store.write_catalog(make_catalog())
    return store


@pytest.fixture
def local_config() -> PlannerConfig:
    return PlannerConfig(url="http://planner.test/graphql", is_local=True, concurrency=2, pacing_delay_ms=0)
