"""Route computation scheduler.

Drives the trip planner over every PENDING cell in scope under a bounded worker pool
and optional pacing delay, and writes results back through a per-origin flush buffer.
Only PENDING cells are ever queried, so re-running after an interruption resumes
where the last flushed batch left off.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import asdict, dataclass
from typing import Protocol, Sequence

from ...config import PlannerConfig
from ...models.domain import ALL_PERIODS, Cell, CellStatus, TimePeriod, TransportMode
from ...persistence.catalog import LAST_ROUTE_CALCULATION, CatalogStore, utc_now_iso
from ...persistence.matrix_store import RouteMatrixStore
from ..events import BUILD_ROUTES, ProgressEmitter
from .buffer import FlushBuffer
from .planner_client import RouteResult, TripPlannerClient

logger = logging.getLogger(__name__)

DEFAULT_FLUSH_BATCH_SIZE = 50

BufferKey = tuple[str, TimePeriod, TransportMode]


class RouteFetcher(Protocol):
    async def fetch_route(
        self,
        origin: tuple[float, float],
        destination: tuple[float, float],
        clock_time: str,
        mode: TransportMode = TransportMode.WALK,
    ) -> RouteResult: ...


@dataclass(frozen=True, slots=True)
class RouteTask:
    from_id: str
    to_id: str
    period: TimePeriod


@dataclass(slots=True)
class BuildRoutesResult:
    processed: int = 0
    ok: int = 0
    no_route: int = 0
    errors: int = 0
    pending: int = 0

    def record(self, status: CellStatus) -> None:
        self.processed += 1
        if status is CellStatus.OK:
            self.ok += 1
        elif status is CellStatus.NO_ROUTE:
            self.no_route += 1
        else:
            self.errors += 1


def cell_from_result(destination_id: str, result: RouteResult) -> Cell:
    if result.status is CellStatus.OK and result.duration is not None:
        return Cell.ok(destination_id, result.duration, result.transfers, result.walk_distance, result.legs)
    if result.status is CellStatus.NO_ROUTE:
        return Cell.failed(destination_id, CellStatus.NO_ROUTE)
    return Cell.failed(destination_id, CellStatus.ERROR)


def _resolve_periods(period: TimePeriod | Sequence[TimePeriod] | None) -> list[TimePeriod]:
    if period is None:
        return list(ALL_PERIODS)
    if isinstance(period, TimePeriod):
        return [period]
    return list(period)


class RouteScheduler:
    def __init__(
        self,
        store: RouteMatrixStore,
        catalog_store: CatalogStore,
        client: RouteFetcher,
        config: PlannerConfig,
        emitter: ProgressEmitter | None = None,
        rng: random.Random | None = None,
        flush_batch_size: int = DEFAULT_FLUSH_BATCH_SIZE,
    ) -> None:
        self.store = store
        self.catalog_store = catalog_store
        self.client = client
        self.config = config
        self.emitter = emitter
        self.rng = rng or random.Random()
        self.flush_batch_size = flush_batch_size

    def resolve_tasks(
        self,
        origins: Sequence[str],
        periods: Sequence[TimePeriod],
        mode: TransportMode,
        limit: int | None = None,
    ) -> list[RouteTask]:
        tasks = [
            RouteTask(from_id, to_id, period)
            for period in periods
            for from_id in origins
            for to_id in self.store.pending_destinations(from_id, period, mode)
        ]
        if limit is not None and len(tasks) > limit:
            order = {period: position for position, period in enumerate(periods)}
            tasks = sorted(self.rng.sample(tasks, limit), key=lambda task: order[task.period])
        return tasks

    async def build_routes(
        self,
        period: TimePeriod | Sequence[TimePeriod] | None = None,
        mode: TransportMode = TransportMode.WALK,
        zones: int | None = None,
        limit: int | None = None,
        retry_failed: bool = False,
    ) -> BuildRoutesResult:
        """Compute every PENDING cell in scope and return aggregate counts.

        Args:
            period: One period, several, or None for all periods.
            mode: Transport mode of the route files to fill.
            zones: Randomly sample this many origin zones.
            limit: Randomly sample at most this many queries across all periods.
            retry_failed: Reset ERROR cells in scope to PENDING first.
        """
        self.config.require_credentials()
        catalog = self.catalog_store.require_catalog()
        periods = _resolve_periods(period)
        places = {zone.zone_id: zone.routing_point for zone in catalog.zones}

        origins = catalog.zone_ids()
        if zones is not None and zones < len(origins):
            origins = self.rng.sample(origins, zones)

        if retry_failed:
            await asyncio.to_thread(self.store.reset_cells, origins, periods, mode, (CellStatus.ERROR,))

        tasks = await asyncio.to_thread(self.resolve_tasks, origins, periods, mode, limit)
        result = BuildRoutesResult()
        logger.info(
            f"Computing {len(tasks)} routes ({mode.value}; {', '.join(p.value for p in periods)}) "
            f"against {'local' if self.config.is_local else 'remote'} planner, concurrency {self.config.concurrency}"
        )
        if self.emitter:
            self.emitter.emit_start(
                BUILD_ROUTES,
                len(tasks),
                metadata={
                    "periods": [p.value for p in periods],
                    "mode": mode.value,
                    "isLocal": self.config.is_local,
                    "concurrency": self.config.concurrency,
                    "zones": zones,
                    "limit": limit,
                },
            )

        try:
            for current in periods:
                period_tasks = [task for task in tasks if task.period is current]
                if period_tasks:
                    await self._run_period(period_tasks, places, mode, result, len(tasks))

            counts = await asyncio.to_thread(self.store.count_by_status, origins, periods, mode)
            result.pending = counts[CellStatus.PENDING]
            self.catalog_store.update_pipeline(
                LAST_ROUTE_CALCULATION,
                {
                    "timestamp": utc_now_iso(),
                    "periods": [p.value for p in periods],
                    "mode": mode.value,
                    "processed": result.processed,
                    "ok": result.ok,
                    "noRoute": result.no_route,
                    "errors": result.errors,
                    "pending": result.pending,
                    "zones": zones,
                    "limit": limit,
                },
            )
        except Exception as exc:
            logger.error(f"Route computation aborted after {result.processed} routes: {exc}")
            if self.emitter:
                self.emitter.emit_error(BUILD_ROUTES, exc, "Route computation failed")
            raise

        logger.info(
            f"Computed {result.processed} routes: {result.ok} ok, {result.no_route} no route, "
            f"{result.errors} errors, {result.pending} still pending"
        )
        if self.emitter:
            self.emitter.emit_complete(
                BUILD_ROUTES,
                f"Processed {result.processed} routes",
                metadata=asdict(result),
            )
        return result

    async def _run_period(
        self,
        tasks: list[RouteTask],
        places: dict[str, tuple[float, float] | None],
        mode: TransportMode,
        result: BuildRoutesResult,
        total: int,
    ) -> None:
        buffer: FlushBuffer[BufferKey, Cell] = FlushBuffer(batch_size=self.flush_batch_size)
        write_lock = asyncio.Lock()

        async def write(key: BufferKey, cells: list[Cell]) -> None:
            # One writer at a time: update_cells is a read-modify-write of the origin file.
            async with write_lock:
                await asyncio.to_thread(self.store.update_cells, key[0], key[1], cells, key[2])

        queue: asyncio.Queue[RouteTask] = asyncio.Queue()
        for task in tasks:
            queue.put_nowait(task)

        async def worker() -> None:
            while True:
                try:
                    task = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                cell = await self._compute_cell(task, places, mode)
                # Completion continuation: counters and buffers are only touched here.
                result.record(cell.status)
                key = (task.from_id, task.period, mode)
                batch = buffer.stage(key, cell)
                if self.emitter:
                    self.emitter.emit_progress(
                        BUILD_ROUTES,
                        result.processed,
                        total,
                        metadata={
                            "period": task.period.value,
                            "ok": result.ok,
                            "noRoute": result.no_route,
                            "errors": result.errors,
                        },
                    )
                if batch:
                    await write(key, batch)

        workers = [asyncio.create_task(worker()) for _ in range(min(self.config.concurrency, len(tasks)))]
        try:
            await asyncio.gather(*workers)
        except BaseException:
            for running in workers:
                running.cancel()
            await asyncio.gather(*workers, return_exceptions=True)
            raise
        for key in buffer.keys():
            await write(key, buffer.take(key))

    async def _compute_cell(
        self,
        task: RouteTask,
        places: dict[str, tuple[float, float] | None],
        mode: TransportMode,
    ) -> Cell:
        origin = places.get(task.from_id)
        destination = places.get(task.to_id)
        if not origin or not destination:
            logger.warning(f"Missing routing point for {task.from_id}->{task.to_id}; recording ERROR")
            return Cell.failed(task.to_id, CellStatus.ERROR)

        if self.config.pacing_delay_ms > 0:
            await asyncio.sleep(self.rng.random() * self.config.pacing_delay_ms / 1000)

        try:
            route = await self.client.fetch_route(origin, destination, task.period.clock_time, mode)
        except Exception as exc:
            logger.exception(f"Trip planner client raised for {task.from_id}->{task.to_id}")
            route = RouteResult(CellStatus.ERROR, message=str(exc))

        if route.status is CellStatus.ERROR:
            logger.debug(f"Route {task.from_id}->{task.to_id} ({task.period.value}) failed: {route.message}")
        return cell_from_result(task.to_id, route)


async def build_routes(
    store: RouteMatrixStore,
    catalog_store: CatalogStore,
    config: PlannerConfig,
    period: TimePeriod | Sequence[TimePeriod] | None = None,
    mode: TransportMode = TransportMode.WALK,
    zones: int | None = None,
    limit: int | None = None,
    retry_failed: bool = False,
    emitter: ProgressEmitter | None = None,
    client: RouteFetcher | None = None,
    flush_batch_size: int = DEFAULT_FLUSH_BATCH_SIZE,
    rng: random.Random | None = None,
) -> BuildRoutesResult:
    """Run one scheduler invocation, opening a planner client when none is supplied."""
    config.require_credentials()
    if client is not None:
        scheduler = RouteScheduler(store, catalog_store, client, config, emitter, rng, flush_batch_size)
        return await scheduler.build_routes(period, mode, zones, limit, retry_failed)

    async with TripPlannerClient(config) as planner:
        scheduler = RouteScheduler(store, catalog_store, planner, config, emitter, rng, flush_batch_size)
        return await scheduler.build_routes(period, mode, zones, limit, retry_failed)
