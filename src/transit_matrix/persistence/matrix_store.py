"""Per-origin route matrix files with a resumable PENDING/OK/NO_ROUTE/ERROR cell state."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Sequence

from ..models.domain import (
    ALL_PERIODS,
    Cell,
    CellStatus,
    TimePeriod,
    TransportMode,
    ZoneRouteFile,
)
from .filesystem import FileStorage

logger = logging.getLogger(__name__)

ROUTES_DIRNAME = "routes"
ROUTE_FILE_SUFFIX = ".msgpack"


class RouteMatrixStore:
    """Reads and writes one msgpack file per (origin zone, period, mode).

    Files for the default WALK mode are named ``{zone}-{period}.msgpack``; other modes
    append the mode (``{zone}-{period}-bicycle.msgpack``). Single writer per origin file.
    """

    def __init__(self, storage: FileStorage | None = None) -> None:
        self.storage = storage or FileStorage()
        self.routes_dir = self.storage.path_for(ROUTES_DIRNAME)

    def route_path(self, zone_id: str, period: TimePeriod, mode: TransportMode = TransportMode.WALK) -> Path:
        suffix = period.value.lower()
        if mode is not TransportMode.WALK:
            suffix = f"{suffix}-{mode.value.lower()}"
        return self.routes_dir / f"{zone_id}-{suffix}{ROUTE_FILE_SUFFIX}"

    def initialize(
        self,
        zone_ids: Sequence[str],
        periods: Sequence[TimePeriod],
        modes: Sequence[TransportMode] = (TransportMode.WALK,),
    ) -> int:
        """Create every origin file with all other zones as PENDING destinations.

        Existing files for the same key are overwritten, not merged.
        """
        written = 0
        for mode in modes:
            for period in periods:
                for from_id in zone_ids:
                    cells = [Cell.pending(to_id) for to_id in zone_ids if to_id != from_id]
                    self.write(from_id, period, ZoneRouteFile(from_id, period, cells, mode), mode)
                    written += 1
        logger.info(
            f"Initialized {written} route files for {len(zone_ids)} zones "
            f"({', '.join(p.value for p in periods)}; {', '.join(m.value for m in modes)})"
        )
        return written

    def read(
        self, zone_id: str, period: TimePeriod, mode: TransportMode = TransportMode.WALK
    ) -> ZoneRouteFile | None:
        """Return the origin file, or None when it has not been initialized."""
        payload = self.storage.read_msgpack(self.route_path(zone_id, period, mode))
        if payload is None:
            return None
        return ZoneRouteFile.from_dict(payload)

    def write(
        self,
        zone_id: str,
        period: TimePeriod,
        data: ZoneRouteFile,
        mode: TransportMode = TransportMode.WALK,
    ) -> None:
        self.storage.write_msgpack(self.route_path(zone_id, period, mode), data.to_dict())

    def update_cell(
        self,
        from_id: str,
        to_id: str,
        period: TimePeriod,
        cell: Cell,
        mode: TransportMode = TransportMode.WALK,
    ) -> None:
        if cell.destination_id != to_id:
            raise ValueError(f"Cell destination '{cell.destination_id}' does not match '{to_id}'.")
        self.update_cells(from_id, period, [cell], mode)

    def update_cells(
        self,
        from_id: str,
        period: TimePeriod,
        cells: Iterable[Cell],
        mode: TransportMode = TransportMode.WALK,
    ) -> int:
        """Read-modify-write of several destinations within one origin file.

        Only PENDING cells may be replaced; terminal cells are reset with ``reset_cells``.
        """
        data = self.read(from_id, period, mode)
        if data is None:
            raise ValueError(f"No route file for zone {from_id} period {period.value} mode {mode.value}.")

        index = {cell.destination_id: position for position, cell in enumerate(data.cells)}
        updated = 0
        for cell in cells:
            position = index.get(cell.destination_id)
            if position is None:
                raise ValueError(f"Route from {from_id} to {cell.destination_id} not found.")
            current = data.cells[position]
            if current.status is not CellStatus.PENDING:
                raise ValueError(
                    f"Route {from_id}->{cell.destination_id} ({period.value}) is already "
                    f"{current.status.name}; reset it before recomputing."
                )
            data.cells[position] = cell
            updated += 1

        if updated:
            self.write(from_id, period, data, mode)
        return updated

    def pending_destinations(
        self, from_id: str, period: TimePeriod, mode: TransportMode = TransportMode.WALK
    ) -> list[str]:
        data = self.read(from_id, period, mode)
        if data is None:
            return []
        return [cell.destination_id for cell in data.cells if cell.status is CellStatus.PENDING]

    def count_by_status(
        self,
        zone_ids: Sequence[str],
        periods: Sequence[TimePeriod] | TimePeriod = ALL_PERIODS,
        mode: TransportMode = TransportMode.WALK,
    ) -> dict[CellStatus, int]:
        counts = {status: 0 for status in CellStatus}
        for data in self._iter_files(zone_ids, periods, mode):
            for cell in data.cells:
                counts[cell.status] += 1
        return counts

    def all_durations(
        self,
        zone_ids: Sequence[str],
        periods: Sequence[TimePeriod] | TimePeriod = ALL_PERIODS,
        mode: TransportMode = TransportMode.WALK,
    ) -> list[float]:
        """Durations (seconds) of every OK cell in scope."""
        durations: list[float] = []
        for data in self._iter_files(zone_ids, periods, mode):
            for cell in data.cells:
                if cell.status is CellStatus.OK and cell.duration is not None:
                    durations.append(cell.duration)
        return durations

    def reset_cells(
        self,
        zone_ids: Sequence[str],
        periods: Sequence[TimePeriod] | TimePeriod = ALL_PERIODS,
        mode: TransportMode = TransportMode.WALK,
        statuses: Iterable[CellStatus] = (CellStatus.ERROR,),
    ) -> int:
        """Return cells with the given statuses to PENDING; the only way back from a terminal state."""
        targets = set(statuses)
        reset = 0
        for data in self._iter_files(zone_ids, periods, mode):
            changed = 0
            for position, cell in enumerate(data.cells):
                if cell.status in targets and cell.status is not CellStatus.PENDING:
                    data.cells[position] = Cell.pending(cell.destination_id)
                    changed += 1
            if changed:
                self.write(data.from_id, data.period, data, mode)
                reset += changed
        logger.info(f"Reset {reset} cells to PENDING ({', '.join(s.name for s in targets)})")
        return reset

    def list_route_files(self) -> list[Path]:
        if not self.routes_dir.exists():
            return []
        return sorted(self.routes_dir.glob(f"*{ROUTE_FILE_SUFFIX}"))

    def _iter_files(
        self,
        zone_ids: Sequence[str],
        periods: Sequence[TimePeriod] | TimePeriod,
        mode: TransportMode,
    ) -> Iterable[ZoneRouteFile]:
        scope = (periods,) if isinstance(periods, TimePeriod) else tuple(periods)
        for period in scope:
            for zone_id in zone_ids:
                data = self.read(zone_id, period, mode)
                if data is not None:
                    yield data
