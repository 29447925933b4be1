"""Encoded polyline helpers (signed-delta, 1e-5 precision) and route geometry simplification."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

from shapely.geometry import LineString

from ...models.domain import TimePeriod, TransportMode
from ...persistence.filesystem import pack
from ...persistence.matrix_store import RouteMatrixStore
from ..events import SIMPLIFY_ROUTES, ProgressEmitter

logger = logging.getLogger(__name__)

PRECISION = 1e5

def _decode_value(polyline: str, index: int) -> tuple[int, int]:
    shift = 0
    result = 0
    while True:
        chunk = ord(polyline[index]) - 63
        index += 1
        result |= (chunk & 0x1F) << shift
        shift += 5
        if chunk < 0x20:
            break
    value = ~(result >> 1) if result & 1 else result >> 1
    return value, index

def decode_polyline(polyline: str) -> list[tuple[float, float]]:
    """Decode an encoded polyline string to a list of (lat, lon) coordinates."""
    points = []
    index = lat = lon = 0
    while index < len(polyline):
        d_lat, index = _decode_value(polyline, index)
        d_lon, index = _decode_value(polyline, index)
        lat += d_lat
        lon += d_lon
        points.append((lat / PRECISION, lon / PRECISION))
    return points

def _encode_value(value: int) -> str:
    encoded = ~(value << 1) if value < 0 else value << 1
    chunks = []
    while encoded >= 0x20:
        chunks.append(chr((0x20 | (encoded & 0x1F)) + 63))
        encoded >>= 5
    chunks.append(chr(encoded + 63))
    return "".join(chunks)

def encode_polyline(points: Sequence[tuple[float, float]]) -> str:
    parts = []
    prev_lat = 0
    prev_lon = 0
    for lat, lon in points:
        i_lat = round(lat * PRECISION)
        i_lon = round(lon * PRECISION)
        parts.append(_encode_value(i_lat - prev_lat))
        parts.append(_encode_value(i_lon - prev_lon))
        prev_lat, prev_lon = i_lat, i_lon
    return "".join(parts)


def simplify_path(points: Sequence[tuple[float, float]], tolerance: float = 0.0005) -> list[tuple[float, float]]:
    """Douglas-Peucker simplification; tolerance is in degrees (0.0005 is roughly 56 m)."""
    if len(points) <= 2:
        return list(points)
    simplified = LineString(points).simplify(tolerance, preserve_topology=False)
    if simplified.is_empty or len(simplified.coords) < 2:
        return [tuple(points[0]), tuple(points[-1])]
    return [(float(lat), float(lon)) for lat, lon in simplified.coords]


@dataclass(slots=True)
class SimplifyResult:
    files_processed: int
    legs_simplified: int
    original_bytes: int
    new_bytes: int

    @property
    def reduction_percent(self) -> float:
        if self.original_bytes == 0:
            return 0.0
        return (self.original_bytes - self.new_bytes) / self.original_bytes * 100

def simplify_route_files(
    store: RouteMatrixStore,
    zone_ids: Sequence[str],
    periods: Sequence[TimePeriod],
    mode: TransportMode = TransportMode.WALK,
    tolerance: float = 0.0005,
    dry_run: bool = False,
    emitter: ProgressEmitter | None = None,
) -> SimplifyResult:
    """Rewrite leg geometries of stored route files with simplified polylines."""
    result = SimplifyResult(files_processed=0, legs_simplified=0, original_bytes=0, new_bytes=0)
    total_files = len(zone_ids) * len(periods)
    if emitter:
        emitter.emit_start(SIMPLIFY_ROUTES, total_files, f"Simplifying routes in {total_files} files...")

    processed = 0
    for period in periods:
        for zone_id in zone_ids:
            processed += 1
            data = store.read(zone_id, period, mode)
            if data is None:
                continue
            result.original_bytes += len(pack(data.to_dict()))

            for cell in data.cells:
                for leg in cell.legs or []:
                    if not leg.geometry:
                        continue
                    leg.geometry = encode_polyline(simplify_path(decode_polyline(leg.geometry), tolerance))
                    result.legs_simplified += 1

            result.new_bytes += len(pack(data.to_dict()))
            if not dry_run:
                store.write(zone_id, period, data, mode)
            result.files_processed += 1
            if emitter and (processed % 50 == 0 or processed == total_files):
                emitter.emit_progress(SIMPLIFY_ROUTES, processed, total_files)

    logger.info(
        f"Simplified {result.legs_simplified} legs in {result.files_processed} files "
        f"({result.reduction_percent:.1f}% smaller{', dry run' if dry_run else ''})"
    )
    if emitter:
        emitter.emit_complete(SIMPLIFY_ROUTES, f"Simplified {result.files_processed} files")
    return result
