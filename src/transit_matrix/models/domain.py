"""Domain models for zones, route matrix cells and derived summaries."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum, IntEnum
from typing import Any, Optional


class TimePeriod(str, Enum):
    """Named departure-time snapshot."""

    MORNING = "MORNING"
    EVENING = "EVENING"
    MIDNIGHT = "MIDNIGHT"

    @property
    def clock_time(self) -> str:
        return _PERIOD_CLOCK_TIMES[self]

    @property
    def code(self) -> str:
        """Single-letter code stored in route files (M, E or N)."""
        return "N" if self is TimePeriod.MIDNIGHT else self.value[0]

    @classmethod
    def from_code(cls, code: str) -> "TimePeriod":
        for period in cls:
            if period.code == code or period.value == code:
                return period
        raise ValueError(f"Unknown time period code '{code}'.")


_PERIOD_CLOCK_TIMES = {
    TimePeriod.MORNING: "08:30:00",
    TimePeriod.EVENING: "17:30:00",
    TimePeriod.MIDNIGHT: "23:30:00",
}

ALL_PERIODS: tuple[TimePeriod, ...] = (TimePeriod.MORNING, TimePeriod.EVENING, TimePeriod.MIDNIGHT)


class TransportMode(str, Enum):
    WALK = "WALK"
    BICYCLE = "BICYCLE"


class CellStatus(IntEnum):
    """Cell state; the integer values are the on-disk codes."""

    OK = 0
    NO_ROUTE = 1
    ERROR = 2
    PENDING = 3


TERMINAL_STATUSES = frozenset({CellStatus.OK, CellStatus.NO_ROUTE, CellStatus.ERROR})


@dataclass(slots=True)
class Zone:
    """Geographic area acting as an origin/destination node."""

    zone_id: str
    name: str
    city: str
    routing_point: Optional[tuple[float, float]]
    reachability: Optional["ZoneReachability"] = None
    extra: dict = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = dict(self.extra)
        payload.update(
            {
                "id": self.zone_id,
                "name": self.name,
                "city": self.city,
                "routingPoint": list(self.routing_point) if self.routing_point else None,
            }
        )
        if self.reachability is not None:
            payload["reachability"] = self.reachability.to_dict()
        return payload

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Zone":
        known = {"id", "name", "city", "routingPoint", "reachability"}
        point = data.get("routingPoint")
        reachability = data.get("reachability")
        return cls(
            zone_id=str(data["id"]),
            name=str(data.get("name", "")),
            city=str(data.get("city", "")),
            routing_point=(float(point[0]), float(point[1])) if point else None,
            reachability=ZoneReachability.from_dict(reachability) if reachability else None,
            extra={key: value for key, value in data.items() if key not in known},
        )


@dataclass(slots=True)
class PlaceStub:
    name: str
    lat: Optional[float] = None
    lon: Optional[float] = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"n": self.name}
        if self.lat is not None:
            payload["lat"] = self.lat
        if self.lon is not None:
            payload["lon"] = self.lon
        return payload

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PlaceStub":
        return cls(name=str(data.get("n", "")), lat=data.get("lat"), lon=data.get("lon"))


@dataclass(slots=True)
class Leg:
    """One mode-homogeneous segment of an itinerary."""

    mode: str
    duration: float
    distance: Optional[float] = None
    origin: Optional[PlaceStub] = None
    destination: Optional[PlaceStub] = None
    geometry: Optional[str] = None
    route_short_name: Optional[str] = None
    route_long_name: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"m": self.mode, "d": self.duration}
        if self.distance is not None:
            payload["di"] = self.distance
        if self.origin is not None:
            payload["f"] = self.origin.to_dict()
        if self.destination is not None:
            payload["t"] = self.destination.to_dict()
        if self.geometry:
            payload["g"] = self.geometry
        if self.route_short_name:
            payload["sn"] = self.route_short_name
        if self.route_long_name:
            payload["ln"] = self.route_long_name
        return payload

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Leg":
        return cls(
            mode=str(data.get("m", "WALK")),
            duration=data.get("d", 0),
            distance=data.get("di"),
            origin=PlaceStub.from_dict(data["f"]) if data.get("f") else None,
            destination=PlaceStub.from_dict(data["t"]) if data.get("t") else None,
            geometry=data.get("g"),
            route_short_name=data.get("sn"),
            route_long_name=data.get("ln"),
        )


@dataclass(slots=True)
class Cell:
    """One (origin, destination, period, mode) entry of the matrix.

    ``duration`` and ``legs`` are set if and only if ``status`` is OK.
    """

    destination_id: str
    status: CellStatus = CellStatus.PENDING
    duration: Optional[float] = None
    transfers: Optional[int] = None
    walk_distance: Optional[float] = None
    legs: Optional[list[Leg]] = None

    @classmethod
    def pending(cls, destination_id: str) -> "Cell":
        return cls(destination_id=destination_id)

    @classmethod
    def ok(
        cls,
        destination_id: str,
        duration: float,
        transfers: int | None,
        walk_distance: float | None,
        legs: list[Leg],
    ) -> "Cell":
        return cls(
            destination_id=destination_id,
            status=CellStatus.OK,
            duration=duration,
            transfers=transfers,
            walk_distance=walk_distance,
            legs=list(legs),
        )

    @classmethod
    def failed(cls, destination_id: str, status: CellStatus) -> "Cell":
        if status in (CellStatus.OK, CellStatus.PENDING):
            raise ValueError(f"Cell status {status.name} is not a failure status.")
        return cls(destination_id=destination_id, status=status)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "i": self.destination_id,
            "d": self.duration,
            "t": self.transfers,
            "w": self.walk_distance,
            "s": int(self.status),
        }
        if self.status is CellStatus.OK and self.legs is not None:
            payload["l"] = [leg.to_dict() for leg in self.legs]
        return payload

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Cell":
        legs = data.get("l")
        return cls(
            destination_id=str(data["i"]),
            status=CellStatus(int(data.get("s", CellStatus.PENDING))),
            duration=data.get("d"),
            transfers=data.get("t"),
            walk_distance=data.get("w"),
            legs=[Leg.from_dict(leg) for leg in legs] if legs is not None else None,
        )


@dataclass(slots=True)
class ZoneRouteFile:
    """All cells sharing (origin, period, mode); the unit of persistence."""

    from_id: str
    period: TimePeriod
    cells: list[Cell]
    mode: TransportMode = TransportMode.WALK

    def cell_for(self, destination_id: str) -> Optional[Cell]:
        for cell in self.cells:
            if cell.destination_id == destination_id:
                return cell
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "f": self.from_id,
            "p": self.period.code,
            "m": self.mode.value,
            "r": [cell.to_dict() for cell in self.cells],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ZoneRouteFile":
        return cls(
            from_id=str(data["f"]),
            period=TimePeriod.from_code(str(data["p"])),
            cells=[Cell.from_dict(item) for item in data.get("r", [])],
            mode=TransportMode(data.get("m", TransportMode.WALK.value)),
        )


@dataclass(slots=True)
class TimeBucket:
    """Labelled duration range (seconds) used for heatmap colouring; max of -1 is open-ended."""

    number: int
    min_duration: float
    max_duration: float
    color: str
    label: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "number": self.number,
            "min": self.min_duration,
            "max": self.max_duration,
            "color": self.color,
            "label": self.label,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TimeBucket":
        return cls(
            number=int(data["number"]),
            min_duration=data["min"],
            max_duration=data["max"],
            color=str(data["color"]),
            label=str(data["label"]),
        )


@dataclass(slots=True)
class ZoneReachability:
    rank: int
    score: float
    zones_15: int
    zones_30: int
    zones_45: int
    median_time: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "rank": self.rank,
            "score": self.score,
            "zones15": self.zones_15,
            "zones30": self.zones_30,
            "zones45": self.zones_45,
            "medianTime": self.median_time,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ZoneReachability":
        return cls(
            rank=int(data["rank"]),
            score=float(data["score"]),
            zones_15=int(data.get("zones15", 0)),
            zones_30=int(data.get("zones30", 0)),
            zones_45=int(data.get("zones45", 0)),
            median_time=data.get("medianTime", 0),
        )


@dataclass(slots=True)
class ZoneCatalog:
    version: int
    zones: list[Zone]
    time_buckets: list[TimeBucket] = field(default_factory=list)
    deciles: list[TimeBucket] = field(default_factory=list)
    generated: Optional[str] = None

    def zone_ids(self) -> list[str]:
        return [zone.zone_id for zone in self.zones]

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "generated": self.generated,
            "timeBuckets": [bucket.to_dict() for bucket in self.time_buckets],
            "deciles": [decile.to_dict() for decile in self.deciles],
            "zones": [zone.to_dict() for zone in self.zones],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ZoneCatalog":
        return cls(
            version=int(data.get("version", 1)),
            generated=data.get("generated"),
            time_buckets=[TimeBucket.from_dict(item) for item in data.get("timeBuckets", [])],
            deciles=[TimeBucket.from_dict(item) for item in data.get("deciles", [])],
            zones=[Zone.from_dict(item) for item in data.get("zones", [])],
        )
