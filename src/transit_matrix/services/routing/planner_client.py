"""Async HTTP client for the GraphQL trip planner (one origin/destination query at a time)."""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, Callable, Optional

import httpx

from ...config import PlannerConfig
from ...models.domain import CellStatus, Leg, PlaceStub, TransportMode

logger = logging.getLogger(__name__)

SUBSCRIPTION_KEY_HEADER = "digitransit-subscription-key"

DatePolicy = Callable[[], date]


@dataclass(slots=True)
class RouteResult:
    status: CellStatus
    duration: Optional[float] = None
    transfers: Optional[int] = None
    walk_distance: Optional[float] = None
    legs: list[Leg] = field(default_factory=list)
    message: Optional[str] = None


def next_weekday(today: date, weekday: int = 1) -> date:
    """Next occurrence of ``weekday`` (Monday=0), today included."""
    return today + timedelta(days=(weekday - today.weekday()) % 7)


def _mode_arguments(mode: TransportMode, config: PlannerConfig) -> str:
    if mode is TransportMode.BICYCLE:
        return f"transportModes: [{{mode: BICYCLE}}]\n        bikeSpeed: {config.bike_speed}"
    return f"transportModes: [{{mode: TRANSIT}}, {{mode: WALK}}]\n        walkSpeed: {config.walk_speed}"


def build_plan_query(
    origin: tuple[float, float],
    destination: tuple[float, float],
    query_date: date,
    clock_time: str,
    mode: TransportMode,
    config: PlannerConfig,
) -> str:
    return f"""
    {{
      plan(
        from: {{lat: {origin[0]}, lon: {origin[1]}}}
        to: {{lat: {destination[0]}, lon: {destination[1]}}}
        date: "{query_date.isoformat()}"
        time: "{clock_time}"
        numItineraries: {config.itinerary_count}
        {_mode_arguments(mode, config)}
      ) {{
        itineraries {{
          duration
          numberOfTransfers
          walkDistance
          legs {{
            from {{ name lat lon }}
            to {{ name lat lon }}
            mode
            duration
            distance
            legGeometry {{ points }}
            route {{ shortName longName }}
          }}
        }}
      }}
    }}
    """


def _place(raw: Any) -> PlaceStub | None:
    if not isinstance(raw, dict):
        return None
    return PlaceStub(name=str(raw.get("name") or ""), lat=raw.get("lat"), lon=raw.get("lon"))


def compact_legs(raw_legs: Any) -> list[Leg]:
    if not isinstance(raw_legs, list):
        return []
    legs: list[Leg] = []
    for raw in raw_legs:
        if not isinstance(raw, dict):
            continue
        geometry = raw.get("legGeometry") if isinstance(raw.get("legGeometry"), dict) else {}
        route = raw.get("route") if isinstance(raw.get("route"), dict) else {}
        legs.append(
            Leg(
                mode=str(raw.get("mode") or "WALK"),
                duration=raw.get("duration") or 0,
                distance=raw.get("distance") or None,
                origin=_place(raw.get("from")),
                destination=_place(raw.get("to")),
                geometry=geometry.get("points"),
                route_short_name=str(route["shortName"]) if route.get("shortName") else None,
                route_long_name=str(route["longName"]) if route.get("longName") else None,
            )
        )
    return legs


def _duration(itinerary: dict[str, Any]) -> float | None:
    value = itinerary.get("duration")
    if isinstance(value, bool) or not isinstance(value, (int, float)) or math.isnan(value):
        return None
    return value


def parse_plan_response(payload: Any) -> RouteResult:
    """Map a planner response body to OK (fastest itinerary), NO_ROUTE or ERROR."""
    if not isinstance(payload, dict):
        return RouteResult(CellStatus.ERROR, message="Trip planner returned a non-object response")

    errors = payload.get("errors")
    if errors:
        first = errors[0] if isinstance(errors, list) and errors else {}
        message = first.get("message", "Unknown trip planner error") if isinstance(first, dict) else str(first)
        path = first.get("path") if isinstance(first, dict) else None
        if path:
            message = f"{message} (path: {'.'.join(str(p) for p in path)})"
        return RouteResult(CellStatus.ERROR, message=message)

    data = payload.get("data")
    plan = data.get("plan") if isinstance(data, dict) else None
    if not isinstance(plan, dict):
        return RouteResult(CellStatus.ERROR, message="Trip planner response missing plan data")

    itineraries = plan.get("itineraries") or []
    if not isinstance(itineraries, list):
        return RouteResult(CellStatus.ERROR, message="Trip planner returned malformed itineraries")
    if not itineraries:
        return RouteResult(CellStatus.NO_ROUTE)

    timed = [item for item in itineraries if isinstance(item, dict) and _duration(item) is not None]
    if not timed:
        return RouteResult(CellStatus.ERROR, message="Trip planner itineraries have no duration")

    # min() keeps the first of equally fast itineraries
    best = min(timed, key=_duration)
    return RouteResult(
        CellStatus.OK,
        duration=best.get("duration"),
        transfers=best.get("numberOfTransfers"),
        walk_distance=best.get("walkDistance"),
        legs=compact_legs(best.get("legs")),
    )


class TripPlannerClient:
    """Issues plan queries; never raises for remote or network failures."""

    def __init__(
        self,
        config: PlannerConfig,
        client: httpx.AsyncClient | None = None,
        date_policy: DatePolicy | None = None,
        timeout: float = 60.0,
    ) -> None:
        if not config.url:
            raise ValueError("Trip planner URL is not configured.")
        self.config = config
        self.date_policy = date_policy or (lambda: next_weekday(date.today(), config.weekday))
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout, connect=10.0))

    async def __aenter__(self) -> "TripPlannerClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if not self.config.is_local and self.config.api_key:
            headers[SUBSCRIPTION_KEY_HEADER] = self.config.api_key
        return headers

    async def fetch_route(
        self,
        origin: tuple[float, float],
        destination: tuple[float, float],
        clock_time: str,
        mode: TransportMode = TransportMode.WALK,
    ) -> RouteResult:
        query = build_plan_query(origin, destination, self.date_policy(), clock_time, mode, self.config)
        headers = self._headers()

        attempt = 0
        while True:
            try:
                response = await self._client.post(self.config.url, json={"query": query}, headers=headers)
            except httpx.HTTPError as exc:
                logger.debug(f"Trip planner request failed: {exc!r}")
                return RouteResult(CellStatus.ERROR, message=f"Network error: {str(exc) or type(exc).__name__}")

            if response.status_code == 429:
                if attempt >= self.config.max_retries:
                    logger.warning(f"Trip planner still rate limiting after {attempt} retries")
                    return RouteResult(CellStatus.ERROR, message=f"HTTP 429 (rate limited after {attempt} retries)")
                wait_time = self.config.backoff_seconds * (2**attempt)
                attempt += 1
                logger.debug(f"Trip planner rate limited, retrying in {wait_time:.1f}s (attempt {attempt}/{self.config.max_retries})")
                await asyncio.sleep(wait_time)
                continue

            if response.status_code >= 400:
                return RouteResult(CellStatus.ERROR, message=f"HTTP {response.status_code}")

            try:
                payload = response.json()
            except ValueError:
                return RouteResult(CellStatus.ERROR, message="Trip planner returned invalid JSON")
            return parse_plan_response(payload)


def check_health(config: PlannerConfig, timeout: float = 5.0) -> bool:
    """Check that the trip planner answers a trivial GraphQL query."""
    headers = {"Content-Type": "application/json"}
    if not config.is_local and config.api_key:
        headers[SUBSCRIPTION_KEY_HEADER] = config.api_key
    try:
        response = httpx.post(config.url, json={"query": "{ __typename }"}, headers=headers, timeout=timeout)
        response.raise_for_status()
        return isinstance(response.json(), dict)
    except (httpx.HTTPError, ValueError):
        return False
