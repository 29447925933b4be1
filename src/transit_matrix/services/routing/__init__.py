"""Trip planner client, route scheduler and geometry helpers."""

from .planner_client import RouteResult, TripPlannerClient, check_health
from .scheduler import BuildRoutesResult, RouteScheduler, build_routes

__all__ = [
    "RouteResult",
    "TripPlannerClient",
    "check_health",
    "BuildRoutesResult",
    "RouteScheduler",
    "build_routes",
]
