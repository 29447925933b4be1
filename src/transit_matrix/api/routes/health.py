"""Health endpoints."""

from __future__ import annotations

from fastapi import APIRouter, status

from ...config import planner_config_from_settings
from ...services.routing.planner_client import check_health

router = APIRouter(tags=["health"])


@router.get("/health", status_code=status.HTTP_200_OK)
def health_root() -> dict:
    """Liveness probe; touches neither the data root nor the planner."""
    return {"status": "ok"}


@router.get("/health/planner", status_code=status.HTTP_200_OK)
def health_planner() -> dict:
    """Check that the configured trip planner answers."""
    config = planner_config_from_settings()
    target = "local" if config.is_local else "remote"
    try:
        return {"service": "planner", "target": target, "url": config.url, "healthy": check_health(config)}
    except Exception as e:
        return {"service": "planner", "target": target, "url": config.url, "healthy": False, "error": str(e)}
