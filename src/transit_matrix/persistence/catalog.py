"""Zone catalog (zones.json) and pipeline metadata (pipeline.json) persistence."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from ..models.domain import ZoneCatalog
from .filesystem import FileStorage

ZONES_FILENAME = "zones.json"
PIPELINE_FILENAME = "pipeline.json"

LAST_ROUTE_CALCULATION = "lastRouteCalculation"
TIME_BUCKETS_CALCULATED_AT = "timeBucketsCalculatedAt"
DECILES_CALCULATED_AT = "decilesCalculatedAt"
REACHABILITY_CALCULATED_AT = "reachabilityCalculatedAt"


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class CatalogStore:
    def __init__(self, storage: FileStorage | None = None) -> None:
        self.storage = storage or FileStorage()
        self.zones_path = self.storage.path_for(ZONES_FILENAME)
        self.pipeline_path = self.storage.path_for(PIPELINE_FILENAME)

    def read_catalog(self) -> ZoneCatalog | None:
        payload = self.storage.read_json(self.zones_path)
        if payload is None:
            return None
        return ZoneCatalog.from_dict(payload)

    def require_catalog(self) -> ZoneCatalog:
        catalog = self.read_catalog()
        if catalog is None or not catalog.zones:
            raise ValueError("No zones found in the zone catalog. Load zones before computing routes.")
        return catalog

    def write_catalog(self, catalog: ZoneCatalog) -> None:
        catalog.generated = utc_now_iso()
        self.storage.write_json(self.zones_path, catalog.to_dict())

    def read_pipeline(self) -> dict[str, Any]:
        payload = self.storage.read_json(self.pipeline_path)
        return payload if isinstance(payload, dict) else {}

    def update_pipeline(self, stage: str, value: Any) -> None:
        state = self.read_pipeline()
        state[stage] = value
        self.storage.write_json(self.pipeline_path, state)

    def stage_timestamp(self, stage: str) -> datetime | None:
        value = self.read_pipeline().get(stage)
        if isinstance(value, dict):
            value = value.get("timestamp")
        if not value:
            return None
        parsed = datetime.fromisoformat(str(value))
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed

    def is_stale(self, stage: str) -> bool:
        """True if ``stage`` was last computed before the most recent route calculation."""
        calculated_at = self.stage_timestamp(stage)
        routes_at = self.stage_timestamp(LAST_ROUTE_CALCULATION)
        if calculated_at is None or routes_at is None:
            return False
        return calculated_at < routes_at
