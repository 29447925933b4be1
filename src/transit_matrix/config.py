"""Application configuration and settings management."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables or defaults."""

    model_config = SettingsConfigDict(
        env_prefix="TM_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        populate_by_name=True,
        extra="ignore",
    )

    app_name: str = "Transit Matrix API"
    api_prefix: str = "/api"
    host: str = "0.0.0.0"
    port: int = Field(default=8000, validation_alias=AliasChoices("TM_PORT", "PORT"))
    data_root: Path = Field(default=Path("data"), description="Root directory for zone catalog and route files.")

    use_local_planner: bool = Field(
        default=True,
        description="Query a local trip planner instead of the shared remote service.",
    )
    local_planner_url: str = Field(default="http://localhost:9080/otp/gtfs/v1")
    remote_planner_url: str = Field(default="https://api.digitransit.fi/routing/v2/hsl/gtfs/v1")
    planner_api_key: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("TM_PLANNER_API_KEY", "HSL_API_KEY", "DIGITRANSIT_API_KEY"),
        description="Subscription key sent to the remote trip planner.",
    )
    local_concurrency: int = Field(default=10, ge=1)
    remote_concurrency: int = Field(default=1, ge=1)
    remote_pacing_delay_ms: int = Field(default=200, ge=0)
    rate_limit_retries: int = Field(default=3, ge=0)
    rate_limit_backoff_seconds: float = Field(default=5.0, ge=0.0)
    itinerary_count: int = Field(default=3, ge=1)
    query_weekday: int = Field(default=1, ge=0, le=6, description="Weekday used for queries (Monday=0).")
    walk_speed: float = Field(default=1.33, gt=0.0, description="Walking speed in m/s.")
    bike_speed: float = Field(default=5.0, gt=0.0, description="Cycling speed in m/s.")
    flush_batch_size: int = Field(default=50, ge=1)
    route_simplify_tolerance: float = Field(default=0.0005, gt=0.0)

    @field_validator("data_root", mode="before")
    @classmethod
    def _expand_path(cls, value: Any) -> Path:
        path_value = value if isinstance(value, Path) else Path(str(value))
        return path_value.expanduser().resolve()


@dataclass(frozen=True, slots=True)
class PlannerConfig:
    """Resolved trip planner target, passed explicitly to client and scheduler."""

    url: str
    is_local: bool
    api_key: str | None = None
    concurrency: int = 10
    pacing_delay_ms: int = 0
    max_retries: int = 3
    backoff_seconds: float = 5.0
    itinerary_count: int = 3
    weekday: int = 1
    walk_speed: float = 1.33
    bike_speed: float = 5.0

    def require_credentials(self) -> None:
        if not self.is_local and not self.api_key:
            raise ValueError(
                "Missing trip planner API key (set TM_PLANNER_API_KEY, HSL_API_KEY or "
                "DIGITRANSIT_API_KEY); it is required for the remote service."
            )


def planner_config_from_settings(source: Settings | None = None) -> PlannerConfig:
    cfg = source or settings
    if cfg.use_local_planner:
        return PlannerConfig(
            url=cfg.local_planner_url,
            is_local=True,
            api_key=cfg.planner_api_key,
            concurrency=cfg.local_concurrency,
            pacing_delay_ms=0,
            max_retries=cfg.rate_limit_retries,
            backoff_seconds=cfg.rate_limit_backoff_seconds,
            itinerary_count=cfg.itinerary_count,
            weekday=cfg.query_weekday,
            walk_speed=cfg.walk_speed,
            bike_speed=cfg.bike_speed,
        )
    return PlannerConfig(
        url=cfg.remote_planner_url,
        is_local=False,
        api_key=cfg.planner_api_key,
        concurrency=cfg.remote_concurrency,
        pacing_delay_ms=cfg.remote_pacing_delay_ms,
        max_retries=cfg.rate_limit_retries,
        backoff_seconds=cfg.rate_limit_backoff_seconds,
        itinerary_count=cfg.itinerary_count,
        weekday=cfg.query_weekday,
        walk_speed=cfg.walk_speed,
        bike_speed=cfg.bike_speed,
    )


settings = Settings()
