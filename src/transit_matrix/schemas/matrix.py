"""Route matrix request/response schemas."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field

from ..models.domain import CellStatus, TimePeriod, TransportMode


class InitializeMatrixRequest(BaseModel):
    periods: Optional[List[TimePeriod]] = Field(
        default=None, description="Periods to initialize; all periods when omitted."
    )
    modes: List[TransportMode] = Field(default_factory=lambda: [TransportMode.WALK])


class InitializeMatrixResponse(BaseModel):
    files_written: int
    zones: int
    periods: List[TimePeriod]
    modes: List[TransportMode]


class ResetMatrixRequest(BaseModel):
    periods: Optional[List[TimePeriod]] = None
    mode: TransportMode = TransportMode.WALK
    zone_ids: Optional[List[str]] = Field(default=None, description="Origins to reset; all zones when omitted.")
    statuses: List[str] = Field(
        default_factory=lambda: [CellStatus.ERROR.name],
        description="Cell statuses returned to PENDING (OK, NO_ROUTE, ERROR).",
    )


class ResetMatrixResponse(BaseModel):
    reset: int


class BuildRoutesRequest(BaseModel):
    period: Optional[TimePeriod] = Field(default=None, description="Single period; all periods when omitted.")
    mode: TransportMode = TransportMode.WALK
    zones: Optional[int] = Field(default=None, ge=1, description="Randomly sample this many origin zones.")
    limit: Optional[int] = Field(default=None, ge=1, description="Cap on the number of planner queries.")
    retry_failed: bool = False


class BuildRoutesResponse(BaseModel):
    processed: int
    ok: int
    no_route: int
    errors: int
    pending: int


class SimplifyRoutesRequest(BaseModel):
    periods: Optional[List[TimePeriod]] = None
    mode: TransportMode = TransportMode.WALK
    tolerance: Optional[float] = Field(default=None, gt=0)
    dry_run: bool = False


class SimplifyRoutesResponse(BaseModel):
    files_processed: int
    legs_simplified: int
    original_bytes: int
    new_bytes: int
    reduction_percent: float
