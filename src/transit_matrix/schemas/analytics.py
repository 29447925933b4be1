"""Analytics request/response schemas."""

from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field

from ..models.domain import TimePeriod, TransportMode


class HistogramRequest(BaseModel):
    mode: TransportMode = TransportMode.WALK
    force: bool = Field(default=False, description="Overwrite existing results.")


class TimeBucketModel(BaseModel):
    number: int
    min: float
    max: float
    color: str
    label: str


class HistogramResponse(BaseModel):
    buckets: List[TimeBucketModel]


class ReachabilityRequest(BaseModel):
    period: TimePeriod = TimePeriod.MORNING
    mode: TransportMode = TransportMode.WALK
    force: bool = False


class RankedZoneModel(BaseModel):
    zone_id: str
    score: float


class ReachabilityResponse(BaseModel):
    zones_processed: int
    zones_with_data: int
    best_connected: Optional[RankedZoneModel] = None
    worst_connected: Optional[RankedZoneModel] = None
