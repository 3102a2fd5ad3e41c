"""Pydantic models exchanged with the trip store."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from scoring.models import EcoScoreInput, EcoScoreResult


class TripCompletion(BaseModel):
    """Telemetry recorded for a trip when tracking ends."""

    distance_km: float
    duration_min: float
    avg_speed_kmh: float
    max_speed_kmh: float
    eco_score_input: EcoScoreInput
    speed_violations: int = 0
    reroute_count: int = 0
    deviation_episodes: int = 0
    ended_at: datetime | None = None
    location_history: list[dict[str, Any]] = Field(default_factory=list)

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
    )


class CompletedTrip(BaseModel):
    """A persisted trip with its eco score attached."""

    trip_id: str
    user_id: str | None = None
    mode: str | None = None
    status: str = "completed"
    distance_km: float
    duration_min: float
    avg_speed_kmh: float
    max_speed_kmh: float
    eco_score: EcoScoreResult
    completed_at: datetime | None = None

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
    )


class UserStatsSummary(BaseModel):
    user_id: str
    total_trips: int = 0
    total_distance_km: float = 0.0
    avg_eco_score: float = 0.0
    best_eco_score: int = 0
    last_trip_at: datetime | None = None

    model_config = ConfigDict(populate_by_name=True, alias_generator=to_camel)


__all__ = ["CompletedTrip", "TripCompletion", "UserStatsSummary"]
