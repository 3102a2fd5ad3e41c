"""Pydantic models for eco-score input and output.

Field names are snake_case; the camelCase names sent by mobile and web
clients (``distanceKm``, ``ticketVerified``, ...) are accepted as aliases and
used when dumping with ``by_alias=True``.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _ScoringModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        alias_generator=to_camel,
        extra="ignore",
    )


class Weather(_ScoringModel):
    condition: str | None = None
    temp: float | None = None
    description: str | None = None


class Verification(_ScoringModel):
    ticket_verified: bool = False
    steps_match: bool = False
    avg_speed: float | None = None
    fraud_strikes: int = 0


class EcoScoreInput(_ScoringModel):
    mode: str | None = None
    distance_km: float | None = None
    eta_minutes: float | None = None
    actual_minutes: float | None = None
    weather: Weather | None = None
    verification: Verification = Field(default_factory=Verification)


class EcoScoreComponents(_ScoringModel):
    mode: int = Field(ge=0, le=100)
    efficiency: int = Field(ge=0, le=100)
    behavior: int = Field(ge=0, le=100)
    weather: int = Field(ge=40, le=100)
    verification: int = Field(ge=20, le=100)


class EcoScoreResult(_ScoringModel):
    eco_score: int = Field(ge=0, le=100)
    components: EcoScoreComponents


__all__ = [
    "EcoScoreComponents",
    "EcoScoreInput",
    "EcoScoreResult",
    "Verification",
    "Weather",
]
