"""Beanie ODM document models for MongoDB collections.

Usage:
    from db.models import Trip, UserStats

    # Find a trip
    trip = await Trip.find_one(Trip.tripId == "abc123")

    # Update
    trip.status = "completed"
    await trip.save()
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from beanie import Document, Indexed
from pydantic import Field, field_validator
from pymongo import ASCENDING, DESCENDING, IndexModel

from core.date_utils import parse_timestamp
from core.spatial import GeometryService

TRIP_STATUSES = ("planned", "in_progress", "completed", "cancelled")


class Trip(Document):
    """A tracked trip, from start to completion."""

    tripId: Indexed(str, unique=True)
    userId: str | None = None
    mode: str | None = None
    status: str = "planned"

    startLocation: dict[str, float] | None = None
    endLocation: dict[str, float] | None = None
    startTime: datetime | None = None
    endTime: datetime | None = None
    lastUpdate: datetime | None = None

    # Telemetry
    distanceKm: float | None = None
    etaMinutes: float | None = None
    actualMinutes: float | None = None
    avgSpeedKmh: float | None = None
    maxSpeedKmh: float | None = None

    # Scoring
    ecoScore: int = 0
    ecoComponents: dict[str, int] = Field(default_factory=dict)
    weather: dict[str, Any] | None = None
    verification: dict[str, Any] | None = None

    # Recorded path and planned route (GeoJSON)
    gps: dict[str, Any] | None = None
    routeGeometry: dict[str, Any] | None = None
    routeSource: str | None = None
    rerouteCount: int = 0
    deviationEpisodes: int = 0
    closed_reason: str | None = None

    @field_validator(
        "startTime",
        "endTime",
        "lastUpdate",
        mode="before",
    )
    @classmethod
    def parse_datetime_fields(cls, v: Any) -> datetime | None:
        if v is None:
            return None
        return parse_timestamp(v)

    @field_validator("status")
    @classmethod
    def validate_status(cls, v: str) -> str:
        if v not in TRIP_STATUSES:
            msg = f"Invalid trip status: {v}"
            raise ValueError(msg)
        return v

    @field_validator("gps", mode="before")
    @classmethod
    def validate_gps_data(cls, v: Any) -> dict[str, Any] | None:
        """Accept a list of [lon, lat] pairs or a GeoJSON Point/LineString."""
        if v is None:
            return None
        if isinstance(v, list):
            return GeometryService.geometry_from_coordinate_pairs(v, dedupe=True)
        if isinstance(v, dict) and v.get("type") in {"Point", "LineString"}:
            coords = v.get("coordinates")
            if v["type"] == "Point":
                coords = [coords]
            if isinstance(coords, list):
                return GeometryService.geometry_from_coordinate_pairs(
                    coords,
                    dedupe=True,
                )
            return None
        return v if isinstance(v, dict) else None

    class Settings:
        name = "trips"
        use_state_management = True
        indexes = [
            IndexModel([("userId", ASCENDING)], name="trips_userId_idx"),
            IndexModel([("status", ASCENDING)], name="trips_status_idx"),
            IndexModel([("endTime", DESCENDING)], name="trips_endTime_desc_idx"),
        ]


class UserStats(Document):
    """Running trip totals per user."""

    userId: Indexed(str, unique=True)
    totalTrips: int = 0
    totalDistanceKm: float = 0.0
    avgEcoScore: float = 0.0
    bestEcoScore: int = 0
    lastTripAt: datetime | None = None

    @field_validator("lastTripAt", mode="before")
    @classmethod
    def parse_last_trip(cls, v: Any) -> datetime | None:
        if v is None:
            return None
        return parse_timestamp(v)

    class Settings:
        name = "user_stats"


ALL_DOCUMENT_MODELS = [
    Trip,
    UserStats,
]
