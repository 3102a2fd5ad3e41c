"""TripCompleted event definition.

This event is emitted whenever a tracked trip is completed:
- arrival within the destination radius
- the user finishing the trip by hand
- an offline replay

Rewards and achievements consume it; nothing else about them is known here.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from core.date_utils import parse_timestamp


@dataclass
class TripCompleted:
    """Event emitted when a trip is completed and scored."""

    trip_id: str
    user_id: str | None
    mode: str | None
    eco_score: int
    components: dict[str, int]
    distance_km: float
    duration_min: float
    timestamp: datetime
    source: str  # "arrival", "manual", "replay"

    bbox: tuple[float, float, float, float] | None = None  # (minLon, minLat, maxLon, maxLat)
    gps_geometry: dict[str, Any] | None = None

    created_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "trip_id": self.trip_id,
            "user_id": self.user_id,
            "mode": self.mode,
            "eco_score": self.eco_score,
            "components": dict(self.components),
            "distance_km": self.distance_km,
            "duration_min": self.duration_min,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "source": self.source,
            "bbox": list(self.bbox) if self.bbox else None,
            "gps_geometry": self.gps_geometry,
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TripCompleted:
        """Create from dictionary."""
        bbox = data.get("bbox")
        return cls(
            trip_id=data["trip_id"],
            user_id=data.get("user_id"),
            mode=data.get("mode"),
            eco_score=int(data["eco_score"]),
            components=dict(data.get("components") or {}),
            distance_km=float(data.get("distance_km") or 0.0),
            duration_min=float(data.get("duration_min") or 0.0),
            timestamp=parse_timestamp(data.get("timestamp")) or datetime.now(UTC),
            source=data["source"],
            bbox=tuple(bbox) if bbox else None,
            gps_geometry=data.get("gps_geometry"),
            created_at=parse_timestamp(data.get("created_at")) or datetime.now(UTC),
        )


def compute_trip_bbox(
    gps_geometry: dict[str, Any] | None,
) -> tuple[float, float, float, float] | None:
    """Compute (minLon, minLat, maxLon, maxLat) from a GeoJSON Point or LineString."""
    if not gps_geometry:
        return None

    geom_type = gps_geometry.get("type")
    coords = gps_geometry.get("coordinates") or []

    if geom_type == "Point" and len(coords) >= 2:
        lon, lat = coords[0], coords[1]
        return (lon, lat, lon, lat)

    if geom_type == "LineString" and coords:
        lons = [c[0] for c in coords if len(c) >= 2]
        lats = [c[1] for c in coords if len(c) >= 2]
        if lons and lats:
            return (min(lons), min(lats), max(lons), max(lats))

    return None
