"""Value types flowing through the live tracking pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from core.date_utils import datetime_to_ms, parse_timestamp
from core.exceptions import ValidationError
from core.spatial import GeometryService, LatLng

if TYPE_CHECKING:
    from core.spatial import RouteProjection
    from routing.models import RouteStep


@dataclass(frozen=True)
class GeoSample:
    """A single position report from a location source."""

    lat: float
    lng: float
    timestamp_ms: int
    speed_mps: float | None = None
    accuracy_m: float | None = None

    @property
    def position(self) -> LatLng:
        return LatLng(lat=self.lat, lng=self.lng)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> GeoSample:
        """
        Build a sample from a loosely shaped payload.

        Accepts ``lat``/``lng`` (or ``lon``), a ``timestamp`` as epoch
        milliseconds or ISO 8601 text, and optional ``speed`` (m/s) and
        ``accuracy`` (m).
        """
        lng = data.get("lng", data.get("lon"))
        is_valid, pair = GeometryService.validate_coordinate_pair(
            [lng, data.get("lat")],
        )
        if not is_valid or pair is None:
            msg = "Sample has no valid coordinates"
            raise ValidationError(msg, {"sample": data})

        timestamp = data.get("timestamp", data.get("timestamp_ms"))
        if isinstance(timestamp, (int, float)) and not isinstance(timestamp, bool):
            timestamp_ms = int(timestamp)
        else:
            parsed = parse_timestamp(timestamp)
            if parsed is None:
                msg = "Sample has no valid timestamp"
                raise ValidationError(msg, {"sample": data})
            timestamp_ms = datetime_to_ms(parsed)

        speed = data.get("speed", data.get("speed_mps"))
        accuracy = data.get("accuracy", data.get("accuracy_m"))
        return cls(
            lat=pair[1],
            lng=pair[0],
            timestamp_ms=timestamp_ms,
            speed_mps=float(speed) if speed is not None else None,
            accuracy_m=float(accuracy) if accuracy is not None else None,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "lat": self.lat,
            "lng": self.lng,
            "timestamp": self.timestamp_ms,
            "speed": self.speed_mps,
            "accuracy": self.accuracy_m,
        }


@dataclass(frozen=True)
class FilterDecision:
    accepted: bool
    reason: str | None = None


@dataclass(frozen=True)
class RouteProgress:
    """Where a position sits along the active route."""

    projection: RouteProjection
    covered_m: float
    remaining_m: float
    total_m: float
    covered_coords: tuple[LatLng, ...] = ()
    remaining_coords: tuple[LatLng, ...] = ()
    current_step_index: int = 0

    @property
    def distance_from_route_m(self) -> float:
        return self.projection.distance

    @property
    def fraction(self) -> float:
        if self.total_m <= 0:
            return 1.0
        return self.covered_m / self.total_m


@dataclass(frozen=True)
class TrackingSnapshot:
    """Read-only view of a trip in progress, for display."""

    trip_id: str
    status: str
    position: LatLng | None
    current_speed_kmh: float
    avg_speed_kmh: float
    max_speed_kmh: float
    eta_minutes: float | None
    covered_m: float
    remaining_m: float | None
    travelled_m: float
    duration_s: float
    reroute_pending: bool
    deviation_m: float | None = None
    current_step: RouteStep | None = None
    covered_coords: tuple[LatLng, ...] = field(default=(), repr=False)
    remaining_coords: tuple[LatLng, ...] = field(default=(), repr=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "tripId": self.trip_id,
            "status": self.status,
            "position": (
                {"lat": self.position.lat, "lng": self.position.lng}
                if self.position
                else None
            ),
            "currentSpeedKmh": round(self.current_speed_kmh, 1),
            "avgSpeedKmh": round(self.avg_speed_kmh, 1),
            "maxSpeedKmh": round(self.max_speed_kmh, 1),
            "etaMinutes": (
                round(self.eta_minutes, 1) if self.eta_minutes is not None else None
            ),
            "coveredMeters": round(self.covered_m, 1),
            "remainingMeters": (
                round(self.remaining_m, 1) if self.remaining_m is not None else None
            ),
            "travelledMeters": round(self.travelled_m, 1),
            "durationSeconds": round(self.duration_s),
            "reroutePending": self.reroute_pending,
            "deviationMeters": self.deviation_m,
            "currentStep": self.current_step.instruction if self.current_step else None,
            "coveredCoords": [p.to_lon_lat() for p in self.covered_coords],
            "remainingCoords": [p.to_lon_lat() for p in self.remaining_coords],
        }


__all__ = ["FilterDecision", "GeoSample", "RouteProgress", "TrackingSnapshot"]
