"""Route value types shared by the routing service and the tracking engine."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from itertools import accumulate
from typing import Any

from core.exceptions import InvalidRouteError
from core.spatial import GeometryService, LatLng, segment_lengths


@dataclass(frozen=True)
class RouteStep:
    """A maneuver along a route."""

    location: LatLng
    maneuver: str | None = None
    modifier: str | None = None
    name: str = ""
    distance_m: float = 0.0
    duration_s: float = 0.0

    @property
    def instruction(self) -> str:
        parts = [p for p in (self.maneuver, self.modifier) if p]
        text = " ".join(parts) or "continue"
        return f"{text} onto {self.name}" if self.name else text


@dataclass(frozen=True)
class Route:
    """
    An ordered polyline with planned distance and duration.

    Immutable once fetched; rerouting replaces the whole route. Segment
    lengths and their running prefix sums are computed once at construction.
    """

    points: tuple[LatLng, ...]
    distance_m: float | None = None
    duration_s: float | None = None
    steps: tuple[RouteStep, ...] = ()
    profile: str = "driving"
    source: str = "OSRM"
    speed_suggestion: dict[str, Any] | None = field(default=None, compare=False)
    segment_lengths: tuple[float, ...] = field(init=False, repr=False)
    prefix_lengths: tuple[float, ...] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        points = tuple(self.points)
        if not points:
            msg = "Route requires at least one vertex"
            raise InvalidRouteError(msg)
        lengths = tuple(segment_lengths(points))
        object.__setattr__(self, "points", points)
        object.__setattr__(self, "steps", tuple(self.steps))
        object.__setattr__(self, "segment_lengths", lengths)
        object.__setattr__(
            self,
            "prefix_lengths",
            (0.0, *accumulate(lengths)),
        )

    @property
    def total_length_m(self) -> float:
        """Geometric polyline length in meters."""
        return math.fsum(self.segment_lengths)

    @property
    def destination(self) -> LatLng:
        return self.points[-1]

    @property
    def origin(self) -> LatLng:
        return self.points[0]

    @property
    def duration_minutes(self) -> float | None:
        if self.duration_s is None:
            return None
        return self.duration_s / 60.0

    def to_geojson(self) -> dict[str, Any] | None:
        return GeometryService.geometry_from_coordinate_pairs(
            [p.to_lon_lat() for p in self.points],
            validate=False,
        )

    @classmethod
    def from_coordinates(
        cls,
        coordinates: list[list[float]] | list[tuple[float, float]],
        **kwargs: Any,
    ) -> Route:
        """Build a route from ``[lon, lat]`` pairs."""
        points = []
        for coord in coordinates:
            is_valid, pair = GeometryService.validate_coordinate_pair(coord)
            if is_valid and pair is not None:
                points.append(LatLng(lat=pair[1], lng=pair[0]))
        return cls(points=tuple(points), **kwargs)


__all__ = ["Route", "RouteStep"]
