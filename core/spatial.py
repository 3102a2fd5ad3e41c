"""
Spatial and geometry utilities.

Centralizes coordinate validation, great-circle distances, point-to-segment
and point-to-route projection, and GeoJSON helpers used when persisting
trip paths.

Projections are computed in a local equirectangular plane centered on the
query point; distances are always reported as haversine meters. The route
projection is a linear scan over every segment, which is fine for typical
trip lengths; very long routes would need a spatial index.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from core.constants import EARTH_RADIUS_M, METERS_PER_KM, METERS_PER_MILE

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LatLng:
    """A WGS84 position in decimal degrees."""

    lat: float
    lng: float

    def to_lon_lat(self) -> list[float]:
        return [self.lng, self.lat]

    @classmethod
    def from_lon_lat(cls, coord: Sequence[Any]) -> LatLng:
        return cls(lat=float(coord[1]), lng=float(coord[0]))


@dataclass(frozen=True)
class SegmentProjection:
    point: LatLng
    t: float
    distance: float


@dataclass(frozen=True)
class RouteProjection:
    segment_index: int
    t: float
    point: LatLng
    distance: float


class GeometryService:
    """Authoritative geometry operations for the application."""

    EARTH_RADIUS_M = EARTH_RADIUS_M

    @staticmethod
    def validate_coordinate_pair(
        coord: Sequence[Any],
    ) -> tuple[bool, list[float] | None]:
        """Validate a [lon, lat] coordinate pair."""
        if not isinstance(coord, (list, tuple)) or len(coord) < 2:
            return False, None
        try:
            lon = float(coord[0])
            lat = float(coord[1])
        except (TypeError, ValueError, IndexError):
            return False, None
        if not (-180 <= lon <= 180 and -90 <= lat <= 90):
            return False, None
        return True, [lon, lat]

    @staticmethod
    def haversine_distance(
        lon1: float,
        lat1: float,
        lon2: float,
        lat2: float,
        unit: str = "meters",
    ) -> float:
        """Calculate the great-circle distance using the Haversine formula."""
        phi1 = math.radians(lat1)
        phi2 = math.radians(lat2)
        dphi = math.radians(lat2 - lat1)
        dlmb = math.radians(lon2 - lon1)
        a = (
            math.sin(dphi / 2) ** 2
            + math.cos(phi1) * math.cos(phi2) * math.sin(dlmb / 2) ** 2
        )
        distance_m = (
            2 * GeometryService.EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(a)))
        )
        if unit == "meters":
            return distance_m
        if unit == "miles":
            return distance_m / METERS_PER_MILE
        if unit == "km":
            return distance_m / METERS_PER_KM
        msg = "Invalid unit. Use 'meters', 'miles', or 'km'."
        raise ValueError(msg)

    @staticmethod
    def geometry_from_coordinate_pairs(
        coords: Iterable[Sequence[Any]],
        *,
        allow_point: bool = True,
        dedupe: bool = False,
        validate: bool = True,
    ) -> dict[str, Any] | None:
        """Build a GeoJSON Point/LineString from [lon, lat] pairs."""
        if not coords:
            return None

        cleaned: list[list[float]] = []
        for coord in coords:
            if validate:
                is_valid, pair = GeometryService.validate_coordinate_pair(coord)
                if not is_valid or pair is None:
                    continue
            else:
                try:
                    pair = [float(coord[0]), float(coord[1])]
                except (TypeError, ValueError, IndexError):
                    continue
            cleaned.append(pair)

        if not cleaned:
            return None

        if dedupe:
            unique: list[list[float]] = []
            for coord in cleaned:
                if not unique or coord != unique[-1]:
                    unique.append(coord)
            cleaned = unique

        if len(cleaned) == 1:
            return {"type": "Point", "coordinates": cleaned[0]} if allow_point else None
        return {"type": "LineString", "coordinates": cleaned}

    @staticmethod
    def coordinates_from_geometry(geometry: dict[str, Any] | None) -> list[LatLng]:
        """Extract positions from a GeoJSON Point or LineString."""
        if not isinstance(geometry, dict):
            return []
        geom_type = geometry.get("type")
        coords = geometry.get("coordinates")
        if geom_type == "Point":
            coords = [coords]
        elif geom_type != "LineString":
            return []
        if not isinstance(coords, list):
            return []

        points: list[LatLng] = []
        for coord in coords:
            is_valid, pair = GeometryService.validate_coordinate_pair(coord)
            if is_valid and pair is not None:
                points.append(LatLng(lat=pair[1], lng=pair[0]))
        return points


def distance(a: LatLng, b: LatLng) -> float:
    """Haversine distance in meters between two positions."""
    if a.lat == b.lat and a.lng == b.lng:
        return 0.0
    return GeometryService.haversine_distance(a.lng, a.lat, b.lng, b.lat)


def segment_lengths(points: Sequence[LatLng]) -> list[float]:
    return [distance(points[i - 1], points[i]) for i in range(1, len(points))]


def polyline_length(points: Sequence[LatLng]) -> float:
    return math.fsum(segment_lengths(points))


def project_onto_segment(
    seg_start: LatLng,
    seg_end: LatLng,
    point: LatLng,
) -> SegmentProjection:
    """
    Return the point on a segment closest to ``point``.

    The parametric position ``t`` is clamped into [0, 1]. A zero-length
    segment yields its single point with ``t=0``.
    """
    cos_lat = math.cos(math.radians(point.lat))

    def to_xy(p: LatLng) -> tuple[float, float]:
        return (
            math.radians(p.lng - point.lng) * cos_lat * EARTH_RADIUS_M,
            math.radians(p.lat - point.lat) * EARTH_RADIUS_M,
        )

    ax, ay = to_xy(seg_start)
    bx, by = to_xy(seg_end)
    dx = bx - ax
    dy = by - ay
    length_sq = dx * dx + dy * dy

    if length_sq == 0.0:
        return SegmentProjection(
            point=seg_start,
            t=0.0,
            distance=distance(point, seg_start),
        )

    t = max(0.0, min(1.0, -(ax * dx + ay * dy) / length_sq))
    if t == 0.0:
        projected = seg_start
    elif t == 1.0:
        projected = seg_end
    else:
        projected = LatLng(
            lat=seg_start.lat + t * (seg_end.lat - seg_start.lat),
            lng=seg_start.lng + t * (seg_end.lng - seg_start.lng),
        )

    projected_distance = distance(point, projected)

    # The planar foot can miss the haversine minimum by a hair near the ends.
    start_distance = distance(point, seg_start)
    end_distance = distance(point, seg_end)
    if start_distance < projected_distance and start_distance <= end_distance:
        return SegmentProjection(point=seg_start, t=0.0, distance=start_distance)
    if end_distance < projected_distance:
        return SegmentProjection(point=seg_end, t=1.0, distance=end_distance)

    return SegmentProjection(point=projected, t=t, distance=projected_distance)


def project_onto_route(
    points: Sequence[LatLng],
    point: LatLng,
) -> RouteProjection | None:
    """
    Project ``point`` onto the closest segment of a route polyline.

    Returns None when the route has no vertices. A single-vertex route
    projects onto that vertex.
    """
    if not points:
        return None

    if len(points) == 1:
        only = points[0]
        return RouteProjection(
            segment_index=0,
            t=0.0,
            point=only,
            distance=distance(point, only),
        )

    best: RouteProjection | None = None
    for index in range(len(points) - 1):
        candidate = project_onto_segment(points[index], points[index + 1], point)
        if best is None or candidate.distance < best.distance:
            best = RouteProjection(
                segment_index=index,
                t=candidate.t,
                point=candidate.point,
                distance=candidate.distance,
            )
    return best


__all__ = [
    "GeometryService",
    "LatLng",
    "RouteProjection",
    "SegmentProjection",
    "distance",
    "polyline_length",
    "project_onto_route",
    "project_onto_segment",
    "segment_lengths",
]
