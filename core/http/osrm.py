"""
OSRM HTTP client utilities.

Fetches turn-by-turn routes from an OSRM instance (the public demo server by
default) and normalizes the response into plain dictionaries that the routing
service turns into ``Route`` values.
"""

from __future__ import annotations

import logging
from typing import Any

import aiohttp

from config import get_osrm_timeout_seconds, require_osrm_base_url
from core.exceptions import ExternalServiceException
from core.http.request import get_json_object
from core.http.retry import retry_async
from core.http.session import get_session

logger = logging.getLogger(__name__)

# Application profile -> OSRM profile path segment.
OSRM_PROFILES: dict[str, str] = {
    "walking": "foot",
    "biking": "cycling",
    "driving": "driving",
}


def osrm_profile(profile: str) -> str:
    profile = (profile or "").lower()
    if "biking" in profile or "cycling" in profile:
        return OSRM_PROFILES["biking"]
    if "walking" in profile or "foot" in profile:
        return OSRM_PROFILES["walking"]
    return OSRM_PROFILES["driving"]


class OsrmClient:
    def __init__(
        self,
        base_url: str | None = None,
        timeout_seconds: float | None = None,
    ) -> None:
        self._base_url = (base_url or require_osrm_base_url()).rstrip("/")
        self._timeout_seconds = (
            timeout_seconds
            if timeout_seconds is not None
            else get_osrm_timeout_seconds()
        )

    def route_url(
        self,
        start: tuple[float, float],
        end: tuple[float, float],
        profile: str,
    ) -> str:
        """Build the route URL for ``(lon, lat)`` endpoints."""
        coordinates = f"{start[0]},{start[1]};{end[0]},{end[1]}"
        return f"{self._base_url}/route/v1/{osrm_profile(profile)}/{coordinates}"

    @retry_async()
    async def route(
        self,
        start: tuple[float, float],
        end: tuple[float, float],
        *,
        profile: str = "driving",
    ) -> dict[str, Any]:
        url = self.route_url(start, end, profile)
        session = await get_session()
        data = await get_json_object(
            url,
            session=session,
            params={"overview": "full", "geometries": "geojson", "steps": "true"},
            service_name="OSRM route",
            timeout=aiohttp.ClientTimeout(total=self._timeout_seconds),
        )

        code = data.get("code")
        if code is not None and code != "Ok":
            msg = f"OSRM route error: {code}"
            raise ExternalServiceException(
                msg,
                {"url": url, "message": data.get("message")},
            )

        normalized = self._normalize_route_response(data)
        if normalized is None:
            msg = "No route returned from OSRM"
            raise ExternalServiceException(msg, {"url": url})
        return normalized

    @staticmethod
    def _normalize_route_response(data: dict[str, Any]) -> dict[str, Any] | None:
        routes = data.get("routes")
        if not isinstance(routes, list) or not routes:
            return None
        route = routes[0]
        if not isinstance(route, dict):
            return None

        coords = OsrmClient._coerce_coordinates(route.get("geometry"))
        geometry = {"type": "LineString", "coordinates": coords} if coords else None

        legs = route.get("legs") or []
        first_leg = legs[0] if legs and isinstance(legs[0], dict) else {}
        steps = [
            step
            for step in (
                OsrmClient._normalize_step(raw) for raw in first_leg.get("steps") or []
            )
            if step is not None
        ]

        return {
            "geometry": geometry,
            "distance_meters": float(route.get("distance") or 0),
            "duration_seconds": float(route.get("duration") or 0),
            "steps": steps,
            "raw": data,
        }

    @staticmethod
    def _normalize_step(step: Any) -> dict[str, Any] | None:
        if not isinstance(step, dict):
            return None
        maneuver = step.get("maneuver") or {}
        location = maneuver.get("location")
        if not isinstance(location, (list, tuple)) or len(location) < 2:
            return None
        try:
            lon, lat = float(location[0]), float(location[1])
        except (TypeError, ValueError):
            return None
        return {
            "location": [lon, lat],
            "type": maneuver.get("type"),
            "modifier": maneuver.get("modifier"),
            "name": step.get("name") or "",
            "distance_meters": float(step.get("distance") or 0),
            "duration_seconds": float(step.get("duration") or 0),
        }

    @staticmethod
    def _coerce_coordinates(geometry: Any) -> list[list[float]]:
        if isinstance(geometry, dict):
            coords = geometry.get("coordinates")
        elif isinstance(geometry, list):
            coords = geometry
        else:
            return []
        if not isinstance(coords, list):
            return []

        normalized: list[list[float]] = []
        for point in coords:
            if not isinstance(point, (list, tuple)) or len(point) < 2:
                continue
            try:
                normalized.append([float(point[0]), float(point[1])])
            except (TypeError, ValueError):
                continue
        return normalized
