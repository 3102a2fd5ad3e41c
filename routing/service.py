"""
Routing service used for the initial route and for reroutes.

Routes come from OSRM. When the provider fails the service falls back to a
straight-line estimate (haversine distance stretched by a per-profile route
factor) unless fallback is disabled, in which case the failure surfaces as
``RouteFetchError``.
"""

from __future__ import annotations

import asyncio
import logging
import math
from typing import Any

import aiohttp

from config import routing_fallback_enabled
from core.exceptions import ExternalServiceException, InvalidRouteError, RouteFetchError
from core.http.osrm import OsrmClient
from core.spatial import GeometryService, LatLng, distance

from .constants import (
    ECO_SPEED_BAND,
    ECO_SPEED_MAX_CEILING,
    ECO_SPEED_MIN_FLOOR,
    MODE_PROFILES,
    PROFILE_DRIVING,
    ROUTE_FACTORS,
    ROUTE_SOURCE_FALLBACK,
    ROUTE_SOURCE_OSRM,
    SPEED_PROFILES_KMH,
    WEATHER_SPEED_ADJUSTMENTS,
)
from .models import Route, RouteStep

logger = logging.getLogger(__name__)


def profile_for_mode(mode: str | None) -> str:
    """Map a travel mode (WALK, CYCLE, CAR, ...) to a routing profile."""
    return MODE_PROFILES.get((mode or "").upper(), PROFILE_DRIVING)


def calculate_speed_suggestion(
    distance_km: float,
    profile: str,
    weather: dict[str, Any] | None = None,
) -> dict[str, Any] | None:
    """
    Suggest an eco-driving speed band in km/h.

    Only driving routes get a suggestion. Bad weather lowers the band.
    """
    if profile != PROFILE_DRIVING:
        return None

    base_speed = SPEED_PROFILES_KMH.get(profile, SPEED_PROFILES_KMH[PROFILE_DRIVING])
    min_speed = max(ECO_SPEED_MIN_FLOOR, base_speed - ECO_SPEED_BAND)
    max_speed = min(ECO_SPEED_MAX_CEILING, base_speed + ECO_SPEED_BAND)

    adjustment = 0
    condition = (weather or {}).get("condition")
    if condition:
        adjustment = WEATHER_SPEED_ADJUSTMENTS.get(condition, 0)

    return {
        "min": max(25.0, min_speed + adjustment),
        "max": max(35.0, max_speed + adjustment),
        "optimal": math.floor((min_speed + max_speed) / 2 + adjustment + 0.5),
        "eco_tip": (
            "Drive slower due to weather conditions"
            if adjustment < 0
            else "Maintain steady speed for best fuel efficiency"
        ),
        "distance_km": distance_km,
    }


def straight_line_route(
    start: LatLng,
    end: LatLng,
    profile: str = PROFILE_DRIVING,
) -> Route:
    """Estimate a route between two points without a routing provider."""
    straight_m = distance(start, end)
    factor = ROUTE_FACTORS.get(profile, ROUTE_FACTORS[PROFILE_DRIVING])
    distance_m = straight_m * factor
    speed_kmh = SPEED_PROFILES_KMH.get(profile, SPEED_PROFILES_KMH[PROFILE_DRIVING])
    duration_s = (distance_m / 1000.0) / speed_kmh * 3600.0

    logger.info(
        "Using straight-line route for %s: %.2f km, %.1f min",
        profile,
        distance_m / 1000.0,
        duration_s / 60.0,
    )
    return Route(
        points=(start, end),
        distance_m=distance_m,
        duration_s=duration_s,
        profile=profile,
        source=ROUTE_SOURCE_FALLBACK,
        speed_suggestion=calculate_speed_suggestion(distance_m / 1000.0, profile),
    )


class RoutingService:
    """Fetches routes between two positions for a travel profile."""

    def __init__(
        self,
        client: OsrmClient | None = None,
        *,
        fallback_enabled: bool | None = None,
    ) -> None:
        self._client = client or OsrmClient()
        self._fallback_enabled = (
            routing_fallback_enabled() if fallback_enabled is None else fallback_enabled
        )

    async def get_route(
        self,
        start: LatLng,
        end: LatLng,
        profile: str = PROFILE_DRIVING,
        *,
        weather: dict[str, Any] | None = None,
    ) -> Route:
        try:
            data = await self._client.route(
                start.to_lon_lat(),
                end.to_lon_lat(),
                profile=profile,
            )
            return self._route_from_response(data, start, end, profile, weather)
        except (
            ExternalServiceException,
            InvalidRouteError,
            aiohttp.ClientError,
            asyncio.TimeoutError,
        ) as exc:
            if not self._fallback_enabled:
                msg = f"Routing failed for profile {profile}"
                raise RouteFetchError(msg, {"error": str(exc)}) from exc
            logger.warning("OSRM routing failed for %s (%s); falling back", profile, exc)
            return straight_line_route(start, end, profile)

    @staticmethod
    def _route_from_response(
        data: dict[str, Any],
        start: LatLng,
        end: LatLng,
        profile: str,
        weather: dict[str, Any] | None,
    ) -> Route:
        points = GeometryService.coordinates_from_geometry(data.get("geometry"))
        if not points:
            # Provider returned a route without a usable shape.
            points = [start, end]

        steps = tuple(
            RouteStep(
                location=LatLng.from_lon_lat(step["location"]),
                maneuver=step.get("type"),
                modifier=step.get("modifier"),
                name=step.get("name") or "",
                distance_m=step.get("distance_meters") or 0.0,
                duration_s=step.get("duration_seconds") or 0.0,
            )
            for step in data.get("steps") or []
        )
        distance_m = float(data.get("distance_meters") or 0.0)
        logger.debug(
            "OSRM route for %s: %.2f km, %d vertices",
            profile,
            distance_m / 1000.0,
            len(points),
        )
        return Route(
            points=tuple(points),
            distance_m=distance_m,
            duration_s=float(data.get("duration_seconds") or 0.0),
            steps=steps,
            profile=profile,
            source=ROUTE_SOURCE_OSRM,
            speed_suggestion=calculate_speed_suggestion(
                distance_m / 1000.0,
                profile,
                weather,
            ),
        )


__all__ = [
    "RoutingService",
    "calculate_speed_suggestion",
    "profile_for_mode",
    "straight_line_route",
]
