"""
OpenWeatherMap client.

Looks up current conditions at a position and maps them onto the simplified
condition names used by eco scoring. Lookups never fail the caller: without
an API key, or when the provider errors, the neutral default is returned.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import aiohttp

from config import get_weather_api_key, require_weather_base_url
from core.exceptions import ExternalServiceException
from core.http.request import get_json_object
from core.http.retry import retry_async
from core.http.session import get_session

logger = logging.getLogger(__name__)

DEFAULT_CONDITION = "clear"
DEFAULT_TEMP_C = 25.0

CONDITION_MAP: dict[str, str] = {
    "Clear": "clear",
    "Clouds": "cloudy",
    "Rain": "rain",
    "Drizzle": "rain",
    "Thunderstorm": "storm",
    "Snow": "snow",
    "Mist": "fog",
    "Fog": "fog",
    "Haze": "fog",
    "Dust": "dust",
    "Sand": "dust",
    "Smoke": "fog",
}

# Least to most severe; the worse of two readings wins for a whole route.
SEVERITY_ORDER = ("clear", "cloudy", "fog", "dust", "rain", "snow", "storm")


def map_weather_condition(condition: str | None) -> str:
    return CONDITION_MAP.get(condition or "", DEFAULT_CONDITION)


def default_weather(description: str = "Clear sky") -> dict[str, Any]:
    return {
        "condition": DEFAULT_CONDITION,
        "temp": DEFAULT_TEMP_C,
        "description": description,
    }


def worst_condition(conditions: list[str]) -> str:
    worst_index = 0
    for condition in conditions:
        if condition in SEVERITY_ORDER:
            worst_index = max(worst_index, SEVERITY_ORDER.index(condition))
    return SEVERITY_ORDER[worst_index]


class WeatherClient:
    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
    ) -> None:
        self._api_key = api_key if api_key is not None else get_weather_api_key()
        self._base_url = base_url or require_weather_base_url()

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    async def current(self, lat: float, lng: float) -> dict[str, Any]:
        """Current weather at a position, or the default when unavailable."""
        if not self.configured:
            logger.debug("Weather API key not configured, using default weather")
            return default_weather()
        try:
            data = await self._fetch(lat, lng)
            return self._normalize(data)
        except (
            ExternalServiceException,
            aiohttp.ClientError,
            asyncio.TimeoutError,
            KeyError,
            IndexError,
            TypeError,
            ValueError,
        ) as exc:
            logger.warning("Weather lookup failed at %s,%s: %s", lat, lng, exc)
            return default_weather("Weather data unavailable")

    async def along_route(
        self,
        start: tuple[float, float],
        end: tuple[float, float],
    ) -> dict[str, Any]:
        """Combine weather at both ends of a trip, given ``(lat, lng)`` pairs."""
        start_weather, end_weather = await asyncio.gather(
            self.current(*start),
            self.current(*end),
        )
        return {
            "condition": worst_condition(
                [start_weather["condition"], end_weather["condition"]],
            ),
            "temp": round((start_weather["temp"] + end_weather["temp"]) / 2),
            "description": (
                f"{start_weather['description']} to {end_weather['description']}"
            ),
        }

    @retry_async()
    async def _fetch(self, lat: float, lng: float) -> dict[str, Any]:
        session = await get_session()
        return await get_json_object(
            self._base_url,
            session=session,
            params={
                "lat": lat,
                "lon": lng,
                "appid": self._api_key,
                "units": "metric",
            },
            service_name="OpenWeatherMap",
        )

    @staticmethod
    def _normalize(data: dict[str, Any]) -> dict[str, Any]:
        summary = data["weather"][0]
        main = data["main"]
        return {
            "condition": map_weather_condition(summary.get("main")),
            "temp": round(float(main["temp"])),
            "description": summary.get("description") or "",
            "humidity": main.get("humidity"),
            "wind_speed": (data.get("wind") or {}).get("speed") or 0,
        }
