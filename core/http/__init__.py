"""HTTP client utilities and session management."""

from core.http.osrm import OsrmClient
from core.http.request import get_json_object
from core.http.retry import retry_async
from core.http.session import cleanup_session, get_session
from core.http.weather import WeatherClient, map_weather_condition

__all__ = [
    "OsrmClient",
    "WeatherClient",
    "cleanup_session",
    "get_session",
    "map_weather_condition",
    "get_json_object",
    "retry_async",
]
