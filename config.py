"""Centralized configuration for environment variables and external APIs.

This module is the single source of truth for configuration used across the
application. Import constants and helpers from here rather than calling
os.getenv directly in multiple places.

Tracking thresholds default to the values the scoring and monitoring rules
were calibrated against; each can be overridden with an ``ECOTRACK_*``
environment variable.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Final, Literal

from dotenv import load_dotenv

# Load environment variables from .env if present
load_dotenv()

logger = logging.getLogger(__name__)


# --- Routing (OSRM) ---
DEFAULT_OSRM_BASE_URL: Final[str] = "https://router.project-osrm.org"
DEFAULT_OSRM_TIMEOUT_SECONDS: Final[float] = 8.0

# --- Weather (OpenWeatherMap) ---
DEFAULT_WEATHER_BASE_URL: Final[str] = (
    "https://api.openweathermap.org/data/2.5/weather"
)

# --- MongoDB ---
DEFAULT_MONGODB_URI: Final[str] = "mongodb://localhost:27017"
DEFAULT_MONGODB_DATABASE: Final[str] = "ecotrack"

ProgressMode = Literal["offset", "arc"]


@dataclass(frozen=True)
class TrackingSettings:
    """Thresholds used by the live trip telemetry engine."""

    max_accuracy_m: float = 100.0
    min_movement_m: float = 2.0
    max_jump_speed_kmh: float | None = None
    speed_window_ms: int = 120_000
    eta_smoothing_alpha: float = 0.15
    deviation_threshold_m: float = 30.0
    arrival_radius_m: float = 50.0
    speed_violation_kmh: float = 80.0
    progress_mode: ProgressMode = "offset"


def _env_float(name: str, default: float | None) -> float | None:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning("Ignoring non-numeric %s=%r", name, raw)
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name, "").strip().lower()
    if not raw:
        return default
    return raw in {"1", "true", "yes", "on"}


def get_tracking_settings() -> TrackingSettings:
    """Build tracking settings from defaults and ECOTRACK_* overrides."""
    defaults = TrackingSettings()
    progress_mode = os.getenv("ECOTRACK_PROGRESS_MODE", "").strip().lower()
    if progress_mode not in {"offset", "arc"}:
        progress_mode = defaults.progress_mode

    return TrackingSettings(
        max_accuracy_m=_env_float(
            "ECOTRACK_MAX_ACCURACY_M",
            defaults.max_accuracy_m,
        ),
        min_movement_m=_env_float(
            "ECOTRACK_MIN_MOVEMENT_M",
            defaults.min_movement_m,
        ),
        max_jump_speed_kmh=_env_float(
            "ECOTRACK_MAX_JUMP_SPEED_KMH",
            defaults.max_jump_speed_kmh,
        ),
        speed_window_ms=int(
            _env_float("ECOTRACK_SPEED_WINDOW_MS", defaults.speed_window_ms),
        ),
        eta_smoothing_alpha=_env_float(
            "ECOTRACK_ETA_SMOOTHING_ALPHA",
            defaults.eta_smoothing_alpha,
        ),
        deviation_threshold_m=_env_float(
            "ECOTRACK_DEVIATION_THRESHOLD_M",
            defaults.deviation_threshold_m,
        ),
        arrival_radius_m=_env_float(
            "ECOTRACK_ARRIVAL_RADIUS_M",
            defaults.arrival_radius_m,
        ),
        speed_violation_kmh=_env_float(
            "ECOTRACK_SPEED_VIOLATION_KMH",
            defaults.speed_violation_kmh,
        ),
        progress_mode=progress_mode,
    )


def require_osrm_base_url() -> str:
    """Return the OSRM base URL without a trailing slash."""
    url = os.getenv("OSRM_BASE_URL", "").strip() or DEFAULT_OSRM_BASE_URL
    return url.rstrip("/")


def get_osrm_timeout_seconds() -> float:
    return _env_float("OSRM_TIMEOUT_SECONDS", DEFAULT_OSRM_TIMEOUT_SECONDS)


def routing_fallback_enabled() -> bool:
    """Whether straight-line routes may stand in for a failed provider."""
    return _env_bool("ROUTING_FALLBACK_ENABLED", True)


def get_weather_api_key() -> str | None:
    key = os.getenv("WEATHER_API_KEY", "").strip()
    return key or None


def require_weather_base_url() -> str:
    return os.getenv("WEATHER_BASE_URL", "").strip() or DEFAULT_WEATHER_BASE_URL


def get_mongodb_uri() -> str:
    return os.getenv("MONGODB_URI", "").strip() or DEFAULT_MONGODB_URI


def get_mongodb_database() -> str:
    return os.getenv("MONGODB_DATABASE", "").strip() or DEFAULT_MONGODB_DATABASE


__all__ = [
    "DEFAULT_MONGODB_DATABASE",
    "DEFAULT_MONGODB_URI",
    "DEFAULT_OSRM_BASE_URL",
    "DEFAULT_WEATHER_BASE_URL",
    "TrackingSettings",
    "get_mongodb_database",
    "get_mongodb_uri",
    "get_osrm_timeout_seconds",
    "get_tracking_settings",
    "get_weather_api_key",
    "require_osrm_base_url",
    "require_weather_base_url",
    "routing_fallback_enabled",
]
