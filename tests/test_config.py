import os
import unittest
from unittest.mock import patch

import config


class TrackingSettingsTests(unittest.TestCase):
    def test_defaults(self) -> None:
        with patch.dict(os.environ, {}, clear=True):
            settings = config.get_tracking_settings()
        assert settings.max_accuracy_m == 100.0
        assert settings.min_movement_m == 2.0
        assert settings.max_jump_speed_kmh is None
        assert settings.speed_window_ms == 120_000
        assert settings.eta_smoothing_alpha == 0.15
        assert settings.deviation_threshold_m == 30.0
        assert settings.arrival_radius_m == 50.0
        assert settings.speed_violation_kmh == 80.0
        assert settings.progress_mode == "offset"

    def test_environment_overrides(self) -> None:
        with patch.dict(
            os.environ,
            {
                "ECOTRACK_DEVIATION_THRESHOLD_M": "45",
                "ECOTRACK_SPEED_WINDOW_MS": "60000",
                "ECOTRACK_MAX_JUMP_SPEED_KMH": "250",
                "ECOTRACK_PROGRESS_MODE": "ARC",
            },
            clear=True,
        ):
            settings = config.get_tracking_settings()
        assert settings.deviation_threshold_m == 45.0
        assert settings.speed_window_ms == 60_000
        assert settings.max_jump_speed_kmh == 250.0
        assert settings.progress_mode == "arc"

    def test_invalid_values_fall_back_to_defaults(self) -> None:
        with patch.dict(
            os.environ,
            {
                "ECOTRACK_ARRIVAL_RADIUS_M": "near",
                "ECOTRACK_PROGRESS_MODE": "exact",
            },
            clear=True,
        ):
            settings = config.get_tracking_settings()
        assert settings.arrival_radius_m == 50.0
        assert settings.progress_mode == "offset"


class RoutingConfigTests(unittest.TestCase):
    def test_osrm_base_url_defaults(self) -> None:
        with patch.dict(os.environ, {}, clear=True):
            assert config.require_osrm_base_url() == "https://router.project-osrm.org"

    def test_osrm_base_url_strips_trailing_slash(self) -> None:
        with patch.dict(os.environ, {"OSRM_BASE_URL": "http://osrm:5000/"}, clear=True):
            assert config.require_osrm_base_url() == "http://osrm:5000"

    def test_osrm_timeout(self) -> None:
        with patch.dict(os.environ, {"OSRM_TIMEOUT_SECONDS": "3.5"}, clear=True):
            assert config.get_osrm_timeout_seconds() == 3.5

    def test_fallback_flag(self) -> None:
        with patch.dict(os.environ, {}, clear=True):
            assert config.routing_fallback_enabled() is True
        with patch.dict(os.environ, {"ROUTING_FALLBACK_ENABLED": "off"}, clear=True):
            assert config.routing_fallback_enabled() is False


class ServiceConfigTests(unittest.TestCase):
    def test_weather_api_key_blank_is_none(self) -> None:
        with patch.dict(os.environ, {"WEATHER_API_KEY": "  "}, clear=True):
            assert config.get_weather_api_key() is None

    def test_weather_base_url_defaults(self) -> None:
        with patch.dict(os.environ, {}, clear=True):
            assert config.require_weather_base_url() == config.DEFAULT_WEATHER_BASE_URL

    def test_mongodb_defaults(self) -> None:
        with patch.dict(os.environ, {}, clear=True):
            assert config.get_mongodb_uri() == "mongodb://localhost:27017"
            assert config.get_mongodb_database() == "ecotrack"
