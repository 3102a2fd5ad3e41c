import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]

if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import pytest
from beanie import init_beanie
from mongomock_motor import AsyncMongoMockClient
from network_blocker import install_network_blocker

from core.spatial import LatLng  # noqa: E402
from db.models import ALL_DOCUMENT_MODELS  # noqa: E402
from routing.models import Route  # noqa: E402


@pytest.fixture(autouse=True)
def _default_test_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in (
        "ECOTRACK_MAX_ACCURACY_M",
        "ECOTRACK_MIN_MOVEMENT_M",
        "ECOTRACK_MAX_JUMP_SPEED_KMH",
        "ECOTRACK_SPEED_WINDOW_MS",
        "ECOTRACK_ETA_SMOOTHING_ALPHA",
        "ECOTRACK_DEVIATION_THRESHOLD_M",
        "ECOTRACK_ARRIVAL_RADIUS_M",
        "ECOTRACK_SPEED_VIOLATION_KMH",
        "ECOTRACK_PROGRESS_MODE",
        "ROUTING_FALLBACK_ENABLED",
        "WEATHER_API_KEY",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("OSRM_BASE_URL", "http://osrm.test")
    monkeypatch.setenv("WEATHER_BASE_URL", "http://weather.test/data/2.5/weather")
    install_network_blocker(monkeypatch)


@pytest.fixture
async def beanie_db():
    client = AsyncMongoMockClient()
    database = client["test_db"]
    await init_beanie(database=database, document_models=ALL_DOCUMENT_MODELS)
    return database


@pytest.fixture
def equator_route() -> Route:
    """Two 1 km-ish segments heading east along the equator."""
    return Route(
        points=(
            LatLng(0.0, 0.0),
            LatLng(0.0, 0.01),
            LatLng(0.0, 0.02),
        ),
        distance_m=2224.0,
        duration_s=600.0,
    )
