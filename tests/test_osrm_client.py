import aiohttp
import pytest
from tenacity import wait_none

import core.http.osrm as osrm_module
from core.exceptions import ExternalServiceException
from core.http.osrm import OsrmClient, osrm_profile
from http_fakes import (
    FakeResponse,
    FakeSession,
    connection_error,
    osrm_route_payload,
)

COORDS = [[0.0, 0.0], [0.01, 0.0], [0.02, 0.0]]


@pytest.fixture
def fake_session(monkeypatch: pytest.MonkeyPatch):
    def install(*responses):
        session = FakeSession(get_responses=list(responses))

        async def _get_session():
            return session

        monkeypatch.setattr(osrm_module, "get_session", _get_session)
        monkeypatch.setattr(OsrmClient.route.retry, "wait", wait_none())
        return session

    return install


@pytest.mark.parametrize(
    ("profile", "expected"),
    [
        ("driving", "driving"),
        ("biking", "cycling"),
        ("walking", "foot"),
        ("unknown", "driving"),
        ("", "driving"),
    ],
)
def test_osrm_profile_mapping(profile: str, expected: str) -> None:
    assert osrm_profile(profile) == expected


def test_route_url_uses_lon_lat_pairs() -> None:
    client = OsrmClient(base_url="http://osrm.test/")
    url = client.route_url((-97.1, 32.7), (-97.2, 32.8), "walking")
    assert url == "http://osrm.test/route/v1/foot/-97.1,32.7;-97.2,32.8"


def test_base_url_defaults_to_environment() -> None:
    client = OsrmClient()
    assert client.route_url((0, 0), (1, 1), "driving").startswith("http://osrm.test/")


@pytest.mark.asyncio
async def test_route_normalizes_geometry_and_steps(fake_session) -> None:
    session = fake_session(
        FakeResponse(json_data=osrm_route_payload(COORDS, distance=2224, duration=600)),
    )

    result = await OsrmClient().route((0.0, 0.0), (0.02, 0.0), profile="biking")

    assert result["geometry"] == {"type": "LineString", "coordinates": COORDS}
    assert result["distance_meters"] == 2224.0
    assert result["duration_seconds"] == 600.0
    assert [step["type"] for step in result["steps"]] == ["depart", "arrive"]
    assert result["steps"][0]["name"] == "Main Street"

    method, url, kwargs = session.requests[0]
    assert method == "GET"
    assert "/route/v1/cycling/" in url
    assert kwargs["params"] == {
        "overview": "full",
        "geometries": "geojson",
        "steps": "true",
    }
    assert isinstance(kwargs["timeout"], aiohttp.ClientTimeout)


@pytest.mark.asyncio
async def test_route_raises_on_error_code(fake_session) -> None:
    fake_session(FakeResponse(json_data={"code": "NoRoute", "message": "Impossible"}))

    with pytest.raises(ExternalServiceException) as raised:
        await OsrmClient().route((0.0, 0.0), (1.0, 1.0))

    assert "NoRoute" in raised.value.message


@pytest.mark.asyncio
async def test_route_raises_when_no_routes(fake_session) -> None:
    fake_session(FakeResponse(json_data={"code": "Ok", "routes": []}))

    with pytest.raises(ExternalServiceException):
        await OsrmClient().route((0.0, 0.0), (1.0, 1.0))


@pytest.mark.asyncio
async def test_route_raises_on_http_error_without_retrying(fake_session) -> None:
    session = fake_session(FakeResponse(status=500, text_data="boom"))

    with pytest.raises(ExternalServiceException) as raised:
        await OsrmClient().route((0.0, 0.0), (1.0, 1.0))

    assert raised.value.details["status"] == 500
    assert len(session.requests) == 1


@pytest.mark.asyncio
async def test_route_retries_connection_errors(fake_session) -> None:
    session = fake_session(
        connection_error(),
        FakeResponse(json_data=osrm_route_payload(COORDS)),
    )

    result = await OsrmClient().route((0.0, 0.0), (0.02, 0.0))

    assert result["geometry"]["coordinates"] == COORDS
    assert len(session.requests) == 2


def test_normalize_route_response_skips_malformed_steps() -> None:
    payload = osrm_route_payload([list(c) for c in COORDS])
    payload["routes"][0]["legs"][0]["steps"].append({"maneuver": {"type": "turn"}})
    payload["routes"][0]["geometry"]["coordinates"].append(["bad", 1])

    normalized = OsrmClient._normalize_route_response(payload)

    assert len(normalized["steps"]) == 2
    assert normalized["geometry"]["coordinates"] == COORDS


def test_normalize_route_response_without_geometry() -> None:
    payload = osrm_route_payload(COORDS)
    payload["routes"][0]["geometry"] = None

    normalized = OsrmClient._normalize_route_response(payload)

    assert normalized["geometry"] is None
    assert normalized["distance_meters"] == 1500.0
