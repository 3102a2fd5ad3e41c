from __future__ import annotations

import asyncio
from collections.abc import Callable

import pytest

from config import TrackingSettings
from core.exceptions import (
    LocationUnavailableError,
    ResourceNotFoundError,
    RouteFetchError,
    TrackingStateError,
)
from core.spatial import LatLng
from events.trip_completed import TripCompleted
from routing.models import Route
from scoring.models import Weather
from tracking import TrackingStatus, TripTrackingController
from tracking.models import GeoSample, TrackingSnapshot
from tracking.services.location_sources import PushLocationSource
from trips.services.trip_store import InMemoryTripStore

ORIGIN = LatLng(0.0, 0.0)
DESTINATION = LatLng(0.0, 0.02)
OFF_ROUTE = [LatLng(0.001, 0.005), LatLng(0.0012, 0.006), LatLng(0.0013, 0.007)]


class FakeRoutingService:
    """Returns queued routes; ``gate`` holds requests until it is set."""

    def __init__(
        self,
        routes: list[Route] | None = None,
        error: Exception | None = None,
    ) -> None:
        self.routes = list(routes or [])
        self.error = error
        self.calls: list[tuple[LatLng, LatLng, str]] = []
        self.gate = asyncio.Event()
        self.gate.set()

    async def get_route(
        self,
        start: LatLng,
        end: LatLng,
        profile: str = "driving",
        **_kwargs,
    ) -> Route:
        self.calls.append((start, end, profile))
        await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.routes.pop(0)


class FakeWeather:
    def __init__(self, weather: Weather) -> None:
        self.weather = weather
        self.calls: list[tuple[tuple[float, float], tuple[float, float]]] = []

    async def along_route(
        self,
        start: tuple[float, float],
        end: tuple[float, float],
    ) -> Weather:
        self.calls.append((start, end))
        return self.weather


async def _until(predicate: Callable[[], bool], attempts: int = 500) -> None:
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0)
    msg = "condition never became true"
    raise AssertionError(msg)


def _sample(point: LatLng, minute: float, **kwargs) -> GeoSample:
    return GeoSample(point.lat, point.lng, int(minute * 60_000), **kwargs)


@pytest.fixture
def store() -> InMemoryTripStore:
    return InMemoryTripStore()


@pytest.fixture
def source() -> PushLocationSource:
    return PushLocationSource()


@pytest.fixture
def routing() -> FakeRoutingService:
    return FakeRoutingService()


@pytest.fixture
def updates() -> list[TrackingSnapshot]:
    return []


@pytest.fixture
def events() -> list[TripCompleted]:
    return []


@pytest.fixture
async def controller(routing, store, updates, events):
    ctrl = TripTrackingController(
        routing,
        store,
        on_update=updates.append,
        on_completed=events.append,
    )
    yield ctrl
    ctrl.stop()
    await ctrl.drain()


async def _start(controller, source, route: Route, **kwargs):
    return await controller.start(
        "trip-1",
        source,
        ORIGIN,
        DESTINATION,
        kwargs.pop("mode", "CAR"),
        route=route,
        user_id="user-1",
        **kwargs,
    )


async def test_full_trip_completes_on_arrival(
    controller: TripTrackingController,
    source: PushLocationSource,
    store: InMemoryTripStore,
    equator_route: Route,
    events: list[TripCompleted],
) -> None:
    state = await _start(controller, source, equator_route)
    assert store.trips["trip-1"]["status"] == "in_progress"
    assert source.subscriber_count == 1

    for minute, lng in enumerate([0.0, 0.005, 0.01, 0.015, 0.0199]):
        source.push(_sample(LatLng(0.0, lng), minute))

    completed = await controller.wait()

    assert completed is not None
    assert completed.trip_id == "trip-1"
    assert completed.user_id == "user-1"
    assert completed.distance_km == pytest.approx(2.2128, abs=1e-3)
    assert completed.duration_min == pytest.approx(4.0)
    assert completed.avg_speed_kmh == pytest.approx(33.19, abs=0.05)
    # CAR, 4 min against a 10 min plan, ~33 km/h over a short trip
    assert completed.eco_score.components.model_dump() == {
        "mode": 60,
        "efficiency": 40,
        "behavior": 95,
        "weather": 70,
        "verification": 80,
    }
    assert completed.eco_score.eco_score == 64

    assert state.status is TrackingStatus.COMPLETED
    assert state.arrived
    assert source.subscriber_count == 0
    assert store.trips["trip-1"]["status"] == "completed"
    assert store.stats["user-1"].total_trips == 1

    assert len(events) == 1
    event = events[0]
    assert event.source == "arrival"
    assert event.eco_score == 64
    assert event.gps_geometry["type"] == "LineString"
    assert len(event.gps_geometry["coordinates"]) == 5
    assert event.bbox is not None


async def test_arrival_completes_only_once(
    controller: TripTrackingController,
    source: PushLocationSource,
    equator_route: Route,
    events: list[TripCompleted],
) -> None:
    await _start(controller, source, equator_route)
    source.push(_sample(LatLng(0.0, 0.0), 0))
    source.push(_sample(LatLng(0.0, 0.0198), 2))
    source.push(_sample(LatLng(0.0, 0.0199), 3))

    await controller.drain()

    assert len(events) == 1
    assert await controller.finish() is None
    assert len(events) == 1


async def test_offset_progress_counts_distance_from_route(
    controller: TripTrackingController,
    source: PushLocationSource,
    equator_route: Route,
    updates: list[TrackingSnapshot],
) -> None:
    state = await _start(controller, source, equator_route)
    source.push(_sample(LatLng(0.0, 0.0), 0))
    source.push(_sample(LatLng(0.0, 0.005), 1))
    await controller.drain()

    assert len(updates) == 2
    snapshot = controller.snapshot()
    # On the first segment exactly, so nothing counts as covered yet.
    assert snapshot.covered_m == pytest.approx(0.0, abs=1e-6)
    assert snapshot.remaining_m == pytest.approx(equator_route.total_length_m)
    # ~2224 m left at ~556 m/min
    assert state.eta_minutes == pytest.approx(4.0, rel=1e-3)
    assert snapshot.to_dict()["status"] == "tracking"


async def test_arc_progress_and_eta_are_tracked(
    routing: FakeRoutingService,
    store: InMemoryTripStore,
    source: PushLocationSource,
    equator_route: Route,
) -> None:
    controller = TripTrackingController(
        routing,
        store,
        settings=TrackingSettings(progress_mode="arc"),
    )
    state = await _start(controller, source, equator_route)
    source.push(_sample(LatLng(0.0, 0.0), 0))
    source.push(_sample(LatLng(0.0, 0.005), 1))
    await controller.drain()

    snapshot = controller.snapshot()
    assert snapshot.covered_m + snapshot.remaining_m == pytest.approx(
        equator_route.total_length_m,
    )
    assert snapshot.covered_m == pytest.approx(equator_route.total_length_m / 4, rel=1e-3)
    # ~1668 m left at ~556 m/min
    assert state.eta_minutes == pytest.approx(3.0, rel=1e-3)

    # Backtracking never reduces covered distance.
    source.push(_sample(LatLng(0.0, 0.01), 2))
    source.push(_sample(LatLng(0.0, 0.008), 3))
    await controller.drain()
    assert state.covered_m == pytest.approx(equator_route.total_length_m / 2, rel=1e-6)

    controller.stop()
    await controller.drain()


async def test_rejected_samples_do_not_reach_the_pipeline(
    controller: TripTrackingController,
    source: PushLocationSource,
    equator_route: Route,
    updates: list[TrackingSnapshot],
) -> None:
    state = await _start(controller, source, equator_route)
    source.push(_sample(LatLng(0.0, 0.0), 0))
    source.push(_sample(LatLng(0.0, 0.005), 1, accuracy_m=500.0))
    source.push(_sample(LatLng(0.0, 0.000001), 2))
    await controller.drain()

    assert state.rejected_count == 2
    assert len(state.history) == 1
    assert len(updates) == 1


async def test_deviation_issues_a_single_reroute(
    controller: TripTrackingController,
    source: PushLocationSource,
    routing: FakeRoutingService,
    equator_route: Route,
    updates: list[TrackingSnapshot],
) -> None:
    new_route = Route(points=(OFF_ROUTE[-1], DESTINATION))
    routing.routes.append(new_route)
    routing.gate.clear()

    state = await _start(controller, source, equator_route)
    source.push(_sample(ORIGIN, 0))
    for minute, point in enumerate(OFF_ROUTE, start=1):
        source.push(_sample(point, minute))
    await _until(lambda: len(updates) == 4 and len(routing.calls) == 1)

    assert len(routing.calls) == 1
    assert routing.calls[0][1] == DESTINATION
    assert state.reroute_pending
    assert state.deviation_episodes == 1
    # Still matched against the old route while the request is in flight.
    assert state.route is equator_route

    routing.gate.set()
    await controller.drain()

    assert state.route is new_route
    assert state.reroute_count == 1
    assert not state.reroute_pending
    assert state.progress.distance_from_route_m == pytest.approx(0.0, abs=1e-6)


async def test_stop_discards_late_reroute(
    controller: TripTrackingController,
    source: PushLocationSource,
    routing: FakeRoutingService,
    equator_route: Route,
    updates: list[TrackingSnapshot],
) -> None:
    routing.routes.append(Route(points=(OFF_ROUTE[0], DESTINATION)))
    routing.gate.clear()

    state = await _start(controller, source, equator_route)
    source.push(_sample(ORIGIN, 0))
    source.push(_sample(OFF_ROUTE[0], 1))
    await _until(lambda: len(routing.calls) == 1)

    controller.stop()
    routing.gate.set()
    await controller.drain()

    assert state.status is TrackingStatus.STOPPED
    assert state.route is equator_route
    assert state.reroute_count == 0
    assert source.subscriber_count == 0
    assert await controller.wait() is None

    source.push(_sample(LatLng(0.0, 0.01), 2))
    await controller.drain()
    assert len(state.history) == 2


async def test_failed_reroute_keeps_route_and_retries(
    controller: TripTrackingController,
    source: PushLocationSource,
    routing: FakeRoutingService,
    equator_route: Route,
) -> None:
    routing.error = RouteFetchError("OSRM unavailable")

    state = await _start(controller, source, equator_route)
    source.push(_sample(ORIGIN, 0))
    source.push(_sample(OFF_ROUTE[0], 1))
    await controller.drain()

    assert state.route is equator_route
    assert not state.reroute_pending
    assert state.reroute_count == 0

    source.push(_sample(OFF_ROUTE[1], 2))
    await controller.drain()

    assert len(routing.calls) == 2
    assert state.deviation_episodes == 1


async def test_location_error_surfaces_from_wait(
    controller: TripTrackingController,
    source: PushLocationSource,
    store: InMemoryTripStore,
    equator_route: Route,
) -> None:
    state = await _start(controller, source, equator_route)
    source.push(_sample(ORIGIN, 0))
    source.fail("permission_denied")

    with pytest.raises(LocationUnavailableError) as exc_info:
        await controller.wait()

    assert exc_info.value.code == "permission_denied"
    assert state.status is TrackingStatus.FAILED
    assert source.subscriber_count == 0
    assert store.trips["trip-1"]["status"] == "in_progress"


async def test_cancel_marks_trip_cancelled(
    controller: TripTrackingController,
    source: PushLocationSource,
    store: InMemoryTripStore,
    equator_route: Route,
    events: list[TripCompleted],
) -> None:
    state = await _start(controller, source, equator_route)
    await controller.cancel("changed my mind")

    assert state.status is TrackingStatus.CANCELLED
    assert store.trips["trip-1"]["status"] == "cancelled"
    assert store.trips["trip-1"]["closed_reason"] == "changed my mind"
    assert await controller.wait() is None
    assert events == []


async def test_manual_finish_uses_context_and_weather(
    routing: FakeRoutingService,
    store: InMemoryTripStore,
    source: PushLocationSource,
    equator_route: Route,
    events: list[TripCompleted],
) -> None:
    weather = FakeWeather(Weather(condition="rain", temp=18))
    controller = TripTrackingController(
        routing,
        store,
        weather_provider=weather,
        on_completed=events.append,
    )
    await _start(
        controller,
        source,
        equator_route,
        mode="walk",
        context={"verification": {"stepsMatch": True}},
    )
    source.push(_sample(ORIGIN, 0))
    source.push(_sample(LatLng(0.0, 0.005), 6))
    await controller.drain()

    completed = await controller.finish()

    assert completed is not None
    assert completed.mode == "WALK"
    assert weather.calls == [((0.0, 0.0), (0.0, 0.005))]
    assert completed.eco_score.components.weather == 75
    assert completed.eco_score.components.verification == 95
    assert events[0].source == "manual"
    await controller.drain()


async def test_initial_route_is_fetched_for_mode_profile(
    controller: TripTrackingController,
    source: PushLocationSource,
    routing: FakeRoutingService,
    equator_route: Route,
) -> None:
    routing.routes.append(equator_route)

    state = await controller.start("trip-2", source, ORIGIN, DESTINATION, "cycle")

    assert routing.calls == [(ORIGIN, DESTINATION, "biking")]
    assert state.route is equator_route
    assert state.mode == "CYCLE"
    controller.stop()


async def test_controller_tracks_one_trip_only(
    controller: TripTrackingController,
    source: PushLocationSource,
    equator_route: Route,
) -> None:
    await _start(controller, source, equator_route)
    controller.stop()

    with pytest.raises(TrackingStateError):
        await _start(controller, source, equator_route)


async def test_store_failure_marks_trip_failed(
    controller: TripTrackingController,
    source: PushLocationSource,
    store: InMemoryTripStore,
    equator_route: Route,
) -> None:
    state = await _start(controller, source, equator_route)
    del store.trips["trip-1"]

    source.push(_sample(LatLng(0.0, 0.0199), 0))

    with pytest.raises(ResourceNotFoundError):
        await controller.wait()
    assert state.status is TrackingStatus.FAILED


class UnreachableStore(InMemoryTripStore):
    async def complete_trip(self, trip_id, completion):
        raise ConnectionError("mongo down")


class CrashingWeather:
    async def along_route(self, start, end) -> Weather:
        raise RuntimeError("weather feed crashed")


async def test_unexpected_store_error_fails_trip(
    source: PushLocationSource,
    routing: FakeRoutingService,
    equator_route: Route,
) -> None:
    ctrl = TripTrackingController(routing, UnreachableStore())
    state = await _start(ctrl, source, equator_route)

    source.push(_sample(LatLng(0.0, 0.0199), 0))

    with pytest.raises(ConnectionError, match="mongo down"):
        await asyncio.wait_for(ctrl.wait(), timeout=1.0)
    assert state.status is TrackingStatus.FAILED
    assert source.subscriber_count == 0
    assert ctrl.completed_trip is None
    await ctrl.drain()


async def test_scoring_error_fails_trip(
    source: PushLocationSource,
    routing: FakeRoutingService,
    store: InMemoryTripStore,
    equator_route: Route,
) -> None:
    ctrl = TripTrackingController(routing, store, weather_provider=CrashingWeather())
    state = await _start(ctrl, source, equator_route)

    source.push(_sample(ORIGIN, 0))
    source.push(_sample(LatLng(0.0, 0.0199), 4))

    with pytest.raises(RuntimeError, match="weather feed crashed"):
        await asyncio.wait_for(ctrl.wait(), timeout=1.0)
    assert state.status is TrackingStatus.FAILED
    assert source.subscriber_count == 0
    assert store.trips["trip-1"]["status"] == "in_progress"
    assert await ctrl.finish() is None
    await ctrl.drain()


async def test_poll_snapshots_ends_with_tracking(
    controller: TripTrackingController,
    source: PushLocationSource,
    equator_route: Route,
) -> None:
    await _start(controller, source, equator_route)
    source.push(_sample(ORIGIN, 0))
    await controller.drain()
    controller.stop()

    snapshots = [snap async for snap in controller.poll_snapshots(interval_s=0.01)]

    assert len(snapshots) == 1
    assert snapshots[0].status == "stopped"
    assert snapshots[0].position == ORIGIN


async def test_reroute_without_a_trip_is_a_state_error(
    routing: FakeRoutingService,
    store: InMemoryTripStore,
) -> None:
    ctrl = TripTrackingController(routing, store)

    with pytest.raises(TrackingStateError, match="No trip is being tracked"):
        await ctrl._reroute(1, ORIGIN)
    assert routing.calls == []
