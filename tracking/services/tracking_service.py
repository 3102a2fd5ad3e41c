"""
Live trip tracking controller.

One ``TripTrackingController`` drives one trip. It subscribes to a location
source, queues incoming samples and processes them strictly one at a time:

    filter -> speed/ETA -> route matching -> arrival -> deviation

Reroutes run as background tasks while samples keep being matched against
the current route. Arrival completes the trip exactly once, persists the
telemetry through the trip store and emits a ``TripCompleted`` event.
Stopping unsubscribes immediately and invalidates anything still in flight.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import AsyncIterator, Callable
from typing import TYPE_CHECKING, Any

from config import TrackingSettings, get_tracking_settings
from core.constants import METERS_PER_KM, SECONDS_PER_MINUTE
from core.date_utils import get_current_utc_time, ms_to_datetime
from core.exceptions import (
    EcoTrackError,
    ExternalServiceError,
    LocationUnavailableError,
    TrackingStateError,
)
from core.spatial import GeometryService
from events.trip_completed import TripCompleted, compute_trip_bbox
from routing.service import profile_for_mode
from scoring.models import EcoScoreInput, Verification, Weather
from tracking.models import TrackingSnapshot
from tracking.services.monitor import ArrivalMonitor, DeviationMonitor
from tracking.services.route_matcher import RouteMatcher
from tracking.services.sample_filter import SampleFilter
from tracking.services.speed_estimator import SpeedEstimator
from tracking.state import SpeedWindow, TrackingStatus, TrackState
from trips.models import TripCompletion

if TYPE_CHECKING:
    from core.spatial import LatLng
    from routing.models import Route
    from routing.service import RoutingService
    from tracking.models import GeoSample, RouteProgress
    from tracking.services.location_sources import LocationSource, SubscriptionHandle
    from trips.models import CompletedTrip
    from trips.services.trip_store import TripStore

logger = logging.getLogger(__name__)

UpdateCallback = Callable[[TrackingSnapshot], Any]
CompletedCallback = Callable[[TripCompleted], Any]

# Queue marker telling the consumer task to exit.
_STOP = object()


async def _maybe_await(result: Any) -> None:
    if inspect.isawaitable(result):
        await result


class TripTrackingController:
    def __init__(
        self,
        routing_service: RoutingService,
        trip_store: TripStore,
        *,
        settings: TrackingSettings | None = None,
        weather_provider: Any | None = None,
        on_update: UpdateCallback | None = None,
        on_completed: CompletedCallback | None = None,
    ) -> None:
        self.settings = settings or get_tracking_settings()
        self._routing = routing_service
        self._trip_store = trip_store
        self._weather_provider = weather_provider
        self._on_update = on_update
        self._on_completed = on_completed

        self.sample_filter = SampleFilter(self.settings)
        self.speed_estimator = SpeedEstimator(self.settings)
        self.route_matcher = RouteMatcher(self.settings)
        self.deviation_monitor = DeviationMonitor(self.settings)
        self.arrival_monitor = ArrivalMonitor(self.settings)

        self.state: TrackState | None = None
        self._context: dict[str, Any] = {}
        self._planned_eta_minutes: float | None = None

        self._source: LocationSource | None = None
        self._handle: SubscriptionHandle | None = None
        self._queue: asyncio.Queue | None = None
        self._consumer: asyncio.Task | None = None
        self._reroute_tasks: set[asyncio.Task] = set()
        self._done = asyncio.Event()
        self._completing = False
        self._completed: CompletedTrip | None = None
        self._error: Exception | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(
        self,
        trip_id: str,
        source: LocationSource,
        origin: LatLng,
        destination: LatLng,
        mode: str,
        *,
        route: Route | None = None,
        user_id: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> TrackState:
        """
        Begin tracking a trip.

        Fetches the initial route unless one is given, records the trip as in
        progress and subscribes to ``source``. Raises ``RouteFetchError`` when
        no route can be had and ``TrackingStateError`` when this controller
        already tracked a trip.
        """
        if self.state is not None:
            msg = "Controller already tracked a trip"
            raise TrackingStateError(
                msg,
                {"trip_id": self.state.trip_id, "status": self.state.status.value},
            )

        mode = (mode or "").upper()
        profile = profile_for_mode(mode)
        if route is None:
            route = await self._routing.get_route(origin, destination, profile)

        state = TrackState(
            trip_id=trip_id,
            mode=mode,
            profile=profile,
            origin=origin,
            destination=destination,
            speed_window=SpeedWindow(self.settings.speed_window_ms),
            route=route,
            remaining_m=route.total_length_m,
        )
        self._context = dict(context or {})
        self._planned_eta_minutes = route.duration_minutes or None

        await self._trip_store.start_trip(
            trip_id,
            mode=mode,
            origin=origin,
            destination=destination,
            route=route,
            user_id=user_id,
        )

        self.state = state
        state.status = TrackingStatus.TRACKING
        self._queue = asyncio.Queue()
        self._consumer = asyncio.create_task(self._consume())
        self._source = source
        self._handle = source.subscribe(self._on_sample, self._on_error)

        logger.info(
            "Tracking trip %s (%s, %d route vertices, %.0f m)",
            trip_id,
            mode,
            len(route.points),
            route.total_length_m,
        )
        return state

    def stop(self) -> None:
        """Stop tracking without completing. Takes effect immediately."""
        if self.state is None or not self.state.is_active:
            return
        self._halt(TrackingStatus.STOPPED)
        logger.info("Stopped tracking trip %s", self.state.trip_id)

    async def cancel(self, reason: str | None = None) -> None:
        """Stop tracking and mark the trip cancelled in the store."""
        if self.state is None or not self.state.is_active or self._completing:
            return
        self._halt(TrackingStatus.CANCELLED)
        await self._trip_store.cancel_trip(self.state.trip_id, reason)
        logger.info("Cancelled trip %s", self.state.trip_id)

    async def finish(self) -> CompletedTrip | None:
        """Complete the trip now, wherever the user is."""
        return await self._complete(source="manual")

    async def wait(self) -> CompletedTrip | None:
        """
        Wait until tracking ends.

        Returns the completed trip, or None when tracking was stopped or
        cancelled. Raises ``LocationUnavailableError`` when the location
        source failed, or whatever error stopped scoring or persisting the
        trip.
        """
        await self._done.wait()
        if self._error is not None:
            raise self._error
        return self._completed

    async def drain(self) -> None:
        """Wait for queued samples and in-flight reroutes to be handled."""
        while True:
            if self._queue is not None:
                await self._queue.join()
            if not self._reroute_tasks:
                return
            await asyncio.gather(*self._reroute_tasks, return_exceptions=True)

    @property
    def completed_trip(self) -> CompletedTrip | None:
        return self._completed

    # ------------------------------------------------------------------
    # Display
    # ------------------------------------------------------------------

    def snapshot(self) -> TrackingSnapshot | None:
        """Read-only view of the trip; never mutates the tracking state."""
        state = self.state
        if state is None:
            return None

        progress = state.progress
        last = state.last_sample
        current_step = None
        if progress is not None and state.route is not None and state.route.steps:
            current_step = state.route.steps[progress.current_step_index]

        return TrackingSnapshot(
            trip_id=state.trip_id,
            status=state.status.value,
            position=last.position if last else None,
            current_speed_kmh=state.current_speed_kmh,
            avg_speed_kmh=state.avg_speed_kmh,
            max_speed_kmh=state.max_speed_kmh,
            eta_minutes=state.eta_minutes,
            covered_m=state.covered_m,
            remaining_m=state.remaining_m,
            travelled_m=state.travelled_m,
            duration_s=state.duration_s,
            reroute_pending=state.reroute_pending,
            deviation_m=progress.distance_from_route_m if progress else None,
            current_step=current_step,
            covered_coords=progress.covered_coords if progress else (),
            remaining_coords=progress.remaining_coords if progress else (),
        )

    async def poll_snapshots(
        self,
        interval_s: float = 1.0,
    ) -> AsyncIterator[TrackingSnapshot]:
        """Yield a snapshot every ``interval_s`` until tracking ends."""
        while True:
            snapshot = self.snapshot()
            if snapshot is None:
                return
            yield snapshot
            if self.state is None or not self.state.is_active:
                return
            await asyncio.sleep(interval_s)

    # ------------------------------------------------------------------
    # Location source callbacks
    # ------------------------------------------------------------------

    def _on_sample(self, sample: GeoSample) -> None:
        if self.state is None or not self.state.is_active or self._queue is None:
            return
        self._queue.put_nowait(sample)

    def _on_error(self, error: LocationUnavailableError) -> None:
        state = self.state
        if state is None or not state.is_active or self._completing:
            return
        logger.warning("Location unavailable for trip %s: %s", state.trip_id, error.code)
        self._error = error
        self._halt(TrackingStatus.FAILED)

    # ------------------------------------------------------------------
    # Sample pipeline
    # ------------------------------------------------------------------

    async def _consume(self) -> None:
        queue = self._queue
        if queue is None:
            msg = "Controller has no sample queue"
            raise TrackingStateError(msg)
        while True:
            item = await queue.get()
            try:
                if item is _STOP:
                    return
                await self._process(item)
            except Exception:
                logger.exception("Failed to process sample for trip %s", self._trip_id)
            finally:
                queue.task_done()

    async def _process(self, sample: GeoSample) -> None:
        state = self.state
        if state is None or not state.is_active or self._completing:
            return

        decision = self.sample_filter.evaluate(sample, state.last_sample)
        if not decision.accepted:
            state.rejected_count += 1
            return

        self.speed_estimator.update(state, sample)
        state.history.append(sample)

        position = sample.position
        self._apply_progress(state, self.route_matcher.match(state.route, position))
        self.speed_estimator.update_eta(state)
        if self._planned_eta_minutes is None and state.eta_minutes:
            self._planned_eta_minutes = state.eta_minutes

        if self.arrival_monitor.check(state, position):
            await self._emit_update()
            try:
                await self._complete(source="arrival")
            except Exception:
                # Recorded on the controller; wait() raises it.
                logger.debug("Arrival completion failed for trip %s", state.trip_id)
            return

        token = self.deviation_monitor.check(state, state.progress)
        if token is not None:
            self._spawn_reroute(token, position)

        await self._emit_update()

    @staticmethod
    def _apply_progress(state: TrackState, progress: RouteProgress | None) -> None:
        state.progress = progress
        if progress is None:
            return
        # Progress along one route never goes backwards.
        state.route_covered_m = max(state.route_covered_m, progress.covered_m)
        state.remaining_m = max(0.0, progress.total_m - state.route_covered_m)

    async def _emit_update(self) -> None:
        if self._on_update is None:
            return
        snapshot = self.snapshot()
        if snapshot is not None:
            await _maybe_await(self._on_update(snapshot))

    # ------------------------------------------------------------------
    # Rerouting
    # ------------------------------------------------------------------

    def _spawn_reroute(self, token: int, position: LatLng) -> None:
        task = asyncio.create_task(self._reroute(token, position))
        self._reroute_tasks.add(task)
        task.add_done_callback(self._reroute_tasks.discard)

    async def _reroute(self, token: int, position: LatLng) -> None:
        state = self._require_state()
        logger.info("Requesting reroute %d for trip %s", token, state.trip_id)

        route: Route | None = None
        try:
            route = await self._routing.get_route(
                position,
                state.destination,
                state.profile,
            )
        except ExternalServiceError as exc:
            logger.warning("Reroute %d for trip %s failed: %s", token, state.trip_id, exc)

        if self._completing:
            return
        if not self.deviation_monitor.resolve(state, token, route):
            return

        last = state.last_sample
        if last is not None:
            self._apply_progress(state, self.route_matcher.match(state.route, last.position))
        await self._emit_update()

    # ------------------------------------------------------------------
    # Completion
    # ------------------------------------------------------------------

    async def _complete(self, source: str) -> CompletedTrip | None:
        state = self.state
        if state is None or not state.is_active or self._completing:
            return None
        self._completing = True

        try:
            completion = await self._build_completion(state)
        except asyncio.CancelledError:
            self._completing = False
            raise
        except Exception as exc:
            logger.error("Trip %s could not be scored: %s", state.trip_id, exc)
            self._fail(state, exc)
            raise

        if not state.is_active:
            logger.warning(
                "Discarding completion for trip %s: tracking %s",
                state.trip_id,
                state.status.value,
            )
            return None

        self._halt(TrackingStatus.COMPLETED, finished=False)
        try:
            completed = await self._trip_store.complete_trip(state.trip_id, completion)
        except Exception as exc:
            logger.error("Trip %s could not be completed: %s", state.trip_id, exc)
            self._fail(state, exc)
            raise

        self._completed = completed
        self._done.set()
        logger.info(
            "Trip %s completed (%s): %.2f km in %.1f min, eco score %d",
            state.trip_id,
            source,
            completed.distance_km,
            completed.duration_min,
            completed.eco_score.eco_score,
        )

        if self._on_completed is not None:
            geometry = GeometryService.geometry_from_coordinate_pairs(
                [[s["lng"], s["lat"]] for s in completion.location_history],
                dedupe=True,
            )
            event = TripCompleted(
                trip_id=completed.trip_id,
                user_id=completed.user_id,
                mode=completed.mode,
                eco_score=completed.eco_score.eco_score,
                components=completed.eco_score.components.model_dump(),
                distance_km=completed.distance_km,
                duration_min=completed.duration_min,
                timestamp=completed.completed_at or get_current_utc_time(),
                source=source,
                bbox=compute_trip_bbox(geometry),
                gps_geometry=geometry,
            )
            await _maybe_await(self._on_completed(event))
        return completed

    async def _build_completion(self, state: TrackState) -> TripCompletion:
        duration_min = state.duration_s / SECONDS_PER_MINUTE
        avg_speed_kmh = state.avg_speed_kmh

        verification = self._context.get("verification") or Verification()
        if not isinstance(verification, Verification):
            verification = Verification.model_validate(verification)
        verification = verification.model_copy(update={"avg_speed": avg_speed_kmh})

        last = state.last_sample
        return TripCompletion(
            distance_km=state.travelled_m / METERS_PER_KM,
            duration_min=duration_min,
            avg_speed_kmh=avg_speed_kmh,
            max_speed_kmh=state.max_speed_kmh,
            eco_score_input=EcoScoreInput(
                mode=state.mode,
                distance_km=state.travelled_m / METERS_PER_KM,
                eta_minutes=self._planned_eta_minutes,
                actual_minutes=duration_min,
                weather=await self._resolve_weather(state),
                verification=verification,
            ),
            speed_violations=state.speed_violations,
            reroute_count=state.reroute_count,
            deviation_episodes=state.deviation_episodes,
            ended_at=ms_to_datetime(last.timestamp_ms) if last else None,
            location_history=[sample.to_dict() for sample in state.history],
        )

    async def _resolve_weather(self, state: TrackState) -> Weather | None:
        weather = self._context.get("weather")
        if weather is None and self._weather_provider is not None:
            # Origin to where the trip actually ended.
            last = state.last_sample
            end = last.position if last is not None else state.destination
            try:
                weather = await self._weather_provider.along_route(
                    (state.origin.lat, state.origin.lng),
                    (end.lat, end.lng),
                )
            except EcoTrackError as exc:
                logger.warning("Weather lookup for trip %s failed: %s", state.trip_id, exc)
                weather = None
        if weather is None or isinstance(weather, Weather):
            return weather
        return Weather.model_validate(weather)

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    def _halt(self, status: TrackingStatus, *, finished: bool = True) -> None:
        """Leave the tracking state: unsubscribe and drop in-flight work."""
        state = self._require_state()
        state.status = status

        if self._source is not None and self._handle is not None:
            self._source.unsubscribe(self._handle)
        self._handle = None

        for task in list(self._reroute_tasks):
            if task is not asyncio.current_task():
                task.cancel()
        state.reroute_pending = False

        if self._queue is not None:
            self._queue.put_nowait(_STOP)
        if finished:
            self._done.set()

    def _fail(self, state: TrackState, exc: Exception) -> None:
        """End tracking as FAILED so wait() raises ``exc``."""
        if state.is_active:
            self._error = exc
            self._halt(TrackingStatus.FAILED)
        elif state.status is TrackingStatus.COMPLETED:
            # Halted for persistence, which did not happen.
            self._error = exc
            state.status = TrackingStatus.FAILED
            self._done.set()

    def _require_state(self) -> TrackState:
        if self.state is None:
            msg = "No trip is being tracked"
            raise TrackingStateError(msg)
        return self.state

    @property
    def _trip_id(self) -> str | None:
        return self.state.trip_id if self.state else None


__all__ = ["TripTrackingController"]
