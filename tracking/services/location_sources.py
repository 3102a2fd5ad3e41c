"""
Location sources.

Every source exposes the same subscribe/unsubscribe interface so the
tracking controller never knows whether positions come from a device or from
a replay. ``PushLocationSource`` is fed by a live adapter (a websocket
handler, a device bridge); ``ReplayLocationSource`` plays recorded samples on
a fixed tick.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

from core.date_utils import now_ms
from core.exceptions import LocationUnavailableError
from core.spatial import GeometryService, LatLng
from tracking.models import GeoSample

if TYPE_CHECKING:
    from routing.models import Route

logger = logging.getLogger(__name__)

SampleCallback = Callable[[GeoSample], None]
ErrorCallback = Callable[[LocationUnavailableError], None]

_handle_ids = itertools.count(1)


@dataclass(frozen=True)
class SubscriptionHandle:
    id: int


class LocationSource(Protocol):
    def subscribe(
        self,
        on_sample: SampleCallback,
        on_error: ErrorCallback,
    ) -> SubscriptionHandle: ...

    def unsubscribe(self, handle: SubscriptionHandle) -> None: ...


class PushLocationSource:
    """Live source: an adapter pushes samples and errors as they happen."""

    def __init__(self) -> None:
        self._subscribers: dict[
            SubscriptionHandle,
            tuple[SampleCallback, ErrorCallback],
        ] = {}

    def subscribe(
        self,
        on_sample: SampleCallback,
        on_error: ErrorCallback,
    ) -> SubscriptionHandle:
        handle = SubscriptionHandle(next(_handle_ids))
        self._subscribers[handle] = (on_sample, on_error)
        return handle

    def unsubscribe(self, handle: SubscriptionHandle) -> None:
        self._subscribers.pop(handle, None)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def push(self, sample: GeoSample | dict[str, Any]) -> None:
        if not isinstance(sample, GeoSample):
            sample = GeoSample.from_dict(sample)
        for on_sample, _ in list(self._subscribers.values()):
            on_sample(sample)

    def fail(self, code: str, message: str | None = None) -> None:
        error = LocationUnavailableError(code, message)
        for _, on_error in list(self._subscribers.values()):
            on_error(error)


class ReplayLocationSource:
    """
    Replays recorded samples, one per tick.

    ``time_scale`` speeds the replay up (2.0 plays twice as fast); the
    samples' own timestamps are delivered unchanged, so speeds and durations
    come out as recorded.
    """

    def __init__(
        self,
        samples: Sequence[GeoSample],
        *,
        tick_ms: int = 1000,
        time_scale: float = 1.0,
    ) -> None:
        self.samples = list(samples)
        self.tick_ms = tick_ms
        self.time_scale = time_scale
        self._tasks: dict[SubscriptionHandle, asyncio.Task] = {}

    @classmethod
    def from_route(
        cls,
        route: Route,
        *,
        tick_ms: int = 1000,
        start_ms: int | None = None,
        time_scale: float = 1.0,
    ) -> ReplayLocationSource:
        """Replay a route's vertices, stamped ``tick_ms`` apart."""
        return cls.from_points(
            route.points,
            tick_ms=tick_ms,
            start_ms=start_ms,
            time_scale=time_scale,
        )

    @classmethod
    def from_points(
        cls,
        points: Sequence[LatLng],
        *,
        tick_ms: int = 1000,
        start_ms: int | None = None,
        time_scale: float = 1.0,
    ) -> ReplayLocationSource:
        start = now_ms() if start_ms is None else start_ms
        samples = [
            GeoSample(lat=p.lat, lng=p.lng, timestamp_ms=start + i * tick_ms)
            for i, p in enumerate(points)
        ]
        return cls(samples, tick_ms=tick_ms, time_scale=time_scale)

    @classmethod
    def from_geojson(
        cls,
        geometry: dict[str, Any],
        **kwargs: Any,
    ) -> ReplayLocationSource:
        return cls.from_points(
            GeometryService.coordinates_from_geometry(geometry),
            **kwargs,
        )

    def subscribe(
        self,
        on_sample: SampleCallback,
        on_error: ErrorCallback,
    ) -> SubscriptionHandle:
        handle = SubscriptionHandle(next(_handle_ids))
        task = asyncio.create_task(self._play(on_sample))
        self._tasks[handle] = task
        task.add_done_callback(lambda _t: self._tasks.pop(handle, None))
        return handle

    def unsubscribe(self, handle: SubscriptionHandle) -> None:
        task = self._tasks.pop(handle, None)
        if task is not None and not task.done():
            task.cancel()

    async def join(self) -> None:
        """Wait until every active replay has delivered its last sample."""
        tasks = list(self._tasks.values())
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _play(self, on_sample: SampleCallback) -> None:
        delay_s = 0.0
        if self.time_scale > 0:
            delay_s = self.tick_ms / 1000.0 / self.time_scale
        for index, sample in enumerate(self.samples):
            if index:
                await asyncio.sleep(delay_s)
            on_sample(sample)
        logger.debug("Replay finished after %d samples", len(self.samples))


__all__ = [
    "ErrorCallback",
    "LocationSource",
    "PushLocationSource",
    "ReplayLocationSource",
    "SampleCallback",
    "SubscriptionHandle",
]
