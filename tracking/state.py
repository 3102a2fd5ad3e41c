"""
Tracking state for a single trip.

``TrackState`` is the one mutable record of a trip in progress. It is owned
by the tracking controller and passed explicitly to the filter, estimator,
matcher and monitors; nothing else holds a reference to it.
"""

from __future__ import annotations

import bisect
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from core.constants import MPS_TO_KMH, MS_PER_SECOND

if TYPE_CHECKING:
    from core.spatial import LatLng
    from routing.models import Route
    from tracking.models import GeoSample, RouteProgress


class TrackingStatus(Enum):
    """Lifecycle of a tracked trip."""

    IDLE = "idle"
    TRACKING = "tracking"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    STOPPED = "stopped"
    FAILED = "failed"


@dataclass(frozen=True)
class SpeedEntry:
    timestamp_ms: int
    speed_mps: float


class SpeedWindow:
    """
    Instantaneous speeds over a sliding time window.

    Entries are kept ordered by timestamp. After every push, entries older
    than ``window_ms`` relative to the newest entry are evicted.
    """

    def __init__(self, window_ms: int = 120_000) -> None:
        self.window_ms = window_ms
        self._entries: list[SpeedEntry] = []

    def push(self, timestamp_ms: int, speed_mps: float) -> None:
        bisect.insort(
            self._entries,
            SpeedEntry(timestamp_ms, speed_mps),
            key=lambda entry: entry.timestamp_ms,
        )
        cutoff = self._entries[-1].timestamp_ms - self.window_ms
        drop = 0
        while drop < len(self._entries) and self._entries[drop].timestamp_ms < cutoff:
            drop += 1
        if drop:
            del self._entries[:drop]

    def average(self) -> float:
        if not self._entries:
            return 0.0
        return sum(entry.speed_mps for entry in self._entries) / len(self._entries)

    def latest(self) -> SpeedEntry | None:
        return self._entries[-1] if self._entries else None

    @property
    def entries(self) -> tuple[SpeedEntry, ...]:
        return tuple(self._entries)

    def __len__(self) -> int:
        return len(self._entries)


@dataclass
class TrackState:
    trip_id: str
    mode: str
    profile: str
    origin: LatLng
    destination: LatLng
    speed_window: SpeedWindow = field(default_factory=SpeedWindow)
    status: TrackingStatus = TrackingStatus.IDLE
    route: Route | None = None

    # Accepted samples, oldest first.
    history: list[GeoSample] = field(default_factory=list)
    rejected_count: int = 0

    current_speed_mps: float = 0.0
    max_speed_mps: float = 0.0
    travelled_m: float = 0.0
    speed_violations: int = 0
    eta_minutes: float | None = None

    # Progress on the active route; covered_base_m carries progress made on
    # routes replaced by a reroute.
    progress: RouteProgress | None = None
    covered_base_m: float = 0.0
    route_covered_m: float = 0.0
    remaining_m: float | None = None

    reroute_pending: bool = False
    reroute_token: int = 0
    reroute_count: int = 0
    off_route: bool = False
    deviation_episodes: int = 0

    arrived: bool = False

    @property
    def is_active(self) -> bool:
        return self.status is TrackingStatus.TRACKING

    @property
    def last_sample(self) -> GeoSample | None:
        return self.history[-1] if self.history else None

    @property
    def first_sample(self) -> GeoSample | None:
        return self.history[0] if self.history else None

    @property
    def covered_m(self) -> float:
        return self.covered_base_m + self.route_covered_m

    @property
    def duration_s(self) -> float:
        if len(self.history) < 2:
            return 0.0
        elapsed_ms = self.history[-1].timestamp_ms - self.history[0].timestamp_ms
        return max(0.0, elapsed_ms / MS_PER_SECOND)

    @property
    def avg_speed_kmh(self) -> float:
        duration = self.duration_s
        if duration <= 0:
            return 0.0
        return self.travelled_m / duration * MPS_TO_KMH

    @property
    def max_speed_kmh(self) -> float:
        return self.max_speed_mps * MPS_TO_KMH

    @property
    def current_speed_kmh(self) -> float:
        return self.current_speed_mps * MPS_TO_KMH

    def replace_route(self, route: Route) -> None:
        """Switch to a new route, keeping the distance already covered."""
        self.covered_base_m += self.route_covered_m
        self.route_covered_m = 0.0
        self.route = route
        self.progress = None
        self.remaining_m = route.total_length_m


__all__ = ["SpeedEntry", "SpeedWindow", "TrackState", "TrackingStatus"]
