"""
Speed and ETA estimation.

Instantaneous speeds come from the distance and time between consecutive
accepted samples and feed a sliding ``SpeedWindow``. The ETA is the remaining
route distance over the window's average speed, exponentially smoothed so the
displayed value does not jump with every sample.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from config import TrackingSettings
from core.constants import MPS_TO_KMH, MS_PER_SECOND, SECONDS_PER_MINUTE
from core.spatial import distance

if TYPE_CHECKING:
    from tracking.models import GeoSample
    from tracking.state import TrackState

logger = logging.getLogger(__name__)


class EtaSmoother:
    """Exponential smoothing of raw ETA minutes."""

    def __init__(self, alpha: float = 0.15) -> None:
        self.alpha = alpha
        self.value: float | None = None

    def update(self, remaining_m: float, avg_speed_mps: float) -> float | None:
        """Fold in a new raw ETA. Leaves the value untouched at zero speed."""
        if avg_speed_mps <= 0:
            return self.value
        raw = remaining_m / avg_speed_mps / SECONDS_PER_MINUTE
        if self.value is None:
            self.value = raw
        else:
            self.value = (1 - self.alpha) * self.value + self.alpha * raw
        return self.value

    def reset(self) -> None:
        self.value = None


class SpeedEstimator:
    def __init__(self, settings: TrackingSettings | None = None) -> None:
        self.settings = settings or TrackingSettings()
        self.eta = EtaSmoother(self.settings.eta_smoothing_alpha)

    def update(self, state: TrackState, sample: GeoSample) -> None:
        """
        Fold an accepted sample into the trip's speed statistics.

        Must run before the sample is appended to the state's history, since
        the previous accepted sample is the last history entry.
        """
        previous = state.last_sample
        if previous is not None:
            step_m = distance(previous.position, sample.position)
            state.travelled_m += step_m
            dt_s = (sample.timestamp_ms - previous.timestamp_ms) / MS_PER_SECOND
            if dt_s > 0:
                state.speed_window.push(sample.timestamp_ms, step_m / dt_s)

        if sample.speed_mps is not None:
            current = sample.speed_mps
        else:
            latest = state.speed_window.latest()
            current = latest.speed_mps if latest is not None else 0.0

        state.current_speed_mps = current
        state.max_speed_mps = max(state.max_speed_mps, current)
        if current * MPS_TO_KMH > self.settings.speed_violation_kmh:
            state.speed_violations += 1

    def update_eta(self, state: TrackState) -> float | None:
        if state.remaining_m is None:
            return state.eta_minutes
        state.eta_minutes = self.eta.update(
            state.remaining_m,
            state.speed_window.average(),
        )
        return state.eta_minutes


__all__ = ["EtaSmoother", "SpeedEstimator"]
