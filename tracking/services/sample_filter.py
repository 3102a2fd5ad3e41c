"""
Sample quality filter.

Drops position reports that are too inaccurate, too close to the previous
accepted sample, or (when enabled) imply an impossible jump. Rejected samples
never reach the rest of the pipeline; they are logged at debug level only.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from config import TrackingSettings
from core.constants import MPS_TO_KMH, MS_PER_SECOND
from core.spatial import distance
from tracking.models import FilterDecision

if TYPE_CHECKING:
    from tracking.models import GeoSample

logger = logging.getLogger(__name__)

REASON_LOW_ACCURACY = "low_accuracy"
REASON_TOO_CLOSE = "too_close"
REASON_IMPLAUSIBLE_JUMP = "implausible_jump"

ACCEPT = FilterDecision(accepted=True)


class SampleFilter:
    def __init__(self, settings: TrackingSettings | None = None) -> None:
        self.settings = settings or TrackingSettings()

    def evaluate(
        self,
        sample: GeoSample,
        last_accepted: GeoSample | None,
    ) -> FilterDecision:
        settings = self.settings

        if sample.accuracy_m is not None and sample.accuracy_m > settings.max_accuracy_m:
            return self._reject(sample, REASON_LOW_ACCURACY)

        if last_accepted is None:
            return ACCEPT

        moved_m = distance(last_accepted.position, sample.position)
        if moved_m < settings.min_movement_m:
            return self._reject(sample, REASON_TOO_CLOSE)

        if settings.max_jump_speed_kmh is not None:
            dt_s = (sample.timestamp_ms - last_accepted.timestamp_ms) / MS_PER_SECOND
            if dt_s > 0 and moved_m / dt_s * MPS_TO_KMH > settings.max_jump_speed_kmh:
                return self._reject(sample, REASON_IMPLAUSIBLE_JUMP)

        return ACCEPT

    @staticmethod
    def _reject(sample: GeoSample, reason: str) -> FilterDecision:
        logger.debug(
            "Dropped sample at %.6f,%.6f (%s)",
            sample.lat,
            sample.lng,
            reason,
        )
        return FilterDecision(accepted=False, reason=reason)


__all__ = [
    "REASON_IMPLAUSIBLE_JUMP",
    "REASON_LOW_ACCURACY",
    "REASON_TOO_CLOSE",
    "SampleFilter",
]
