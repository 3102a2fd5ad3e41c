"""
Route matcher.

Projects a position onto the active route and derives covered and remaining
distance. In the default ``offset`` mode the covered distance is the length
of the route before the matched segment plus the distance from the position
to its projection, which is an approximation of progress along the segment.
``arc`` mode uses the true distance along the matched segment instead.
Either way covered is clamped to the route length so covered and remaining
always add up to the total.
"""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING

from config import TrackingSettings
from core.spatial import distance, project_onto_route
from tracking.models import RouteProgress

if TYPE_CHECKING:
    from core.spatial import LatLng
    from routing.models import Route

logger = logging.getLogger(__name__)


class RouteMatcher:
    def __init__(self, settings: TrackingSettings | None = None) -> None:
        self.settings = settings or TrackingSettings()

    def match(self, route: Route | None, position: LatLng) -> RouteProgress | None:
        """Return progress along ``route``, or None when there is no route."""
        if route is None or not route.points:
            return None

        projection = project_onto_route(route.points, position)
        if projection is None:
            return None

        total = route.total_length_m
        index = projection.segment_index
        prefix = route.prefix_lengths[index]
        if self.settings.progress_mode == "arc" and route.segment_lengths:
            along = projection.t * route.segment_lengths[index]
        else:
            along = projection.distance

        covered = min(max(prefix + along, 0.0), total)
        remaining = max(0.0, total - covered)

        return RouteProgress(
            projection=projection,
            covered_m=covered,
            remaining_m=remaining,
            total_m=total,
            covered_coords=(*route.points[: index + 1], projection.point),
            remaining_coords=(projection.point, *route.points[index + 1 :]),
            current_step_index=self._nearest_step(route, position),
        )

    @staticmethod
    def _nearest_step(route: Route, position: LatLng) -> int:
        if not route.steps:
            return 0
        best_index = 0
        best_distance = math.inf
        for index, step in enumerate(route.steps):
            step_distance = distance(step.location, position)
            if step_distance < best_distance:
                best_index = index
                best_distance = step_distance
        return best_index


__all__ = ["RouteMatcher"]
