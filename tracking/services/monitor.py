"""
Deviation and arrival monitoring.

``DeviationMonitor`` debounces reroutes: one request per deviation episode,
tagged with a sequence token so that only the newest request's result is
ever applied. ``ArrivalMonitor`` fires once when the position reaches the
route's final vertex.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from config import TrackingSettings
from core.spatial import distance

if TYPE_CHECKING:
    from core.spatial import LatLng
    from routing.models import Route
    from tracking.models import RouteProgress
    from tracking.state import TrackState

logger = logging.getLogger(__name__)


class DeviationMonitor:
    def __init__(self, settings: TrackingSettings | None = None) -> None:
        self.settings = settings or TrackingSettings()

    def check(self, state: TrackState, progress: RouteProgress | None) -> int | None:
        """
        Decide whether the position calls for a reroute.

        Returns the new request token when a reroute should be issued, None
        otherwise. While a reroute is pending no further request is made.
        """
        if progress is None or not state.is_active:
            return None

        off_route = progress.distance_from_route_m > self.settings.deviation_threshold_m
        if not off_route:
            if state.off_route:
                logger.debug("Trip %s back on route", state.trip_id)
            state.off_route = False
            return None

        if not state.off_route:
            state.off_route = True
            state.deviation_episodes += 1
            logger.info(
                "Trip %s off route by %.1f m",
                state.trip_id,
                progress.distance_from_route_m,
            )

        if state.reroute_pending:
            return None

        state.reroute_pending = True
        state.reroute_token += 1
        return state.reroute_token

    def resolve(
        self,
        state: TrackState,
        token: int,
        route: Route | None,
    ) -> bool:
        """
        Apply a reroute result.

        ``route`` is None when the routing request failed; the current route is
        kept and the pending flag cleared so a later deviation can retry.
        Results for a superseded token or a trip that is no longer tracking are
        discarded. Returns True when the new route was applied.
        """
        if token != state.reroute_token:
            logger.warning(
                "Discarding stale reroute %s for trip %s (current %s)",
                token,
                state.trip_id,
                state.reroute_token,
            )
            return False

        state.reroute_pending = False

        if not state.is_active:
            logger.warning(
                "Discarding reroute %s for trip %s: no longer tracking",
                token,
                state.trip_id,
            )
            return False

        if route is None:
            logger.warning(
                "Reroute %s for trip %s failed; keeping current route",
                token,
                state.trip_id,
            )
            return False

        state.replace_route(route)
        state.reroute_count += 1
        # A fresh route starting at the current position ends the episode.
        state.off_route = False
        logger.info(
            "Trip %s rerouted (%d vertices, %.0f m)",
            state.trip_id,
            len(route.points),
            route.total_length_m,
        )
        return True


class ArrivalMonitor:
    def __init__(self, settings: TrackingSettings | None = None) -> None:
        self.settings = settings or TrackingSettings()

    def check(self, state: TrackState, position: LatLng) -> bool:
        """True exactly once, when ``position`` first reaches the destination."""
        if state.arrived or not state.is_active or state.route is None:
            return False
        if distance(position, state.route.destination) > self.settings.arrival_radius_m:
            return False
        state.arrived = True
        logger.info("Trip %s arrived at destination", state.trip_id)
        return True


__all__ = ["ArrivalMonitor", "DeviationMonitor"]
