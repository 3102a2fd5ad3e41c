"""
Trip store.

Persists trip lifecycle changes and attaches the eco score on completion.
``BeanieTripStore`` writes ``Trip`` and ``UserStats`` documents to MongoDB;
``InMemoryTripStore`` keeps the same records in dictionaries for replays
and tests.
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, Protocol

from pymongo.errors import PyMongoError

from core.date_utils import get_current_utc_time
from core.exceptions import (
    ExternalServiceError,
    ResourceNotFoundError,
    TrackingStateError,
)
from core.spatial import GeometryService
from db.models import Trip, UserStats
from scoring.eco_score import calculate_eco_score
from trips.models import CompletedTrip, TripCompletion, UserStatsSummary

if TYPE_CHECKING:
    from datetime import datetime

    from core.spatial import LatLng
    from routing.models import Route
    from scoring.models import EcoScoreInput, EcoScoreResult

logger = logging.getLogger(__name__)

Scorer = Callable[["EcoScoreInput"], "EcoScoreResult"]


class TripStore(Protocol):
    async def start_trip(
        self,
        trip_id: str,
        *,
        mode: str,
        origin: LatLng,
        destination: LatLng,
        route: Route | None = None,
        user_id: str | None = None,
    ) -> None: ...

    async def complete_trip(
        self,
        trip_id: str,
        completion: TripCompletion,
    ) -> CompletedTrip: ...

    async def cancel_trip(self, trip_id: str, reason: str | None = None) -> None: ...

    async def get_user_stats(self, user_id: str) -> UserStatsSummary | None: ...


def _mongo_errors_as_service_errors(func):
    """Re-raise driver failures as ``ExternalServiceError``."""

    @functools.wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return await func(*args, **kwargs)
        except PyMongoError as exc:
            msg = f"Trip store unavailable: {exc}"
            raise ExternalServiceError(msg, {"operation": func.__name__}) from exc

    return wrapper


def _location(point: LatLng) -> dict[str, float]:
    return {"lat": point.lat, "lng": point.lng}


def _path_geometry(completion: TripCompletion) -> dict[str, Any] | None:
    return GeometryService.geometry_from_coordinate_pairs(
        [[s.get("lng"), s.get("lat")] for s in completion.location_history],
        dedupe=True,
    )


def _completed_trip(
    trip_id: str,
    user_id: str | None,
    mode: str | None,
    completion: TripCompletion,
    result: EcoScoreResult,
    completed_at: datetime,
) -> CompletedTrip:
    return CompletedTrip(
        trip_id=trip_id,
        user_id=user_id,
        mode=mode,
        distance_km=completion.distance_km,
        duration_min=completion.duration_min,
        avg_speed_kmh=completion.avg_speed_kmh,
        max_speed_kmh=completion.max_speed_kmh,
        eco_score=result,
        completed_at=completed_at,
    )


def _fold_stats(
    stats: UserStatsSummary,
    completed: CompletedTrip,
) -> UserStatsSummary:
    trips = stats.total_trips + 1
    score = completed.eco_score.eco_score
    return UserStatsSummary(
        user_id=stats.user_id,
        total_trips=trips,
        total_distance_km=stats.total_distance_km + completed.distance_km,
        avg_eco_score=(stats.avg_eco_score * stats.total_trips + score) / trips,
        best_eco_score=max(stats.best_eco_score, score),
        last_trip_at=completed.completed_at,
    )


class InMemoryTripStore:
    """Trip store backed by dictionaries."""

    def __init__(self, scorer: Scorer = calculate_eco_score) -> None:
        self._scorer = scorer
        self.trips: dict[str, dict[str, Any]] = {}
        self.completed: dict[str, CompletedTrip] = {}
        self.stats: dict[str, UserStatsSummary] = {}

    async def start_trip(
        self,
        trip_id: str,
        *,
        mode: str,
        origin: LatLng,
        destination: LatLng,
        route: Route | None = None,
        user_id: str | None = None,
    ) -> None:
        self.trips[trip_id] = {
            "trip_id": trip_id,
            "user_id": user_id,
            "mode": mode,
            "status": "in_progress",
            "start_location": _location(origin),
            "end_location": _location(destination),
            "start_time": get_current_utc_time(),
            "route_source": route.source if route else None,
        }

    async def complete_trip(
        self,
        trip_id: str,
        completion: TripCompletion,
    ) -> CompletedTrip:
        trip = self.trips.get(trip_id)
        if trip is None:
            msg = f"Trip {trip_id} not found"
            raise ResourceNotFoundError(msg, {"trip_id": trip_id})
        if trip["status"] != "in_progress":
            msg = f"Trip {trip_id} is already {trip['status']}"
            raise TrackingStateError(msg, {"trip_id": trip_id})

        result = self._scorer(completion.eco_score_input)
        completed_at = completion.ended_at or get_current_utc_time()
        completed = _completed_trip(
            trip_id,
            trip["user_id"],
            trip["mode"],
            completion,
            result,
            completed_at,
        )
        trip.update(
            status="completed",
            end_time=completed_at,
            completion=completion,
            gps=_path_geometry(completion),
        )
        self.completed[trip_id] = completed

        user_id = trip["user_id"]
        if user_id:
            current = self.stats.get(user_id) or UserStatsSummary(user_id=user_id)
            self.stats[user_id] = _fold_stats(current, completed)
        return completed

    async def cancel_trip(self, trip_id: str, reason: str | None = None) -> None:
        trip = self.trips.get(trip_id)
        if trip is None:
            msg = f"Trip {trip_id} not found"
            raise ResourceNotFoundError(msg, {"trip_id": trip_id})
        if trip["status"] == "in_progress":
            trip.update(status="cancelled", closed_reason=reason)

    async def get_user_stats(self, user_id: str) -> UserStatsSummary | None:
        return self.stats.get(user_id)


class BeanieTripStore:
    """Trip store backed by the ``trips`` and ``user_stats`` collections."""

    def __init__(self, scorer: Scorer = calculate_eco_score) -> None:
        self._scorer = scorer

    @staticmethod
    async def _get_trip(trip_id: str) -> Trip:
        trip = await Trip.find_one(Trip.tripId == trip_id)
        if trip is None:
            msg = f"Trip {trip_id} not found"
            raise ResourceNotFoundError(msg, {"trip_id": trip_id})
        return trip

    @_mongo_errors_as_service_errors
    async def start_trip(
        self,
        trip_id: str,
        *,
        mode: str,
        origin: LatLng,
        destination: LatLng,
        route: Route | None = None,
        user_id: str | None = None,
    ) -> None:
        now = get_current_utc_time()
        trip = await Trip.find_one(Trip.tripId == trip_id)
        if trip is None:
            trip = Trip(tripId=trip_id)
        elif trip.status in {"completed", "cancelled"}:
            msg = f"Trip {trip_id} is already {trip.status}"
            raise TrackingStateError(msg, {"trip_id": trip_id})

        trip.userId = user_id
        trip.mode = mode
        trip.status = "in_progress"
        trip.startLocation = _location(origin)
        trip.endLocation = _location(destination)
        trip.startTime = now
        trip.lastUpdate = now
        if route is not None:
            trip.routeGeometry = route.to_geojson()
            trip.routeSource = route.source
            trip.etaMinutes = route.duration_minutes
        await trip.save()
        logger.info("Trip %s started (%s)", trip_id, mode)

    @_mongo_errors_as_service_errors
    async def complete_trip(
        self,
        trip_id: str,
        completion: TripCompletion,
    ) -> CompletedTrip:
        trip = await self._get_trip(trip_id)
        if trip.status != "in_progress":
            msg = f"Trip {trip_id} is already {trip.status}"
            raise TrackingStateError(msg, {"trip_id": trip_id})

        score_input = completion.eco_score_input
        result = self._scorer(score_input)
        completed_at = completion.ended_at or get_current_utc_time()

        trip.status = "completed"
        trip.endTime = completed_at
        trip.lastUpdate = completed_at
        trip.distanceKm = completion.distance_km
        trip.actualMinutes = completion.duration_min
        trip.avgSpeedKmh = completion.avg_speed_kmh
        trip.maxSpeedKmh = completion.max_speed_kmh
        trip.etaMinutes = score_input.eta_minutes
        trip.ecoScore = result.eco_score
        trip.ecoComponents = result.components.model_dump()
        trip.weather = (
            score_input.weather.model_dump(exclude_none=True)
            if score_input.weather
            else None
        )
        trip.verification = {
            **score_input.verification.model_dump(by_alias=True),
            "speedAnalysis": {
                "avgSpeed": completion.avg_speed_kmh,
                "maxSpeed": completion.max_speed_kmh,
                "speedViolations": completion.speed_violations,
                "realTimeTracking": True,
            },
        }
        trip.gps = _path_geometry(completion)
        trip.rerouteCount = completion.reroute_count
        trip.deviationEpisodes = completion.deviation_episodes
        await trip.save()

        completed = _completed_trip(
            trip_id,
            trip.userId,
            trip.mode,
            completion,
            result,
            completed_at,
        )
        if trip.userId:
            await self._update_user_stats(trip.userId, completed)

        logger.info("Trip %s completed with eco score %d", trip_id, result.eco_score)
        return completed

    @_mongo_errors_as_service_errors
    async def cancel_trip(self, trip_id: str, reason: str | None = None) -> None:
        trip = await self._get_trip(trip_id)
        if trip.status != "in_progress":
            return
        trip.status = "cancelled"
        trip.closed_reason = reason
        trip.endTime = get_current_utc_time()
        await trip.save()
        logger.info("Trip %s cancelled", trip_id)

    @_mongo_errors_as_service_errors
    async def get_user_stats(self, user_id: str) -> UserStatsSummary | None:
        stats = await UserStats.find_one(UserStats.userId == user_id)
        if stats is None:
            return None
        return UserStatsSummary(
            user_id=stats.userId,
            total_trips=stats.totalTrips,
            total_distance_km=stats.totalDistanceKm,
            avg_eco_score=stats.avgEcoScore,
            best_eco_score=stats.bestEcoScore,
            last_trip_at=stats.lastTripAt,
        )

    async def _update_user_stats(self, user_id: str, completed: CompletedTrip) -> None:
        current = await self.get_user_stats(user_id) or UserStatsSummary(
            user_id=user_id,
        )
        folded = _fold_stats(current, completed)

        doc = await UserStats.find_one(UserStats.userId == user_id)
        if doc is None:
            doc = UserStats(userId=user_id)
        doc.totalTrips = folded.total_trips
        doc.totalDistanceKm = folded.total_distance_km
        doc.avgEcoScore = folded.avg_eco_score
        doc.bestEcoScore = folded.best_eco_score
        doc.lastTripAt = folded.last_trip_at
        await doc.save()


__all__ = ["BeanieTripStore", "InMemoryTripStore", "TripStore"]
