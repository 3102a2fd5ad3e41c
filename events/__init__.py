"""Events emitted by the tracking engine."""

from events.trip_completed import TripCompleted, compute_trip_bbox

__all__ = ["TripCompleted", "compute_trip_bbox"]
