"""Live trip tracking: sample filtering, route progress, rerouting and arrival."""

from tracking.models import GeoSample, RouteProgress, TrackingSnapshot
from tracking.services.tracking_service import TripTrackingController
from tracking.state import SpeedWindow, TrackingStatus, TrackState

__all__ = [
    "GeoSample",
    "RouteProgress",
    "SpeedWindow",
    "TrackState",
    "TrackingSnapshot",
    "TrackingStatus",
    "TripTrackingController",
]
