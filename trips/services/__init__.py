"""Trip services module."""

from trips.services.trip_store import BeanieTripStore, InMemoryTripStore, TripStore

__all__ = ["BeanieTripStore", "InMemoryTripStore", "TripStore"]
