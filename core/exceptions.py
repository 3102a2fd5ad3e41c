"""
Centralized exception hierarchy for domain-specific errors.

This module provides custom exception classes that represent specific
error conditions in the telemetry engine and its collaborators, so callers
can tell recoverable provider failures apart from fatal tracking errors.
"""


class EcoTrackError(Exception):
    """Base exception for all application-specific errors."""

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


class ValidationError(EcoTrackError):
    """Exception raised when data validation fails."""


class ExternalServiceError(EcoTrackError):
    """Exception raised when service calls fail."""


class ResourceNotFoundError(EcoTrackError):
    """Exception raised when a requested resource is not found."""


class TrackingStateError(EcoTrackError):
    """Exception raised when a tracking operation does not fit the trip state."""


class InvalidRouteError(ValidationError):
    """Exception raised when a route has no usable vertices."""


class RouteFetchError(ExternalServiceError):
    """Exception raised when the routing provider cannot supply a route."""


class LocationUnavailableError(ExternalServiceError):
    """Exception raised when the location source stops delivering positions."""

    CODES = frozenset({"permission_denied", "unavailable", "timeout"})

    def __init__(
        self,
        code: str,
        message: str | None = None,
        details: dict | None = None,
    ) -> None:
        self.code = code if code in self.CODES else "unavailable"
        super().__init__(
            message or f"Location {self.code.replace('_', ' ')}",
            {"code": self.code, **(details or {})},
        )


EcoTrackException = EcoTrackError
ValidationException = ValidationError
ExternalServiceException = ExternalServiceError
ResourceNotFoundException = ResourceNotFoundError
TrackingStateException = TrackingStateError
InvalidRouteException = InvalidRouteError
RouteFetchException = RouteFetchError
LocationUnavailableException = LocationUnavailableError
