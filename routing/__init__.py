"""Route fetching with provider fallback."""

from routing.models import Route, RouteStep
from routing.service import (
    RoutingService,
    calculate_speed_suggestion,
    profile_for_mode,
    straight_line_route,
)

__all__ = [
    "Route",
    "RouteStep",
    "RoutingService",
    "calculate_speed_suggestion",
    "profile_for_mode",
    "straight_line_route",
]
