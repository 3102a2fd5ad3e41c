"""Global constants for the core package.

This module contains shared constants used across the application core.
"""

from typing import Final

# HTTP Client Constants
HTTP_CONNECTION_LIMIT: Final[int] = 10
HTTP_TIMEOUT_CONNECT: Final[float] = 10.0
HTTP_TIMEOUT_SOCK_READ: Final[float] = 30.0
HTTP_TIMEOUT_TOTAL: Final[float] = 60.0
HTTP_USER_AGENT: Final[str] = "EcoTrack/1.0"

# Geodesy
EARTH_RADIUS_M: Final[float] = 6371000.0

# Distance / Speed Conversion
METERS_PER_KM: Final[float] = 1000.0
METERS_PER_MILE: Final[float] = 1609.344
MPS_TO_KMH: Final[float] = 3.6
MS_PER_SECOND: Final[int] = 1000
SECONDS_PER_MINUTE: Final[int] = 60
