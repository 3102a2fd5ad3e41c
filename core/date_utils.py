"""
Date and time utilities for the telemetry engine.

Location sources stamp samples with epoch milliseconds while persisted trip
documents carry timezone-aware datetimes. This module converts between the
two and keeps every datetime explicitly in UTC.
"""

import logging
import time
from datetime import UTC, datetime

from dateutil import parser

logger = logging.getLogger(__name__)


def get_current_utc_time() -> datetime:
    """Return the current time as a timezone-aware datetime object in UTC."""
    return datetime.now(UTC)


def now_ms() -> int:
    """Return the current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


def parse_timestamp(ts: str | int | float | datetime | None) -> datetime | None:
    """
    Parse a timestamp into a timezone-aware datetime, defaulting to UTC.

    Accepts ISO 8601 strings, datetime objects, and epoch milliseconds (the
    format emitted by browser and mobile geolocation APIs).

    Args:
        ts: The timestamp to parse.

    Returns:
        A timezone-aware datetime object, or None if parsing fails.
    """
    if ts is None or ts == "":
        logger.debug("Received empty timestamp; returning None.")
        return None

    if isinstance(ts, datetime):
        return ensure_utc(ts)

    if isinstance(ts, bool):
        return None

    if isinstance(ts, int | float):
        return ms_to_datetime(ts)

    try:
        parsed_time = parser.isoparse(ts)
        return ensure_utc(parsed_time)
    except (ValueError, TypeError) as e:
        logger.warning("Failed to parse timestamp '%s': %s", ts, e)
        return None


def ensure_utc(dt: datetime | None) -> datetime | None:
    """Return the datetime as an explicit UTC-aware value."""

    if dt is None:
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)

    return dt.astimezone(UTC)


def ms_to_datetime(timestamp_ms: int | float) -> datetime:
    """Convert epoch milliseconds to a UTC datetime."""
    return datetime.fromtimestamp(timestamp_ms / 1000.0, tz=UTC)


def datetime_to_ms(dt: datetime) -> int:
    """Convert a datetime to epoch milliseconds, treating naive values as UTC."""
    aware = ensure_utc(dt)
    return int(round(aware.timestamp() * 1000))
