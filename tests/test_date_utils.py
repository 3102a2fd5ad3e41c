from datetime import UTC, datetime, timedelta, timezone

from core.date_utils import (
    datetime_to_ms,
    ensure_utc,
    get_current_utc_time,
    ms_to_datetime,
    now_ms,
    parse_timestamp,
)


def test_parse_timestamp_handles_empty_and_invalid() -> None:
    assert parse_timestamp("") is None
    assert parse_timestamp(None) is None
    assert parse_timestamp("not-a-date") is None
    assert parse_timestamp(True) is None


def test_parse_timestamp_normalizes_to_utc() -> None:
    parsed = parse_timestamp("2024-01-01T00:00:00-05:00")
    assert parsed is not None
    assert parsed.tzinfo == UTC
    assert parsed.hour == 5


def test_parse_timestamp_converts_aware_datetime() -> None:
    value = datetime(2024, 1, 1, 9, 0, tzinfo=timezone(timedelta(hours=2)))
    parsed = parse_timestamp(value)
    assert parsed.tzinfo == UTC
    assert parsed.hour == 7


def test_parse_timestamp_accepts_epoch_millis() -> None:
    parsed = parse_timestamp(1_704_067_200_000)
    assert parsed == datetime(2024, 1, 1, tzinfo=UTC)


def test_ensure_utc_handles_naive_datetime() -> None:
    value = datetime(2024, 1, 1, 12, 0, 0)
    normalized = ensure_utc(value)
    assert normalized is not None
    assert normalized.tzinfo == UTC
    assert normalized.hour == 12


def test_ms_round_trip_keeps_millisecond_precision() -> None:
    value = datetime(2024, 6, 1, 12, 30, 15, 250_000, tzinfo=UTC)
    assert datetime_to_ms(value) == 1_717_245_015_250
    assert ms_to_datetime(1_717_245_015_250) == value


def test_datetime_to_ms_treats_naive_as_utc() -> None:
    assert datetime_to_ms(datetime(1970, 1, 1, 0, 0, 1)) == 1000


def test_get_current_utc_time_returns_utc() -> None:
    """get_current_utc_time should return a timezone-aware datetime in UTC."""
    now = get_current_utc_time()
    assert now.tzinfo == UTC
    assert isinstance(now, datetime)
    assert abs(datetime_to_ms(now) - now_ms()) < 5_000


def test_ensure_utc_returns_none_for_none() -> None:
    """ensure_utc should return None when given None."""
    assert ensure_utc(None) is None
