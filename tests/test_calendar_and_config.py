"""
IST calendar helpers and settings validation
"""
import pytest
from datetime import datetime, timezone

from breakwatch.config import Settings
from breakwatch.errors import ErrorCode
from breakwatch.core.market.calendar import (
    is_extended_hours,
    is_market_hours,
    minutes_until_open,
    to_ist_date,
)


# === CALENDAR ===

def test_to_ist_date_crosses_midnight():
    # 19:00 UTC = 00:30 IST next day
    assert to_ist_date(datetime(2024, 3, 15, 19, 0, tzinfo=timezone.utc)).isoformat() == "2024-03-16"
    # Naive timestamps are UTC
    assert to_ist_date(datetime(2024, 3, 15, 18, 0)).isoformat() == "2024-03-15"


@pytest.mark.parametrize("ist_time,expected", [
    (datetime(2024, 3, 15, 9, 14), False),
    (datetime(2024, 3, 15, 9, 15), True),
    (datetime(2024, 3, 15, 15, 29), True),
    (datetime(2024, 3, 15, 15, 30), False),
    (datetime(2024, 3, 16, 11, 0), False),  # Saturday
])
def test_is_market_hours(ist_time, expected):
    assert is_market_hours(ist_time) is expected


def test_extended_hours_include_closing_session():
    assert is_extended_hours(datetime(2024, 3, 15, 9, 0)) is True
    assert is_extended_hours(datetime(2024, 3, 15, 15, 45)) is True
    assert is_extended_hours(datetime(2024, 3, 15, 16, 0)) is False


def test_minutes_until_open():
    assert minutes_until_open(datetime(2024, 3, 15, 10, 0)) == 0
    assert minutes_until_open(datetime(2024, 3, 14, 9, 0)) == 15
    # Thursday after close -> Friday 09:15
    assert minutes_until_open(datetime(2024, 3, 14, 16, 15)) == 17 * 60
    # Friday evening -> Monday 09:15
    assert minutes_until_open(datetime(2024, 3, 15, 21, 15)) == 60 * 60


# === SETTINGS ===

def test_defaults():
    config = Settings()
    assert config.LOOKBACK_DAYS == 5
    assert config.SNAPSHOT_TTL_SECONDS == 180
    assert config.VOLUME_BREAK_RULE == "max"
    assert [s["symbol"] for s in config.DEFAULT_WATCHLIST] == ["INFY", "HDFCBANK", "SBIN", "HAL", "RELIANCE"]


def test_invalid_volume_rule_rejected():
    with pytest.raises(ValueError):
        Settings(VOLUME_BREAK_RULE="median")


def test_invalid_lookback_rejected():
    with pytest.raises(ValueError):
        Settings(LOOKBACK_DAYS=0)


def test_error_codes_cover_raised_failures_only():
    # Short history is a result state, never an error
    assert {c.name for c in ErrorCode} == {
        "UPSTREAM_FAILURE", "UPSTREAM_TIMEOUT", "INVALID_RESPONSE", "STORE_FAILURE",
    }
