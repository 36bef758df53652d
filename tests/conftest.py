import pytest
from datetime import date, timedelta
from unittest.mock import AsyncMock

from breakwatch.core.market.nse_client import NseClient
from breakwatch.schemas.market import DayBar
from breakwatch.services.call_accounting import CallAccounting
from breakwatch.services.persistence import FileStateStore


# --- DATA BUILDERS ---
@pytest.fixture
def make_bars():
    """Ascending daily bars from parallel highs / volumes lists."""
    def _make(highs, volumes, closes=None, start=date(2024, 3, 1)):
        closes = closes or [h - 1 for h in highs]
        return [
            DayBar(
                date=start + timedelta(days=i),
                open=h - 2,
                high=h,
                low=h - 3,
                close=c,
                volume=v,
            )
            for i, (h, v, c) in enumerate(zip(highs, volumes, closes))
        ]
    return _make


@pytest.fixture
def breakout_bars(make_bars):
    """5-day highs max 102, volumes max 900, then a 110 / 1200 session."""
    return make_bars(
        highs=[90, 95, 100, 102, 101, 110],
        volumes=[500, 600, 700, 800, 900, 1200],
        closes=[89, 94, 99, 101, 100, 108],
    )


# --- MOCKS ---
@pytest.fixture
def mock_nse_client():
    client = AsyncMock(spec=NseClient)
    client.fetch_historical.return_value = []
    client.fetch_current_day.return_value = None
    client.fetch_index_snapshot.return_value = []
    client.fetch_market_status.return_value = False
    return client


@pytest.fixture
def mock_store():
    """StateStore double that accepts every write."""
    store = AsyncMock()
    store.get_json.return_value = None
    store.hash_get_all.return_value = {}
    store.hash_set_if_absent.return_value = True
    return store


@pytest.fixture
def file_store(tmp_path):
    return FileStateStore(str(tmp_path / "state.json"))


@pytest.fixture
def accounting(mock_store):
    return CallAccounting(mock_store, capacity=500)
