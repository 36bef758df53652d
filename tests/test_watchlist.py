"""
Watchlist service
"""
import pytest

from breakwatch.services.watchlist import WatchlistService

DEFAULTS = [
    {"symbol": "INFY", "name": "Infosys"},
    {"symbol": "SBIN", "name": "SBI"},
]


@pytest.fixture
def watchlist(file_store):
    return WatchlistService(file_store, defaults=DEFAULTS)


@pytest.mark.asyncio
async def test_empty_store_returns_defaults(watchlist):
    stocks = await watchlist.get()
    assert [s.symbol for s in stocks] == ["INFY", "SBIN"]
    assert not any(s.close_watch for s in stocks)


@pytest.mark.asyncio
async def test_add_normalizes_and_rejects_duplicates(watchlist):
    assert await watchlist.add(" hal ", "Hindustan Aeronautics") is True
    assert await watchlist.add("HAL", "HAL again") is False

    assert [s.symbol for s in await watchlist.get()] == ["INFY", "SBIN", "HAL"]


@pytest.mark.asyncio
async def test_remove(watchlist):
    assert await watchlist.remove("infy") is True
    assert await watchlist.remove("INFY") is False
    assert [s.symbol for s in await watchlist.get()] == ["SBIN"]


@pytest.mark.asyncio
async def test_close_watch_subset(watchlist):
    stock = await watchlist.set_close_watch("sbin", True)
    assert stock.close_watch is True
    assert await watchlist.set_close_watch("NOPE", True) is None

    assert [s.symbol for s in await watchlist.close_watch()] == ["SBIN"]
