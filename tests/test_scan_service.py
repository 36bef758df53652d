"""
Scan orchestration - watchlist scan and index refresh
"""
import pytest
from datetime import date
from unittest.mock import AsyncMock

from breakwatch.core.analytics.baseline import BaselineEngine
from breakwatch.core.analytics.breakout import BreakoutAnalyzer
from breakwatch.core.market.history_cache import HistoricalCache
from breakwatch.core.market.snapshot_cache import SnapshotCache
from breakwatch.schemas.market import DataSource, LiveQuote
from breakwatch.services.alert_store import AlertStore
from breakwatch.services.call_accounting import CallAccounting
from breakwatch.services.scan_service import ScanService
from breakwatch.services.watchlist import WatchlistService

TODAY = date(2024, 3, 15)


@pytest.fixture
def service(mock_nse_client, file_store):
    accounting = CallAccounting(file_store)
    history = HistoricalCache(mock_nse_client, accounting, today_fn=lambda: TODAY)
    return ScanService(
        client=mock_nse_client,
        history=history,
        analyzer=BreakoutAnalyzer(history, mock_nse_client),
        baselines=BaselineEngine(history, today_fn=lambda: TODAY),
        snapshots=SnapshotCache(mock_nse_client, accounting, file_store),
        alerts=AlertStore(file_store),
        watchlist=WatchlistService(file_store, defaults=[
            {"symbol": "INFY", "name": "Infosys"},
            {"symbol": "SBIN", "name": "SBI"},
        ]),
        accounting=accounting,
    )


@pytest.mark.asyncio
async def test_scan_creates_one_alert_per_breakout(service, mock_nse_client, breakout_bars):
    mock_nse_client.fetch_historical.return_value = breakout_bars

    first = await service.run_scan(use_intraday=False)
    second = await service.run_scan(use_intraday=False)

    assert [r.triggered for r in first.results] == [True, True]
    assert {a.symbol for a in first.new_alerts} == {"INFY", "SBIN"}
    assert second.new_alerts == []
    assert len(second.alerts) == 2
    assert first.market_open is False
    mock_nse_client.fetch_market_status.assert_awaited()


@pytest.mark.asyncio
async def test_stale_scan_creates_no_alerts(service, mock_nse_client, breakout_bars):
    mock_nse_client.fetch_historical.return_value = breakout_bars
    mock_nse_client.fetch_current_day.return_value = None

    report = await service.run_scan(use_intraday=True, market_open=True)

    assert all(r.data_source == DataSource.STALE for r in report.results)
    assert report.new_alerts == []
    assert await service.alerts.unread_count() == 0


@pytest.mark.asyncio
async def test_close_watch_only_scans_subset(service, mock_nse_client, breakout_bars):
    mock_nse_client.fetch_historical.return_value = breakout_bars
    await service.watchlist.set_close_watch("SBIN", True)

    report = await service.run_scan(close_watch_only=True, market_open=False)

    assert [r.symbol for r in report.results] == ["SBIN"]


@pytest.mark.asyncio
async def test_scan_flushes_call_accounting(service, mock_nse_client, breakout_bars):
    mock_nse_client.fetch_historical.return_value = breakout_bars

    await service.run_scan(market_open=False)

    stats = await service.accounting.cumulative_stats()
    assert stats.api_calls == 2
    assert service.accounting.pending == {"api_calls": 0, "cache_hits": 0}


@pytest.mark.asyncio
async def test_refresh_index_classifies_without_alerting(service, mock_nse_client, breakout_bars):
    mock_nse_client.fetch_index_snapshot.return_value = [
        {"symbol": "NIFTY 50"},
        {"symbol": "INFY", "dayHigh": 120, "totalTradedVolume": 5000, "lastPrice": 119},
        {"symbol": "TCS", "dayHigh": 90, "totalTradedVolume": 100, "lastPrice": 89},
    ]
    mock_nse_client.fetch_historical.return_value = breakout_bars
    mock_nse_client.fetch_market_status.return_value = True

    report = await service.refresh_index()

    by_symbol = {d.symbol: d for d in report.discoveries}
    assert by_symbol["INFY"].breakout is True
    assert by_symbol["INFY"].in_watchlist is True
    assert by_symbol["TCS"].breakout is False
    assert report.baseline_status["available"] == 2
    assert report.watchlist_symbols == ["INFY", "SBIN"]
    assert report.market_open is True
    assert await service.alerts.list() == []


@pytest.mark.asyncio
async def test_ticker_quotes_close_watch_stocks_only(service, mock_nse_client):
    await service.watchlist.set_close_watch("INFY", True)
    await service.watchlist.set_close_watch("SBIN", True)
    quotes = {
        "INFY": LiveQuote(high=1520.0, volume=250000, close=1510.0, change=1.256),
        "SBIN": LiveQuote(high=0.0, volume=0, close=0.0, change=0.0),
    }
    mock_nse_client.fetch_current_day.side_effect = lambda symbol: quotes[symbol]

    report = await service.ticker()

    assert report.watched == 2
    assert [q.symbol for q in report.quotes] == ["INFY"]
    infy = report.quotes[0]
    assert infy.name == "Infosys"
    assert infy.price == 1510.0
    assert infy.change == 1.26


@pytest.mark.asyncio
async def test_ticker_without_close_watch_skips_upstream(service, mock_nse_client):
    report = await service.ticker()

    assert report.quotes == []
    mock_nse_client.fetch_current_day.assert_not_awaited()


@pytest.mark.asyncio
async def test_candles_reuse_the_scan_window(service, mock_nse_client, breakout_bars):
    mock_nse_client.fetch_historical.return_value = breakout_bars

    await service.run_scan(market_open=False)
    candles = await service.candles("infy", 3)

    assert [c.high for c in candles] == [102, 101, 110]
    # Two scanned symbols, no extra fetch for the candles
    assert mock_nse_client.fetch_historical.await_count == 2
