# breakwatch/services/scan_service.py

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from breakwatch.core.analytics.baseline import BaselineEngine
from breakwatch.core.analytics.breakout import BreakoutAnalyzer
from breakwatch.core.analytics.discovery import classify_snapshot
from breakwatch.core.market.history_cache import HistoricalCache
from breakwatch.core.market.nse_client import NseClient
from breakwatch.core.market.snapshot_cache import SnapshotCache
from breakwatch.schemas.market import (
    Alert,
    BreakoutDiscovery,
    Nifty50Snapshot,
    DayBar,
    ScanResult,
    TickerQuote,
    WatchlistStock,
)
from breakwatch.services.alert_store import AlertStore
from breakwatch.services.call_accounting import CallAccounting
from breakwatch.services.watchlist import WatchlistService
from breakwatch.utils.logging import log_performance
from breakwatch.utils.metrics import track_duration

logger = logging.getLogger(__name__)


@dataclass
class ScanReport:
    results: List[ScanResult]
    new_alerts: List[Alert]
    alerts: List[Alert]
    scanned_at: datetime
    market_open: bool
    cache_stats: Dict[str, Any] = field(default_factory=dict)


@dataclass
class IndexReport:
    snapshot: Nifty50Snapshot
    discoveries: List[BreakoutDiscovery]
    baseline_status: Dict[str, Any]
    watchlist_symbols: List[str]
    close_watch_symbols: List[str]
    market_open: bool


@dataclass
class TickerReport:
    quotes: List[TickerQuote]
    watched: int
    fetched_at: datetime


class ScanService:
    """
    Orchestrates the two user-facing operations:
    - watchlist scan: per-symbol breakout evaluation, alerts for confirmed breakouts
    - index refresh: bulk snapshot + baselines, informational discoveries only

    plus two read-only views: the close-watch ticker and cached day candles.
    """

    def __init__(
        self,
        client: NseClient,
        history: HistoricalCache,
        analyzer: BreakoutAnalyzer,
        baselines: BaselineEngine,
        snapshots: SnapshotCache,
        alerts: AlertStore,
        watchlist: WatchlistService,
        accounting: CallAccounting,
    ):
        self.client = client
        self.history = history
        self.analyzer = analyzer
        self.baselines = baselines
        self.snapshots = snapshots
        self.alerts = alerts
        self.watchlist = watchlist
        self.accounting = accounting

    async def _market_open(self, market_open: Optional[bool]) -> bool:
        if market_open is not None:
            return market_open
        return await self.client.fetch_market_status()

    @log_performance("scan")
    async def run_scan(
        self,
        stocks: Optional[List[WatchlistStock]] = None,
        use_intraday: bool = False,
        close_watch_only: bool = False,
        market_open: Optional[bool] = None,
    ) -> ScanReport:
        if stocks is None:
            stocks = await (self.watchlist.close_watch() if close_watch_only else self.watchlist.get())

        logger.info(
            f"Starting scan of {len(stocks)} stock(s)"
            f"{' (close watch only)' if close_watch_only else ''}, intraday={use_intraday}"
        )

        with track_duration("scan"):
            is_open = await self._market_open(market_open)
            results = await self.analyzer.evaluate_many(
                [(s.symbol, s.name) for s in stocks], use_intraday, is_open
            )

            new_alerts: List[Alert] = []
            for result in results:
                # Stale results were already un-triggered by the analyzer
                if not result.triggered:
                    continue
                alert = Alert.from_scan_result(result)
                if await self.alerts.add(alert):
                    new_alerts.append(alert)

        await self.accounting.flush()

        logger.info(
            f"Scan complete: {len(results)} stock(s), {len(new_alerts)} new alert(s), "
            f"market {'OPEN' if is_open else 'CLOSED'}"
        )
        return ScanReport(
            results=results,
            new_alerts=new_alerts,
            alerts=await self.alerts.list(),
            scanned_at=datetime.now(timezone.utc),
            market_open=is_open,
            cache_stats=self.history.stats(),
        )

    @log_performance("index_refresh")
    async def refresh_index(self, market_open: Optional[bool] = None) -> IndexReport:
        with track_duration("index_refresh"):
            snapshot, watchlist, is_open = await asyncio.gather(
                self.snapshots.get(),
                self.watchlist.get(),
                self._market_open(market_open),
            )

            baselines = await self.baselines.get_many([row.symbol for row in snapshot.rows])
            watchlist_symbols = [s.symbol for s in watchlist]
            discoveries = classify_snapshot(
                snapshot, baselines, self.analyzer.volume_rule, watchlist_symbols
            )

        await self.accounting.flush()

        status = self.baselines.stats()
        return IndexReport(
            snapshot=snapshot,
            discoveries=discoveries,
            baseline_status={k: status[k] for k in ("available", "missing", "date")},
            watchlist_symbols=watchlist_symbols,
            close_watch_symbols=[s.symbol for s in watchlist if s.close_watch],
            market_open=is_open,
        )

    async def ticker(self) -> TickerReport:
        """Live quotes for close-watch stocks. Symbols without a usable quote are left out."""
        stocks = await self.watchlist.close_watch()
        if not stocks:
            return TickerReport(quotes=[], watched=0, fetched_at=datetime.now(timezone.utc))

        settled = await asyncio.gather(
            *(self.client.fetch_current_day(s.symbol) for s in stocks),
            return_exceptions=True,
        )

        quotes: List[TickerQuote] = []
        for stock, quote in zip(stocks, settled):
            if isinstance(quote, Exception):
                logger.warning(f"Ticker quote failed for {stock.symbol}: {quote}")
                continue
            if quote is None or quote.high <= 0:
                continue
            quotes.append(TickerQuote(
                symbol=stock.symbol,
                name=stock.name,
                price=quote.close,
                change=round(quote.change, 2),
                high=quote.high,
                volume=quote.volume,
                fetched_at=datetime.now(timezone.utc),
            ))

        logger.info(f"Ticker fetched {len(quotes)}/{len(stocks)} quote(s)")
        return TickerReport(quotes=quotes, watched=len(stocks), fetched_at=datetime.now(timezone.utc))

    async def candles(self, symbol: str, days: int) -> List[DayBar]:
        """
        Last `days` completed sessions, served through the historical cache.
        Requests within the analyzer's depth reuse its cached window.
        """
        depth = max(days, self.analyzer.depth_days)
        bars = await self.history.get(symbol.upper(), depth)
        await self.accounting.flush()
        return bars[-days:]
