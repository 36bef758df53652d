import asyncio
import logging
from dataclasses import dataclass
from datetime import date
from typing import Callable, Dict, List, Optional

from breakwatch.core.market.calendar import today_ist
from breakwatch.core.market.nse_client import NseClient
from breakwatch.schemas.market import CallType, DayBar
from breakwatch.services.call_accounting import CallAccounting

logger = logging.getLogger(__name__)

FETCH_METHOD = "fetch_historical"


@dataclass(frozen=True)
class HistoricalCacheEntry:
    symbol: str
    trading_date: date
    requested_depth: int
    bars: List[DayBar]


class HistoricalCache:
    """
    Per-instance cache of completed day bars, one entry per symbol.

    An entry is valid only for the IST trading date it was fetched on and
    for the exact depth it was fetched with; anything else is a miss and
    replaces the entry with a full re-fetch. Validity depends on the
    calendar date alone, never on elapsed time.

    Fetch failures propagate. Unlike the index snapshot there is no stale
    fallback here: day-bar history is not timing-critical enough to serve
    yesterday's window as today's.
    """

    def __init__(
        self,
        client: NseClient,
        accounting: CallAccounting,
        timeout: Optional[float] = None,
        today_fn: Callable[[], date] = today_ist,
    ):
        self.client = client
        self.accounting = accounting
        self.timeout = timeout
        self.today_fn = today_fn
        self._entries: Dict[str, HistoricalCacheEntry] = {}

    async def get(self, symbol: str, depth_days: int) -> List[DayBar]:
        today = self.today_fn()
        cached = self._entries.get(symbol)

        if cached and cached.trading_date == today and cached.requested_depth == depth_days:
            self.accounting.record(CallType.CACHE, FETCH_METHOD, symbol)
            return cached.bars

        self.accounting.record(CallType.API, FETCH_METHOD, symbol)

        # Wider window absorbs weekends and exchange holidays
        async with asyncio.timeout(self.timeout):
            raw = await self.client.fetch_historical(symbol, depth_days * 2)

        bars = self._normalize(raw)
        self._entries[symbol] = HistoricalCacheEntry(
            symbol=symbol, trading_date=today, requested_depth=depth_days, bars=bars
        )
        logger.debug(f"Historical cache miss for {symbol}: stored {len(bars)} bars (depth={depth_days})")
        return bars

    @staticmethod
    def _normalize(raw: List[DayBar]) -> List[DayBar]:
        by_date: Dict[date, DayBar] = {}
        for bar in raw:
            by_date[bar.date] = bar
        return [by_date[d] for d in sorted(by_date)]

    def stats(self) -> Dict:
        today = self.today_fn()
        symbols = [s for s, e in self._entries.items() if e.trading_date == today]
        return {"size": len(symbols), "symbols": symbols, "date": today.isoformat()}
