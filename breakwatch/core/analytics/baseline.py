import asyncio
import logging
from datetime import date
from typing import Callable, Dict, Iterable, List, Optional

from breakwatch.core.market.calendar import today_ist
from breakwatch.core.market.history_cache import HistoricalCache
from breakwatch.schemas.market import StockBaseline
from breakwatch.utils.metrics import baselines_available

logger = logging.getLogger(__name__)


class BaselineEngine:
    """
    5-day high/volume reference per symbol, computed at most once per IST
    trading day. Entries from earlier days are superseded by the date check
    rather than evicted; memory is bounded by the number of distinct symbols
    ever requested, which is fine at index scale.
    """

    def __init__(
        self,
        history: HistoricalCache,
        lookback_days: int = 5,
        depth_days: int = 25,
        batch_size: int = 5,
        index_size: int = 50,
        today_fn: Callable[[], date] = today_ist,
    ):
        self.history = history
        self.lookback_days = lookback_days
        self.depth_days = depth_days
        self.batch_size = batch_size
        self.index_size = index_size
        self.today_fn = today_fn
        self._cache: Dict[str, StockBaseline] = {}

    def _cached(self, symbol: str, today: date) -> Optional[StockBaseline]:
        cached = self._cache.get(symbol)
        if cached and cached.computed_date == today:
            return cached
        return None

    async def get_one(self, symbol: str) -> Optional[StockBaseline]:
        """
        None means 'cannot evaluate' (insufficient history or fetch failure),
        never a zero baseline.
        """
        today = self.today_fn()
        cached = self._cached(symbol, today)
        if cached:
            return cached

        try:
            bars = await self.history.get(symbol, self.depth_days)
        except Exception as e:
            logger.error(f"Baseline computation failed for {symbol}: {e}")
            return None

        if len(bars) < self.lookback_days:
            logger.debug(f"Baseline: insufficient data for {symbol} ({len(bars)} days)")
            return None

        window = bars[-self.lookback_days:]
        volumes = [b.volume for b in window]
        baseline = StockBaseline(
            symbol=symbol,
            max_high_5d=max(b.high for b in window),
            avg_volume_5d=sum(volumes) / len(volumes),
            max_volume_5d=max(volumes),
            computed_date=today,
        )
        self._cache[symbol] = baseline
        return baseline

    async def get_many(self, symbols: Iterable[str]) -> Dict[str, StockBaseline]:
        """Partial results; a failing symbol is simply absent from the map."""
        today = self.today_fn()
        results: Dict[str, StockBaseline] = {}
        to_fetch: List[str] = []

        for sym in symbols:
            cached = self._cached(sym, today)
            if cached:
                results[sym] = cached
            else:
                to_fetch.append(sym)

        if not to_fetch:
            return results

        requested = len(results) + len(to_fetch)
        logger.info(f"Computing baselines for {len(to_fetch)} symbol(s)")

        # Batches keep the burst against NSE small
        for i in range(0, len(to_fetch), self.batch_size):
            batch = to_fetch[i:i + self.batch_size]
            settled = await asyncio.gather(
                *(self.get_one(sym) for sym in batch), return_exceptions=True
            )
            for sym, outcome in zip(batch, settled):
                if isinstance(outcome, Exception):
                    logger.warning(f"Baseline task failed for {sym}: {outcome}")
                elif outcome is not None:
                    results[sym] = outcome

        logger.info(f"Baselines ready: {len(results)}/{requested} available")
        baselines_available.set(self.stats()["available"])
        return results

    def stats(self) -> Dict:
        today = self.today_fn()
        valid = [s for s, b in self._cache.items() if b.computed_date == today]
        return {
            "available": len(valid),
            "missing": max(self.index_size - len(valid), 0),
            "date": today.isoformat(),
            "symbols": valid,
        }
