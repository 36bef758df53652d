# breakwatch/core/analytics/breakout.py

import asyncio
import dataclasses
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Iterable, List, Optional, Sequence, Tuple

from breakwatch.core.market.history_cache import HistoricalCache
from breakwatch.core.market.nse_client import NseClient
from breakwatch.schemas.market import DataSource, DayBar, LiveQuote, ScanResult, StockBaseline
from breakwatch.utils.metrics import scan_results_total

logger = logging.getLogger(__name__)


def pct_diff(value: float, reference: float) -> float:
    """Signed % difference vs reference, 2 dp. 0 when reference is not positive."""
    if reference <= 0:
        return 0.0
    return round((value - reference) / reference * 100, 2)


# ======================================================
# VOLUME-BREAK RULES
# ======================================================

class VolumeBreakRule(ABC):
    """
    How 'today' volume is judged against the trailing window.
    reference() is what gets reported as prev_max_volume; threshold() is
    what today's volume must beat.
    """
    name: str = ""

    @abstractmethod
    def reference(self, volumes: Sequence[float]) -> float:
        ...

    @abstractmethod
    def baseline_reference(self, baseline: StockBaseline) -> float:
        ...

    def threshold(self, reference: float) -> float:
        return reference

    @abstractmethod
    def is_break(self, volume: float, threshold: float) -> bool:
        ...


class MaxVolumeRule(VolumeBreakRule):
    """Today's volume strictly above the trailing maximum."""
    name = "max"

    def reference(self, volumes: Sequence[float]) -> float:
        return max(volumes)

    def baseline_reference(self, baseline: StockBaseline) -> float:
        return baseline.max_volume_5d

    def is_break(self, volume: float, threshold: float) -> bool:
        return volume > threshold


class MeanMultipleRule(VolumeBreakRule):
    """Today's volume at least `multiplier` x the trailing mean."""
    name = "mean_multiple"

    def __init__(self, multiplier: float = 3.0):
        self.multiplier = multiplier

    def reference(self, volumes: Sequence[float]) -> float:
        return sum(volumes) / len(volumes)

    def baseline_reference(self, baseline: StockBaseline) -> float:
        return baseline.avg_volume_5d

    def threshold(self, reference: float) -> float:
        return reference * self.multiplier

    def is_break(self, volume: float, threshold: float) -> bool:
        return volume >= threshold


def build_volume_rule(name: str, multiplier: float = 3.0) -> VolumeBreakRule:
    if name == MaxVolumeRule.name:
        return MaxVolumeRule()
    if name == MeanMultipleRule.name:
        return MeanMultipleRule(multiplier)
    raise ValueError(f"Unknown volume break rule: {name}")


# ======================================================
# FRESHNESS GATE
# ======================================================

def apply_freshness_gate(result: ScanResult) -> ScanResult:
    """A breakout is never confirmed on data flagged stale."""
    if result.data_source == DataSource.STALE and result.triggered:
        return dataclasses.replace(result, triggered=False)
    return result


# ======================================================
# ANALYZER
# ======================================================

class BreakoutAnalyzer:
    """
    Classifies one symbol's 'today' reading against its trailing window.

    Decision table:
    - not intraday: today = last completed bar, window = the N bars before it, historical
    - intraday + usable live quote: today = live, window = last N completed bars, live
    - intraday, no live quote: as not intraday, but stale while the market is open

    Never raises: any failure yields an unevaluated, untriggered result.
    """

    def __init__(
        self,
        history: HistoricalCache,
        client: NseClient,
        volume_rule: Optional[VolumeBreakRule] = None,
        lookback_days: int = 5,
        depth_days: int = 15,
        timeout: Optional[float] = None,
    ):
        self.history = history
        self.client = client
        self.volume_rule = volume_rule or MaxVolumeRule()
        self.lookback_days = lookback_days
        self.depth_days = depth_days
        self.timeout = timeout

    async def evaluate(
        self, symbol: str, name: str, use_intraday: bool = False, market_open: bool = False
    ) -> ScanResult:
        scanned_at = datetime.now(timezone.utc)
        try:
            result = await self._evaluate(symbol, name, use_intraday, market_open, scanned_at)
        except Exception as e:
            logger.warning(f"Breakout evaluation failed for {symbol}: {e}")
            result = self.unavailable(symbol, name, scanned_at)

        result = apply_freshness_gate(result)
        scan_results_total.labels(
            data_source=result.data_source.value, triggered=str(result.triggered).lower()
        ).inc()
        return result

    async def _evaluate(
        self, symbol: str, name: str, use_intraday: bool, market_open: bool, scanned_at: datetime
    ) -> ScanResult:
        bars = await self.history.get(symbol, self.depth_days)

        if len(bars) < self.lookback_days + 1:
            logger.debug(f"Insufficient history for {symbol}: got {len(bars)} days")
            return self.unavailable(symbol, name, scanned_at)

        live = await self._live_quote(symbol) if use_intraday else None

        if live is not None:
            today = live
            window = bars[-self.lookback_days:]
            source = DataSource.LIVE
        else:
            today, window = self._last_completed(bars)
            if use_intraday and market_open:
                # Expected live data and didn't get it
                source = DataSource.STALE
            else:
                source = DataSource.HISTORICAL

        return self.classify(symbol, name, today, window, source, scanned_at)

    async def _live_quote(self, symbol: str) -> Optional[LiveQuote]:
        try:
            async with asyncio.timeout(self.timeout):
                quote = await self.client.fetch_current_day(symbol)
        except TimeoutError:
            logger.warning(f"Live quote timed out for {symbol}")
            return None
        if quote is None or quote.high <= 0:
            return None
        return quote

    def _last_completed(self, bars: List[DayBar]) -> Tuple[LiveQuote, List[DayBar]]:
        last, prev = bars[-1], bars[-2]
        change = pct_diff(last.close, prev.close) if last.close > 0 else 0.0
        today = LiveQuote(high=last.high, volume=last.volume, close=last.close, change=change)
        return today, bars[-(self.lookback_days + 1):-1]

    def classify(
        self,
        symbol: str,
        name: str,
        today: LiveQuote,
        window: Sequence[DayBar],
        source: DataSource,
        scanned_at: datetime,
    ) -> ScanResult:
        prev_max_high = max(b.high for b in window)
        volume_ref = self.volume_rule.reference([b.volume for b in window])
        volume_threshold = self.volume_rule.threshold(volume_ref)

        high_break = today.high > prev_max_high
        volume_break = self.volume_rule.is_break(today.volume, volume_threshold)

        return ScanResult(
            symbol=symbol,
            name=name,
            data_source=source,
            today_high=today.high,
            today_volume=today.volume,
            today_close=today.close,
            today_change=round(today.change, 2),
            prev_max_high=prev_max_high,
            prev_max_volume=volume_ref,
            high_break_percent=pct_diff(today.high, prev_max_high),
            volume_break_percent=pct_diff(today.volume, volume_threshold),
            high_break=high_break,
            volume_break=volume_break,
            triggered=high_break and volume_break,
            scanned_at=scanned_at,
        )

    @staticmethod
    def unavailable(symbol: str, name: str, scanned_at: Optional[datetime] = None) -> ScanResult:
        return ScanResult(
            symbol=symbol,
            name=name,
            data_source=DataSource.HISTORICAL,
            today_high=0.0,
            today_volume=0.0,
            today_close=0.0,
            today_change=0.0,
            prev_max_high=0.0,
            prev_max_volume=0.0,
            high_break_percent=0.0,
            volume_break_percent=0.0,
            high_break=False,
            volume_break=False,
            triggered=False,
            scanned_at=scanned_at or datetime.now(timezone.utc),
            evaluated=False,
        )

    async def evaluate_many(
        self, stocks: Iterable[Tuple[str, str]], use_intraday: bool = False, market_open: bool = False
    ) -> List[ScanResult]:
        """All symbols concurrently; one symbol's failure never sinks the batch."""
        stocks = list(stocks)
        settled = await asyncio.gather(
            *(self.evaluate(sym, name, use_intraday, market_open) for sym, name in stocks),
            return_exceptions=True,
        )
        results = []
        for (sym, name), outcome in zip(stocks, settled):
            if isinstance(outcome, Exception):
                logger.error(f"Scan task crashed for {sym}: {outcome}")
                results.append(self.unavailable(sym, name))
            else:
                results.append(outcome)
        return results
