import logging
from typing import Dict, Iterable, List, Optional

from breakwatch.core.analytics.breakout import MaxVolumeRule, VolumeBreakRule, pct_diff
from breakwatch.schemas.market import BreakoutDiscovery, Nifty50Snapshot, SnapshotRow, StockBaseline

logger = logging.getLogger(__name__)


def classify_constituent(
    row: SnapshotRow,
    baseline: Optional[StockBaseline],
    snapshot_stale: bool,
    rule: Optional[VolumeBreakRule] = None,
    in_watchlist: bool = False,
) -> BreakoutDiscovery:
    """
    Index-wide breakout check from the bulk snapshot row and the cached
    5-day baseline. On a stale snapshot the numbers are still reported but
    the breakout is only 'possible'. Discoveries are informational and never
    become alerts.
    """
    if baseline is None:
        return BreakoutDiscovery(
            symbol=row.symbol,
            name=row.name,
            breakout=False,
            high_break=False,
            volume_break=False,
            high_break_percent=0.0,
            volume_break_percent=0.0,
            baseline_unavailable=True,
            possible_breakout=False,
            in_watchlist=in_watchlist,
        )

    rule = rule or MaxVolumeRule()
    volume_threshold = rule.threshold(rule.baseline_reference(baseline))

    high_break = row.day_high > baseline.max_high_5d
    volume_break = rule.is_break(row.total_traded_volume, volume_threshold)
    raw_breakout = high_break and volume_break

    return BreakoutDiscovery(
        symbol=row.symbol,
        name=row.name,
        breakout=raw_breakout and not snapshot_stale,
        high_break=high_break,
        volume_break=volume_break,
        high_break_percent=pct_diff(row.day_high, baseline.max_high_5d),
        volume_break_percent=pct_diff(row.total_traded_volume, volume_threshold),
        baseline_unavailable=False,
        possible_breakout=raw_breakout and snapshot_stale,
        in_watchlist=in_watchlist,
    )


def classify_snapshot(
    snapshot: Nifty50Snapshot,
    baselines: Dict[str, StockBaseline],
    rule: Optional[VolumeBreakRule] = None,
    watchlist_symbols: Iterable[str] = (),
) -> List[BreakoutDiscovery]:
    watched = {s.upper() for s in watchlist_symbols}
    discoveries = [
        classify_constituent(
            row,
            baselines.get(row.symbol),
            snapshot.stale,
            rule,
            in_watchlist=row.symbol.upper() in watched,
        )
        for row in snapshot.rows
    ]
    hits = [d.symbol for d in discoveries if d.breakout or d.possible_breakout]
    if hits:
        logger.info(f"Index discoveries ({'stale' if snapshot.stale else 'live'}): {', '.join(hits)}")
    return discoveries
