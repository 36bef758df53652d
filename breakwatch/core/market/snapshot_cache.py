import asyncio
import logging
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from breakwatch.core.market.nse_client import NseClient, NIFTY_50
from breakwatch.schemas.market import CallType, Nifty50Snapshot, SnapshotRow
from breakwatch.services.call_accounting import CallAccounting
from breakwatch.services.persistence import StateStore
from breakwatch.utils.metrics import snapshot_refresh_total

logger = logging.getLogger(__name__)

FETCH_METHOD = "fetch_index_snapshot"


class SnapshotCache:
    """
    Bulk snapshot of the index constituents with a short TTL.

    A failed refresh never blanks out data: the previous rows are served
    again flagged stale, and fetched_at keeps the time of the last
    successful fetch. The TTL clock restarts on every attempt, so a failing
    upstream is retried once per TTL rather than on every read.
    """

    def __init__(
        self,
        client: NseClient,
        accounting: CallAccounting,
        store: StateStore,
        stats_key: str = "breakwatch:nifty50-stats",
        index_name: str = NIFTY_50,
        ttl_seconds: float = 180,
        timeout: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.client = client
        self.accounting = accounting
        self.store = store
        self.stats_key = stats_key
        self.index_name = index_name
        self.ttl = ttl_seconds
        self.timeout = timeout
        self.clock = clock

        self._snapshot: Optional[Nifty50Snapshot] = None
        self._checked_at: Optional[float] = None
        self._refresh_lock = asyncio.Lock()

        self.fetch_count = 0
        self.success_count = 0
        self.fail_count = 0

    def _fresh(self) -> bool:
        return (
            self._snapshot is not None
            and self._checked_at is not None
            and self.clock() - self._checked_at < self.ttl
        )

    async def get(self) -> Nifty50Snapshot:
        if self._fresh():
            self.accounting.record(CallType.CACHE, FETCH_METHOD)
            return self._snapshot

        async with self._refresh_lock:
            # Another task may have refreshed while we waited
            if self._fresh():
                self.accounting.record(CallType.CACHE, FETCH_METHOD)
                return self._snapshot
            return await self._refresh()

    async def _refresh(self) -> Nifty50Snapshot:
        self.accounting.record(CallType.API, FETCH_METHOD)
        self.fetch_count += 1
        self._checked_at = self.clock()

        rows: List[SnapshotRow] = []
        try:
            async with asyncio.timeout(self.timeout):
                raw = await self.client.fetch_index_snapshot(self.index_name)
            rows = self._parse_rows(raw or [])
            if not rows:
                raise ValueError("snapshot contained no constituent rows")
        except Exception as e:
            return await self._on_failure(e)

        self.success_count += 1
        self._snapshot = Nifty50Snapshot(
            rows=rows,
            fetched_at=datetime.now(timezone.utc),
            fetch_success=True,
            stale=False,
        )
        snapshot_refresh_total.labels(result="success").inc()
        logger.info(f"{self.index_name} snapshot refreshed: {len(rows)} constituents")
        await self._persist_counters(success=True)
        return self._snapshot

    async def _on_failure(self, error: Exception) -> Nifty50Snapshot:
        self.fail_count += 1
        snapshot_refresh_total.labels(result="failure").inc()

        previous = self._snapshot
        self._snapshot = Nifty50Snapshot(
            rows=list(previous.rows) if previous else [],
            fetched_at=previous.fetched_at if previous else None,
            fetch_success=False,
            stale=True,
        )
        if previous:
            logger.warning(f"{self.index_name} refresh failed, serving stale rows from {previous.fetched_at}: {error}")
        else:
            logger.error(f"{self.index_name} refresh failed with no previous snapshot: {error}")
        await self._persist_counters(success=False)
        return self._snapshot

    def _parse_rows(self, raw: List[Dict[str, Any]]) -> List[SnapshotRow]:
        rows = []
        for item in raw:
            symbol = str(item.get("symbol") or "").strip()
            # The bulk response leads with the index itself
            if not symbol or symbol.upper() == self.index_name.upper():
                continue

            meta = item.get("meta") or {}

            def num(key: str) -> float:
                return float(item.get(key) or 0)

            rows.append(SnapshotRow(
                symbol=symbol,
                name=meta.get("companyName") or symbol,
                last_price=num("lastPrice"),
                change=num("change"),
                p_change=num("pChange"),
                open=num("open"),
                day_high=num("dayHigh"),
                day_low=num("dayLow"),
                previous_close=num("previousClose"),
                total_traded_volume=num("totalTradedVolume"),
                total_traded_value=num("totalTradedValue"),
                year_high=num("yearHigh"),
                year_low=num("yearLow"),
            ))
        return rows

    async def _persist_counters(self, success: bool) -> None:
        increments = {"fetchCount": 1, "successCount" if success else "failCount": 1}
        fields = {
            "lastRefreshTime": datetime.now(timezone.utc).isoformat(),
            "lastFetchSuccess": "true" if success else "false",
        }
        try:
            await self.store.hash_increment(self.stats_key, increments, fields)
        except Exception as e:
            logger.warning(f"Snapshot counters not persisted: {e}")

    def stats(self) -> Dict[str, Any]:
        snap = self._snapshot
        return {
            "fetch_count": self.fetch_count,
            "success_count": self.success_count,
            "fail_count": self.fail_count,
            "rows": len(snap.rows) if snap else 0,
            "stale": snap.stale if snap else False,
            "last_fetched_at": snap.fetched_at.isoformat() if snap and snap.fetched_at else None,
        }

    async def durable_stats(self) -> Dict[str, Any]:
        try:
            data = await self.store.hash_get_all(self.stats_key)
        except Exception as e:
            logger.warning(f"Durable snapshot counters unavailable: {e}")
            data = {}
        return {
            "fetch_count": int(data.get("fetchCount", 0)),
            "success_count": int(data.get("successCount", 0)),
            "fail_count": int(data.get("failCount", 0)),
            "last_refresh_time": data.get("lastRefreshTime"),
            "last_fetch_success": data.get("lastFetchSuccess") == "true",
        }
