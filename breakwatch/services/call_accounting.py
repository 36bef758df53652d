# breakwatch/services/call_accounting.py

import asyncio
import logging
import re
import threading
import time
from collections import Counter, deque
from datetime import datetime, timezone
from typing import Any, Callable, Deque, Dict, Optional

from breakwatch.schemas.market import ApiCallRecord, CallType, PersistedCallStats
from breakwatch.services.persistence import StateStore
from breakwatch.utils.metrics import upstream_calls_total, stats_flush_failures_total

logger = logging.getLogger(__name__)

RATE_WINDOW_SECONDS = 60
_METHOD_FIELD = re.compile(r"^method:(api|cache):(.+)$")


class CallAccounting:
    """
    Counts upstream fetches vs cache hits.

    Two views:
    - a per-instance ring buffer of the most recent records (rate window)
    - durable cumulative counters, fed by periodic flushes of pending deltas

    A crash between record() and the next flush loses at most one flush
    interval of durable counts.
    """

    def __init__(
        self,
        store: StateStore,
        stats_key: str = "breakwatch:api-stats",
        capacity: int = 500,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.stats_key = stats_key
        self.clock = clock
        self._log: Deque[ApiCallRecord] = deque(maxlen=capacity)

        # Pending deltas since the last successful flush
        self._lock = threading.Lock()
        self._pending_api = 0
        self._pending_cache = 0
        self._pending_method_api: Counter = Counter()
        self._pending_method_cache: Counter = Counter()

    # --------------------------------------------------
    # Record (synchronous, never raises)
    # --------------------------------------------------
    def record(self, kind: CallType, method: str, symbol: Optional[str] = None) -> None:
        try:
            kind = CallType(kind)
            self._log.append(ApiCallRecord(ts=self.clock(), kind=kind, method=method, symbol=symbol))
            with self._lock:
                if kind == CallType.API:
                    self._pending_api += 1
                    self._pending_method_api[method] += 1
                else:
                    self._pending_cache += 1
                    self._pending_method_cache[method] += 1
            upstream_calls_total.labels(method=method, outcome=kind.value).inc()
        except Exception as e:
            logger.debug(f"Call accounting record dropped ({method}): {e}")

    # --------------------------------------------------
    # Instance view
    # --------------------------------------------------
    def recent_stats(self) -> Dict[str, Any]:
        records = list(self._log)
        cutoff = self.clock() - RATE_WINDOW_SECONDS
        recent = [r for r in records if r.ts >= cutoff]
        recent_api = sum(1 for r in recent if r.kind == CallType.API)

        return {
            "total": len(records),
            "api_calls": sum(1 for r in records if r.kind == CallType.API),
            "cache_hits": sum(1 for r in records if r.kind == CallType.CACHE),
            "recent_rate_per_second": recent_api / RATE_WINDOW_SECONDS,
            "last_60s_records": recent,
        }

    @property
    def pending(self) -> Dict[str, int]:
        with self._lock:
            return {"api_calls": self._pending_api, "cache_hits": self._pending_cache}

    # --------------------------------------------------
    # Durable view
    # --------------------------------------------------
    async def flush(self) -> bool:
        """
        Move pending deltas into the durable counters.
        Pending counters are cleared before the write; if the write fails
        the snapshot is added back so the next flush retries it.
        Returns True when something was written.
        """
        with self._lock:
            api_delta = self._pending_api
            cache_delta = self._pending_cache
            method_api = Counter(self._pending_method_api)
            method_cache = Counter(self._pending_method_cache)

            if api_delta == 0 and cache_delta == 0:
                return False

            self._pending_api = 0
            self._pending_cache = 0
            self._pending_method_api.clear()
            self._pending_method_cache.clear()

        increments: Dict[str, int] = {"apiCalls": api_delta, "cacheHits": cache_delta}
        for method, count in method_api.items():
            increments[f"method:api:{method}"] = count
        for method, count in method_cache.items():
            increments[f"method:cache:{method}"] = count

        now = datetime.now(timezone.utc).isoformat()

        try:
            await self.store.hash_increment(self.stats_key, increments, {"lastFlushed": now})
        except Exception as e:
            with self._lock:
                self._pending_api += api_delta
                self._pending_cache += cache_delta
                self._pending_method_api.update(method_api)
                self._pending_method_cache.update(method_cache)
            stats_flush_failures_total.inc()
            logger.warning(f"Failed to flush API stats, re-queued {api_delta} api / {cache_delta} cache: {e}")
            return False

        logger.debug(f"Flushed API stats: +{api_delta} api, +{cache_delta} cache")
        return True

    async def cumulative_stats(self) -> PersistedCallStats:
        try:
            data = await self.store.hash_get_all(self.stats_key)
        except Exception as e:
            logger.warning(f"Cumulative API stats unavailable: {e}")
            return PersistedCallStats()

        breakdown: Dict[str, Dict[str, int]] = {}
        for key, val in data.items():
            match = _METHOD_FIELD.match(key)
            if match:
                kind, method = match.groups()
                breakdown.setdefault(method, {"api": 0, "cache": 0})[kind] = int(val)

        return PersistedCallStats(
            api_calls=int(data.get("apiCalls", 0)),
            cache_hits=int(data.get("cacheHits", 0)),
            last_flushed=data.get("lastFlushed"),
            method_breakdown=breakdown,
        )

    async def run_periodic_flush(self, interval: float) -> None:
        """Background loop; cancelled by the app lifespan."""
        while True:
            await asyncio.sleep(interval)
            await self.flush()
