# breakwatch/utils/metrics.py
"""
Prometheus metrics for BreakWatch.
Mirrors the call accounting and cache outcomes so dashboards can alert on
upstream pressure without reading the durable store.
"""
import time
import logging
from contextlib import contextmanager
from prometheus_client import Counter, Histogram, Gauge

logger = logging.getLogger(__name__)

# ============================================
# 1. UPSTREAM / CACHE METRICS
# ============================================

upstream_calls_total = Counter(
    'breakwatch_upstream_calls_total',
    'Upstream fetches vs cache hits by method',
    ['method', 'outcome']
)

snapshot_refresh_total = Counter(
    'breakwatch_snapshot_refresh_total',
    'Index snapshot refresh attempts',
    ['result']
)

stats_flush_failures_total = Counter(
    'breakwatch_stats_flush_failures_total',
    'Failed flushes of call accounting deltas to the durable store'
)

# ============================================
# 2. SCAN METRICS
# ============================================

alerts_total = Counter(
    'breakwatch_alerts_total',
    'Alert insert attempts',
    ['alert_type', 'result']
)

scan_results_total = Counter(
    'breakwatch_scan_results_total',
    'Scan results by data source',
    ['data_source', 'triggered']
)

scan_duration = Histogram(
    'breakwatch_scan_duration_seconds',
    'Duration of scans and index refreshes',
    ['operation'],
    buckets=[0.1, 0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0]
)

baselines_available = Gauge(
    'breakwatch_baselines_available',
    'Baselines cached for the current IST trading day'
)


@contextmanager
def track_duration(operation: str):
    start = time.perf_counter()
    try:
        yield
    finally:
        scan_duration.labels(operation=operation).observe(time.perf_counter() - start)
