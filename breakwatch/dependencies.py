# breakwatch/dependencies.py

from dataclasses import dataclass
from fastapi import Request

from breakwatch.config import Settings

from breakwatch.core.analytics.baseline import BaselineEngine
from breakwatch.core.analytics.breakout import BreakoutAnalyzer, build_volume_rule
from breakwatch.core.market.history_cache import HistoricalCache
from breakwatch.core.market.nse_client import NseClient
from breakwatch.core.market.snapshot_cache import SnapshotCache
from breakwatch.services.alert_store import AlertStore
from breakwatch.services.call_accounting import CallAccounting
from breakwatch.services.persistence import StateStore, create_state_store
from breakwatch.services.scan_service import ScanService
from breakwatch.services.watchlist import WatchlistService


@dataclass
class ServiceContainer:
    """
    Every per-process component, built once in the app lifespan.
    Caches hold state for this instance only; durable state goes through `store`.
    """
    settings: Settings
    store: StateStore
    client: NseClient
    accounting: CallAccounting
    history: HistoricalCache
    baselines: BaselineEngine
    snapshots: SnapshotCache
    analyzer: BreakoutAnalyzer
    alerts: AlertStore
    watchlist: WatchlistService
    scanner: ScanService

    async def close(self):
        await self.client.close()
        await self.store.close()


def build_container(config: Settings, store: StateStore = None, client: NseClient = None) -> ServiceContainer:
    store = store or create_state_store(config)
    client = client or NseClient(config.NSE_BASE_URL, timeout=config.UPSTREAM_TIMEOUT_SECONDS)
    prefix = config.STORE_KEY_PREFIX
    timeout = config.UPSTREAM_TIMEOUT_SECONDS

    accounting = CallAccounting(store, f"{prefix}:api-stats", capacity=config.CALL_LOG_CAPACITY)
    history = HistoricalCache(client, accounting, timeout=timeout)
    baselines = BaselineEngine(
        history,
        lookback_days=config.LOOKBACK_DAYS,
        depth_days=config.BASELINE_DEPTH_DAYS,
        batch_size=config.BASELINE_BATCH_SIZE,
        index_size=config.INDEX_SIZE,
    )
    snapshots = SnapshotCache(
        client,
        accounting,
        store,
        stats_key=f"{prefix}:nifty50-stats",
        index_name=config.INDEX_NAME,
        ttl_seconds=config.SNAPSHOT_TTL_SECONDS,
        timeout=timeout,
    )
    analyzer = BreakoutAnalyzer(
        history,
        client,
        volume_rule=build_volume_rule(config.VOLUME_BREAK_RULE, config.VOLUME_MEAN_MULTIPLIER),
        lookback_days=config.LOOKBACK_DAYS,
        depth_days=config.HISTORY_DEPTH_DAYS,
        timeout=timeout,
    )
    alerts = AlertStore(store, f"{prefix}:alerts")
    watchlist = WatchlistService(store, f"{prefix}:watchlist", defaults=config.DEFAULT_WATCHLIST)
    scanner = ScanService(client, history, analyzer, baselines, snapshots, alerts, watchlist, accounting)

    return ServiceContainer(
        settings=config,
        store=store,
        client=client,
        accounting=accounting,
        history=history,
        baselines=baselines,
        snapshots=snapshots,
        analyzer=analyzer,
        alerts=alerts,
        watchlist=watchlist,
        scanner=scanner,
    )


def get_container(request: Request) -> ServiceContainer:
    """FastAPI dependency; override in tests with app.dependency_overrides."""
    return request.app.state.container
