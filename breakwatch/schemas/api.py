from typing import List, Optional, Dict, Any
from datetime import date, datetime
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from breakwatch.schemas.market import Alert, DataSource, CallType

# ======================================================
# HTTP PAYLOADS
# Wire format is camelCase; Python attributes stay snake_case
# ======================================================

class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# --- Requests ---

class ScanRequest(CamelModel):
    intraday: bool = False
    close_watch_only: bool = False

class WatchlistAddRequest(CamelModel):
    symbol: str = Field(..., min_length=1, max_length=20)
    name: str = ""

class CloseWatchRequest(CamelModel):
    enabled: bool = True


# --- Scan ---

class ScanResultOut(CamelModel):
    symbol: str
    name: str
    data_source: DataSource
    today_high: float
    today_volume: float
    today_close: float
    today_change: float
    prev_max_high: float
    prev_max_volume: float
    high_break_percent: float
    volume_break_percent: float
    high_break: bool
    volume_break: bool
    triggered: bool
    evaluated: bool
    scanned_at: datetime

class AlertOut(CamelModel):
    id: str
    symbol: str
    name: str
    alert_type: str
    today_high: float
    today_volume: float
    prev_max_high: float
    prev_max_volume: float
    high_break_percent: float
    volume_break_percent: float
    today_close: float
    today_change: float
    data_source: DataSource
    triggered_at: datetime
    read: bool

    @classmethod
    def from_alert(cls, alert: Alert) -> "AlertOut":
        return cls(**alert.model_dump())

class ScanResponse(CamelModel):
    results: List[ScanResultOut]
    new_alerts: List[AlertOut]
    alerts: List[AlertOut]
    scanned_at: datetime
    market_open: bool
    cache_stats: Dict[str, Any]


# --- Index snapshot ---

class SnapshotRowOut(CamelModel):
    symbol: str
    name: str
    last_price: float
    change: float
    p_change: float
    open: float
    day_high: float
    day_low: float
    previous_close: float
    total_traded_volume: float
    total_traded_value: float
    year_high: float
    year_low: float

class SnapshotOut(CamelModel):
    rows: List[SnapshotRowOut]
    fetched_at: Optional[datetime]
    fetch_success: bool
    stale: bool

class DiscoveryOut(CamelModel):
    symbol: str
    name: str
    breakout: bool
    high_break: bool
    volume_break: bool
    high_break_percent: float
    volume_break_percent: float
    baseline_unavailable: bool
    possible_breakout: bool
    in_watchlist: bool

class BaselineStatus(CamelModel):
    available: int
    missing: int
    date: str

class Nifty50Response(CamelModel):
    snapshot: SnapshotOut
    discoveries: List[DiscoveryOut]
    baseline_status: BaselineStatus
    watchlist_symbols: List[str]
    close_watch_symbols: List[str]
    market_open: bool


# --- Alerts ---

class AlertsResponse(CamelModel):
    alerts: List[AlertOut]
    unread_count: int

class MarkReadResponse(CamelModel):
    updated: int


# --- Stats ---

class CallRecordOut(CamelModel):
    ts: float
    kind: CallType
    method: str
    symbol: Optional[str] = None

class RecentStats(CamelModel):
    total: int
    api_calls: int
    cache_hits: int
    recent_rate_per_second: float
    last_60s_records: List[CallRecordOut]

class CumulativeStats(CamelModel):
    api_calls: int
    cache_hits: int
    last_flushed: Optional[str] = None
    method_breakdown: Dict[str, Dict[str, int]] = {}

class StatsResponse(CamelModel):
    recent: RecentStats
    cumulative: CumulativeStats
    pending: Dict[str, int]
    snapshot: Dict[str, Any]
    snapshot_durable: Dict[str, Any]
    baselines: Dict[str, Any]
    historical_cache: Dict[str, Any]


# --- Watchlist ---

class WatchlistStockOut(CamelModel):
    symbol: str
    name: str
    close_watch: bool

class WatchlistResponse(CamelModel):
    stocks: List[WatchlistStockOut]


# --- Ticker / candles ---

class TickerQuoteOut(CamelModel):
    symbol: str
    name: str
    price: float
    change: float
    high: float
    volume: float
    fetched_at: datetime

class TickerResponse(CamelModel):
    quotes: List[TickerQuoteOut]
    fetched_at: datetime

class CandleOut(CamelModel):
    date: date
    open: float
    high: float
    low: float
    close: float
    volume: float

class CandlesResponse(CamelModel):
    symbol: str
    days: int
    candles: List[CandleOut]
    candle_count: int
    fetched_at: datetime
