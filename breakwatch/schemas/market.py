import uuid
from dataclasses import dataclass, field
from typing import List, Optional, Dict
from datetime import datetime, date
from enum import Enum
from pydantic import BaseModel, Field

from breakwatch.core.market.calendar import to_ist_date

BREAKOUT_ALERT = "breakout"

class DataSource(str, Enum):
    """Freshness of the 'today' reading behind a ScanResult."""
    LIVE = "live"
    HISTORICAL = "historical"
    STALE = "stale"

class CallType(str, Enum):
    API = "api"
    CACHE = "cache"

# ======================================================
# SECTION 1: INTERNAL ENGINE DATA (Dataclasses)
# Passed between caches, engines and services; never persisted
# ======================================================

@dataclass(frozen=True)
class DayBar:
    date: date
    open: float
    high: float
    low: float
    close: float
    volume: float

@dataclass(frozen=True)
class LiveQuote:
    high: float
    volume: float
    close: float
    change: float

@dataclass(frozen=True)
class StockBaseline:
    symbol: str
    max_high_5d: float
    avg_volume_5d: float
    max_volume_5d: float
    computed_date: date

@dataclass(frozen=True)
class ScanResult:
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
    scanned_at: datetime
    # False when history was insufficient or evaluation failed
    evaluated: bool = True

@dataclass(frozen=True)
class SnapshotRow:
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

@dataclass(frozen=True)
class Nifty50Snapshot:
    rows: List[SnapshotRow]
    fetched_at: Optional[datetime]
    fetch_success: bool
    # rows are carried over from an earlier refresh
    stale: bool

@dataclass(frozen=True)
class BreakoutDiscovery:
    symbol: str
    name: str
    breakout: bool
    high_break: bool
    volume_break: bool
    high_break_percent: float
    volume_break_percent: float
    baseline_unavailable: bool
    possible_breakout: bool
    in_watchlist: bool = False

@dataclass(frozen=True)
class TickerQuote:
    symbol: str
    name: str
    price: float
    change: float
    high: float
    volume: float
    fetched_at: datetime

@dataclass(frozen=True)
class ApiCallRecord:
    ts: float  # epoch seconds
    kind: CallType
    method: str
    symbol: Optional[str] = None

@dataclass
class PersistedCallStats:
    api_calls: int = 0
    cache_hits: int = 0
    last_flushed: Optional[str] = None
    method_breakdown: Dict[str, Dict[str, int]] = field(default_factory=dict)

# ======================================================
# SECTION 2: DURABLE RECORDS (Pydantic)
# Serialized into the state store as JSON
# ======================================================

class WatchlistStock(BaseModel):
    symbol: str
    name: str
    close_watch: bool = False

class Alert(BaseModel):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    symbol: str
    name: str = ""
    alert_type: str = BREAKOUT_ALERT
    today_high: float = 0.0
    today_volume: float = 0.0
    prev_max_high: float = 0.0
    prev_max_volume: float = 0.0
    high_break_percent: float = 0.0
    volume_break_percent: float = 0.0
    today_close: float = 0.0
    today_change: float = 0.0
    data_source: DataSource = DataSource.HISTORICAL
    triggered_at: datetime
    read: bool = False

    @property
    def trading_date(self) -> date:
        return to_ist_date(self.triggered_at)

    @property
    def dedup_key(self) -> str:
        """One alert per symbol, type and IST trading day."""
        return f"{self.symbol.upper()}|{self.alert_type}|{self.trading_date.isoformat()}"

    @classmethod
    def from_scan_result(cls, result: ScanResult, alert_type: str = BREAKOUT_ALERT) -> "Alert":
        return cls(
            symbol=result.symbol,
            name=result.name,
            alert_type=alert_type,
            today_high=result.today_high,
            today_volume=result.today_volume,
            prev_max_high=result.prev_max_high,
            prev_max_volume=result.prev_max_volume,
            high_break_percent=result.high_break_percent,
            volume_break_percent=result.volume_break_percent,
            today_close=result.today_close,
            today_change=result.today_change,
            data_source=result.data_source,
            triggered_at=result.scanned_at,
        )
