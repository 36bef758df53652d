# breakwatch/config.py

from typing import Optional, List, Dict
from enum import Enum
from pydantic_settings import BaseSettings

class Environment(str, Enum):
    DEV = "development"
    PRODUCTION = "production"

class StoreBackend(str, Enum):
    REDIS = "redis"
    FILE = "file"

class Settings(BaseSettings):
    # ==== Project Info ====
    PROJECT_NAME: str = "BreakWatch NSE Breakout Monitor"
    VERSION: str = "1.0.0"
    API_V1_STR: str = "/api/v1"
    ENVIRONMENT: Environment = Environment.DEV
    DEBUG: bool = False

    # ==== Logging ====
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"

    # ==== Durable State ====
    # redis: shared across instances. file: single instance / local dev.
    STORE_BACKEND: StoreBackend = StoreBackend.FILE
    REDIS_URL: str = "redis://localhost:6379"
    STATE_FILE: str = "data/breakwatch_state.json"
    STORE_KEY_PREFIX: str = "breakwatch"

    # ==== Upstream: NSE ====
    NSE_BASE_URL: str = "https://www.nseindia.com"
    UPSTREAM_TIMEOUT_SECONDS: float = 15.0
    INDEX_NAME: str = "NIFTY 50"
    INDEX_SIZE: int = 50

    # ==== Breakout Windows ====
    HISTORY_DEPTH_DAYS: int = 15
    BASELINE_DEPTH_DAYS: int = 25
    LOOKBACK_DAYS: int = 5
    BASELINE_BATCH_SIZE: int = 5

    # "max" compares against the trailing maximum volume,
    # "mean_multiple" against VOLUME_MEAN_MULTIPLIER x the trailing mean.
    VOLUME_BREAK_RULE: str = "max"
    VOLUME_MEAN_MULTIPLIER: float = 3.0

    # ==== Caching & Accounting ====
    SNAPSHOT_TTL_SECONDS: int = 180
    CALL_LOG_CAPACITY: int = 500
    STATS_FLUSH_INTERVAL_SECONDS: float = 30.0

    # ==== Watchlist ====
    DEFAULT_WATCHLIST: List[Dict[str, str]] = [
        {"symbol": "INFY", "name": "Infosys"},
        {"symbol": "HDFCBANK", "name": "HDFC Bank"},
        {"symbol": "SBIN", "name": "SBI"},
        {"symbol": "HAL", "name": "Hindustan Aeronautics"},
        {"symbol": "RELIANCE", "name": "Reliance Industries"},
    ]

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"

    def model_post_init(self, __context):
        if self.VOLUME_BREAK_RULE not in ("max", "mean_multiple"):
            raise ValueError(
                f"VOLUME_BREAK_RULE must be 'max' or 'mean_multiple', got {self.VOLUME_BREAK_RULE!r}"
            )
        if self.LOOKBACK_DAYS < 1 or self.BASELINE_BATCH_SIZE < 1:
            raise ValueError("LOOKBACK_DAYS and BASELINE_BATCH_SIZE must be positive")

settings = Settings()
