from fastapi import APIRouter
from breakwatch.api.v1.endpoints import alerts, candles, nifty50, scan, stats, ticker, watchlist

router = APIRouter()

# 1. Watchlist scan (alerts on confirmed breakouts)
router.include_router(scan.router, prefix="/scan", tags=["Scan"])

# 2. Index table + discoveries
router.include_router(nifty50.router, prefix="/nifty50", tags=["Nifty 50"])

router.include_router(alerts.router, prefix="/alerts", tags=["Alerts"])
router.include_router(watchlist.router, prefix="/watchlist", tags=["Watchlist"])

# 3. Read-only market views
router.include_router(ticker.router, prefix="/ticker", tags=["Ticker"])
router.include_router(candles.router, prefix="/candles", tags=["Candles"])

# 4. Call accounting and cache state
router.include_router(stats.router, prefix="/stats", tags=["Stats"])
