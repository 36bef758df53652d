# breakwatch/api/v1/endpoints/nifty50.py

from dataclasses import asdict
from fastapi import APIRouter, Depends, HTTPException
import logging

from breakwatch.dependencies import ServiceContainer, get_container
from breakwatch.schemas.api import BaselineStatus, DiscoveryOut, Nifty50Response, SnapshotOut

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("", response_model=Nifty50Response)
async def get_nifty50(services: ServiceContainer = Depends(get_container)):
    """Index table with breakout discoveries. Informational; never fires alerts."""
    try:
        report = await services.scanner.refresh_index()
    except Exception as e:
        logger.error(f"Index refresh failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Index refresh failed")

    return Nifty50Response(
        snapshot=SnapshotOut(**asdict(report.snapshot)),
        discoveries=[DiscoveryOut(**asdict(d)) for d in report.discoveries],
        baseline_status=BaselineStatus(**report.baseline_status),
        watchlist_symbols=report.watchlist_symbols,
        close_watch_symbols=report.close_watch_symbols,
        market_open=report.market_open,
    )
