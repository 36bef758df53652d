# breakwatch/api/v1/endpoints/scan.py

from dataclasses import asdict
from fastapi import APIRouter, Depends, HTTPException
import logging

from breakwatch.dependencies import ServiceContainer, get_container
from breakwatch.schemas.api import AlertOut, ScanRequest, ScanResponse, ScanResultOut

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("", response_model=ScanResponse)
async def run_scan(
    req: ScanRequest = ScanRequest(),
    services: ServiceContainer = Depends(get_container),
):
    """
    Evaluates the watchlist (or its close-watch subset) for breakouts and
    records a deduplicated alert for every confirmed one.
    """
    try:
        report = await services.scanner.run_scan(
            use_intraday=req.intraday, close_watch_only=req.close_watch_only
        )
    except Exception as e:
        logger.error(f"Scan failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Scan failed")

    return ScanResponse(
        results=[ScanResultOut(**asdict(r)) for r in report.results],
        new_alerts=[AlertOut.from_alert(a) for a in report.new_alerts],
        alerts=[AlertOut.from_alert(a) for a in report.alerts],
        scanned_at=report.scanned_at,
        market_open=report.market_open,
        cache_stats=report.cache_stats,
    )
