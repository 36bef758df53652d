# breakwatch/api/v1/endpoints/ticker.py

from dataclasses import asdict
from fastapi import APIRouter, Depends, HTTPException
import logging

from breakwatch.dependencies import ServiceContainer, get_container
from breakwatch.schemas.api import TickerQuoteOut, TickerResponse

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("", response_model=TickerResponse)
async def get_ticker(services: ServiceContainer = Depends(get_container)):
    """Live quotes for close-watch stocks only."""
    try:
        report = await services.scanner.ticker()
    except Exception as e:
        logger.error(f"Ticker failed: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail="Ticker fetch failed")

    return TickerResponse(
        quotes=[TickerQuoteOut(**asdict(q)) for q in report.quotes],
        fetched_at=report.fetched_at,
    )
