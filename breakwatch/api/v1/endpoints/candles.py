# breakwatch/api/v1/endpoints/candles.py

from dataclasses import asdict
from datetime import datetime, timezone
from fastapi import APIRouter, Depends, HTTPException, Query
import logging

from breakwatch.dependencies import ServiceContainer, get_container
from breakwatch.schemas.api import CandleOut, CandlesResponse

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("", response_model=CandlesResponse)
async def get_candles(
    symbol: str = Query(..., min_length=1, max_length=20),
    days: int = Query(25, ge=1, le=365),
    services: ServiceContainer = Depends(get_container),
):
    """Completed daily OHLCV bars for one symbol, oldest first."""
    symbol = symbol.strip().upper()
    try:
        bars = await services.scanner.candles(symbol, days)
    except Exception as e:
        logger.error(f"Candles failed for {symbol}: {e}", extra={"symbol": symbol})
        raise HTTPException(status_code=502, detail="Failed to fetch candle data")

    return CandlesResponse(
        symbol=symbol,
        days=days,
        candles=[CandleOut(**asdict(b)) for b in bars],
        candle_count=len(bars),
        fetched_at=datetime.now(timezone.utc),
    )
