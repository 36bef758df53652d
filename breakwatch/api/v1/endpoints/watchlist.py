# breakwatch/api/v1/endpoints/watchlist.py

from fastapi import APIRouter, Depends, HTTPException
import logging

from breakwatch.dependencies import ServiceContainer, get_container
from breakwatch.schemas.api import (
    CloseWatchRequest, WatchlistAddRequest, WatchlistResponse, WatchlistStockOut
)

router = APIRouter()
logger = logging.getLogger(__name__)


async def _current(services: ServiceContainer) -> WatchlistResponse:
    stocks = await services.watchlist.get()
    return WatchlistResponse(stocks=[WatchlistStockOut(**s.model_dump()) for s in stocks])


@router.get("", response_model=WatchlistResponse)
async def get_watchlist(services: ServiceContainer = Depends(get_container)):
    return await _current(services)


@router.post("", response_model=WatchlistResponse, status_code=201)
async def add_stock(req: WatchlistAddRequest, services: ServiceContainer = Depends(get_container)):
    if not await services.watchlist.add(req.symbol, req.name):
        raise HTTPException(status_code=409, detail=f"{req.symbol.upper()} is already on the watchlist")
    return await _current(services)


@router.delete("/{symbol}", response_model=WatchlistResponse)
async def remove_stock(symbol: str, services: ServiceContainer = Depends(get_container)):
    if not await services.watchlist.remove(symbol):
        raise HTTPException(status_code=404, detail="Symbol not on watchlist")
    return await _current(services)


@router.post("/{symbol}/close-watch", response_model=WatchlistStockOut)
async def set_close_watch(
    symbol: str,
    req: CloseWatchRequest = CloseWatchRequest(),
    services: ServiceContainer = Depends(get_container),
):
    stock = await services.watchlist.set_close_watch(symbol, req.enabled)
    if stock is None:
        raise HTTPException(status_code=404, detail="Symbol not on watchlist")
    logger.info(f"Close watch {'enabled' if req.enabled else 'disabled'} for {stock.symbol}")
    return WatchlistStockOut(**stock.model_dump())
