# breakwatch/services/watchlist.py

import asyncio
import logging
from typing import Dict, List, Optional

from breakwatch.schemas.market import WatchlistStock
from breakwatch.services.persistence import StateStore

logger = logging.getLogger(__name__)


class WatchlistService:
    """
    User-curated symbols that /scan evaluates. Stored as one JSON list;
    an empty store is seeded with the configured defaults on first read.
    """

    def __init__(
        self,
        store: StateStore,
        key: str = "breakwatch:watchlist",
        defaults: Optional[List[Dict[str, str]]] = None,
    ):
        self.store = store
        self.key = key
        self.defaults = [WatchlistStock(**d) for d in (defaults or [])]
        self._lock = asyncio.Lock()

    async def get(self) -> List[WatchlistStock]:
        raw = await self.store.get_json(self.key)
        if raw is None:
            return [s.model_copy() for s in self.defaults]
        return [WatchlistStock.model_validate(item) for item in raw]

    async def _save(self, stocks: List[WatchlistStock]) -> None:
        await self.store.set_json(self.key, [s.model_dump() for s in stocks])

    async def add(self, symbol: str, name: str) -> bool:
        """False when the symbol is already watched."""
        symbol = symbol.strip().upper()
        async with self._lock:
            stocks = await self.get()
            if any(s.symbol == symbol for s in stocks):
                return False
            stocks.append(WatchlistStock(symbol=symbol, name=name or symbol))
            await self._save(stocks)
        logger.info(f"Watchlist: added {symbol}")
        return True

    async def remove(self, symbol: str) -> bool:
        symbol = symbol.strip().upper()
        async with self._lock:
            stocks = await self.get()
            kept = [s for s in stocks if s.symbol != symbol]
            if len(kept) == len(stocks):
                return False
            await self._save(kept)
        logger.info(f"Watchlist: removed {symbol}")
        return True

    async def set_close_watch(self, symbol: str, enabled: bool) -> Optional[WatchlistStock]:
        symbol = symbol.strip().upper()
        async with self._lock:
            stocks = await self.get()
            for stock in stocks:
                if stock.symbol == symbol:
                    stock.close_watch = enabled
                    await self._save(stocks)
                    return stock
        return None

    async def close_watch(self) -> List[WatchlistStock]:
        return [s for s in await self.get() if s.close_watch]
