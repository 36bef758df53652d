# breakwatch/core/market/nse_client.py

import httpx
import pandas as pd
import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional
from tenacity import retry, stop_after_attempt, wait_fixed, retry_if_exception_type

from breakwatch.core.market.calendar import today_ist
from breakwatch.errors import ErrorCode, UpstreamError
from breakwatch.schemas.market import DayBar, LiveQuote

logger = logging.getLogger(__name__)

NIFTY_50 = "NIFTY 50"

# Session date columns, in order of preference. Legacy rows carry both the
# ISO CH_TIMESTAMP and the dd-Mon-yyyy mTIMESTAMP.
DATE_FORMATS = {
    "mTIMESTAMP": "%d-%b-%Y",
    "mtimestamp": "%d-%b-%Y",
    "CH_TIMESTAMP": "%Y-%m-%d",
}

# NSE historical payloads have used both naming schemes
HISTORY_COLUMNS = {
    "chOpeningPrice": "open",
    "CH_OPENING_PRICE": "open",
    "chTradeHighPrice": "high",
    "CH_TRADE_HIGH_PRICE": "high",
    "chTradeLowPrice": "low",
    "CH_TRADE_LOW_PRICE": "low",
    "chClosingPrice": "close",
    "CH_CLOSING_PRICE": "close",
    "chTotTradedQty": "volume",
    "CH_TOT_TRADED_QTY": "volume",
}

BAR_FIELDS = ["date", "open", "high", "low", "close", "volume"]


class NseClient:
    """
    Async client for the NSE India public JSON API.

    Contract used by the caches:
    - fetch_historical: raises on failure
    - fetch_current_day: returns None on failure, never raises
    - fetch_index_snapshot: raises on failure
    - fetch_market_status: False on failure

    NSE rejects API calls without the cookies issued by the homepage, so the
    session is primed once before the first request.
    """

    def __init__(self, base_url: str = "https://www.nseindia.com", timeout: float = 10.0):
        self.base_url = base_url.rstrip("/")
        self.headers = {
            "User-Agent": (
                "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
                "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
            ),
            "Accept": "application/json, text/plain, */*",
            "Accept-Language": "en-US,en;q=0.9",
            "Referer": f"{self.base_url}/",
        }
        self.client = httpx.AsyncClient(
            headers=self.headers,
            timeout=timeout,
            follow_redirects=True,
            limits=httpx.Limits(max_keepalive_connections=10, max_connections=20),
        )
        self._primed = False

    async def close(self):
        await self.client.aclose()

    # ==========================================
    # SESSION / TRANSPORT
    # ==========================================

    async def _prime_session(self) -> None:
        if self._primed:
            return
        try:
            resp = await self.client.get(self.base_url)
            resp.raise_for_status()
            self._primed = True
        except httpx.HTTPError as e:
            # Cookies are best-effort; the API call itself decides success
            logger.warning(f"NSE session priming failed: {e}")

    @retry(
        stop=stop_after_attempt(2),
        wait=wait_fixed(1),
        retry=retry_if_exception_type(httpx.TransportError),
        reraise=True,
    )
    async def _get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        await self._prime_session()
        resp = await self.client.get(f"{self.base_url}{path}", params=params)
        if resp.status_code in (401, 403):
            # Cookies expired; re-prime on the next call
            self._primed = False
        resp.raise_for_status()
        return resp.json()

    # ==========================================
    # 1. HISTORICAL DAY BARS
    # ==========================================

    async def fetch_historical(self, symbol: str, window_days: int) -> List[DayBar]:
        """
        Completed daily bars for the last `window_days` calendar days.
        Endpoint: /api/historical/cm/equity
        """
        end = today_ist()
        start = end - timedelta(days=window_days)
        params = {
            "symbol": symbol,
            "series": '["EQ"]',
            "from": start.strftime("%d-%m-%Y"),
            "to": end.strftime("%d-%m-%Y"),
        }

        try:
            payload = await self._get_json("/api/historical/cm/equity", params)
        except httpx.TimeoutException as e:
            raise UpstreamError(f"Historical fetch timed out for {symbol}", ErrorCode.UPSTREAM_TIMEOUT, True) from e
        except (httpx.HTTPError, ValueError) as e:
            raise UpstreamError(f"Historical fetch failed for {symbol}: {e}", ErrorCode.UPSTREAM_FAILURE, True) from e

        records = self._history_records(payload)
        return self.normalize_history(records)

    @staticmethod
    def _history_records(payload: Any) -> List[Dict[str, Any]]:
        # Either {"data": [...]} or a list of {"data": [...]} chunks
        if isinstance(payload, dict):
            return list(payload.get("data", []) or [])
        if isinstance(payload, list):
            records: List[Dict[str, Any]] = []
            for chunk in payload:
                if isinstance(chunk, dict):
                    records.extend(chunk.get("data", []) or [])
            return records
        raise UpstreamError("Unexpected historical payload shape", ErrorCode.INVALID_RESPONSE)

    @staticmethod
    def normalize_history(records: List[Dict[str, Any]]) -> List[DayBar]:
        """Raw NSE rows -> ascending DayBars, one per session date."""
        if not records:
            return []

        df = pd.DataFrame(records)
        dates = NseClient._session_dates(df)
        df = df.rename(columns=HISTORY_COLUMNS)
        df = df.loc[:, ~df.columns.duplicated()]
        if dates is not None:
            df["date"] = dates

        missing = [c for c in BAR_FIELDS if c not in df.columns]
        if missing:
            raise UpstreamError(f"Historical rows missing fields: {missing}", ErrorCode.INVALID_RESPONSE)

        df = df[BAR_FIELDS].copy()
        for col in BAR_FIELDS[1:]:
            df[col] = pd.to_numeric(df[col], errors="coerce")
        df = df.dropna()

        # Sort is critical: the analyzer treats the last bar as the latest session
        df = (
            df.sort_values("date", kind="stable")
            .drop_duplicates(subset="date", keep="last")
            .reset_index(drop=True)
        )

        return [
            DayBar(
                date=row.date.date(),
                open=float(row.open),
                high=float(row.high),
                low=float(row.low),
                close=float(row.close),
                volume=float(row.volume),
            )
            for row in df.itertuples(index=False)
        ]

    @staticmethod
    def _session_dates(df: pd.DataFrame) -> Optional[pd.Series]:
        """Each date column parsed with its own format; first parseable value wins per row."""
        dates = None
        for col, fmt in DATE_FORMATS.items():
            if col not in df.columns:
                continue
            # exact=False tolerates a trailing time on CH_TIMESTAMP
            parsed = pd.to_datetime(df[col], format=fmt, exact=False, errors="coerce")
            dates = parsed if dates is None else dates.combine_first(parsed)
        return dates

    # ==========================================
    # 2. LIVE QUOTE
    # ==========================================

    async def fetch_current_day(self, symbol: str) -> Optional[LiveQuote]:
        """
        Today's running high / volume / last price.
        Endpoint: /api/quote-equity (price info + trade_info section)
        """
        try:
            details = await self._get_json("/api/quote-equity", {"symbol": symbol})
            trade = await self._get_json("/api/quote-equity", {"symbol": symbol, "section": "trade_info"})

            price_info = details["priceInfo"]
            high = float(price_info["intraDayHighLow"]["max"])
            close = float(price_info.get("lastPrice") or price_info.get("close") or 0.0)
            change = float(price_info.get("pChange") or 0.0)
            volume = float(trade["marketDeptOrderBook"]["tradeInfo"]["totalTradedVolume"])

            return LiveQuote(high=high, volume=volume, close=close, change=change)
        except Exception as e:
            logger.warning(f"Live quote unavailable for {symbol}: {e}")
            return None

    # ==========================================
    # 3. INDEX SNAPSHOT
    # ==========================================

    async def fetch_index_snapshot(self, index_name: str = NIFTY_50) -> List[Dict[str, Any]]:
        """
        All rows of an index, including the index header row.
        Endpoint: /api/equity-stockIndices
        """
        try:
            payload = await self._get_json("/api/equity-stockIndices", {"index": index_name})
        except httpx.TimeoutException as e:
            raise UpstreamError(f"Index snapshot timed out for {index_name}", ErrorCode.UPSTREAM_TIMEOUT, True) from e
        except (httpx.HTTPError, ValueError) as e:
            raise UpstreamError(f"Index snapshot failed for {index_name}: {e}", ErrorCode.UPSTREAM_FAILURE, True) from e

        rows = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(rows, list):
            raise UpstreamError("Index snapshot payload has no data list", ErrorCode.INVALID_RESPONSE)
        return rows

    # ==========================================
    # 4. MARKET STATUS
    # ==========================================

    async def fetch_market_status(self) -> bool:
        """True when the Capital Market segment reports open."""
        try:
            payload = await self._get_json("/api/marketStatus")
            for state in payload.get("marketState", []):
                if state.get("market") == "Capital Market":
                    return "open" in str(state.get("marketStatus", "")).lower()
            return False
        except Exception as e:
            logger.warning(f"Market status fetch failed: {e}")
            return False
