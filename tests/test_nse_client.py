"""
NSE client - payload normalization and failure contract
"""
import httpx
import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from breakwatch.core.market.nse_client import NseClient
from breakwatch.errors import ErrorCode, UpstreamError


@pytest.fixture
def nse():
    client = NseClient(base_url="https://nse.test", timeout=1.0)
    client._primed = True
    return client


def response(payload, status=200):
    resp = MagicMock()
    resp.status_code = status
    resp.json.return_value = payload
    if status >= 400:
        resp.raise_for_status.side_effect = httpx.HTTPStatusError(
            "error", request=MagicMock(), response=resp
        )
    return resp


@pytest.mark.asyncio
async def test_close_client(nse):
    with patch.object(nse.client, "aclose", new_callable=AsyncMock) as mock_close:
        await nse.close()
        mock_close.assert_awaited_once()


@pytest.mark.asyncio
async def test_fetch_historical_normalizes_rows(nse):
    payload = {"data": [
        {"mTIMESTAMP": "12-Mar-2024", "CH_OPENING_PRICE": 100, "CH_TRADE_HIGH_PRICE": 105,
         "CH_TRADE_LOW_PRICE": 99, "CH_CLOSING_PRICE": 104, "CH_TOT_TRADED_QTY": 1000},
        {"mTIMESTAMP": "11-Mar-2024", "CH_OPENING_PRICE": 98, "CH_TRADE_HIGH_PRICE": 101,
         "CH_TRADE_LOW_PRICE": 97, "CH_CLOSING_PRICE": 100, "CH_TOT_TRADED_QTY": 900},
        {"mTIMESTAMP": "12-Mar-2024", "CH_OPENING_PRICE": 100, "CH_TRADE_HIGH_PRICE": 106,
         "CH_TRADE_LOW_PRICE": 99, "CH_CLOSING_PRICE": 104, "CH_TOT_TRADED_QTY": 1100},
    ]}

    with patch.object(nse.client, "get", new_callable=AsyncMock) as mock_get:
        mock_get.return_value = response(payload)
        bars = await nse.fetch_historical("INFY", 30)

    assert [b.date.isoformat() for b in bars] == ["2024-03-11", "2024-03-12"]
    assert bars[-1].high == 106
    assert bars[-1].volume == 1100
    params = mock_get.await_args.kwargs["params"]
    assert params["symbol"] == "INFY"
    assert params["series"] == '["EQ"]'


def test_normalize_history_legacy_rows_keep_real_session_dates():
    # Legacy rows carry both timestamps; days above 12 must survive intact
    sessions = [11, 12, 13, 14, 15, 18]
    records = [
        {"CH_TIMESTAMP": f"2024-03-{d:02d}", "mTIMESTAMP": f"{d:02d}-Mar-2024",
         "CH_OPENING_PRICE": 100 + d, "CH_TRADE_HIGH_PRICE": 105 + d, "CH_TRADE_LOW_PRICE": 99 + d,
         "CH_CLOSING_PRICE": 104 + d, "CH_TOT_TRADED_QTY": 1000 + d}
        for d in reversed(sessions)
    ]

    bars = NseClient.normalize_history(records)

    assert [b.date.day for b in bars] == sessions
    assert all(b.date.month == 3 for b in bars)
    assert bars[-1].high == 123


def test_normalize_history_iso_only_rows():
    records = [
        {"CH_TIMESTAMP": "2024-03-14", "CH_OPENING_PRICE": 1, "CH_TRADE_HIGH_PRICE": 2,
         "CH_TRADE_LOW_PRICE": 1, "CH_CLOSING_PRICE": 2, "CH_TOT_TRADED_QTY": 10},
        {"CH_TIMESTAMP": "2024-03-13", "CH_OPENING_PRICE": 1, "CH_TRADE_HIGH_PRICE": 2,
         "CH_TRADE_LOW_PRICE": 1, "CH_CLOSING_PRICE": 2, "CH_TOT_TRADED_QTY": 10},
    ]

    bars = NseClient.normalize_history(records)

    assert [b.date.isoformat() for b in bars] == ["2024-03-13", "2024-03-14"]


def test_normalize_history_empty():
    assert NseClient.normalize_history([]) == []


def test_normalize_history_missing_fields():
    with pytest.raises(UpstreamError) as exc:
        NseClient.normalize_history([{"mTIMESTAMP": "12-Mar-2024"}])
    assert exc.value.code == ErrorCode.INVALID_RESPONSE


@pytest.mark.asyncio
async def test_fetch_historical_http_error_raises(nse):
    with patch.object(nse.client, "get", new_callable=AsyncMock) as mock_get:
        mock_get.return_value = response({}, status=503)
        with pytest.raises(UpstreamError) as exc:
            await nse.fetch_historical("INFY", 30)
    assert exc.value.code == ErrorCode.UPSTREAM_FAILURE


@pytest.mark.asyncio
async def test_forbidden_resets_session(nse):
    with patch.object(nse.client, "get", new_callable=AsyncMock) as mock_get:
        mock_get.return_value = response({}, status=403)
        with pytest.raises(UpstreamError):
            await nse.fetch_index_snapshot()
    assert nse._primed is False


@pytest.mark.asyncio
async def test_fetch_current_day_parses_quote(nse):
    details = {"priceInfo": {"lastPrice": 1510.0, "pChange": 1.25, "intraDayHighLow": {"max": 1520.0}}}
    trade = {"marketDeptOrderBook": {"tradeInfo": {"totalTradedVolume": 250000}}}

    with patch.object(nse.client, "get", new_callable=AsyncMock) as mock_get:
        mock_get.side_effect = [response(details), response(trade)]
        quote = await nse.fetch_current_day("INFY")

    assert quote.high == 1520.0
    assert quote.volume == 250000
    assert quote.close == 1510.0
    assert quote.change == 1.25


@pytest.mark.asyncio
async def test_fetch_current_day_returns_none_on_failure(nse):
    with patch.object(nse.client, "get", new_callable=AsyncMock) as mock_get:
        mock_get.return_value = response({"priceInfo": {}})
        assert await nse.fetch_current_day("INFY") is None


@pytest.mark.asyncio
async def test_market_status(nse):
    payload = {"marketState": [
        {"market": "Currency", "marketStatus": "Closed"},
        {"market": "Capital Market", "marketStatus": "Open"},
    ]}
    with patch.object(nse.client, "get", new_callable=AsyncMock) as mock_get:
        mock_get.return_value = response(payload)
        assert await nse.fetch_market_status() is True

        mock_get.side_effect = ValueError("unexpected payload")
        assert await nse.fetch_market_status() is False
