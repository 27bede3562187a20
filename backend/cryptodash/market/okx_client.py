"""OKX public REST API client for live spot market data."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

import aiohttp

from .config import DEFAULT_QUOTE_CCY, DEFAULT_SYMBOLS
from .errors import ApiFailure, DataFailure, failure_from_status
from .interface import MarketDataClient
from .models import Instrument, Ticker

logger = logging.getLogger(__name__)

OKX_BASE_URL = "https://www.okx.com"
INSTRUMENTS_PATH = "/api/v5/public/instruments"
TICKERS_PATH = "/api/v5/market/tickers"

# OKX business error code for "Too Many Requests"
OKX_RATE_LIMIT_CODE = "50011"


class OKXMarketDataClient(MarketDataClient):
    """MarketDataClient backed by the OKX v5 public REST API.

    GET /api/v5/market/tickers?instType=SPOT returns every spot ticker in one
    call; the requested ids are filtered client-side. No API key is needed
    for public market data.

    Rate limits: 20 requests / 2s per IP on market endpoints, so a poll every
    few seconds is well inside the budget.
    """

    def __init__(
        self,
        base_url: str = OKX_BASE_URL,
        symbols: Sequence[str] = DEFAULT_SYMBOLS,
        quote_ccy: str = DEFAULT_QUOTE_CCY,
        timeout: float = 30.0,
        session: aiohttp.ClientSession | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._symbols = list(symbols)
        self._quote_ccy = quote_ccy
        self._timeout = timeout
        self._session = session
        self._owns_session = session is None
        self._closed = False

    @property
    def supported_inst_ids(self) -> list[str]:
        return [f"{s}-{self._quote_ccy}" for s in self._symbols]

    async def get_instruments(self) -> list[Instrument]:
        rows = await self._request_data(INSTRUMENTS_PATH, {"instType": "SPOT"})
        return _parse_rows(rows, Instrument.from_okx, "instrument")

    async def get_tickers(self, inst_ids: list[str]) -> list[Ticker]:
        if not inst_ids:
            raise DataFailure("Invalid request", details="Instrument IDs list cannot be empty")
        wanted = set(inst_ids)
        rows = await self._request_data(TICKERS_PATH, {"instType": "SPOT"})
        rows = [r for r in rows if isinstance(r, dict) and r.get("instId") in wanted]
        tickers = _parse_rows(rows, Ticker.from_okx, "ticker")
        logger.debug("OKX tickers: %d/%d requested ids returned", len(tickers), len(wanted))
        return tickers

    async def get_supported_tickers(self) -> list[Ticker]:
        return await self.get_tickers(self.supported_inst_ids)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None
        logger.info("OKX client closed")

    # --- Internal ---

    async def _ensure_session(self) -> aiohttp.ClientSession:
        if self._closed:
            raise RuntimeError("OKX client is closed")
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                base_url=self._base_url,
                timeout=aiohttp.ClientTimeout(total=self._timeout),
                headers={"Accept": "application/json"},
            )
            self._owns_session = True
        return self._session

    async def _request_data(self, path: str, params: dict[str, str]) -> list[Any]:
        """GET an OKX endpoint and return its ``data`` array.

        HTTP errors raise the matching Failure; transport errors propagate
        untouched for the supervisor to classify.
        """
        session = await self._ensure_session()
        async with session.get(path, params=params) as resp:
            if resp.status >= 400:
                body = await resp.text()
                raise failure_from_status(resp.status, details=body[:200])
            payload = await resp.json(content_type=None)

        if not isinstance(payload, dict):
            raise DataFailure("Malformed OKX response", details=f"expected object, got {type(payload).__name__}")

        code = str(payload.get("code", ""))
        if code != "0":
            msg = payload.get("msg") or "unknown error"
            if code == OKX_RATE_LIMIT_CODE:
                raise ApiFailure("Rate limit exceeded", details=msg, status_code=429)
            raise ApiFailure(f"OKX error {code}", details=msg, status_code=resp.status)

        data = payload.get("data")
        if not isinstance(data, list):
            raise DataFailure("Malformed OKX response", details="missing data array")
        return data


def _parse_rows(rows: list[Any], parse, kind: str) -> list:
    """Parse records one by one; malformed ones are logged and skipped."""
    parsed = []
    for row in rows:
        try:
            parsed.append(parse(row))
        except (KeyError, TypeError, AttributeError) as e:
            inst_id = row.get("instId", "???") if isinstance(row, dict) else "???"
            logger.warning("Skipping malformed %s %s: %r", kind, inst_id, e)
    return parsed
