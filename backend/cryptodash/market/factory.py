"""Factory for creating market data clients."""

from __future__ import annotations

import logging
import os

from .config import MarketSettings
from .interface import MarketDataClient

logger = logging.getLogger(__name__)


def create_market_data_client(settings: MarketSettings | None = None) -> MarketDataClient:
    """Create the appropriate market data client based on environment variables.

    - MARKET_DATA_SOURCE=okx → OKXMarketDataClient (live data; OKX_BASE_URL
      overrides the endpoint)
    - Otherwise → SimulatedMarketDataClient (GBM simulation)
    """
    settings = settings or MarketSettings()
    source = os.environ.get("MARKET_DATA_SOURCE", "").strip().lower()

    if source == "okx":
        from .okx_client import OKX_BASE_URL, OKXMarketDataClient

        base_url = os.environ.get("OKX_BASE_URL", "").strip() or OKX_BASE_URL
        logger.info("Market data source: OKX API (%s)", base_url)
        return OKXMarketDataClient(
            base_url=base_url,
            symbols=settings.symbols,
            quote_ccy=settings.quote_ccy,
        )
    else:
        from .simulator import SimulatedMarketDataClient

        logger.info("Market data source: GBM Simulator")
        return SimulatedMarketDataClient(symbols=settings.symbols, quote_ccy=settings.quote_ccy)
