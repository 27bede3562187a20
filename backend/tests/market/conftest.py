"""Fixtures for market data tests."""

from unittest.mock import AsyncMock

import pytest
from market_fakes import FakeMarketDataClient, make_instrument, make_ticker

from cryptodash.market.config import MarketSettings, RetryConfig
from cryptodash.market.supervisor import ConnectionSupervisor


@pytest.fixture
def fast_settings() -> MarketSettings:
    """Settings with no debounce or rate-limit delays and a long poll interval."""
    return MarketSettings(
        symbols=("BTC", "ETH"),
        poll_interval=60.0,
        debounce=0.0,
        rate_limit_interval=0.0,
        status_debounce=0.0,
        initial_retry=RetryConfig(max_attempts=3, base_delay=0.0),
        refresh_retry=RetryConfig(max_attempts=2, base_delay=0.0),
    )


@pytest.fixture
def supervisor() -> ConnectionSupervisor:
    """Supervisor with zero jitter that never really sleeps."""
    return ConnectionSupervisor(jitter=lambda: 0.0, sleep=AsyncMock())


@pytest.fixture
def fake_client() -> FakeMarketDataClient:
    return FakeMarketDataClient(
        instruments=[make_instrument("BTC"), make_instrument("ETH"), make_instrument("LTC")],
        tickers=[
            make_ticker("BTC", last=67000, vol=1_000_000, open_24h=66000),
            make_ticker("ETH", last=3200, vol=500_000, open_24h=3100),
            make_ticker("LTC", last=80, vol=10_000, open_24h=79),
        ],
    )
