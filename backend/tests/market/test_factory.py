"""Tests for market data client factory."""

import os
from unittest.mock import patch

from cryptodash.market.config import MarketSettings
from cryptodash.market.factory import create_market_data_client
from cryptodash.market.okx_client import OKX_BASE_URL, OKXMarketDataClient
from cryptodash.market.simulator import SimulatedMarketDataClient


class TestFactory:
    """Tests for create_market_data_client factory."""

    def test_creates_simulator_by_default(self):
        """Test that the simulator is created when MARKET_DATA_SOURCE is unset."""
        with patch.dict(os.environ, {}, clear=True):
            client = create_market_data_client()

        assert isinstance(client, SimulatedMarketDataClient)

    def test_creates_simulator_for_other_values(self):
        """Test that unknown sources fall back to the simulator."""
        with patch.dict(os.environ, {"MARKET_DATA_SOURCE": "binance"}, clear=True):
            client = create_market_data_client()

        assert isinstance(client, SimulatedMarketDataClient)

    def test_creates_okx_client(self):
        """Test that the OKX client is created when MARKET_DATA_SOURCE=okx."""
        with patch.dict(os.environ, {"MARKET_DATA_SOURCE": " OKX "}, clear=True):
            client = create_market_data_client()

        assert isinstance(client, OKXMarketDataClient)
        assert client._base_url == OKX_BASE_URL

    def test_okx_base_url_override(self):
        """Test that OKX_BASE_URL overrides the endpoint."""
        env = {"MARKET_DATA_SOURCE": "okx", "OKX_BASE_URL": "http://localhost:8080/"}
        with patch.dict(os.environ, env, clear=True):
            client = create_market_data_client()

        assert client._base_url == "http://localhost:8080"

    def test_clients_receive_settings(self):
        """Test that the symbol set and quote currency are passed through."""
        settings = MarketSettings(symbols=("BTC", "SOL"), quote_ccy="USDC")

        with patch.dict(os.environ, {"MARKET_DATA_SOURCE": "okx"}, clear=True):
            okx = create_market_data_client(settings)
        with patch.dict(os.environ, {}, clear=True):
            sim = create_market_data_client(settings)

        assert okx.supported_inst_ids == ["BTC-USDC", "SOL-USDC"]
        assert sim.simulator.symbols == ["BTC", "SOL"]
