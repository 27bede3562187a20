"""Abstract interface for market data clients."""

from __future__ import annotations

from abc import ABC, abstractmethod

from .models import Instrument, Ticker


class MarketDataClient(ABC):
    """Contract for exchange transports.

    Implementations only move records; they do not retry. Transport problems
    surface as exceptions (aiohttp errors, timeouts, or Failure subclasses)
    which the ConnectionSupervisor classifies.

    Lifecycle:
        client = create_market_data_client(settings)
        instruments = await client.get_instruments()
        tickers = await client.get_supported_tickers()
        # ... periodic refresh ...
        tickers = await client.get_tickers(["BTC-USDT", "ETH-USDT"])
        # ... shutting down ...
        await client.close()
    """

    @abstractmethod
    async def get_instruments(self) -> list[Instrument]:
        """List tradable spot instruments."""

    @abstractmethod
    async def get_tickers(self, inst_ids: list[str]) -> list[Ticker]:
        """Ticker snapshots for the given instrument ids.

        Ids unknown to the exchange are simply absent from the result.
        Raises DataFailure for an empty id list.
        """

    @abstractmethod
    async def get_supported_tickers(self) -> list[Ticker]:
        """Ticker snapshots for the client's configured symbol set."""

    @abstractmethod
    async def close(self) -> None:
        """Release the transport. Safe to call multiple times."""
