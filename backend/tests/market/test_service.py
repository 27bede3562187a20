"""Tests for MarketDataService."""

import asyncio
import socket

import pytest
from market_fakes import make_ticker

from cryptodash.market.bus import EventType
from cryptodash.market.service import MarketDataService
from cryptodash.market.supervisor import ConnectionState


async def _next(stream, timeout: float = 1.0):
    return await asyncio.wait_for(stream.__anext__(), timeout)


@pytest.fixture
def service(fake_client, supervisor, fast_settings):
    return MarketDataService(fake_client, fast_settings, supervisor=supervisor)


@pytest.mark.asyncio
class TestMarketDataService:
    """Integration tests for the service facade over a fake client."""

    async def test_initial_load(self, service):
        """Test initial_load returns the tracked set."""
        assets = await service.initial_load()
        assert [a.symbol for a in assets] == ["BTC", "ETH"]
        assert service.assets == assets
        assert service.connection_status.message == "Connected"
        await service.dispose()

    async def test_subscribe_starts_and_cancel_stops_polling(self, service):
        """Test the first stream starts polling and closing it stops polling."""
        await service.initial_load()
        stream = service.subscribe_updates()

        event = await _next(stream)
        assert event.type is EventType.CONNECTION_STATUS
        assert event.payload.message == "Starting real-time updates..."
        assert service.scheduler.is_polling

        await stream.aclose()
        assert not service.scheduler.is_polling
        await service.dispose()

    async def test_polling_continues_while_any_stream_open(self, service):
        """Test closing one of two streams keeps polling alive."""
        await service.initial_load()
        first = service.subscribe_updates()
        await _next(first)
        second = service.subscribe_updates()
        pending = asyncio.ensure_future(second.__anext__())
        await asyncio.sleep(0.01)

        await first.aclose()
        assert service.scheduler.is_polling

        # Cancelling the consumer task releases the stream as well
        pending.cancel()
        with pytest.raises(asyncio.CancelledError):
            await pending
        assert not service.scheduler.is_polling
        await service.dispose()

    async def test_events_flow_to_stream(self, service, fake_client):
        """Test a refresh delivers price and alert events to the stream."""
        await service.initial_load()
        stream = service.subscribe_updates()
        await _next(stream)
        await _next(stream)  # "Live"

        fake_client.tickers = [
            make_ticker("BTC", last=68000, vol=1_600_000, open_24h=66000),
            make_ticker("ETH", last=3200, vol=500_000, open_24h=3100),
        ]
        await service.refresh()
        await service.scheduler.wait_idle()

        types = [(await _next(stream)).type for _ in range(3)]
        assert types.count(EventType.PRICE_UPDATE) == 1
        assert types.count(EventType.VOLUME_ALERT) == 1
        assert set(service.active_alerts) == {"BTC"}

        assert service.dismiss_alert("BTC") is True
        assert service.assets[0].has_volume_spike is False
        await stream.aclose()
        await service.dispose()

    async def test_dispose_is_idempotent(self, service, fake_client):
        """Test dispose closes the client exactly once and blocks further use."""
        await service.initial_load()
        await service.dispose()
        await service.dispose()

        assert fake_client.close_calls == 1
        assert service.disposed
        with pytest.raises(RuntimeError):
            await service.initial_load()
        with pytest.raises(RuntimeError):
            service.subscribe_updates()

    async def test_dispose_ends_open_streams(self, service):
        """Test open streams finish when the service is disposed."""
        await service.initial_load()
        stream = service.subscribe_updates()
        await _next(stream)

        await service.dispose()
        remaining = [e async for e in stream]
        assert all(e.type is EventType.CONNECTION_STATUS for e in remaining)
        assert not service.scheduler.is_polling

    async def test_context_manager(self, fake_client, supervisor, fast_settings):
        """Test async with disposes on exit."""
        async with MarketDataService(fake_client, fast_settings, supervisor=supervisor) as service:
            await service.initial_load()
        assert service.disposed
        assert fake_client.close_calls == 1

    async def test_connectivity_restored(self, service, fake_client, supervisor):
        """Test restoring connectivity leaves offline and refreshes."""
        await service.initial_load()
        await service.start()
        fake_client.ticker_responses = [socket.gaierror(-2, "Name or service not known"), fake_client.tickers]

        await service.refresh()
        await service.scheduler.wait_idle()
        assert supervisor.state is ConnectionState.OFFLINE

        await service.connectivity_restored()
        await service.scheduler.wait_idle()
        assert supervisor.state is ConnectionState.CONNECTED
        assert service.connection_status.message == "Live"
        await service.dispose()
