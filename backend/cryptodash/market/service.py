"""Consumer-facing facade over the market data core."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator

from .bus import BroadcastChannel, EventBus, MarketEvent
from .config import MarketSettings
from .interface import MarketDataClient
from .mapper import EntityMapper
from .models import Asset, ConnectionStatus, PriceUpdateEvent, VolumeAlert
from .scheduler import UpdateScheduler
from .spike import SpikeDetector
from .supervisor import ConnectionSupervisor

logger = logging.getLogger(__name__)


class MarketDataService:
    """Owns the client, supervisor, scheduler, channels and event bus of one session.

    Usage:
        async with MarketDataService(create_market_data_client(settings), settings) as service:
            await service.initial_load()
            async for event in service.subscribe_updates():
                ...

    Polling starts when the first update stream is opened and stops when the
    last one is cancelled.
    """

    def __init__(
        self,
        client: MarketDataClient,
        settings: MarketSettings | None = None,
        *,
        supervisor: ConnectionSupervisor | None = None,
        mapper: EntityMapper | None = None,
        detector: SpikeDetector | None = None,
    ) -> None:
        self._client = client
        self._settings = settings or MarketSettings()
        self._supervisor = supervisor or ConnectionSupervisor()

        self._prices: BroadcastChannel[PriceUpdateEvent] = BroadcastChannel("prices")
        self._alerts: BroadcastChannel[VolumeAlert] = BroadcastChannel("alerts")
        self._statuses: BroadcastChannel[ConnectionStatus] = BroadcastChannel("statuses")

        self._scheduler = UpdateScheduler(
            client,
            self._supervisor,
            self._prices,
            self._alerts,
            self._statuses,
            settings=self._settings,
            mapper=mapper,
            detector=detector,
        )
        self._bus = EventBus(
            self._prices,
            self._alerts,
            self._statuses,
            on_subscribe=self._on_stream_opened,
            on_cancel=self._on_stream_closed,
        )
        self._disposed = False
        self._dispose_lock = asyncio.Lock()

    # --- Read-only views ---

    @property
    def settings(self) -> MarketSettings:
        return self._settings

    @property
    def supervisor(self) -> ConnectionSupervisor:
        return self._supervisor

    @property
    def scheduler(self) -> UpdateScheduler:
        return self._scheduler

    @property
    def assets(self) -> list[Asset]:
        return self._scheduler.assets

    @property
    def active_alerts(self) -> dict[str, VolumeAlert]:
        return self._scheduler.active_alerts

    @property
    def connection_status(self) -> ConnectionStatus | None:
        return self._scheduler.last_status

    @property
    def disposed(self) -> bool:
        return self._disposed

    # --- Operations ---

    async def initial_load(self) -> list[Asset]:
        """Load the tracked set. Raises the final Failure or MissingSymbolsError."""
        self._check_open()
        return await self._scheduler.load(self._settings.symbols)

    def subscribe_updates(self) -> AsyncIterator[MarketEvent]:
        """Open a merged event stream. Iterating it starts polling."""
        self._check_open()
        return self._bus.stream()

    def dismiss_alert(self, symbol: str) -> bool:
        return self._scheduler.dismiss_alert(symbol)

    async def start(self) -> None:
        self._check_open()
        await self._scheduler.start()

    async def stop(self) -> None:
        await self._scheduler.stop()

    def refresh(self) -> asyncio.Task:
        """Debounced manual refresh."""
        self._check_open()
        return self._scheduler.request_refresh()

    def connectivity_restored(self) -> asyncio.Task:
        """Tell the supervisor the network is back and refresh right away."""
        self._supervisor.mark_online()
        return self.refresh()

    async def dispose(self) -> None:
        """Stop everything and release the client. Idempotent."""
        async with self._dispose_lock:
            if self._disposed:
                return
            self._disposed = True
            await self._scheduler.close()
            for channel in (self._prices, self._alerts, self._statuses):
                channel.close()
            try:
                await self._client.close()
            except Exception:
                logger.exception("Error while closing market data client")
            logger.info("Market data service disposed")

    async def __aenter__(self) -> MarketDataService:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.dispose()

    # --- Internals ---

    async def _on_stream_opened(self) -> None:
        if not self._disposed:
            await self._scheduler.start()

    async def _on_stream_closed(self) -> None:
        if self._bus.active_streams == 0:
            await self._scheduler.stop()

    def _check_open(self) -> None:
        if self._disposed:
            raise RuntimeError("MarketDataService has been disposed")
