"""Polling loop that keeps the tracked asset snapshot in sync with the exchange."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from enum import Enum

from .bus import BroadcastChannel
from .config import MarketSettings
from .errors import DataFailure, Failure, MissingSymbolsError, UnknownFailure
from .interface import MarketDataClient
from .mapper import EntityMapper
from .models import Asset, ConnectionStatus, PriceUpdateEvent, Ticker, VolumeAlert
from .spike import SpikeDetector
from .supervisor import (
    Attempting,
    ConnectionSupervisor,
    LifecycleEvent,
    Retrying,
    SkippedOffline,
    should_go_offline,
)
from .throttle import Debouncer, IntervalRateLimiter

logger = logging.getLogger(__name__)

OFFLINE_MESSAGE = "Offline - will retry when connection is restored"


class SchedulerState(str, Enum):
    IDLE = "idle"
    POLLING = "polling"


class UpdateScheduler:
    """Periodic fetch -> map -> diff -> emit cycles for a fixed set of symbols.

    Concurrency rules:
      - at most one cycle in flight; ticks arriving meanwhile are skipped
      - cycles are spaced by an IntervalRateLimiter
      - manual refreshes are debounced; a newer request replaces the pending one
      - stop() bumps a generation counter so results of a cycle that was
        already running are discarded

    Owns the current snapshot (whitelist order) and the active volume alerts.
    """

    def __init__(
        self,
        client: MarketDataClient,
        supervisor: ConnectionSupervisor,
        prices: BroadcastChannel[PriceUpdateEvent],
        alerts: BroadcastChannel[VolumeAlert],
        statuses: BroadcastChannel[ConnectionStatus],
        settings: MarketSettings | None = None,
        mapper: EntityMapper | None = None,
        detector: SpikeDetector | None = None,
        rate_limiter: IntervalRateLimiter | None = None,
    ) -> None:
        self._client = client
        self._supervisor = supervisor
        self._prices = prices
        self._alerts = alerts
        self._statuses = statuses
        self._settings = settings or MarketSettings()
        self._mapper = mapper or EntityMapper()
        self._detector = detector or SpikeDetector(self._settings.spike_threshold)

        self._rate_limiter = rate_limiter or IntervalRateLimiter(self._settings.rate_limit_interval)
        self._refresh_debouncer = Debouncer(self._settings.debounce, name="manual-refresh")
        self._status_debouncer = Debouncer(self._settings.status_debounce, name="status-publish")

        self._state = SchedulerState.IDLE
        self._generation = 0
        self._timer: asyncio.Task | None = None
        self._cycle: asyncio.Task | None = None
        self._closed = False

        self._assets: list[Asset] = []
        self._active_alerts: dict[str, VolumeAlert] = {}
        self._last_status: ConnectionStatus | None = None
        self.cycles_run = 0
        self.ticks_skipped = 0

    # --- Read-only views ---

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def is_polling(self) -> bool:
        return self._state is SchedulerState.POLLING

    @property
    def busy(self) -> bool:
        return self._cycle is not None and not self._cycle.done()

    @property
    def assets(self) -> list[Asset]:
        return list(self._assets)

    @property
    def active_alerts(self) -> dict[str, VolumeAlert]:
        return dict(self._active_alerts)

    @property
    def last_status(self) -> ConnectionStatus | None:
        return self._last_status

    @property
    def symbols(self) -> list[str]:
        return [a.symbol for a in self._assets]

    # --- Initial load ---

    async def load(self, whitelist: Sequence[str] | None = None) -> list[Asset]:
        """Fetch instruments and tickers, establish the tracked set.

        Raises the supervisor's final failure, or MissingSymbolsError if any
        whitelisted symbol is absent from the exchange data.
        """
        whitelist = list(whitelist or self._settings.symbols)
        self._publish_status(True, "Fetching initial data...")

        async def fetch_and_map() -> list[Asset]:
            instruments = await self._client.get_instruments()
            tickers = await self._client.get_supported_tickers()
            assets = self._mapper.filter_to_tracked_set(
                self._mapper.map_list(instruments, tickers), whitelist
            )
            missing = [s for s in whitelist if s not in {a.symbol for a in assets}]
            if missing:
                raise MissingSymbolsError(missing)
            return assets

        def on_event(event: LifecycleEvent) -> None:
            if isinstance(event, Attempting):
                self._publish_status(True, f"Fetching data... (attempt {event.attempt})")
            elif isinstance(event, Retrying):
                self._publish_status(True, f"Retrying in {event.delay:.0f}s...")
            elif isinstance(event, SkippedOffline):
                self._publish_status(False, "Offline - operation skipped")

        result = await self._supervisor.execute_with_retry(
            fetch_and_map, self._settings.initial_retry, on_event=on_event
        )
        if not result.ok:
            failure = result.failure or UnknownFailure("Initial load failed")
            logger.error("Initial load failed after %d attempt(s): %s", result.attempts, failure)
            self._publish_status(False, f"Failed: {failure.message}")
            raise failure

        self._assets = list(result.value or [])
        self._active_alerts.clear()
        self._detector.seed(self._assets)
        logger.info("Initial load: %d assets (%s)", len(self._assets), ", ".join(self.symbols))
        self._publish_status(True, "Connected")
        return self.assets

    # --- Lifecycle ---

    async def start(self) -> None:
        """Begin periodic cycles. No-op when already polling."""
        if self._closed:
            raise RuntimeError("Scheduler is closed")
        if self.is_polling:
            return
        self._state = SchedulerState.POLLING
        self._generation += 1
        self._publish_status(True, "Starting real-time updates...")
        self._timer = asyncio.create_task(self._timer_loop(), name="market-poll-timer")
        logger.info(
            "Polling started: %d symbols, %.1fs interval",
            len(self._assets),
            self._settings.poll_interval,
        )
        self._publish_status(True, "Live")

    async def stop(self) -> None:
        """Stop periodic cycles. Safe to call multiple times."""
        if not self.is_polling:
            return
        self._state = SchedulerState.IDLE
        self._generation += 1
        self._refresh_debouncer.cancel()
        await self._cancel_timer()
        self._publish_status(False, "Stopped")
        logger.info("Polling stopped")

    async def close(self) -> None:
        """Cancel every timer and the in-flight cycle. Idempotent."""
        if self._closed:
            return
        self._closed = True
        self._state = SchedulerState.IDLE
        self._generation += 1
        self._refresh_debouncer.cancel()
        self._status_debouncer.cancel()
        await self._cancel_timer()
        if self._cycle is not None and not self._cycle.done():
            self._cycle.cancel()
            try:
                await self._cycle
            except asyncio.CancelledError:
                pass
        self._cycle = None

    # --- Triggers ---

    def tick(self) -> bool:
        """Start one cycle unless idle or one is already running. Returns True if started."""
        if not self.is_polling or not self._assets:
            return False
        if self.busy:
            self.ticks_skipped += 1
            logger.debug("Tick skipped: previous cycle still running")
            return False
        self._cycle = asyncio.create_task(self._run_cycle(self._generation), name="market-poll-cycle")
        return True

    def request_refresh(self) -> asyncio.Task:
        """Debounced manual refresh; supersedes a pending request."""

        async def fire() -> bool:
            return self.tick()

        return self._refresh_debouncer.call(fire)

    async def wait_idle(self) -> None:
        """Wait for the in-flight cycle, if any, to finish."""
        if self._cycle is not None and not self._cycle.done():
            await asyncio.shield(self._cycle)

    # --- Alerts ---

    def dismiss_alert(self, symbol: str) -> bool:
        """Clear the active alert and spike flag for ``symbol``. Returns False if none."""
        if self._active_alerts.pop(symbol, None) is None:
            return False
        self._assets = [a.with_spike(False) if a.symbol == symbol else a for a in self._assets]
        logger.info("Volume alert dismissed: %s", symbol)
        return True

    # --- Internals ---

    async def _timer_loop(self) -> None:
        while True:
            await asyncio.sleep(self._settings.poll_interval)
            try:
                self.tick()
            except Exception:
                logger.exception("Poll tick failed")

    async def _cancel_timer(self) -> None:
        if self._timer and not self._timer.done():
            self._timer.cancel()
            try:
                await self._timer
            except asyncio.CancelledError:
                pass
        self._timer = None

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation and not self._closed

    async def _run_cycle(self, generation: int) -> None:
        await self._rate_limiter.wait()
        if not self._is_current(generation):
            return

        inst_ids = [self._settings.instrument_id(s) for s in self.symbols]

        async def fetch() -> list[Ticker]:
            return await self._client.get_tickers(inst_ids)

        def on_event(event: LifecycleEvent) -> None:
            if not self._is_current(generation):
                return
            if isinstance(event, Attempting) and event.attempt > 1:
                self._publish_status(True, f"Updating... (attempt {event.attempt})")
            elif isinstance(event, Retrying):
                self._publish_status(True, f"Retrying in {event.delay:.0f}s...")
            elif isinstance(event, SkippedOffline):
                self._publish_status(False, "Offline - updates paused")

        result = await self._supervisor.execute_with_retry(
            fetch,
            self._settings.refresh_retry,
            on_event=on_event,
            should_retry=lambda _failure: self._is_current(generation),
        )

        if not self._is_current(generation):
            logger.debug("Discarding result of abandoned cycle")
            return

        self.cycles_run += 1
        if result.ok:
            self._apply_tickers(result.value or [])
            self._publish_status(True, "Live")
        else:
            self._handle_failure(result.failure or UnknownFailure("Refresh failed"))

    def _apply_tickers(self, tickers: list[Ticker]) -> None:
        """Diff the new tickers against the snapshot and emit events, in whitelist order."""
        by_id = {t.inst_id: t for t in tickers}
        updated: list[Asset] = []

        for asset in self._assets:
            ticker = by_id.get(self._settings.instrument_id(asset.symbol))
            if ticker is None:
                logger.warning("No ticker for %s in refresh; keeping previous values", asset.symbol)
                updated.append(asset)
                continue
            try:
                fresh = self._mapper.update_with_ticker(asset, ticker)
            except DataFailure as e:
                logger.warning("Skipping update for %s: %s", asset.symbol, e)
                updated.append(asset)
                continue

            if fresh.price != asset.price:
                self._prices.publish(
                    PriceUpdateEvent(
                        symbol=fresh.symbol,
                        new_price=fresh.price,
                        price_change=fresh.price - asset.price,
                        timestamp=fresh.last_updated,
                    )
                )

            alert = self._detector.observe(fresh.symbol, fresh.volume_24h)
            if alert is not None:
                self._active_alerts[fresh.symbol] = alert
                fresh = fresh.with_spike(True)
                logger.info(
                    "Volume spike on %s: %.1f%% (%.2f -> %.2f)",
                    alert.symbol,
                    alert.spike_percent,
                    alert.previous_volume,
                    alert.current_volume,
                )
                self._alerts.publish(alert)

            updated.append(fresh)

        self._assets = updated

    def _handle_failure(self, failure: Failure) -> None:
        logger.warning("Refresh failed: %s", failure)
        if should_go_offline(failure) or self._supervisor.is_offline:
            self._publish_status(False, OFFLINE_MESSAGE)
            return
        self._publish_status(False, f"Update failed: {failure.message}")
        if isinstance(failure, DataFailure):
            self._prices.publish_error(failure)

    def _publish_status(self, is_connected: bool, message: str) -> None:
        """Record a status and publish it after the status debounce window."""
        status = ConnectionStatus(is_connected=is_connected, message=message)
        self._last_status = status
        if self._closed:
            return
        if self._status_debouncer.delay <= 0:
            self._statuses.publish(status)
            return

        async def publish() -> None:
            if not self._closed:
                self._statuses.publish(status)

        self._status_debouncer.call(publish)
