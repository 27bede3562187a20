"""Event channels and the merged consumer-facing event stream."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar, Union

from .models import ConnectionStatus, PriceUpdateEvent, VolumeAlert

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ChannelClosed(Exception):
    """Raised by Subscription.receive() once the channel has been closed."""


class _Error:
    __slots__ = ("exc",)

    def __init__(self, exc: BaseException) -> None:
        self.exc = exc


_CLOSED = object()


class Subscription(Generic[T]):
    """One subscriber's view of a BroadcastChannel.

    receive() returns the next item, raises the next published error (the
    subscription stays usable afterwards), or raises ChannelClosed.
    """

    def __init__(self, channel: BroadcastChannel[T]) -> None:
        self._channel = channel
        self._queue: asyncio.Queue = asyncio.Queue()
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def _deliver(self, entry: object) -> None:
        self._queue.put_nowait(entry)

    async def receive(self) -> T:
        entry = await self._queue.get()
        if entry is _CLOSED:
            self._active = False
            raise ChannelClosed(self._channel.name)
        if isinstance(entry, _Error):
            raise entry.exc
        return entry  # type: ignore[return-value]

    async def cancel(self) -> None:
        """Detach from the channel. Idempotent."""
        if self._active:
            self._active = False
            self._channel._unsubscribe(self)

    def __aiter__(self) -> Subscription[T]:
        return self

    async def __anext__(self) -> T:
        try:
            return await self.receive()
        except ChannelClosed:
            raise StopAsyncIteration from None


class BroadcastChannel(Generic[T]):
    """Fan-out of published items to every current subscriber, in order."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._subscribers: list[Subscription[T]] = []
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> Subscription[T]:
        sub: Subscription[T] = Subscription(self)
        if self._closed:
            sub._deliver(_CLOSED)
        else:
            self._subscribers.append(sub)
        return sub

    def publish(self, item: T) -> None:
        if self._closed:
            logger.debug("Dropping item published on closed channel %s", self.name)
            return
        for sub in list(self._subscribers):
            sub._deliver(item)

    def publish_error(self, exc: BaseException) -> None:
        if self._closed:
            return
        for sub in list(self._subscribers):
            sub._deliver(_Error(exc))

    def close(self) -> None:
        """Close the channel; every subscriber sees ChannelClosed. Idempotent."""
        if self._closed:
            return
        self._closed = True
        for sub in self._subscribers:
            sub._deliver(_CLOSED)
        self._subscribers.clear()

    def _unsubscribe(self, sub: Subscription[T]) -> None:
        try:
            self._subscribers.remove(sub)
        except ValueError:
            pass


class EventType(str, Enum):
    PRICE_UPDATE = "price_update"
    VOLUME_ALERT = "volume_alert"
    CONNECTION_STATUS = "connection_status"


Payload = Union[PriceUpdateEvent, VolumeAlert, ConnectionStatus]


@dataclass(frozen=True, slots=True)
class MarketEvent:
    """One item of the merged stream, tagged with the source it came from.

    Exactly one of ``payload`` and ``error`` is set.
    """

    type: EventType
    payload: Payload | None = None
    error: BaseException | None = None

    @property
    def is_error(self) -> bool:
        return self.error is not None

    def to_dict(self) -> dict:
        if self.error is not None:
            to_dict = getattr(self.error, "to_dict", None)
            error = to_dict() if callable(to_dict) else {"message": str(self.error)}
            return {"type": self.type.value, "error": error}
        data = self.payload.to_dict() if self.payload is not None else None
        return {"type": self.type.value, "data": data}


_PUMP_DONE = object()


class EventBus:
    """Merges the price, alert and status channels into one ordered stream.

    Each stream() call gets its own subscriptions, so streams can be opened
    again after a previous one was cancelled. ``on_subscribe`` runs once the
    subscriptions exist (nothing published after that is lost);
    ``on_cancel`` runs when the consumer stops iterating.
    """

    def __init__(
        self,
        prices: BroadcastChannel[PriceUpdateEvent],
        alerts: BroadcastChannel[VolumeAlert],
        statuses: BroadcastChannel[ConnectionStatus],
        on_subscribe: Callable[[], Awaitable[None]] | None = None,
        on_cancel: Callable[[], Awaitable[None]] | None = None,
    ) -> None:
        self._sources: dict[EventType, BroadcastChannel] = {
            EventType.PRICE_UPDATE: prices,
            EventType.VOLUME_ALERT: alerts,
            EventType.CONNECTION_STATUS: statuses,
        }
        self._on_subscribe = on_subscribe
        self._on_cancel = on_cancel
        self._active_streams = 0

    @property
    def active_streams(self) -> int:
        return self._active_streams

    async def stream(self) -> AsyncIterator[MarketEvent]:
        """Yield MarketEvents until all sources close or the consumer cancels."""
        merged: asyncio.Queue = asyncio.Queue()
        subs = {event_type: channel.subscribe() for event_type, channel in self._sources.items()}
        pumps = [
            asyncio.create_task(self._pump(event_type, sub, merged), name=f"bus-pump-{event_type.value}")
            for event_type, sub in subs.items()
        ]
        self._active_streams += 1
        logger.info("Event stream opened (%d active)", self._active_streams)

        try:
            if self._on_subscribe is not None:
                await self._on_subscribe()

            remaining = len(pumps)
            while remaining:
                item = await merged.get()
                if item is _PUMP_DONE:
                    remaining -= 1
                    continue
                yield item
        finally:
            self._active_streams -= 1
            await self._release(subs, pumps)
            logger.info("Event stream closed (%d active)", self._active_streams)

    @staticmethod
    async def _pump(event_type: EventType, sub: Subscription, merged: asyncio.Queue) -> None:
        """Forward one source into the merged queue. Errors become error events."""
        try:
            while True:
                try:
                    item = await sub.receive()
                except ChannelClosed:
                    return
                except Exception as e:
                    logger.warning("Upstream %s error: %s", event_type.value, e)
                    merged.put_nowait(MarketEvent(event_type, error=e))
                    continue
                merged.put_nowait(MarketEvent(event_type, payload=item))
        finally:
            merged.put_nowait(_PUMP_DONE)

    async def _release(self, subs: dict[EventType, Subscription], pumps: list[asyncio.Task]) -> None:
        """Tear down upstream subscriptions and notify the owner, all at once."""
        for task in pumps:
            task.cancel()

        cleanups: list[Awaitable] = [sub.cancel() for sub in subs.values()]
        cleanups.extend(pumps)
        labels = [f"unsubscribe {t.value}" for t in subs] + [f"pump {t.value}" for t in subs]
        if self._on_cancel is not None:
            cleanups.append(self._on_cancel())
            labels.append("on_cancel")

        results = await asyncio.gather(*cleanups, return_exceptions=True)
        for label, result in zip(labels, results):
            if isinstance(result, asyncio.CancelledError):
                continue
            if isinstance(result, BaseException):
                logger.error("Event stream cleanup step %r failed: %s", label, result)
