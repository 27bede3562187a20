"""Debouncing and rate limiting helpers for asyncio callers."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any

logger = logging.getLogger(__name__)


class Debouncer:
    """Collapses bursts of calls into one execution after a quiet period.

    Each call() supersedes the pending one: the earlier task is cancelled
    while it is still waiting. Once the quiet period has elapsed the action
    runs to completion even if another call() arrives meanwhile.
    """

    def __init__(self, delay: float, name: str = "debounced") -> None:
        self._delay = delay
        self._name = name
        self._pending: asyncio.Task | None = None

    @property
    def delay(self) -> float:
        return self._delay

    @property
    def pending(self) -> bool:
        return self._pending is not None and not self._pending.done()

    def call(self, action: Callable[[], Awaitable[Any]]) -> asyncio.Task:
        """Schedule action() after the quiet period, replacing any pending call."""
        self.cancel()
        task = asyncio.create_task(self._run(action), name=self._name)
        self._pending = task
        return task

    def cancel(self) -> None:
        """Drop the pending call, if any. A call already executing is unaffected."""
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()
        self._pending = None

    async def _run(self, action: Callable[[], Awaitable[Any]]) -> Any:
        await asyncio.sleep(self._delay)
        # Past the quiet period: detach so a later call() cannot cancel us
        if self._pending is asyncio.current_task():
            self._pending = None
        return await action()


class IntervalRateLimiter:
    """Enforces a minimum spacing between successive executions.

    wait() returns immediately on the first call and whenever at least
    ``min_interval`` has passed since the previous one; otherwise it sleeps
    for the remainder.
    """

    def __init__(
        self,
        min_interval: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._last: float | None = None

    @property
    def min_interval(self) -> float:
        return self._min_interval

    async def wait(self) -> float:
        """Block until the next execution is allowed. Returns seconds waited."""
        waited = 0.0
        if self._last is not None:
            remaining = self._min_interval - (self._clock() - self._last)
            if remaining > 0:
                logger.debug("Rate limiter: waiting %.3fs", remaining)
                await self._sleep(remaining)
                waited = remaining
        self._last = self._clock()
        return waited

    def reset(self) -> None:
        self._last = None
