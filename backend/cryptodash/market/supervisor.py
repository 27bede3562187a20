"""Connection supervision: failure classification, retry with backoff, offline state."""

from __future__ import annotations

import asyncio
import errno
import logging
import random
import socket
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Generic, TypeVar, Union

import aiohttp

from .config import RetryConfig
from .errors import (
    ConnectionFailure,
    DataFailure,
    Failure,
    FailureKind,
    NetworkFailure,
    TimeoutFailure,
    UnknownFailure,
    failure_from_status,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# errno values meaning the host itself has no usable network path
_OFFLINE_ERRNOS = frozenset({errno.ENETUNREACH, errno.ENETDOWN, errno.EHOSTUNREACH})


class ConnectionState(str, Enum):
    CONNECTED = "connected"
    CONNECTING = "connecting"
    RETRYING = "retrying"
    OFFLINE = "offline"


# --- Lifecycle events ---


@dataclass(frozen=True, slots=True)
class Attempting:
    attempt: int
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True, slots=True)
class Retrying:
    attempt: int
    delay: float
    failure: Failure
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True, slots=True)
class Failed:
    attempt: int
    failure: Failure
    timestamp: float = field(default_factory=time.time)

    @property
    def kind(self) -> FailureKind:
        return self.failure.kind


@dataclass(frozen=True, slots=True)
class SucceededAfter:
    attempts: int
    timestamp: float = field(default_factory=time.time)


@dataclass(frozen=True, slots=True)
class SkippedOffline:
    attempt: int
    timestamp: float = field(default_factory=time.time)


LifecycleEvent = Union[Attempting, Retrying, Failed, SucceededAfter, SkippedOffline]


@dataclass(slots=True)
class OperationResult(Generic[T]):
    """Outcome of execute_with_retry(): either a value or the last failure."""

    value: T | None
    failure: Failure | None
    attempts: int
    events: list[LifecycleEvent] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.failure is None

    def unwrap(self) -> T:
        """Return the value or raise the failure."""
        if self.failure is not None:
            raise self.failure
        return self.value  # type: ignore[return-value]


# --- Classification ---


def classify_exception(exc: BaseException) -> Failure:
    """Translate any exception raised by a network operation into a Failure."""
    if isinstance(exc, Failure):
        return exc

    if isinstance(exc, (asyncio.TimeoutError, TimeoutError)):
        return TimeoutFailure("Operation timed out", details=str(exc) or None)

    if isinstance(exc, aiohttp.ContentTypeError):
        return DataFailure("Unexpected response content type", details=exc.message)

    if isinstance(exc, aiohttp.ClientResponseError):
        return failure_from_status(exc.status, details=exc.message)

    # ClientConnectorError wraps the underlying OSError
    os_error = getattr(exc, "os_error", exc)
    if isinstance(exc, aiohttp.ClientConnectorDNSError):
        return NetworkFailure("DNS resolution failed", details=str(os_error))
    if isinstance(os_error, socket.gaierror):
        return NetworkFailure("DNS resolution failed", details=str(os_error))
    if isinstance(os_error, OSError) and os_error.errno in _OFFLINE_ERRNOS:
        return NetworkFailure("No route to host", details=str(os_error))
    if isinstance(os_error, ConnectionRefusedError):
        return ConnectionFailure("Connection refused", details=str(os_error))
    if isinstance(exc, (aiohttp.ClientConnectionError, ConnectionError, OSError)):
        return ConnectionFailure("Connection failed", details=str(exc))
    if isinstance(exc, aiohttp.ClientError):
        return ConnectionFailure("HTTP client error", details=str(exc))

    if isinstance(exc, (ValueError, KeyError, TypeError)):
        return DataFailure("Invalid response data", details=str(exc))

    return UnknownFailure("Unexpected error", details=f"{type(exc).__name__}: {exc}")


def should_go_offline(failure: Failure) -> bool:
    """True when the failure means the device has no network at all.

    API and data errors prove the exchange is reachable, so they never do.
    """
    return isinstance(failure, NetworkFailure)


def _uniform_jitter() -> float:
    return random.uniform(-1.0, 1.0)


class ConnectionSupervisor:
    """Runs network operations with retry, backoff and offline detection.

    The supervisor owns the connection state. Callers receive lifecycle events
    through ``on_event`` for status messaging only; retry decisions stay here.

    ``jitter`` returns a value in [-1, 1] that scales ``jitter_factor``;
    tests inject ``lambda: 0.0`` to get exact delays. ``connectivity_check``
    is awaited while offline to decide whether to try again.
    """

    def __init__(
        self,
        jitter: Callable[[], float] = _uniform_jitter,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        connectivity_check: Callable[[], Awaitable[bool]] | None = None,
        on_state_change: Callable[[ConnectionState], None] | None = None,
    ) -> None:
        self._jitter = jitter
        self._sleep = sleep
        self._connectivity_check = connectivity_check
        self._on_state_change = on_state_change
        self._state = ConnectionState.CONNECTING

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_offline(self) -> bool:
        return self._state is ConnectionState.OFFLINE

    should_go_offline = staticmethod(should_go_offline)

    def mark_online(self) -> None:
        """External confirmation that connectivity is back."""
        if self._state is ConnectionState.OFFLINE:
            logger.info("Connectivity restored")
            self._set_state(ConnectionState.CONNECTING)

    async def check_connectivity(self) -> bool:
        """Ask the connectivity check (if any) whether the network is back. Returns online-ness."""
        if not self.is_offline:
            return True
        if self._connectivity_check is None:
            return False
        try:
            online = await self._connectivity_check()
        except Exception:
            logger.exception("Connectivity check failed")
            return False
        if online:
            self.mark_online()
        return online

    def backoff_delay(self, failure: Failure, attempt: int, config: RetryConfig) -> float:
        """Un-jittered delay before retrying after ``attempt`` failed."""
        if failure.kind is FailureKind.RATE_LIMITED:
            base = max(config.rate_limit_delay, config.base_delay)
        else:
            base = config.base_delay
        delay = base * config.backoff_multiplier ** (attempt - 1)
        return min(max(delay, base), max(config.max_delay, base))

    def compute_delay(self, failure: Failure, attempt: int, config: RetryConfig) -> float:
        """Backoff delay with jitter applied."""
        delay = self.backoff_delay(failure, attempt, config)
        offset = delay * config.jitter_factor * max(-1.0, min(1.0, self._jitter()))
        jittered = min(max(delay + offset, 0.0), max(config.max_delay, delay))
        if failure.kind is FailureKind.RATE_LIMITED:
            jittered = max(jittered, config.rate_limit_delay)
        return jittered

    async def execute_with_retry(
        self,
        operation: Callable[[], Awaitable[T]],
        config: RetryConfig | None = None,
        *,
        on_event: Callable[[LifecycleEvent], None] | None = None,
        should_retry: Callable[[Failure], bool] | None = None,
    ) -> OperationResult[T]:
        """Run ``operation`` until it succeeds or the policy says stop.

        Never raises for operation failures; they come back in the result.
        Cancellation propagates.
        """
        config = config or RetryConfig.standard()
        events: list[LifecycleEvent] = []

        def emit(event: LifecycleEvent) -> None:
            events.append(event)
            if on_event is not None:
                try:
                    on_event(event)
                except Exception:
                    logger.exception("Lifecycle event handler failed")

        attempt = 0
        failure: Failure | None = None

        while attempt < config.max_attempts:
            attempt += 1

            if self.is_offline and config.skip_when_offline and not await self.check_connectivity():
                emit(SkippedOffline(attempt))
                return OperationResult(
                    None,
                    NetworkFailure("Device is offline", details="Operation skipped while offline"),
                    attempt,
                    events,
                )

            self._set_state(ConnectionState.CONNECTING if attempt == 1 else ConnectionState.RETRYING)
            emit(Attempting(attempt))

            try:
                value = await operation()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                failure = classify_exception(e)
                emit(Failed(attempt, failure))
                logger.debug("Attempt %d failed: %s (%s)", attempt, failure, failure.kind.value)

                if should_go_offline(failure):
                    logger.warning("Network unavailable, going offline: %s", failure)
                    self._set_state(ConnectionState.OFFLINE)
                    break
                if not self._may_retry(failure, attempt, config, should_retry):
                    break

                delay = self.compute_delay(failure, attempt, config)
                emit(Retrying(attempt, delay, failure))
                logger.info("Retrying in %.2fs (attempt %d/%d)", delay, attempt + 1, config.max_attempts)
                await self._sleep(delay)
            else:
                self._set_state(ConnectionState.CONNECTED)
                emit(SucceededAfter(attempt))
                return OperationResult(value, None, attempt, events)

        failure = failure or UnknownFailure("Operation was not attempted")
        if not self.is_offline:
            # Data errors prove the exchange answered; transport errors leave us reconnecting
            if failure.kind is FailureKind.CLIENT_DATA:
                self._set_state(ConnectionState.CONNECTED)
            else:
                self._set_state(ConnectionState.CONNECTING)
        return OperationResult(None, failure, attempt, events)

    # --- Internals ---

    @staticmethod
    def _may_retry(
        failure: Failure,
        attempt: int,
        config: RetryConfig,
        should_retry: Callable[[Failure], bool] | None,
    ) -> bool:
        if attempt >= config.max_attempts:
            return False
        if should_retry is not None and not should_retry(failure):
            return False
        return config.is_retryable(failure.kind)

    def _set_state(self, state: ConnectionState) -> None:
        if state is self._state:
            return
        logger.debug("Connection state: %s -> %s", self._state.value, state.value)
        self._state = state
        if self._on_state_change is not None:
            try:
                self._on_state_change(state)
            except Exception:
                logger.exception("Connection state handler failed")
