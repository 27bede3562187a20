"""Runtime configuration: retry profiles and polling settings."""

from __future__ import annotations

import os
from dataclasses import dataclass, field

from .errors import FailureKind

# Tracked set for a dashboard session, in display order
DEFAULT_SYMBOLS: tuple[str, ...] = (
    "BTC",
    "ETH",
    "XRP",
    "BNB",
    "SOL",
    "DOGE",
    "TRX",
    "ADA",
    "AVAX",
    "XLM",
)

DEFAULT_QUOTE_CCY = "USDT"

DEFAULT_RETRYABLE: frozenset[FailureKind] = frozenset(
    {
        FailureKind.TIMEOUT,
        FailureKind.CONNECTION,
        FailureKind.SERVER_ERROR,
        FailureKind.RATE_LIMITED,
    }
)


@dataclass(frozen=True, slots=True)
class RetryConfig:
    """Retry policy for one call site.

    Delays are in seconds. ``rate_limit_delay`` is both the base and the floor
    for delays after an HTTP 429.
    """

    max_attempts: int = 3
    base_delay: float = 2.0
    max_delay: float = 60.0
    backoff_multiplier: float = 2.0
    jitter_factor: float = 0.25
    rate_limit_delay: float = 10.0
    retryable: frozenset[FailureKind] = DEFAULT_RETRYABLE
    skip_when_offline: bool = True

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_delay < 0 or self.max_delay < self.base_delay:
            raise ValueError("delays must satisfy 0 <= base_delay <= max_delay")
        if not 0 <= self.jitter_factor < 1:
            raise ValueError("jitter_factor must be in [0, 1)")

    def is_retryable(self, kind: FailureKind) -> bool:
        return kind in self.retryable

    @classmethod
    def standard(cls) -> RetryConfig:
        return cls()

    @classmethod
    def fast(cls) -> RetryConfig:
        """Periodic refresh: fail quickly, the next tick retries anyway."""
        return cls(max_attempts=2, base_delay=1.0)

    @classmethod
    def slow(cls) -> RetryConfig:
        return cls(max_attempts=5, base_delay=5.0, max_delay=120.0, backoff_multiplier=1.5)

    @classmethod
    def critical(cls) -> RetryConfig:
        """Initial load: keep trying for several minutes before giving up."""
        return cls(max_attempts=10, base_delay=0.5, max_delay=300.0, backoff_multiplier=1.8)


RETRY_PROFILES = {
    "standard": RetryConfig.standard,
    "fast": RetryConfig.fast,
    "slow": RetryConfig.slow,
    "critical": RetryConfig.critical,
}


def retry_profile(name: str) -> RetryConfig:
    """Look up a named retry profile. Raises ValueError for unknown names."""
    try:
        return RETRY_PROFILES[name.strip().lower()]()
    except KeyError:
        raise ValueError(
            f"Unknown retry profile {name!r}; expected one of {sorted(RETRY_PROFILES)}"
        ) from None


@dataclass(frozen=True, slots=True)
class MarketSettings:
    symbols: tuple[str, ...] = DEFAULT_SYMBOLS
    quote_ccy: str = DEFAULT_QUOTE_CCY
    poll_interval: float = 3.0
    debounce: float = 0.15
    rate_limit_interval: float = 1.0
    status_debounce: float = 0.15
    spike_threshold: float = 0.5
    initial_retry: RetryConfig = field(default_factory=RetryConfig.critical)
    refresh_retry: RetryConfig = field(default_factory=RetryConfig.fast)

    def __post_init__(self) -> None:
        if not self.symbols:
            raise ValueError("symbols must not be empty")
        if len(set(self.symbols)) != len(self.symbols):
            raise ValueError("symbols must be unique")
        if self.poll_interval <= 0:
            raise ValueError("poll_interval must be positive")
        if self.debounce < 0 or self.status_debounce < 0 or self.rate_limit_interval < 0:
            raise ValueError("debounce and rate limit intervals must be >= 0")
        if self.spike_threshold <= 0:
            raise ValueError("spike_threshold must be positive")

    def instrument_id(self, symbol: str) -> str:
        return f"{symbol}-{self.quote_ccy}"

    @property
    def instrument_ids(self) -> list[str]:
        return [self.instrument_id(s) for s in self.symbols]

    @classmethod
    def from_env(cls) -> MarketSettings:
        """Build settings from CRYPTODASH_* environment variables.

        Unset or empty variables fall back to the defaults.
        """
        defaults = cls()
        kwargs: dict = {}

        symbols = os.environ.get("CRYPTODASH_SYMBOLS", "").strip()
        if symbols:
            kwargs["symbols"] = tuple(s.strip().upper() for s in symbols.split(",") if s.strip())

        quote = os.environ.get("CRYPTODASH_QUOTE_CCY", "").strip()
        if quote:
            kwargs["quote_ccy"] = quote.upper()

        for name, env in (
            ("poll_interval", "CRYPTODASH_POLL_INTERVAL"),
            ("debounce", "CRYPTODASH_DEBOUNCE"),
            ("rate_limit_interval", "CRYPTODASH_RATE_LIMIT_INTERVAL"),
            ("status_debounce", "CRYPTODASH_STATUS_DEBOUNCE"),
            ("spike_threshold", "CRYPTODASH_SPIKE_THRESHOLD"),
        ):
            value = os.environ.get(env, "").strip()
            if value:
                try:
                    kwargs[name] = float(value)
                except ValueError:
                    raise ValueError(f"{env} must be a number, got {value!r}") from None

        initial = os.environ.get("CRYPTODASH_INITIAL_RETRY_PROFILE", "").strip()
        kwargs["initial_retry"] = retry_profile(initial) if initial else defaults.initial_retry
        refresh = os.environ.get("CRYPTODASH_REFRESH_RETRY_PROFILE", "").strip()
        kwargs["refresh_retry"] = retry_profile(refresh) if refresh else defaults.refresh_retry

        return cls(**kwargs)
