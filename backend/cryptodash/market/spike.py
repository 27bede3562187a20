"""Volume spike detection."""

from __future__ import annotations

from collections.abc import Iterable

from .models import Asset, VolumeAlert

DEFAULT_SPIKE_THRESHOLD = 0.5  # +50% over the last observation


class SpikeDetector:
    """Flags abnormal 24h volume growth per symbol.

    Keeps the last observed volume for each symbol. Every evaluation
    overwrites it, so consecutive observations are compared pairwise rather
    than against the session's first value.
    """

    def __init__(self, threshold: float = DEFAULT_SPIKE_THRESHOLD) -> None:
        if threshold <= 0:
            raise ValueError("threshold must be positive")
        self._threshold = threshold
        self._previous: dict[str, float] = {}

    @property
    def threshold(self) -> float:
        return self._threshold

    def evaluate(self, symbol: str, previous_volume: float, current_volume: float) -> VolumeAlert | None:
        """Return an alert if current grew by at least the threshold over previous."""
        self._previous[symbol] = current_volume

        if previous_volume <= 0:
            return None

        ratio = (current_volume - previous_volume) / previous_volume
        if ratio >= self._threshold:
            return VolumeAlert(
                symbol=symbol,
                current_volume=current_volume,
                previous_volume=previous_volume,
                spike_ratio=ratio,
            )
        return None

    def observe(self, symbol: str, current_volume: float) -> VolumeAlert | None:
        """Evaluate against the stored observation. The first one is its own baseline."""
        previous = self._previous.get(symbol, current_volume)
        return self.evaluate(symbol, previous, current_volume)

    def seed(self, assets: Iterable[Asset]) -> None:
        """Replace all baselines with the volumes of the given assets."""
        self._previous = {a.symbol: a.volume_24h for a in assets}

    def previous_volume(self, symbol: str) -> float | None:
        return self._previous.get(symbol)

    def reset(self) -> None:
        self._previous.clear()

    def __len__(self) -> int:
        return len(self._previous)
