"""GBM-based crypto market simulator exposed as a MarketDataClient."""

from __future__ import annotations

import logging
import math
import random
import time
from collections.abc import Sequence

import numpy as np

from .config import DEFAULT_QUOTE_CCY, DEFAULT_SYMBOLS
from .errors import DataFailure
from .interface import MarketDataClient
from .models import Instrument, Ticker
from .seed_prices import (
    CORRELATION_GROUPS,
    CROSS_GROUP_CORR,
    DEFAULT_CORR,
    DEFAULT_PARAMS,
    INTRA_ALTS_CORR,
    INTRA_MAJORS_CORR,
    SEED_PRICES,
    SEED_VOLUMES,
    SYMBOL_PARAMS,
)

logger = logging.getLogger(__name__)


class GBMSimulator:
    """Geometric Brownian Motion for correlated crypto prices, plus volume noise.

    Math:
        S(t+dt) = S(t) * exp((mu - sigma^2/2) * dt + sigma * sqrt(dt) * Z)

    Crypto trades around the clock, so dt is measured against a
    365-day * 24h year. 24h volumes take a small lognormal step each tick
    and, with ``spike_probability``, a burst of +50%..+100% so the spike
    detector has something to find.
    """

    SECONDS_PER_YEAR = 365 * 24 * 3600
    DEFAULT_DT = 3.0 / SECONDS_PER_YEAR  # one 3s poll
    VOLUME_SIGMA = 0.02  # per-tick relative volume noise

    def __init__(
        self,
        symbols: Sequence[str],
        dt: float = DEFAULT_DT,
        spike_probability: float = 0.002,
        rng: np.random.Generator | None = None,
    ) -> None:
        self._dt = dt
        self._spike_prob = spike_probability
        self._rng = rng or np.random.default_rng()

        self._symbols: list[str] = []
        self._prices: dict[str, float] = {}
        self._opens: dict[str, float] = {}
        self._volumes: dict[str, float] = {}
        self._params: dict[str, dict[str, float]] = {}
        self._cholesky: np.ndarray | None = None

        for symbol in symbols:
            if symbol in self._prices:
                continue
            self._symbols.append(symbol)
            price = SEED_PRICES.get(symbol, random.uniform(1.0, 100.0))
            self._prices[symbol] = price
            self._opens[symbol] = price
            self._volumes[symbol] = SEED_VOLUMES.get(symbol, random.uniform(1e5, 1e7))
            self._params[symbol] = SYMBOL_PARAMS.get(symbol, dict(DEFAULT_PARAMS))
        self._rebuild_cholesky()

    @property
    def symbols(self) -> list[str]:
        return list(self._symbols)

    def step(self) -> dict[str, tuple[float, float]]:
        """Advance every symbol one tick. Returns {symbol: (price, volume_24h)}."""
        n = len(self._symbols)
        if n == 0:
            return {}

        z = self._rng.standard_normal(n)
        if self._cholesky is not None:
            z = self._cholesky @ z
        volume_noise = self._rng.standard_normal(n)

        result: dict[str, tuple[float, float]] = {}
        for i, symbol in enumerate(self._symbols):
            mu = self._params[symbol]["mu"]
            sigma = self._params[symbol]["sigma"]
            drift = (mu - 0.5 * sigma**2) * self._dt
            diffusion = sigma * math.sqrt(self._dt) * z[i]
            self._prices[symbol] *= math.exp(drift + diffusion)

            self._volumes[symbol] *= math.exp(self.VOLUME_SIGMA * volume_noise[i])
            if random.random() < self._spike_prob:
                burst = random.uniform(0.5, 1.0)
                self._volumes[symbol] *= 1 + burst
                logger.debug("Volume burst on %s: +%.0f%%", symbol, burst * 100)

            result[symbol] = (self._prices[symbol], self._volumes[symbol])
        return result

    def get_price(self, symbol: str) -> float | None:
        return self._prices.get(symbol)

    def get_volume(self, symbol: str) -> float | None:
        return self._volumes.get(symbol)

    def get_open(self, symbol: str) -> float | None:
        return self._opens.get(symbol)

    def _rebuild_cholesky(self) -> None:
        n = len(self._symbols)
        if n <= 1:
            self._cholesky = None
            return
        corr = np.eye(n)
        for i in range(n):
            for j in range(i + 1, n):
                rho = self._pairwise_correlation(self._symbols[i], self._symbols[j])
                corr[i, j] = rho
                corr[j, i] = rho
        self._cholesky = np.linalg.cholesky(corr)

    @staticmethod
    def _pairwise_correlation(s1: str, s2: str) -> float:
        majors = CORRELATION_GROUPS["majors"]
        alts = CORRELATION_GROUPS["alts"]
        if s1 in majors and s2 in majors:
            return INTRA_MAJORS_CORR
        if s1 in alts and s2 in alts:
            return INTRA_ALTS_CORR
        known = majors | alts
        if s1 in known and s2 in known:
            return CROSS_GROUP_CORR
        return DEFAULT_CORR


class SimulatedMarketDataClient(MarketDataClient):
    """MarketDataClient that fabricates OKX-shaped records from a GBMSimulator.

    Every get_tickers() call advances the simulation by one step, so a poll
    loop sees a moving market without any network access.
    """

    def __init__(
        self,
        symbols: Sequence[str] = DEFAULT_SYMBOLS,
        quote_ccy: str = DEFAULT_QUOTE_CCY,
        spike_probability: float = 0.002,
        simulator: GBMSimulator | None = None,
    ) -> None:
        self._symbols = list(symbols)
        self._quote_ccy = quote_ccy
        self._sim = simulator or GBMSimulator(self._symbols, spike_probability=spike_probability)
        self._closed = False

    @property
    def simulator(self) -> GBMSimulator:
        return self._sim

    async def get_instruments(self) -> list[Instrument]:
        self._check_open()
        return [
            Instrument(
                inst_id=self._inst_id(s),
                base_ccy=s,
                quote_ccy=self._quote_ccy,
                state="live",
            )
            for s in self._symbols
        ]

    async def get_tickers(self, inst_ids: list[str]) -> list[Ticker]:
        self._check_open()
        if not inst_ids:
            raise DataFailure("Invalid request", details="Instrument IDs list cannot be empty")
        wanted = set(inst_ids)
        snapshot = self._sim.step()
        ts = str(int(time.time() * 1000))
        tickers = []
        for symbol, (price, volume) in snapshot.items():
            inst_id = self._inst_id(symbol)
            if inst_id not in wanted:
                continue
            tickers.append(
                Ticker(
                    inst_id=inst_id,
                    last=f"{price:.8g}",
                    vol_24h=f"{volume:.4f}",
                    open_24h=f"{self._sim.get_open(symbol):.8g}",
                    ts=ts,
                    vol_ccy_24h=f"{volume * price:.2f}",
                )
            )
        return tickers

    async def get_supported_tickers(self) -> list[Ticker]:
        return await self.get_tickers([self._inst_id(s) for s in self._symbols])

    async def close(self) -> None:
        if not self._closed:
            self._closed = True
            logger.info("Simulated market data client closed")

    def _inst_id(self, symbol: str) -> str:
        return f"{symbol}-{self._quote_ccy}"

    def _check_open(self) -> None:
        if self._closed:
            raise RuntimeError("Simulated client is closed")
