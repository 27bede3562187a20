"""In-memory MarketDataClient and record builders shared by the market tests."""

import asyncio

from cryptodash.market.bus import BroadcastChannel
from cryptodash.market.interface import MarketDataClient
from cryptodash.market.models import Instrument, Ticker

TS_MS = "1707580800000"


def make_instrument(symbol: str, state: str = "live", quote: str = "USDT") -> Instrument:
    return Instrument(inst_id=f"{symbol}-{quote}", base_ccy=symbol, quote_ccy=quote, state=state)


def make_ticker(
    symbol: str,
    last: float | str = 100.0,
    vol: float | str = 1000.0,
    open_24h: float | str = 90.0,
    ts: str = TS_MS,
    quote: str = "USDT",
) -> Ticker:
    return Ticker(
        inst_id=f"{symbol}-{quote}",
        last=str(last),
        vol_24h=str(vol),
        open_24h=str(open_24h),
        ts=ts,
    )


class FakeMarketDataClient(MarketDataClient):
    """Scripted client.

    ``ticker_responses`` is consumed one entry per get_tickers() call; an
    entry is either a list of Tickers or an exception to raise. The last
    entry repeats once the script runs out. Setting ``gate`` makes
    get_tickers() block until the event is set.
    """

    def __init__(self, instruments=None, tickers=None) -> None:
        self.instruments = list(instruments or [])
        self.tickers = list(tickers or [])
        self.instrument_errors: list[BaseException] = []
        self.ticker_responses: list = []
        self.gate: asyncio.Event | None = None
        self.instrument_calls = 0
        self.ticker_calls = 0
        self.close_calls = 0

    async def get_instruments(self):
        self.instrument_calls += 1
        if self.instrument_errors:
            raise self.instrument_errors.pop(0)
        return list(self.instruments)

    async def get_tickers(self, inst_ids):
        self.ticker_calls += 1
        if self.gate is not None:
            await self.gate.wait()
        if len(self.ticker_responses) > 1:
            entry = self.ticker_responses.pop(0)
        elif self.ticker_responses:
            entry = self.ticker_responses[0]
        else:
            entry = self.tickers
        if isinstance(entry, BaseException):
            raise entry
        wanted = set(inst_ids)
        return [t for t in entry if t.inst_id in wanted]

    async def get_supported_tickers(self):
        return list(self.tickers)

    async def close(self):
        self.close_calls += 1


class RecordingChannel(BroadcastChannel):
    """BroadcastChannel that also keeps everything published on it."""

    def __init__(self, name: str) -> None:
        super().__init__(name)
        self.items: list = []
        self.errors: list[BaseException] = []

    def publish(self, item) -> None:
        self.items.append(item)
        super().publish(item)

    def publish_error(self, exc: BaseException) -> None:
        self.errors.append(exc)
        super().publish_error(exc)
