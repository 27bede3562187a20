"""Mapping of raw exchange records into Asset entities."""

from __future__ import annotations

import logging
import math
import time
from collections.abc import Callable, Iterable, Sequence
from dataclasses import replace

from .errors import MappingError, MappingErrorReason
from .models import Asset, Instrument, ListingStatus, Ticker

logger = logging.getLogger(__name__)

SYMBOL_NAMES: dict[str, str] = {
    "BTC": "Bitcoin",
    "ETH": "Ethereum",
    "XRP": "XRP",
    "BNB": "BNB",
    "SOL": "Solana",
    "DOGE": "Dogecoin",
    "TRX": "TRON",
    "ADA": "Cardano",
    "AVAX": "Avalanche",
    "XLM": "Stellar",
}

# Exchange state strings -> listing taxonomy. Anything else maps to ACTIVE.
LISTING_STATES: dict[str, ListingStatus] = {
    "live": ListingStatus.ACTIVE,
    "active": ListingStatus.ACTIVE,
    "suspend": ListingStatus.SUSPENDED,
    "suspended": ListingStatus.SUSPENDED,
    "preopen": ListingStatus.DELISTED,
    "delisted": ListingStatus.DELISTED,
}


class EntityMapper:
    """Converts instrument/ticker records into validated Assets.

    Mapping itself has no state. Two counters make the lenient policies
    observable:

      - ``timestamp_fallbacks``: tickers whose ``ts`` did not parse and got
        the current time instead
      - ``unknown_states``: instruments whose state string was not recognised
        and defaulted to ACTIVE
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self.timestamp_fallbacks = 0
        self.unknown_states = 0

    def map_instrument_and_ticker(self, instrument: Instrument, ticker: Ticker) -> Asset:
        """Combine one instrument and its ticker. Raises MappingError."""
        if instrument.inst_id != ticker.inst_id:
            raise MappingError(
                MappingErrorReason.IDENTIFIER_MISMATCH,
                "Instrument ID mismatch",
                details=f"{instrument.inst_id} != {ticker.inst_id}",
            )

        price = self.parse_number(ticker.last, "price")
        volume = self.parse_number(ticker.vol_24h, "volume24h")
        open_24h = self.parse_number(ticker.open_24h, "open24h")

        return Asset(
            symbol=instrument.base_ccy,
            name=SYMBOL_NAMES.get(instrument.base_ccy, instrument.base_ccy),
            price=price,
            price_change_24h=price - open_24h,
            volume_24h=volume,
            status=self.map_listing_status(instrument.state),
            last_updated=self.parse_timestamp(ticker.ts),
        )

    def map_list(self, instruments: Iterable[Instrument], tickers: Iterable[Ticker]) -> list[Asset]:
        """Join instruments with tickers by instrument id.

        Instruments without a ticker are dropped. Records that fail to map are
        logged and skipped; they never fail the batch.
        """
        by_id = {t.inst_id: t for t in tickers}
        assets: list[Asset] = []
        for instrument in instruments:
            ticker = by_id.get(instrument.inst_id)
            if ticker is None:
                continue
            try:
                assets.append(self.map_instrument_and_ticker(instrument, ticker))
            except MappingError as e:
                logger.warning("Skipping %s: %s", instrument.inst_id, e)
        return assets

    @staticmethod
    def filter_to_tracked_set(assets: Iterable[Asset], whitelist: Sequence[str]) -> list[Asset]:
        """Keep whitelisted assets only, in whitelist order."""
        by_symbol = {a.symbol: a for a in assets}
        return [by_symbol[s] for s in whitelist if s in by_symbol]

    def update_with_ticker(self, existing: Asset, ticker: Ticker) -> Asset:
        """Refresh market fields from a new ticker.

        Identity fields, listing status and the volume-spike flag are carried
        over unchanged; the spike flag belongs to the spike detection step.
        """
        if ticker.symbol != existing.symbol:
            raise MappingError(
                MappingErrorReason.IDENTIFIER_MISMATCH,
                "Ticker does not belong to asset",
                details=f"{ticker.inst_id} != {existing.symbol}",
            )
        price = self.parse_number(ticker.last, "price")
        volume = self.parse_number(ticker.vol_24h, "volume24h")
        open_24h = self.parse_number(ticker.open_24h, "open24h")
        return replace(
            existing,
            price=price,
            price_change_24h=price - open_24h,
            volume_24h=volume,
            last_updated=self.parse_timestamp(ticker.ts),
        )

    # --- Field parsers ---

    @staticmethod
    def parse_number(value: object, field_name: str) -> float:
        if not isinstance(value, (str, int, float)) or isinstance(value, bool):
            raise MappingError(
                MappingErrorReason.INVALID_NUMBER,
                f"Failed to parse {field_name}",
                details=repr(value),
            )
        try:
            parsed = float(value)
        except ValueError:
            raise MappingError(
                MappingErrorReason.INVALID_NUMBER,
                f"Failed to parse {field_name}",
                details=repr(value),
            ) from None
        if math.isnan(parsed) or math.isinf(parsed):
            raise MappingError(
                MappingErrorReason.INVALID_NUMBER,
                f"Invalid number for {field_name}",
                details=repr(value),
            )
        return parsed

    def parse_timestamp(self, value: str) -> float:
        """Millisecond epoch string -> Unix seconds. Falls back to now."""
        try:
            return int(value) / 1000.0
        except (TypeError, ValueError):
            self.timestamp_fallbacks += 1
            logger.warning("Unparseable ticker timestamp %r; using current time", value)
            return self._clock()

    def map_listing_status(self, state: object) -> ListingStatus:
        status = LISTING_STATES.get(state.strip().lower()) if isinstance(state, str) else None
        if status is None:
            self.unknown_states += 1
            logger.info("Unrecognised listing state %r; treating as active", state)
            return ListingStatus.ACTIVE
        return status
