"""Data models for market data."""

from __future__ import annotations

import time
from dataclasses import dataclass, field, replace
from enum import Enum


def _text(raw: dict, key: str) -> str:
    """Required string field of an exchange record. Raises KeyError or TypeError."""
    value = raw[key]
    if not isinstance(value, str):
        raise TypeError(f"{key} must be a string, got {type(value).__name__}")
    return value


class ListingStatus(str, Enum):
    ACTIVE = "active"
    SUSPENDED = "suspended"
    DELISTED = "delisted"


@dataclass(frozen=True, slots=True)
class Instrument:
    """Raw instrument record as listed by the exchange."""

    inst_id: str
    base_ccy: str
    quote_ccy: str
    state: str
    inst_type: str = "SPOT"

    @classmethod
    def from_okx(cls, raw: dict) -> Instrument:
        """Build from an OKX ``/public/instruments`` entry. Raises KeyError or TypeError on bad fields."""
        return cls(
            inst_id=_text(raw, "instId"),
            base_ccy=_text(raw, "baseCcy"),
            quote_ccy=_text(raw, "quoteCcy"),
            state=_text(raw, "state"),
            inst_type=raw.get("instType", "SPOT"),
        )


@dataclass(frozen=True, slots=True)
class Ticker:
    """Raw 24h ticker snapshot. Numeric fields are kept as the exchange's strings."""

    inst_id: str
    last: str
    vol_24h: str
    open_24h: str
    ts: str
    vol_ccy_24h: str = "0"
    high_24h: str = "0"
    low_24h: str = "0"

    @classmethod
    def from_okx(cls, raw: dict) -> Ticker:
        """Build from an OKX ``/market/tickers`` entry. Raises KeyError or TypeError on bad fields."""
        return cls(
            inst_id=_text(raw, "instId"),
            last=_text(raw, "last"),
            vol_24h=_text(raw, "vol24h"),
            open_24h=_text(raw, "open24h"),
            ts=_text(raw, "ts"),
            vol_ccy_24h=raw.get("volCcy24h", "0"),
            high_24h=raw.get("high24h", "0"),
            low_24h=raw.get("low24h", "0"),
        )

    @property
    def symbol(self) -> str:
        """Base currency part of the instrument id ("BTC-USDT" -> "BTC")."""
        return self.inst_id.split("-", 1)[0]


@dataclass(frozen=True, slots=True)
class Asset:
    """A tracked cryptocurrency. Replaced wholesale on every change."""

    symbol: str
    name: str
    price: float
    price_change_24h: float
    volume_24h: float
    status: ListingStatus
    last_updated: float  # Unix seconds
    has_volume_spike: bool = False

    @property
    def price_change_percent_24h(self) -> float:
        """24h change relative to the 24h open price."""
        open_price = self.price - self.price_change_24h
        if open_price == 0:
            return 0.0
        return round(self.price_change_24h / open_price * 100, 4)

    def with_spike(self, flag: bool) -> Asset:
        return replace(self, has_volume_spike=flag)

    def to_dict(self) -> dict:
        return {
            "symbol": self.symbol,
            "name": self.name,
            "price": self.price,
            "price_change_24h": self.price_change_24h,
            "price_change_percent_24h": self.price_change_percent_24h,
            "volume_24h": self.volume_24h,
            "status": self.status.value,
            "last_updated": self.last_updated,
            "has_volume_spike": self.has_volume_spike,
        }


@dataclass(frozen=True, slots=True)
class PriceUpdateEvent:
    """Emitted once per observed price change."""

    symbol: str
    new_price: float
    price_change: float
    timestamp: float

    @property
    def direction(self) -> str:
        if self.price_change > 0:
            return "up"
        elif self.price_change < 0:
            return "down"
        return "flat"

    def to_dict(self) -> dict:
        return {
            "symbol": self.symbol,
            "new_price": self.new_price,
            "price_change": self.price_change,
            "direction": self.direction,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True, slots=True)
class VolumeAlert:
    """Abnormal 24h volume growth for one symbol."""

    symbol: str
    current_volume: float
    previous_volume: float
    spike_ratio: float  # 0.6 == +60%

    @property
    def spike_percent(self) -> float:
        return round(self.spike_ratio * 100, 2)

    def to_dict(self) -> dict:
        return {
            "symbol": self.symbol,
            "current_volume": self.current_volume,
            "previous_volume": self.previous_volume,
            "spike_ratio": self.spike_ratio,
            "spike_percent": self.spike_percent,
        }


@dataclass(frozen=True, slots=True)
class ConnectionStatus:
    is_connected: bool
    message: str
    last_update: float = field(default_factory=time.time)

    def to_dict(self) -> dict:
        return {
            "is_connected": self.is_connected,
            "message": self.message,
            "last_update": self.last_update,
        }
