"""Live crypto market data core for CryptoDash.

Public API:
    Asset, PriceUpdateEvent, VolumeAlert, ConnectionStatus - Immutable entities
    MarketSettings, RetryConfig  - Runtime configuration
    Failure and subclasses       - Typed failure taxonomy
    MarketDataClient             - Abstract interface for exchange transports
    create_market_data_client    - Factory that selects OKX or the simulator
    MarketDataService            - Facade: initial_load, subscribe_updates, dismiss_alert
    MarketEvent, EventType       - Items of the merged update stream
    create_stream_router         - FastAPI router factory for SSE and snapshot endpoints
"""

from .bus import EventType, MarketEvent
from .config import MarketSettings, RetryConfig
from .errors import (
    ApiFailure,
    ConnectionFailure,
    DataFailure,
    Failure,
    FailureKind,
    MappingError,
    MissingSymbolsError,
    NetworkFailure,
    TimeoutFailure,
    UnknownFailure,
)
from .factory import create_market_data_client
from .interface import MarketDataClient
from .models import Asset, ConnectionStatus, ListingStatus, PriceUpdateEvent, VolumeAlert
from .service import MarketDataService
from .stream import create_stream_router

__all__ = [
    "Asset",
    "ConnectionStatus",
    "ListingStatus",
    "PriceUpdateEvent",
    "VolumeAlert",
    "MarketSettings",
    "RetryConfig",
    "Failure",
    "FailureKind",
    "NetworkFailure",
    "TimeoutFailure",
    "ConnectionFailure",
    "ApiFailure",
    "DataFailure",
    "MappingError",
    "MissingSymbolsError",
    "UnknownFailure",
    "MarketDataClient",
    "create_market_data_client",
    "MarketDataService",
    "MarketEvent",
    "EventType",
    "create_stream_router",
]
