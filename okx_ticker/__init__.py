"""Live OKX price ticker: REST snapshot + candle stream + terminal display."""

from okx_ticker.abbreviation import build_abbreviations
from okx_ticker.config import TickerConfig, load_config
from okx_ticker.controller import Controller
from okx_ticker.display import CarouselState, DisplayScheduler, SlotView
from okx_ticker.feed import ConnectionState, FeedConnection, FeedStatus
from okx_ticker.precision import PrecisionLookupError, PrecisionResolver, format_price
from okx_ticker.price_cache import PriceCache, PricePoint

__version__ = "0.1.0"

__all__ = [
    "build_abbreviations",
    "CarouselState",
    "ConnectionState",
    "Controller",
    "DisplayScheduler",
    "FeedConnection",
    "FeedStatus",
    "format_price",
    "load_config",
    "PrecisionLookupError",
    "PrecisionResolver",
    "PriceCache",
    "PricePoint",
    "SlotView",
    "TickerConfig",
]
