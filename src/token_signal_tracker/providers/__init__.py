"""Market data providers - quotes, token metadata and OHLCV candles."""

from token_signal_tracker.providers.base import MarketDataProvider
from token_signal_tracker.providers.composite import CompositeProvider
from token_signal_tracker.providers.dexscreener import DexScreenerClient
from token_signal_tracker.providers.gecko_terminal import GeckoTerminalClient, parse_ohlcv_list
from token_signal_tracker.providers.http import (
    ProviderError,
    ProviderNotFoundError,
    ProviderRateLimitedError,
    ProviderTransientError,
    RateLimiter,
    RetryError,
    with_retry,
)
from token_signal_tracker.providers.models import Candle, PriceQuote, Resolution, TokenMeta

__all__ = [
    "Candle",
    "CompositeProvider",
    "DexScreenerClient",
    "GeckoTerminalClient",
    "MarketDataProvider",
    "PriceQuote",
    "ProviderError",
    "ProviderNotFoundError",
    "ProviderRateLimitedError",
    "ProviderTransientError",
    "RateLimiter",
    "Resolution",
    "RetryError",
    "TokenMeta",
    "parse_ohlcv_list",
    "with_retry",
]
