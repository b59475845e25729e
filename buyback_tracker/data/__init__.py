"""Data fetching and caching."""

from .cache import CacheEntry, CacheState, MetricsCache
from .fees_fetcher import FeesFetcher
from .market_fetcher import MarketFetcher
from .retry import BackoffPolicy

__all__ = [
    "BackoffPolicy",
    "CacheEntry",
    "CacheState",
    "FeesFetcher",
    "MarketFetcher",
    "MetricsCache",
]
