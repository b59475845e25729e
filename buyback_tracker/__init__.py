"""Protocol buyback tracker: cached daily revenue aggregation and valuation ratios."""

from buyback_tracker.data.cache import MetricsCache
from buyback_tracker.errors import (
    BuybackTrackerError,
    MalformedResponse,
    UnknownEntity,
    UpstreamUnavailable,
)
from buyback_tracker.service import BuybackService

__version__ = "0.1.0"

__all__ = [
    "BuybackService",
    "BuybackTrackerError",
    "MalformedResponse",
    "MetricsCache",
    "UnknownEntity",
    "UpstreamUnavailable",
]
