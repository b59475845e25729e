"""Window aggregation, composite merging and derived ratios."""

from buyback_tracker.analytics.composite import CompositeMerger
from buyback_tracker.analytics.derived import MetricsDeriver, sort_entity_metrics, summarize
from buyback_tracker.analytics.window import WindowAggregator, change

__all__ = [
    "CompositeMerger",
    "MetricsDeriver",
    "WindowAggregator",
    "change",
    "sort_entity_metrics",
    "summarize",
]
