"""Domain models."""

from .market_data import (
    CHART_POINTS,
    WINDOWS,
    BuybackData,
    DailyPoint,
    DataKind,
    DerivedMetrics,
    EntityConfig,
    EntityMetrics,
    FeesSummary,
    LeaderboardSummary,
    MarketSnapshot,
    RevenueProtocol,
    TimeSeries,
    Trends,
    WindowAggregate,
)

__all__ = [
    "CHART_POINTS",
    "WINDOWS",
    "BuybackData",
    "DailyPoint",
    "DataKind",
    "DerivedMetrics",
    "EntityConfig",
    "EntityMetrics",
    "FeesSummary",
    "LeaderboardSummary",
    "MarketSnapshot",
    "RevenueProtocol",
    "TimeSeries",
    "Trends",
    "WindowAggregate",
]
