"""Data models for buyback and market data."""

from dataclasses import dataclass, field
from enum import Enum

import pandas as pd


# Trailing window lengths in days
WINDOWS: tuple[int, ...] = (1, 7, 14, 30, 90)

# Points kept for charting
CHART_POINTS = 90

# Window length -> trend %
Trends = dict[int, float]


class DataKind(str, Enum):
    """Revenue definitions exposed by the fee feed."""

    DAILY_FEES = "dailyFees"
    DAILY_REVENUE = "dailyRevenue"
    DAILY_HOLDERS_REVENUE = "dailyHoldersRevenue"


@dataclass(frozen=True)
class DailyPoint:
    """One day's USD amount for an entity."""

    timestamp: int
    date: str  # YYYY-MM-DD, UTC
    value: float


@dataclass(frozen=True)
class TimeSeries:
    """Ascending, date-unique sequence of daily points for one entity and kind."""

    entity_key: str
    data_kind: str
    points: tuple[DailyPoint, ...] = ()

    @classmethod
    def empty(cls, entity_key: str, data_kind: str) -> "TimeSeries":
        return cls(entity_key=entity_key, data_kind=data_kind)

    def __len__(self) -> int:
        return len(self.points)

    def __iter__(self):
        return iter(self.points)

    def values(self) -> list[float]:
        return [p.value for p in self.points]

    def dates(self) -> list[str]:
        return [p.date for p in self.points]

    def tail(self, n: int) -> "TimeSeries":
        """Return a series holding only the last ``n`` points."""
        if n <= 0:
            return TimeSeries.empty(self.entity_key, self.data_kind)
        return TimeSeries(self.entity_key, self.data_kind, self.points[-n:])

    def to_frame(self) -> pd.DataFrame:
        """
        Convert to a DataFrame.

        Returns:
            DataFrame indexed by date string with 'timestamp' and 'value' columns
        """
        if not self.points:
            return pd.DataFrame(columns=["timestamp", "value"])
        df = pd.DataFrame(
            {
                "timestamp": [p.timestamp for p in self.points],
                "value": [p.value for p in self.points],
            },
            index=[p.date for p in self.points],
        )
        df.index.name = "date"
        return df


@dataclass(frozen=True)
class FeesSummary:
    """Full-history result of one fee feed request."""

    series: TimeSeries
    total_24h: float | None = None
    total_all_time: float | None = None


@dataclass(frozen=True)
class EntityConfig:
    """A tracked protocol and the fee feed slugs that back it."""

    key: str
    name: str
    symbol: str
    market_id: str
    sources: tuple[str, ...]

    @property
    def is_composite(self) -> bool:
        return len(self.sources) > 1


@dataclass(frozen=True)
class MarketSnapshot:
    """Price and market data for one token at one point in time."""

    price: float = 0.0
    market_cap: float = 0.0
    volume_24h: float = 0.0
    price_change_24h: float = 0.0
    price_change_7d: float = 0.0
    price_change_14d: float = 0.0
    price_change_30d: float = 0.0

    @classmethod
    def empty(cls) -> "MarketSnapshot":
        return cls()


@dataclass(frozen=True)
class WindowAggregate:
    """Trailing-window sums and trends for one series."""

    sums: dict[int, float]
    prior_sums: dict[int, float]
    trends: Trends
    total_24h: float = 0.0
    total_all_time: float = 0.0

    def sum(self, window: int) -> float:
        return self.sums.get(window, 0.0)

    def trend(self, window: int) -> float:
        return self.trends.get(window, 0.0)

    @property
    def avg_7d(self) -> float:
        return self.sum(7) / 7

    @property
    def avg_30d(self) -> float:
        return self.sum(30) / 30


@dataclass(frozen=True)
class BuybackData:
    """Cached pipeline result for one entity: chart points plus aggregates."""

    series: TimeSeries
    aggregate: WindowAggregate


@dataclass(frozen=True)
class DerivedMetrics:
    """Ratios combining buyback figures with market data.

    A pe_ratio of 0 means "no buyback activity", not a zero multiple.
    """

    daily_avg: float
    annualized: float
    to_market_cap_pct: float
    pe_ratio: float
    vs_volume_pct: float

    @property
    def has_pe_ratio(self) -> bool:
        return self.pe_ratio > 0


@dataclass(frozen=True)
class LeaderboardSummary:
    """Totals across a list of entities; all zero for an empty list."""

    entity_count: int = 0
    total_market_cap: float = 0.0
    total_annualized: float = 0.0
    total_daily_avg: float = 0.0
    avg_to_market_cap_pct: float = 0.0


@dataclass(frozen=True)
class EntityMetrics:
    """Everything the presentation layer needs for one entity."""

    entity: EntityConfig
    series: TimeSeries
    trends: Trends
    metrics: DerivedMetrics
    aggregate: WindowAggregate
    market: MarketSnapshot = field(default_factory=MarketSnapshot.empty)


@dataclass(frozen=True)
class RevenueProtocol:
    """One row of the protocol revenue leaderboard."""

    slug: str
    name: str
    category: str
    total_24h: float
    total_7d: float
    total_30d: float
    change_7d: float
    has_buyback: bool
    logo: str = ""
