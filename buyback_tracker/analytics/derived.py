"""Ratios combining buyback aggregates with market snapshots."""

from typing import Callable, Iterable

from buyback_tracker.models.market_data import (
    DerivedMetrics,
    EntityMetrics,
    LeaderboardSummary,
    MarketSnapshot,
    WindowAggregate,
)


# Daily average is annualized on a 365-day basis
ANNUALIZATION_DAYS = 365


class MetricsDeriver:
    """Derives valuation ratios. Every division has a zero fallback; never raises."""

    def __init__(self, annualization_days: int = ANNUALIZATION_DAYS) -> None:
        self.annualization_days = annualization_days

    def derive(self, aggregate: WindowAggregate, snapshot: MarketSnapshot) -> DerivedMetrics:
        daily_avg = aggregate.avg_30d
        annualized = daily_avg * self.annualization_days
        market_cap = snapshot.market_cap
        volume = snapshot.volume_24h

        return DerivedMetrics(
            daily_avg=daily_avg,
            annualized=annualized,
            to_market_cap_pct=annualized / market_cap * 100 if market_cap > 0 else 0.0,
            # 0 = no buyback activity, not a real multiple
            pe_ratio=market_cap / annualized if annualized > 0 else 0.0,
            vs_volume_pct=daily_avg / volume * 100 if volume > 0 else 0.0,
        )


SORT_KEYS: dict[str, Callable[[EntityMetrics], float]] = {
    "daily_avg": lambda m: m.metrics.daily_avg,
    "to_market_cap_pct": lambda m: m.metrics.to_market_cap_pct,
    "trend_7d": lambda m: m.trends.get(7, 0.0),
    "price_change_7d": lambda m: m.market.price_change_7d,
    "market_cap": lambda m: m.market.market_cap,
    "pe_ratio": lambda m: m.metrics.pe_ratio,
}


def sort_entity_metrics(
    items: Iterable[EntityMetrics], key: str = "daily_avg", descending: bool = True
) -> list[EntityMetrics]:
    """
    Sort entity metrics by one of SORT_KEYS.

    For ``pe_ratio`` the 0 sentinel means "N/A" and always sorts last, in
    either direction.
    """
    if key not in SORT_KEYS:
        raise ValueError(f"Unknown sort key: {key}. Available: {', '.join(SORT_KEYS)}")
    value_of = SORT_KEYS[key]
    items = list(items)

    if key != "pe_ratio":
        return sorted(items, key=value_of, reverse=descending)

    defined = [m for m in items if m.metrics.has_pe_ratio]
    undefined = [m for m in items if not m.metrics.has_pe_ratio]
    return sorted(defined, key=value_of, reverse=descending) + undefined


def summarize(items: Iterable[EntityMetrics]) -> LeaderboardSummary:
    """Aggregate stats shown above the leaderboard."""
    items = list(items)
    if not items:
        return LeaderboardSummary()
    return LeaderboardSummary(
        entity_count=len(items),
        total_market_cap=sum(m.market.market_cap for m in items),
        total_annualized=sum(m.metrics.annualized for m in items),
        total_daily_avg=sum(m.metrics.daily_avg for m in items),
        avg_to_market_cap_pct=sum(m.metrics.to_market_cap_pct for m in items) / len(items),
    )
