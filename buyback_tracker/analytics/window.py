"""Trailing-window sums and period-over-period trends."""

import pandas as pd

from buyback_tracker.models.market_data import WINDOWS, TimeSeries, WindowAggregate


def change(recent: float, prior: float) -> float:
    """
    Percentage change from prior to recent.

    Every trend in the package goes through this. A zero prior reports 100
    when anything arrived since and 0 otherwise.
    """
    if prior == 0:
        return 100.0 if recent > 0 else 0.0
    return (recent - prior) / prior * 100


class WindowAggregator:
    """Computes current/prior window sums and trends over an ascending series."""

    def __init__(self, windows: tuple[int, ...] = WINDOWS) -> None:
        self.windows = windows

    @staticmethod
    def current_sum(values: pd.Series, window: int) -> float:
        """Sum of the last ``window`` points (fewer if the series is shorter)."""
        return float(values.iloc[-window:].sum()) if len(values) else 0.0

    @staticmethod
    def prior_sum(values: pd.Series, window: int) -> float:
        """Sum of the up-to-``window`` points immediately before the current window."""
        if len(values) <= window:
            return 0.0
        return float(values.iloc[-2 * window : -window].sum())

    def aggregate(
        self,
        series: TimeSeries,
        total_24h: float | None = None,
        total_all_time: float | None = None,
    ) -> WindowAggregate:
        """
        Aggregate a series over every configured window.

        Args:
            series: Ascending daily series (full history, not chart-truncated)
            total_24h: Feed-reported 24h total; defaults to the 1-day sum
            total_all_time: Feed-reported all-time total; defaults to 0

        Returns:
            WindowAggregate with sums, prior sums and trends keyed by window
        """
        values = pd.Series(series.values(), dtype="float64")

        sums: dict[int, float] = {}
        prior_sums: dict[int, float] = {}
        trends: dict[int, float] = {}
        for window in self.windows:
            sums[window] = self.current_sum(values, window)
            prior_sums[window] = self.prior_sum(values, window)
            trends[window] = change(sums[window], prior_sums[window])

        return WindowAggregate(
            sums=sums,
            prior_sums=prior_sums,
            trends=trends,
            total_24h=total_24h if total_24h is not None else sums.get(1, 0.0),
            total_all_time=total_all_time if total_all_time is not None else 0.0,
        )
