"""Tests for trailing-window aggregation."""

import pytest

from buyback_tracker.analytics.window import WindowAggregator, change
from buyback_tracker.models.market_data import WINDOWS, TimeSeries

from conftest import make_series


class TestChange:
    def test_zero_over_zero(self):
        assert change(0, 0) == 0

    def test_growth_from_zero(self):
        assert change(5, 0) == 100

    def test_doubling(self):
        assert change(14, 7) == 100

    def test_halving(self):
        assert change(7, 14) == -50


class TestWindowSums:
    def test_current_and_prior_sums(self):
        values = list(range(1, 21))  # 1..20
        agg = WindowAggregator().aggregate(make_series(values))

        assert agg.sums[7] == sum(values[-7:])
        assert agg.prior_sums[7] == sum(values[-14:-7])
        assert agg.sums[1] == 20
        assert agg.prior_sums[1] == 19

    def test_short_history_sums_what_exists(self):
        values = [1, 2, 3, 4, 5, 6, 7, 8, 9, 10]
        agg = WindowAggregator().aggregate(make_series(values))

        # 14-day window covers everything, nothing before it
        assert agg.sums[14] == 55
        assert agg.prior_sums[14] == 0
        assert agg.trends[14] == 100
        # 7-day prior window only has 3 points
        assert agg.sums[7] == sum(values[-7:])
        assert agg.prior_sums[7] == 1 + 2 + 3

    def test_empty_series(self):
        agg = WindowAggregator().aggregate(TimeSeries.empty("x", "dailyFees"))

        assert set(agg.sums) == set(WINDOWS)
        assert all(v == 0 for v in agg.sums.values())
        assert all(v == 0 for v in agg.trends.values())
        assert agg.avg_7d == 0
        assert agg.avg_30d == 0

    def test_averages_use_nominal_length(self):
        agg = WindowAggregator().aggregate(make_series([10, 10, 10]))

        assert agg.avg_7d == pytest.approx(30 / 7)
        assert agg.avg_30d == pytest.approx(30 / 30)

    def test_feed_totals_override_defaults(self):
        series = make_series([1, 2, 3])
        agg = WindowAggregator().aggregate(series)
        assert agg.total_24h == 3
        assert agg.total_all_time == 0

        agg = WindowAggregator().aggregate(series, total_24h=42.0, total_all_time=1000.0)
        assert agg.total_24h == 42.0
        assert agg.total_all_time == 1000.0


def test_fourteen_day_scenario():
    """Seven 10s then seven 20s, padded with 16 leading zeros to 30 days."""
    values = [0] * 16 + [10] * 7 + [20] * 7
    agg = WindowAggregator().aggregate(make_series(values))

    assert agg.sums[7] == 140
    assert agg.prior_sums[7] == 70
    assert agg.trends[7] == 100
    assert agg.sums[30] == 210
    assert agg.avg_30d == pytest.approx(7.0)
