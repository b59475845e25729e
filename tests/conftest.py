"""Shared builders for the test suite."""

from datetime import date, datetime, timedelta, timezone

import pytest

from buyback_tracker.config import Settings
from buyback_tracker.models.market_data import DailyPoint, TimeSeries


def make_series(
    values: list[float],
    start: str = "2024-01-01",
    entity_key: str = "test",
    data_kind: str = "dailyHoldersRevenue",
) -> TimeSeries:
    """Consecutive daily points starting at ``start`` (UTC midnight)."""
    first = date.fromisoformat(start)
    points = []
    for offset, value in enumerate(values):
        day = first + timedelta(days=offset)
        ts = int(datetime(day.year, day.month, day.day, tzinfo=timezone.utc).timestamp())
        points.append(DailyPoint(timestamp=ts, date=day.isoformat(), value=float(value)))
    return TimeSeries(entity_key=entity_key, data_kind=data_kind, points=tuple(points))


def make_chart(values: list[float | None], start: str = "2024-01-01") -> list[list]:
    """Raw ``[timestamp, value]`` pairs as the fee feed returns them."""
    first = date.fromisoformat(start)
    chart = []
    for offset, value in enumerate(values):
        day = first + timedelta(days=offset)
        ts = int(datetime(day.year, day.month, day.day, tzinfo=timezone.utc).timestamp())
        chart.append([ts, value])
    return chart


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def settings() -> Settings:
    return Settings(
        fees_api_url="https://fees.test",
        market_api_url="https://market.test/api/v3",
        coingecko_api_key="",
        buyback_ttl_seconds=120.0,
        market_ttl_seconds=30.0,
        revenue_ttl_seconds=120.0,
        max_concurrency=4,
        retry_max_attempts=3,
        retry_base_delay=0.0,
        retry_multiplier=2.0,
        request_timeout=5.0,
        fetch_timeout=5.0,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()
