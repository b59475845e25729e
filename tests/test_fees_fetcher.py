"""Tests for the fee feed fetcher."""

import asyncio

import httpx
import pytest

from buyback_tracker.data.fees_fetcher import FeesFetcher, normalize_chart
from buyback_tracker.data.retry import BackoffPolicy
from buyback_tracker.errors import UpstreamUnavailable
from buyback_tracker.models.market_data import DataKind

from conftest import make_chart


def fetcher_for(settings, handler) -> FeesFetcher:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return FeesFetcher(settings, client=client)


class TestNormalizeChart:
    def test_dates_and_nulls(self):
        chart = make_chart([5.0, None, 7.5], start="2024-01-01")

        series = normalize_chart("aave", "dailyFees", chart)

        assert series.dates() == ["2024-01-01", "2024-01-02", "2024-01-03"]
        assert series.values() == [5.0, 0.0, 7.5]
        assert series.points[0].timestamp == 1704067200

    def test_sorted_and_deduplicated(self):
        chart = make_chart([1.0, 2.0, 3.0])
        unordered = [chart[2], chart[0], chart[1], [chart[1][0] + 3600, 9.0]]

        series = normalize_chart("aave", "dailyFees", unordered)

        assert series.dates() == ["2024-01-01", "2024-01-02", "2024-01-03"]
        assert series.values() == [1.0, 9.0, 3.0]

    def test_negative_values_clipped(self):
        series = normalize_chart("aave", "dailyFees", make_chart([-4.0, 2.0]))

        assert series.values() == [0.0, 2.0]

    def test_empty(self):
        assert len(normalize_chart("aave", "dailyFees", [])) == 0


@pytest.mark.asyncio
async def test_fetch_returns_full_history(settings):
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(
            200,
            json={
                "totalDataChart": make_chart([1.0] * 200),
                "total24h": 1.0,
                "totalAllTime": 12345.0,
            },
        )

    async with fetcher_for(settings, handler) as fetcher:
        summary = await fetcher.fetch("aave", DataKind.DAILY_HOLDERS_REVENUE)

    assert len(summary.series) == 200
    assert summary.total_24h == 1.0
    assert summary.total_all_time == 12345.0
    assert requests[0].url.path == "/summary/fees/aave"
    assert requests[0].url.params["dataType"] == "dailyHoldersRevenue"


@pytest.mark.asyncio
async def test_missing_chart_is_empty_series(settings):
    def handler(request):
        return httpx.Response(200, json={"total24h": None})

    async with fetcher_for(settings, handler) as fetcher:
        summary = await fetcher.fetch("aave")

    assert len(summary.series) == 0
    assert summary.total_24h is None


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body",
    [
        {"totalDataChart": "nope"},
        {"totalDataChart": 42},
        ["not", "an", "object"],
    ],
)
async def test_malformed_body_is_empty_series(settings, body):
    def handler(request):
        return httpx.Response(200, json=body)

    async with fetcher_for(settings, handler) as fetcher:
        summary = await fetcher.fetch("aave")

    assert len(summary.series) == 0


@pytest.mark.asyncio
async def test_bad_pairs_do_not_discard_chart(settings):
    chart = make_chart([5.0] * 30)
    chart[10] = [chart[10][0]]
    chart[11] = [chart[11][0], "n/a"]
    chart[12] = [chart[12][0], {"usd": 5.0}]
    chart.append(["later", 5.0])
    chart.append("garbage")

    def handler(request):
        return httpx.Response(200, json={"totalDataChart": chart, "total24h": 5.0})

    async with fetcher_for(settings, handler) as fetcher:
        summary = await fetcher.fetch("aave")

    values = summary.series.values()
    assert len(values) == 30
    assert values[10:13] == [0.0, 0.0, 0.0]
    assert sum(values) == 5.0 * 27
    assert summary.total_24h == 5.0


@pytest.mark.asyncio
async def test_non_json_body_is_empty_series(settings):
    def handler(request):
        return httpx.Response(200, text="<html>maintenance</html>")

    async with fetcher_for(settings, handler) as fetcher:
        summary = await fetcher.fetch("aave")

    assert len(summary.series) == 0


@pytest.mark.asyncio
async def test_error_status_retries_then_raises(settings):
    calls = 0

    def handler(request):
        nonlocal calls
        calls += 1
        return httpx.Response(503)

    async with fetcher_for(settings, handler) as fetcher:
        with pytest.raises(UpstreamUnavailable) as exc_info:
            await fetcher.fetch("aave")

    assert calls == settings.retry_max_attempts
    assert exc_info.value.source == "fees"
    assert "503" in exc_info.value.reason


@pytest.mark.asyncio
async def test_transport_error_recovers_on_retry(settings):
    calls = 0

    def handler(request):
        nonlocal calls
        calls += 1
        if calls == 1:
            raise httpx.ConnectError("connection refused", request=request)
        return httpx.Response(200, json={"totalDataChart": make_chart([2.0, 3.0])})

    async with fetcher_for(settings, handler) as fetcher:
        summary = await fetcher.fetch("aave")

    assert calls == 2
    assert summary.series.values() == [2.0, 3.0]


@pytest.mark.asyncio
async def test_empty_key_rejected(settings):
    async with fetcher_for(settings, lambda r: httpx.Response(200, json={})) as fetcher:
        with pytest.raises(ValueError):
            await fetcher.fetch("")


@pytest.mark.asyncio
async def test_fetch_overview(settings):
    def handler(request):
        assert request.url.path == "/overview/fees"
        return httpx.Response(
            200,
            json={"protocols": [{"name": "Aave", "slug": "aave-v3", "total24h": 50000}]},
        )

    async with fetcher_for(settings, handler) as fetcher:
        protocols = await fetcher.fetch_overview()

    assert len(protocols) == 1
    assert protocols[0].slug == "aave-v3"
    assert protocols[0].total_24h == 50000


@pytest.mark.asyncio
async def test_fetch_overview_malformed(settings):
    async with fetcher_for(settings, lambda r: httpx.Response(200, json={"protocols": 3})) as fetcher:
        assert await fetcher.fetch_overview() == []


@pytest.mark.asyncio
async def test_limiter_released_during_backoff(settings):
    limiter = asyncio.Semaphore(1)
    held_during_request = []
    responses = [httpx.Response(503), httpx.Response(200, json={"totalDataChart": make_chart([1.0])})]

    def handler(request):
        held_during_request.append(limiter.locked())
        return responses.pop(0)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    policy = BackoffPolicy(max_attempts=2, base_delay=0.2, total_timeout=5.0)
    async with FeesFetcher(settings, client=client, policy=policy, limiter=limiter) as fetcher:
        task = asyncio.create_task(fetcher.fetch("aave"))
        await asyncio.sleep(0.05)

        # the first attempt failed and the fetcher is sleeping before its retry
        assert not limiter.locked()
        await asyncio.wait_for(limiter.acquire(), timeout=0.1)
        limiter.release()

        summary = await task

    assert held_during_request == [True, True]
    assert len(summary.series) == 1
    assert not limiter.locked()
