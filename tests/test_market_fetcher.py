"""Tests for the market snapshot fetcher."""

import asyncio

import httpx
import pytest

from buyback_tracker.data.market_fetcher import MarketFetcher
from buyback_tracker.errors import UpstreamUnavailable


def fetcher_for(settings, handler) -> MarketFetcher:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return MarketFetcher(settings, client=client)


COINS = [
    {
        "id": "aave",
        "current_price": 100.0,
        "market_cap": 1_500_000_000,
        "total_volume": 200_000_000,
        "price_change_percentage_24h": 1.5,
        "price_change_percentage_7d_in_currency": -3.0,
        "price_change_percentage_30d_in_currency": 12.0,
    },
    {
        "id": "pump-fun",
        "current_price": 0.005,
        "market_cap": None,
        "fully_diluted_valuation": 5_000_000_000,
        "total_volume": None,
    },
]


@pytest.mark.asyncio
async def test_fetch_snapshots(settings):
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(200, json=COINS)

    async with fetcher_for(settings, handler) as fetcher:
        snapshots = await fetcher.fetch_snapshots(["pump-fun", "aave", "aave", ""])

    params = requests[0].url.params
    assert params["ids"] == "aave,pump-fun"
    assert params["vs_currency"] == "usd"
    assert params["price_change_percentage"] == "24h,7d,14d,30d"

    aave = snapshots["aave"]
    assert aave.price == 100.0
    assert aave.market_cap == 1_500_000_000
    assert aave.volume_24h == 200_000_000
    assert aave.price_change_24h == 1.5
    assert aave.price_change_7d == -3.0
    assert aave.price_change_14d == 0.0

    pump = snapshots["pump-fun"]
    assert pump.market_cap == 5_000_000_000
    assert pump.volume_24h == 0.0


@pytest.mark.asyncio
async def test_no_ids_makes_no_request(settings):
    def handler(request):
        raise AssertionError("unexpected request")

    async with fetcher_for(settings, handler) as fetcher:
        assert await fetcher.fetch_snapshots([]) == {}


@pytest.mark.asyncio
async def test_malformed_body_is_empty(settings):
    async with fetcher_for(settings, lambda r: httpx.Response(200, json={"error": "x"})) as fetcher:
        assert await fetcher.fetch_snapshots(["aave"]) == {}


@pytest.mark.asyncio
async def test_rate_limited_raises_after_retries(settings):
    calls = 0

    def handler(request):
        nonlocal calls
        calls += 1
        return httpx.Response(429)

    async with fetcher_for(settings, handler) as fetcher:
        with pytest.raises(UpstreamUnavailable):
            await fetcher.fetch_snapshots(["aave"])

    assert calls == settings.retry_max_attempts


def test_api_key_header(settings):
    settings.coingecko_api_key = "demo-key"
    fetcher = MarketFetcher(settings)

    assert fetcher.client.headers["x-cg-demo-api-key"] == "demo-key"


@pytest.mark.asyncio
async def test_request_holds_shared_limiter(settings):
    limiter = asyncio.Semaphore(1)
    held = []

    def handler(request):
        held.append(limiter.locked())
        return httpx.Response(200, json=COINS)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    async with MarketFetcher(settings, client=client, limiter=limiter) as fetcher:
        snapshots = await fetcher.fetch_snapshots(["aave"])

    assert held == [True]
    assert not limiter.locked()
    assert "aave" in snapshots
