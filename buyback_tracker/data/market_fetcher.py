"""Market data fetcher (CoinGecko-style API)."""

import asyncio
import contextlib
import logging
from typing import Any

import httpx

from buyback_tracker.config import Settings
from buyback_tracker.data.retry import BackoffPolicy
from buyback_tracker.data.schemas import CoinMarket, parse_coin_markets
from buyback_tracker.errors import MalformedResponse, UpstreamUnavailable
from buyback_tracker.models.market_data import MarketSnapshot


logger = logging.getLogger(__name__)

SOURCE = "market"

# CoinGecko caps per_page at 250
MAX_IDS_PER_REQUEST = 250


def to_snapshot(coin: CoinMarket) -> MarketSnapshot:
    """Map a coin entry to a snapshot; missing numbers are 0, market cap falls back to FDV."""
    market_cap = coin.market_cap or coin.fully_diluted_valuation or 0.0
    change_24h = (
        coin.price_change_percentage_24h_in_currency
        if coin.price_change_percentage_24h_in_currency is not None
        else coin.price_change_percentage_24h
    )
    return MarketSnapshot(
        price=max(coin.current_price or 0.0, 0.0),
        market_cap=max(market_cap, 0.0),
        volume_24h=max(coin.total_volume or 0.0, 0.0),
        price_change_24h=change_24h or 0.0,
        price_change_7d=coin.price_change_percentage_7d_in_currency or 0.0,
        price_change_14d=coin.price_change_percentage_14d_in_currency or 0.0,
        price_change_30d=coin.price_change_percentage_30d_in_currency or 0.0,
    )


class MarketFetcher:
    """Fetches price, market cap and volume snapshots for a batch of coins."""

    def __init__(
        self,
        settings: Settings | None = None,
        client: httpx.AsyncClient | None = None,
        policy: BackoffPolicy | None = None,
        limiter: asyncio.Semaphore | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self.policy = policy or BackoffPolicy.from_settings(self.settings)
        # Held per request attempt, released before any backoff sleep
        self.limiter = limiter
        self._client = client

    @property
    def client(self) -> httpx.AsyncClient:
        """Lazy-initialize HTTP client."""
        if self._client is None:
            headers = {"Accept": "application/json"}
            if self.settings.has_coingecko_key():
                headers["x-cg-demo-api-key"] = self.settings.coingecko_api_key
            self._client = httpx.AsyncClient(
                timeout=self.settings.request_timeout, headers=headers
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "MarketFetcher":
        return self

    async def __aexit__(self, *args) -> None:
        await self.aclose()

    async def _get_markets(self, ids: list[str]) -> Any:
        url = f"{self.settings.market_api_url.rstrip('/')}/coins/markets"
        params = {
            "vs_currency": "usd",
            "ids": ",".join(ids),
            "order": "market_cap_desc",
            "per_page": len(ids),
            "page": 1,
            "sparkline": "false",
            "price_change_percentage": "24h,7d,14d,30d",
        }
        try:
            async with self.limiter or contextlib.nullcontext():
                response = await self.client.get(url, params=params)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise UpstreamUnavailable(SOURCE, f"HTTP {e.response.status_code}") from e
        except httpx.HTTPError as e:
            raise UpstreamUnavailable(SOURCE, f"{type(e).__name__}: {e}") from e

        try:
            return response.json()
        except ValueError as e:
            raise MalformedResponse("coin markets: body is not JSON") from e

    async def fetch_snapshots(self, market_ids: list[str]) -> dict[str, MarketSnapshot]:
        """
        Fetch snapshots for the given coin ids.

        Args:
            market_ids: Coin ids; duplicates and blanks are ignored

        Returns:
            Dict mapping coin id to MarketSnapshot. Ids the feed does not know
            are absent; a malformed body yields an empty dict.

        Raises:
            UpstreamUnavailable: on transport failure or error status after retries
        """
        ids = sorted({i for i in market_ids if i})
        if not ids:
            return {}

        logger.info(f"Fetching market data for {len(ids)} coins...")
        results: dict[str, MarketSnapshot] = {}
        for start in range(0, len(ids), MAX_IDS_PER_REQUEST):
            batch = ids[start : start + MAX_IDS_PER_REQUEST]
            try:
                payload = await self.policy.run(
                    lambda batch=batch: self._get_markets(batch),
                    source=SOURCE,
                    label=f"markets ({len(batch)} ids)",
                )
                coins = parse_coin_markets(payload)
            except MalformedResponse as e:
                logger.warning(f"  Market data malformed, treated as empty ({e})")
                continue

            for coin in coins:
                results[coin.id] = to_snapshot(coin)

        missing = [i for i in ids if i not in results]
        if missing:
            logger.warning(f"  No market data for: {missing}")
        return results
