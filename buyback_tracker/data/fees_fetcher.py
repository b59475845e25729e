"""Fee/revenue feed fetcher (DefiLlama-style API)."""

import asyncio
import contextlib
import logging
from typing import Any

import httpx
import pandas as pd

from buyback_tracker.config import Settings
from buyback_tracker.data.retry import BackoffPolicy
from buyback_tracker.data.schemas import (
    FeesOverviewProtocol,
    FeesSummaryResponse,
    parse_fees_overview,
    parse_fees_summary,
)
from buyback_tracker.errors import MalformedResponse, UpstreamUnavailable
from buyback_tracker.models.market_data import (
    DailyPoint,
    DataKind,
    FeesSummary,
    TimeSeries,
)


logger = logging.getLogger(__name__)

SOURCE = "fees"


def normalize_chart(
    entity_key: str, data_kind: str, chart: list[tuple[Any, Any]]
) -> TimeSeries:
    """
    Turn raw ``[timestamp, value]`` pairs into a TimeSeries.

    Null or non-numeric values become 0 and negatives are clipped to 0. Pairs
    without a usable timestamp are dropped. Points are sorted ascending and a
    repeated date keeps its last point.

    Args:
        entity_key: Key recorded on the series
        data_kind: Kind tag recorded on the series
        chart: Raw pairs as returned by the feed

    Returns:
        TimeSeries (empty when chart is empty)
    """
    if not chart:
        return TimeSeries.empty(entity_key, data_kind)

    df = pd.DataFrame(chart, columns=["timestamp", "value"])
    df["timestamp"] = pd.to_numeric(df["timestamp"], errors="coerce")
    df = df.dropna(subset=["timestamp"])
    df["timestamp"] = df["timestamp"].astype("int64")
    df["value"] = pd.to_numeric(df["value"], errors="coerce").fillna(0.0).clip(lower=0.0)
    df["date"] = pd.to_datetime(df["timestamp"], unit="s", utc=True).dt.strftime("%Y-%m-%d")
    df = df.sort_values("timestamp", kind="stable").drop_duplicates("date", keep="last")

    points = tuple(
        DailyPoint(timestamp=int(ts), date=str(day), value=float(val))
        for ts, day, val in zip(df["timestamp"], df["date"], df["value"])
    )
    return TimeSeries(entity_key=entity_key, data_kind=data_kind, points=points)


class FeesFetcher:
    """Fetches daily fee/revenue series from the fee feed."""

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
            self._client = httpx.AsyncClient(timeout=self.settings.request_timeout)
        return self._client

    async def aclose(self) -> None:
        """Close HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "FeesFetcher":
        return self

    async def __aexit__(self, *args) -> None:
        await self.aclose()

    async def _get_json(self, path: str, params: dict | None = None) -> Any:
        """Single GET attempt; errors are mapped to UpstreamUnavailable."""
        url = f"{self.settings.fees_api_url.rstrip('/')}{path}"
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
            raise MalformedResponse(f"{path}: body is not JSON") from e

    async def fetch(
        self, entity_key: str, data_kind: DataKind | str = DataKind.DAILY_HOLDERS_REVENUE
    ) -> FeesSummary:
        """
        Fetch the full daily history for one fee feed slug.

        Args:
            entity_key: Fee feed slug
            data_kind: Revenue definition to request

        Returns:
            FeesSummary with the complete normalised series; empty when the feed
            has no chart data or answers with an unexpected shape

        Raises:
            UpstreamUnavailable: on transport failure or error status after retries
        """
        if not entity_key:
            raise ValueError("entity_key must be a non-empty string")
        kind = data_kind.value if isinstance(data_kind, DataKind) else str(data_kind)
        logger.info(f"Fetching {kind} for {entity_key}...")

        try:
            payload = await self.policy.run(
                lambda: self._get_json(f"/summary/fees/{entity_key}", {"dataType": kind}),
                source=SOURCE,
                label=f"fees {entity_key}",
            )
            body = parse_fees_summary(payload)
        except MalformedResponse as e:
            logger.warning(f"  {entity_key}: malformed response treated as no data ({e})")
            body = FeesSummaryResponse()

        series = normalize_chart(entity_key, kind, body.total_data_chart)
        if not series:
            logger.info(f"  {entity_key}: no chart data")
        else:
            logger.info(f"  {entity_key}: {len(series)} daily points")

        return FeesSummary(
            series=series,
            total_24h=body.total_24h,
            total_all_time=body.total_all_time,
        )

    async def fetch_overview(self) -> list[FeesOverviewProtocol]:
        """
        Fetch the fee overview listing for all protocols.

        Returns:
            Protocol entries; empty when the body has an unexpected shape

        Raises:
            UpstreamUnavailable: on transport failure or error status after retries
        """
        logger.info("Fetching fee overview...")
        try:
            payload = await self.policy.run(
                lambda: self._get_json("/overview/fees"),
                source=SOURCE,
                label="fees overview",
            )
            return parse_fees_overview(payload).protocols
        except MalformedResponse as e:
            logger.warning(f"  Fee overview malformed, treated as empty ({e})")
            return []
