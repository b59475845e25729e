"""Buyback metrics service: the cached fetch → aggregate → merge → derive pipeline."""

import asyncio
import logging
import re
from typing import Iterable

from buyback_tracker.analytics.composite import CompositeMerger
from buyback_tracker.analytics.derived import MetricsDeriver, sort_entity_metrics, summarize
from buyback_tracker.analytics.window import WindowAggregator, change
from buyback_tracker.config import BUYBACK_SLUGS, ENTITIES, Settings
from buyback_tracker.data.cache import MetricsCache
from buyback_tracker.data.fees_fetcher import FeesFetcher
from buyback_tracker.data.market_fetcher import MarketFetcher
from buyback_tracker.errors import UnknownEntity, UpstreamUnavailable
from buyback_tracker.models.market_data import (
    CHART_POINTS,
    BuybackData,
    DataKind,
    EntityConfig,
    EntityMetrics,
    MarketSnapshot,
    RevenueProtocol,
    TimeSeries,
)


logger = logging.getLogger(__name__)


class BuybackService:
    """
    Serves buyback metrics for tracked entities through a MetricsCache.

    Buyback aggregates and market snapshots are cached under separate keys with
    their own TTLs; derived ratios are recomputed from the two on every call.
    Every upstream request attempt goes through one semaphore shared by both
    fetchers. A slot is held only while a request is in flight, never during
    retry backoff.
    """

    def __init__(
        self,
        cache: MetricsCache,
        settings: Settings | None = None,
        fees: FeesFetcher | None = None,
        market: MarketFetcher | None = None,
        entities: dict[str, EntityConfig] | None = None,
        data_kind: DataKind = DataKind.DAILY_HOLDERS_REVENUE,
    ) -> None:
        self.cache = cache
        self.settings = settings or Settings()
        self.settings.validate()
        self._limiter = asyncio.Semaphore(self.settings.max_concurrency)
        self.fees = fees or FeesFetcher(self.settings, limiter=self._limiter)
        self.market = market or MarketFetcher(self.settings, limiter=self._limiter)
        for fetcher in (self.fees, self.market):
            if isinstance(fetcher, (FeesFetcher, MarketFetcher)) and fetcher.limiter is None:
                fetcher.limiter = self._limiter
        self.entities = entities if entities is not None else ENTITIES
        self.data_kind = data_kind
        self.aggregator = WindowAggregator()
        self.merger = CompositeMerger()
        self.deriver = MetricsDeriver()

    async def aclose(self) -> None:
        await self.fees.aclose()
        await self.market.aclose()

    async def __aenter__(self) -> "BuybackService":
        return self

    async def __aexit__(self, *args) -> None:
        await self.aclose()

    def entity(self, key: str) -> EntityConfig:
        try:
            return self.entities[key]
        except KeyError:
            raise UnknownEntity(key) from None

    # ---- pipeline -------------------------------------------------------

    def _empty_buyback(self, slug: str) -> BuybackData:
        series = TimeSeries.empty(slug, self.data_kind.value)
        return BuybackData(series=series, aggregate=self.aggregator.aggregate(series))

    async def _fetch_source(self, slug: str) -> BuybackData:
        """Fetch one fee feed slug and aggregate its full history."""
        summary = await self.fees.fetch(slug, self.data_kind)
        aggregate = self.aggregator.aggregate(
            summary.series, summary.total_24h, summary.total_all_time
        )
        return BuybackData(series=summary.series.tail(CHART_POINTS), aggregate=aggregate)

    async def _source(self, slug: str) -> BuybackData:
        """One composite part, cached on its own so a failed refresh serves its last value."""
        return await self.cache.get(
            f"buyback:source:{slug}",
            self.settings.buyback_ttl_seconds,
            lambda: self._fetch_source(slug),
        )

    async def _compute_buyback(self, entity: EntityConfig) -> BuybackData:
        if not entity.is_composite:
            return await self._fetch_source(entity.sources[0])

        results = await asyncio.gather(
            *(self._source(slug) for slug in entity.sources),
            return_exceptions=True,
        )
        parts: list[BuybackData] = []
        errors: list[BaseException] = []
        for slug, result in zip(entity.sources, results):
            if isinstance(result, Exception):
                logger.warning(
                    f"  {entity.key}: source {slug} failed with nothing cached ({result}), "
                    "counted as zero"
                )
                errors.append(result)
                parts.append(self._empty_buyback(slug))
            elif isinstance(result, BaseException):
                raise result
            else:
                parts.append(result)

        if len(errors) == len(entity.sources):
            raise UpstreamUnavailable(
                "fees", f"all {len(errors)} sources failed for {entity.key}"
            ) from errors[0]

        return self.merger.merge_buyback(entity.key, parts)

    async def _buyback(self, entity: EntityConfig) -> BuybackData:
        return await self.cache.get(
            f"buyback:{entity.key}",
            self.settings.buyback_ttl_seconds,
            lambda: self._compute_buyback(entity),
        )

    async def _fetch_snapshots(self, market_ids: list[str]) -> dict[str, MarketSnapshot]:
        return await self.market.fetch_snapshots(market_ids)

    async def _snapshots(self, market_ids: Iterable[str]) -> dict[str, MarketSnapshot]:
        """Cached market snapshots; on failure with nothing cached, an empty mapping."""
        ids = sorted({i for i in market_ids if i})
        if not ids:
            return {}
        try:
            return await self.cache.get(
                f"market:{','.join(ids)}",
                self.settings.market_ttl_seconds,
                lambda: self._fetch_snapshots(ids),
            )
        except UpstreamUnavailable as e:
            logger.warning(f"Market data unavailable ({e}); ratios will be zero")
            return {}

    def _assemble(
        self, entity: EntityConfig, buyback: BuybackData, snapshot: MarketSnapshot
    ) -> EntityMetrics:
        return EntityMetrics(
            entity=entity,
            series=buyback.series,
            trends=dict(buyback.aggregate.trends),
            metrics=self.deriver.derive(buyback.aggregate, snapshot),
            aggregate=buyback.aggregate,
            market=snapshot,
        )

    # ---- public interface ----------------------------------------------

    async def get_entity_metrics(self, entity_key: str) -> EntityMetrics:
        """
        Metrics for one entity.

        Raises:
            UnknownEntity: key not in the registry
            UpstreamUnavailable: buyback data has never been fetched and the
                current attempt failed
        """
        entity = self.entity(entity_key)
        buyback, snapshots = await asyncio.gather(
            self._buyback(entity), self._snapshots([entity.market_id])
        )
        snapshot = snapshots.get(entity.market_id, MarketSnapshot.empty())
        return self._assemble(entity, buyback, snapshot)

    async def list_entity_metrics(
        self, entity_keys: Iterable[str] | None = None
    ) -> list[EntityMetrics]:
        """
        Metrics for many entities, highest 30-day daily average first.

        Entities without buybacks in the last 30 days are left out, as are
        unknown keys and entities whose data could not be fetched.
        """
        keys = list(entity_keys) if entity_keys is not None else list(self.entities)
        entities: list[EntityConfig] = []
        for key in keys:
            if key in self.entities:
                entities.append(self.entities[key])
            else:
                logger.warning(f"Skipping unknown entity {key}")

        if not entities:
            return []

        buybacks, snapshots = await asyncio.gather(
            asyncio.gather(*(self._buyback(e) for e in entities), return_exceptions=True),
            self._snapshots(e.market_id for e in entities),
        )

        results: list[EntityMetrics] = []
        failed: list[str] = []
        for entity, buyback in zip(entities, buybacks):
            if isinstance(buyback, Exception):
                logger.warning(f"  {entity.key}: excluded ({buyback})")
                failed.append(entity.key)
                continue
            if isinstance(buyback, BaseException):
                raise buyback
            if buyback.aggregate.sum(30) == 0:
                continue
            snapshot = snapshots.get(entity.market_id, MarketSnapshot.empty())
            results.append(self._assemble(entity, buyback, snapshot))

        if failed:
            logger.warning(f"Failed to load {len(failed)} entities: {failed}")

        return sort_entity_metrics(results, "daily_avg", descending=True)

    async def _compute_revenue(self, limit: int, min_daily: float) -> list[RevenueProtocol]:
        protocols = await self.fees.fetch_overview()

        ranked = sorted(
            (p for p in protocols if p.total_24h and p.total_24h > min_daily),
            key=lambda p: p.total_24h or 0.0,
            reverse=True,
        )[:limit]

        rows = []
        for p in ranked:
            total_24h = p.total_24h or 0.0
            total_7d = p.total_7d or 0.0
            slug = p.slug or re.sub(r"\s+", "-", (p.name or "").lower())
            rows.append(
                RevenueProtocol(
                    slug=slug,
                    name=p.name or "Unknown",
                    category=p.category or "Other",
                    total_24h=total_24h,
                    total_7d=total_7d,
                    total_30d=p.total_30d or 0.0,
                    change_7d=change(total_24h, total_7d / 7),
                    has_buyback=slug in BUYBACK_SLUGS,
                    logo=p.logo or "",
                )
            )
        return rows

    async def list_revenue_leaders(
        self, limit: int = 30, min_daily: float = 10_000
    ) -> list[RevenueProtocol]:
        """
        Top protocols by 24h fees, flagging those known to run buybacks.

        ``change_7d`` compares the last 24h against the trailing 7-day daily
        average.
        """
        return await self.cache.get(
            f"revenue:overview:{limit}:{min_daily}",
            self.settings.revenue_ttl_seconds,
            lambda: self._compute_revenue(limit, min_daily),
        )


def _format_usd(value: float) -> str:
    if value >= 1e9:
        return f"${value / 1e9:.2f}B"
    if value >= 1e6:
        return f"${value / 1e6:.2f}M"
    if value >= 1e3:
        return f"${value / 1e3:.1f}K"
    return f"${value:.0f}"


def _print_leaderboard(items: list[EntityMetrics]) -> None:
    print("\nBuyback Leaderboard")
    summary = summarize(items)
    print(
        f"{summary.entity_count} protocols | buybacks {_format_usd(summary.total_annualized)}/yr | "
        f"market cap {_format_usd(summary.total_market_cap)} | "
        f"avg {summary.avg_to_market_cap_pct:.2f}% of market cap"
    )
    print("-" * 86)
    print(f"{'Protocol':20} | {'Daily avg':>10} | {'7d trend':>9} | {'Mcap %':>7} | {'P/E':>7} | {'Vol %':>6}")
    print("-" * 86)
    for item in items:
        m = item.metrics
        pe = f"{m.pe_ratio:7.1f}" if m.has_pe_ratio else f"{'N/A':>7}"
        print(
            f"{item.entity.name:20} | {_format_usd(m.daily_avg):>10} | "
            f"{item.trends.get(7, 0.0):+8.1f}% | {m.to_market_cap_pct:6.2f}% | "
            f"{pe} | {m.vs_volume_pct:5.2f}%"
        )


def _print_entity(item: EntityMetrics) -> None:
    m = item.metrics
    agg = item.aggregate
    print(f"\n{item.entity.name} ({item.entity.symbol})")
    print("=" * 60)
    print(f"  Daily avg (30d):   {_format_usd(m.daily_avg)}")
    print(f"  Annualized:        {_format_usd(m.annualized)}")
    print(f"  To market cap:     {m.to_market_cap_pct:.2f}%")
    print(f"  P/E:               {m.pe_ratio:.1f}" if m.has_pe_ratio else "  P/E:               N/A")
    print(f"  vs 24h volume:     {m.vs_volume_pct:.2f}%")
    print(f"  Price:             ${item.market.price:,.4f}")
    print("\n  Window |        Sum |   Trend")
    for window in sorted(agg.sums):
        print(f"  {window:>5}d | {_format_usd(agg.sum(window)):>10} | {agg.trend(window):+6.1f}%")
    print(f"\n  Chart points: {len(item.series)}")


def _print_revenue(rows: list[RevenueProtocol]) -> None:
    print("\nProtocol Revenue (24h)")
    print("-" * 70)
    for row in rows:
        flag = "buyback" if row.has_buyback else ""
        print(
            f"{row.name:25} | {_format_usd(row.total_24h):>10} | "
            f"{row.change_7d:+7.1f}% | {row.category:15} | {flag}"
        )


async def _run(args) -> None:
    settings = Settings()
    async with BuybackService(MetricsCache(), settings) as service:
        if args.revenue:
            _print_revenue(await service.list_revenue_leaders(limit=args.limit))
        elif args.entity:
            _print_entity(await service.get_entity_metrics(args.entity))
        else:
            items = await service.list_entity_metrics()
            _print_leaderboard(sort_entity_metrics(items, args.sort))


def main() -> None:
    """CLI entry point."""
    import argparse
    import sys

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )

    parser = argparse.ArgumentParser(description="Protocol buyback metrics")
    parser.add_argument("--entity", type=str, help="Show one entity in detail")
    parser.add_argument(
        "--sort",
        type=str,
        default="daily_avg",
        help="Leaderboard sort key: daily_avg, to_market_cap_pct, trend_7d, "
        "price_change_7d, market_cap, pe_ratio",
    )
    parser.add_argument("--revenue", action="store_true", help="Show the revenue leaderboard")
    parser.add_argument("--limit", type=int, default=30, help="Rows for --revenue")
    args = parser.parse_args()

    try:
        asyncio.run(_run(args))
    except UnknownEntity as e:
        print(f"{e}. Available: {', '.join(ENTITIES)}")
        sys.exit(1)
    except UpstreamUnavailable as e:
        print(f"API error: {e}")
        sys.exit(1)
    except ValueError as e:
        print(f"Configuration error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
