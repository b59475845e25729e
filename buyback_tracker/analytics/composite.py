"""Merge several raw sources into one logical entity."""

from typing import Sequence

import pandas as pd

from buyback_tracker.models.market_data import (
    CHART_POINTS,
    WINDOWS,
    BuybackData,
    DailyPoint,
    TimeSeries,
    Trends,
    WindowAggregate,
)


def _midnight_utc(day: str) -> int:
    return int(pd.Timestamp(day, tz="UTC").timestamp())


class CompositeMerger:
    """
    Combines the parts of a composite entity.

    Series and dollar totals are added. Trends are blended with weights taken
    from each part's total over ``weight_window`` days, so a small volatile
    source cannot swamp the trend of a large steady one.
    """

    def __init__(self, weight_window: int = 7) -> None:
        self.weight_window = weight_window

    def merge(
        self, parts: Sequence[TimeSeries], entity_key: str = "", data_kind: str = ""
    ) -> TimeSeries:
        """
        Date-aligned sum of the parts over the union of their dates.

        A part with no point on a date contributes 0 there. With no data in any
        part the result is an empty series.
        """
        if not entity_key and parts:
            entity_key = parts[0].entity_key
        if not data_kind and parts:
            data_kind = parts[0].data_kind

        columns = [part.to_frame()["value"] for part in parts if len(part)]
        if not columns:
            return TimeSeries.empty(entity_key, data_kind)

        aligned = pd.concat(columns, axis=1).fillna(0.0)
        merged = aligned.sum(axis=1).sort_index()

        points = tuple(
            DailyPoint(timestamp=_midnight_utc(day), date=day, value=float(value))
            for day, value in merged.items()
        )
        return TimeSeries(entity_key=entity_key, data_kind=data_kind, points=points)

    @staticmethod
    def weights(totals: Sequence[float]) -> list[float]:
        """Share of each part in the total; equal shares when the total is not positive."""
        if not totals:
            return []
        grand_total = sum(totals)
        if grand_total > 0:
            return [t / grand_total for t in totals]
        return [1 / len(totals)] * len(totals)

    def blend_trends(self, parts: Sequence[tuple[Trends, float]]) -> Trends:
        """
        Weighted blend of per-part trends.

        Args:
            parts: (trends, period total) per part

        Returns:
            Trends keyed by every window present in any part
        """
        if not parts:
            return {}
        weights = self.weights([total for _, total in parts])
        windows = sorted({w for trends, _ in parts for w in trends})
        return {
            w: sum(weight * trends.get(w, 0.0) for (trends, _), weight in zip(parts, weights))
            for w in windows
        }

    def merge_aggregates(self, parts: Sequence[WindowAggregate]) -> WindowAggregate:
        """Plain sums for dollar figures, weighted blend for trends."""
        windows = sorted({w for part in parts for w in part.sums}) or list(WINDOWS)
        trends = self.blend_trends(
            [(part.trends, part.sum(self.weight_window)) for part in parts]
        )
        return WindowAggregate(
            sums={w: sum(part.sums.get(w, 0.0) for part in parts) for w in windows},
            prior_sums={
                w: sum(part.prior_sums.get(w, 0.0) for part in parts) for w in windows
            },
            trends={w: trends.get(w, 0.0) for w in windows},
            total_24h=sum(part.total_24h for part in parts),
            total_all_time=sum(part.total_all_time for part in parts),
        )

    def merge_buyback(
        self, entity_key: str, parts: Sequence[BuybackData], chart_points: int = CHART_POINTS
    ) -> BuybackData:
        """Merge per-source pipeline results into one entity's result."""
        data_kind = parts[0].series.data_kind if parts else ""
        series = self.merge([p.series for p in parts], entity_key, data_kind)
        return BuybackData(
            series=series.tail(chart_points),
            aggregate=self.merge_aggregates([p.aggregate for p in parts]),
        )
