"""Response schemas for the upstream fee and market feeds.

Optional fields carry explicit defaults so callers never inspect raw JSON:
a missing or null ``totalDataChart`` is an empty chart, missing market
fields are zero.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from buyback_tracker.errors import MalformedResponse


def _scalar_or_none(value: Any) -> Any:
    return value if isinstance(value, (int, float, str)) else None


class FeesSummaryResponse(BaseModel):
    """Body of ``GET /summary/fees/{slug}``."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    total_data_chart: list[tuple[Any, Any]] = Field(default_factory=list, alias="totalDataChart")
    total_24h: float | None = Field(default=None, alias="total24h")
    total_7d: float | None = Field(default=None, alias="total7d")
    total_30d: float | None = Field(default=None, alias="total30d")
    total_all_time: float | None = Field(default=None, alias="totalAllTime")

    @field_validator("total_data_chart", mode="before")
    @classmethod
    def _lenient_chart(cls, value: Any) -> Any:
        # Bad entries are blanked one by one; only a non-list chart is rejected.
        if value is None:
            return []
        if not isinstance(value, list):
            return value
        pairs = []
        for entry in value:
            if isinstance(entry, (list, tuple)):
                entry = list(entry[:2]) + [None] * (2 - len(entry[:2]))
                pairs.append(tuple(_scalar_or_none(v) for v in entry))
            else:
                pairs.append((None, None))
        return pairs


class FeesOverviewProtocol(BaseModel):
    """One protocol entry of ``GET /overview/fees``."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    name: str | None = None
    slug: str | None = None
    logo: str | None = None
    category: str | None = None
    total_24h: float | None = Field(default=None, alias="total24h")
    total_7d: float | None = Field(default=None, alias="total7d")
    total_30d: float | None = Field(default=None, alias="total30d")


class FeesOverviewResponse(BaseModel):
    """Body of ``GET /overview/fees``."""

    model_config = ConfigDict(extra="ignore")

    protocols: list[FeesOverviewProtocol] = Field(default_factory=list)

    @field_validator("protocols", mode="before")
    @classmethod
    def _null_protocols_is_empty(cls, value: Any) -> Any:
        return [] if value is None else value


class CoinMarket(BaseModel):
    """One coin entry of ``GET /coins/markets``."""

    model_config = ConfigDict(extra="ignore")

    id: str
    current_price: float | None = None
    market_cap: float | None = None
    fully_diluted_valuation: float | None = None
    total_volume: float | None = None
    price_change_percentage_24h: float | None = None
    price_change_percentage_24h_in_currency: float | None = None
    price_change_percentage_7d_in_currency: float | None = None
    price_change_percentage_14d_in_currency: float | None = None
    price_change_percentage_30d_in_currency: float | None = None


_COIN_MARKETS = TypeAdapter(list[CoinMarket])


def parse_fees_summary(payload: Any) -> FeesSummaryResponse:
    """Validate a fee summary body, raising MalformedResponse on a bad shape."""
    try:
        return FeesSummaryResponse.model_validate(payload)
    except ValidationError as e:
        raise MalformedResponse(f"fee summary: {e.error_count()} validation errors") from e


def parse_fees_overview(payload: Any) -> FeesOverviewResponse:
    """Validate a fee overview body, raising MalformedResponse on a bad shape."""
    try:
        return FeesOverviewResponse.model_validate(payload)
    except ValidationError as e:
        raise MalformedResponse(f"fee overview: {e.error_count()} validation errors") from e


def parse_coin_markets(payload: Any) -> list[CoinMarket]:
    """Validate a coin markets body, raising MalformedResponse on a bad shape."""
    try:
        return _COIN_MARKETS.validate_python(payload)
    except ValidationError as e:
        raise MalformedResponse(f"coin markets: {e.error_count()} validation errors") from e
