"""Configuration settings for the buyback tracker."""

from dataclasses import dataclass, field
import os

from dotenv import load_dotenv

from buyback_tracker.models.market_data import EntityConfig


load_dotenv()


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return float(raw)


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


# Tracked protocols. Keys are our stable entity keys; sources are fee feed slugs.
ENTITIES: dict[str, EntityConfig] = {
    "hyperliquid": EntityConfig(
        key="hyperliquid",
        name="Hyperliquid",
        symbol="HYPE",
        market_id="hyperliquid",
        sources=("hyperliquid",),
    ),
    "pump.fun": EntityConfig(
        key="pump.fun",
        name="pump.fun",
        symbol="PUMP",
        market_id="pump-fun",
        sources=("pump.fun",),
    ),
    "aerodrome": EntityConfig(
        key="aerodrome",
        name="Aerodrome",
        symbol="AERO",
        market_id="aerodrome-finance",
        sources=("aerodrome",),
    ),
    "curve-dex": EntityConfig(
        key="curve-dex",
        name="Curve",
        symbol="CRV",
        market_id="curve-dao-token",
        sources=("curve-dex",),
    ),
    "aave": EntityConfig(
        key="aave",
        name="Aave",
        symbol="AAVE",
        market_id="aave",
        sources=("aave",),
    ),
    "pendle": EntityConfig(
        key="pendle",
        name="Pendle",
        symbol="PENDLE",
        market_id="pendle",
        sources=("pendle",),
    ),
    "raydium": EntityConfig(
        key="raydium",
        name="Raydium",
        symbol="RAY",
        market_id="raydium",
        sources=("raydium",),
    ),
    "gmx": EntityConfig(
        key="gmx",
        name="GMX",
        symbol="GMX",
        market_id="gmx",
        sources=("gmx",),
    ),
    "banana-gun-trading": EntityConfig(
        key="banana-gun-trading",
        name="Banana Gun",
        symbol="BANANA",
        market_id="banana-gun",
        sources=("banana-gun-trading",),
    ),
    "maker": EntityConfig(
        key="maker",
        name="Maker (Sky)",
        symbol="MKR",
        market_id="maker",
        sources=("maker",),
    ),
    # Perps and aggregator revenue both fund JUP buybacks
    "jupiter": EntityConfig(
        key="jupiter",
        name="Jupiter",
        symbol="JUP",
        market_id="jupiter-exchange-solana",
        sources=("jupiter-perpetual-exchange", "jupiter-aggregator"),
    ),
}

# Fee feed slugs known to route revenue into token buybacks
BUYBACK_SLUGS: frozenset[str] = frozenset(
    {
        "hyperliquid-perps",
        "pump.fun",
        "ore-protocol",
        "sky-lending",
        "aave-v3",
        "raydium-amm",
        "pancakeswap-amm-v3",
        "banana-gun-trading",
        "helium-network",
        "jupiter-perpetual-exchange",
        "jupiter-aggregator",
        "letsbonk.fun",
        "apex-omni",
        "graphite-protocol",
        "launch-coin-on-believe",
        "clanker",
    }
)


@dataclass
class Settings:
    """Application settings."""

    fees_api_url: str = field(
        default_factory=lambda: os.getenv("BUYBACK_FEES_API_URL", "https://api.llama.fi")
    )
    market_api_url: str = field(
        default_factory=lambda: os.getenv(
            "BUYBACK_MARKET_API_URL", "https://api.coingecko.com/api/v3"
        )
    )
    coingecko_api_key: str = field(
        default_factory=lambda: os.getenv("COINGECKO_API_KEY", "")
    )
    # Cache TTLs (seconds): market data moves faster than daily buyback totals
    buyback_ttl_seconds: float = field(
        default_factory=lambda: _env_float("BUYBACK_TTL_SECONDS", 120.0)
    )
    market_ttl_seconds: float = field(
        default_factory=lambda: _env_float("MARKET_TTL_SECONDS", 30.0)
    )
    revenue_ttl_seconds: float = field(
        default_factory=lambda: _env_float("REVENUE_TTL_SECONDS", 120.0)
    )
    max_concurrency: int = field(
        default_factory=lambda: _env_int("BUYBACK_MAX_CONCURRENCY", 8)
    )
    retry_max_attempts: int = field(
        default_factory=lambda: _env_int("BUYBACK_RETRY_ATTEMPTS", 3)
    )
    retry_base_delay: float = field(
        default_factory=lambda: _env_float("BUYBACK_RETRY_BASE_DELAY", 0.5)
    )
    retry_multiplier: float = field(
        default_factory=lambda: _env_float("BUYBACK_RETRY_MULTIPLIER", 2.0)
    )
    request_timeout: float = field(
        default_factory=lambda: _env_float("BUYBACK_REQUEST_TIMEOUT", 30.0)
    )
    fetch_timeout: float = field(
        default_factory=lambda: _env_float("BUYBACK_FETCH_TIMEOUT", 60.0)
    )

    def validate(self) -> None:
        """Validate settings."""
        for name in ("fees_api_url", "market_api_url"):
            if not getattr(self, name):
                raise ValueError(f"{name} must not be empty")
        for name in (
            "buyback_ttl_seconds",
            "market_ttl_seconds",
            "revenue_ttl_seconds",
            "request_timeout",
            "fetch_timeout",
        ):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")
        if self.max_concurrency < 1:
            raise ValueError("max_concurrency must be at least 1")
        if self.retry_max_attempts < 1:
            raise ValueError("retry_max_attempts must be at least 1")
        if self.retry_base_delay < 0 or self.retry_multiplier < 1:
            raise ValueError(
                "retry_base_delay must be >= 0 and retry_multiplier must be >= 1"
            )

    def has_coingecko_key(self) -> bool:
        """Check if a CoinGecko API key is configured."""
        return bool(self.coingecko_api_key)
