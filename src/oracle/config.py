"""Configuration system using pydantic-settings with environment variable loading."""

from decimal import Decimal
from typing import Literal

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class SourceSettings(BaseSettings):
    """External market data provider credentials and timeouts.

    A provider whose API key is empty is not registered at startup.
    """

    model_config = SettingsConfigDict(env_prefix="SOURCES_")

    polygon_api_key: SecretStr = SecretStr("")
    polygon_base_url: str = "https://api.polygon.io"
    iex_api_key: SecretStr = SecretStr("")
    iex_base_url: str = "https://cloud.iexapis.com/stable"
    alpha_vantage_api_key: SecretStr = SecretStr("")
    alpha_vantage_base_url: str = "https://www.alphavantage.co/query"

    request_timeout_seconds: float = 10.0  # per spot-price call
    corporate_action_timeout_seconds: float = 15.0


class ConsensusSettings(BaseSettings):
    """Price consensus and price cache parameters."""

    model_config = SettingsConfigDict(env_prefix="CONSENSUS_")

    outlier_sigma: Decimal = Decimal("3")  # reject beyond 3 std devs
    agreement_tolerance: Decimal = Decimal("0.01")  # 1% of consensus
    full_confidence_sources: int = 3
    stale_confidence_penalty: Decimal = Decimal("0.5")
    default_reliability: Decimal = Decimal("0.5")  # unknown source
    live_cache_ttl_seconds: float = 60.0
    historical_cache_ttl_seconds: float = 86400.0
    cache_max_entries: int = 1000  # LRU bound on the in-process price cache
    max_batch_symbols: int = 50


class FundingSettings(BaseSettings):
    """Funding rate synthesis constants.

    All rates are annualized percentages. Adjustments are additive on top of
    the premium-derived base rate, and the sum is clamped to the rate bounds.
    """

    model_config = SettingsConfigDict(env_prefix="FUNDING_")

    funding_multiplier: Decimal = Decimal("0.1")

    # Corporate action proximity
    corporate_action_near_days: int = 3
    corporate_action_near_adjustment: Decimal = Decimal("1.0")
    corporate_action_far_days: int = 7
    corporate_action_far_adjustment: Decimal = Decimal("0.5")

    liquidity_multiplier: Decimal = Decimal("0.3")
    volatility_threshold: Decimal = Decimal("0.2")
    volatility_multiplier: Decimal = Decimal("0.2")

    min_rate: Decimal = Decimal("-100")
    max_rate: Decimal = Decimal("100")
    hours_per_year: int = 8760  # 365 * 24
    validity_hours: int = 1

    # Neutral inputs when an estimator fails
    default_liquidity: Decimal = Decimal("0.5")
    default_volatility: Decimal = Decimal("0.25")


class AnalyticsSettings(BaseSettings):
    """Volatility and liquidity estimator configuration."""

    model_config = SettingsConfigDict(env_prefix="ANALYTICS_")

    lookback_days: int = 30
    trading_days_per_year: int = 252
    recent_activity_days: int = 7
    default_liquidity: Decimal = Decimal("0.5")

    # Liquidity blend weights (sum to 1.0)
    weight_data_availability: Decimal = Decimal("0.3")
    weight_price_stability: Decimal = Decimal("0.5")
    weight_recent_activity: Decimal = Decimal("0.2")


class RiskSettings(BaseSettings):
    """Leverage risk window, assessment and recommendation parameters."""

    model_config = SettingsConfigDict(env_prefix="RISK_")

    baseline_leverage: Decimal = Decimal("5.0")
    medium_leverage_ratio: Decimal = Decimal("0.7")
    high_leverage_ratio: Decimal = Decimal("0.5")
    critical_leverage_ratio: Decimal = Decimal("0.3")

    # Corporate action proximity
    corporate_action_high_days: int = 7
    corporate_action_critical_days: int = 3
    corporate_action_high_impact: Decimal = Decimal("0.8")
    corporate_action_critical_impact: Decimal = Decimal("1.0")
    window_days_before: int = 3
    window_days_after: int = 3

    # Volatility / liquidity
    volatility_high_threshold: Decimal = Decimal("0.4")
    volatility_critical_threshold: Decimal = Decimal("0.6")
    volatility_impact_divisor: Decimal = Decimal("0.5")
    volatility_impact_cap: Decimal = Decimal("0.9")
    liquidity_low_threshold: Decimal = Decimal("0.3")
    market_window_days: int = 7

    # "union" widens bounds across every factor; "max_severity" keeps only the
    # ranges of the most severe factors.
    window_bounds_policy: Literal["union", "max_severity"] = "union"

    # Recommendations
    leverage_buffer: Decimal = Decimal("1.1")
    baseline_threshold: Decimal = Decimal("0.9")
    gradual_target_ratio: Decimal = Decimal("0.8")
    immediate_deleverage_days: int = 3
    gradual_deleverage_days: int = 7
    recent_window_days: int = 7


class DatabaseSettings(BaseSettings):
    """SQLite persistence location."""

    model_config = SettingsConfigDict(env_prefix="DATABASE_")

    db_path: str = "data/oracle.db"


class ApiSettings(BaseSettings):
    """HTTP API server configuration."""

    model_config = SettingsConfigDict(env_prefix="API_")

    host: str = "0.0.0.0"
    port: int = 8080
    enabled: bool = True
    max_page_size: int = 100


class UpdaterSettings(BaseSettings):
    """Background refresh loop for tracked symbols.

    Controls which symbols get corporate actions reconciled and risk
    recommendations regenerated, and how often.
    All fields configurable via UPDATER_ environment variable prefix.
    """

    model_config = SettingsConfigDict(env_prefix="UPDATER_")

    enabled: bool = True
    tracked_symbols: list[str] = ["AAPL", "MSFT", "GOOGL"]
    interval_seconds: int = 3600
    corporate_action_lookback_days: int = 730  # two years


class AppSettings(BaseSettings):
    """Root application settings, composing all sub-settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
    )

    log_level: str = "INFO"
    log_format: str = "console"  # "json" in production
    sources: SourceSettings = SourceSettings()
    consensus: ConsensusSettings = ConsensusSettings()
    funding: FundingSettings = FundingSettings()
    analytics: AnalyticsSettings = AnalyticsSettings()
    risk: RiskSettings = RiskSettings()
    database: DatabaseSettings = DatabaseSettings()
    api: ApiSettings = ApiSettings()
    updater: UpdaterSettings = UpdaterSettings()
