"""Metrics engine settings configuration."""

from pydantic_settings import BaseSettings, SettingsConfigDict


class MetricsSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    METRICS_CACHE_TTL_SECONDS: int = 600
    METRICS_REQUEST_TIMEOUT_SECONDS: float = 25.0

    METRICS_RECENT_WINDOW_DAYS: int = 30
    METRICS_CHURN_WINDOW_DAYS: int = 90
    METRICS_LOOKAHEAD_DAYS: int = 30

    # Used for opportunity revenue when no annual price can be observed
    METRICS_DEFAULT_ANNUAL_PRICE_MINOR: int = 7900
    METRICS_FEE_FACTOR: float = 0.97
