"""Configuration management for the recurring-order engine."""

from decimal import Decimal, InvalidOperation
from typing import Dict, Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# =============================================================================
# System Configuration
# =============================================================================


class SystemConfig(BaseSettings):
    """System-level configuration settings."""

    model_config = SettingsConfigDict(
        env_file=".env", case_sensitive=False, extra="ignore", populate_by_name=True
    )

    # Environment
    environment: Literal["development", "staging", "production"] = Field(
        default="development", validation_alias="ENVIRONMENT"
    )
    app_name: str = Field(default="AutoInvest", validation_alias="APP_NAME")
    app_version: str = Field(default="1.0.0", validation_alias="APP_VERSION")

    # Zone used for all calendar arithmetic; None means the process's local zone
    timezone: Optional[str] = Field(default=None, validation_alias="TIMEZONE")


# =============================================================================
# Scheduler Configuration
# =============================================================================


class SchedulerConfig(BaseSettings):
    """Scan loop and execution settings."""

    model_config = SettingsConfigDict(
        env_file=".env", case_sensitive=False, extra="ignore", populate_by_name=True
    )

    # Cadence of the background scan (one hour)
    scan_interval_seconds: float = Field(
        default=3600.0, validation_alias="SCAN_INTERVAL_SECONDS"
    )

    # Upper bound on a single price lookup; a timeout counts as unavailable
    price_timeout_seconds: float = Field(
        default=10.0, validation_alias="PRICE_TIMEOUT_SECONDS"
    )

    # Distinct orders executed concurrently within one scan
    max_concurrent_executions: int = Field(
        default=4, validation_alias="MAX_CONCURRENT_EXECUTIONS"
    )

    # Use the ledger's last-seen price when the feed is unavailable
    allow_stale_price_fallback: bool = Field(
        default=False, validation_alias="ALLOW_STALE_PRICE_FALLBACK"
    )

    @field_validator("scan_interval_seconds", "price_timeout_seconds")
    @classmethod
    def validate_positive_seconds(cls, v):
        if v <= 0:
            raise ValueError("Intervals and timeouts must be positive")
        return v

    @field_validator("max_concurrent_executions")
    @classmethod
    def validate_concurrency(cls, v):
        if v < 1:
            raise ValueError("max_concurrent_executions must be at least 1")
        return v


# =============================================================================
# Order Limits Configuration
# =============================================================================


class OrderLimitsConfig(BaseSettings):
    """Bounds applied to every recurring order."""

    model_config = SettingsConfigDict(
        env_file=".env", case_sensitive=False, extra="ignore", populate_by_name=True
    )

    min_amount: Decimal = Field(default=Decimal("10"), validation_alias="ORDER_MIN_AMOUNT")
    max_amount: Decimal = Field(default=Decimal("1000"), validation_alias="ORDER_MAX_AMOUNT")
    currency: str = Field(default="GBP", validation_alias="ORDER_CURRENCY")


# =============================================================================
# Price Feed Configuration
# =============================================================================


class PriceFeedConfig(BaseSettings):
    """Price feed selection and settings."""

    model_config = SettingsConfigDict(
        env_file=".env", case_sensitive=False, extra="ignore", populate_by_name=True
    )

    provider: Literal["static", "ccxt"] = Field(
        default="static", validation_alias="PRICE_FEED_PROVIDER"
    )

    # ccxt settings
    exchange_id: str = Field(default="bybit", validation_alias="PRICE_FEED_EXCHANGE")
    quote_currency: str = Field(default="USDT", validation_alias="PRICE_FEED_QUOTE")

    # Static prices (stored as "AAPL=150,TSLA=200", parsed to dict)
    static_prices_str: str = Field(
        default="AAPL=150,TSLA=200,MSFT=320", validation_alias="STATIC_PRICES"
    )

    @property
    def static_prices(self) -> Dict[str, Decimal]:
        """Parse static_prices string into a dict."""
        prices: Dict[str, Decimal] = {}
        for item in self.static_prices_str.split(","):
            if "=" not in item:
                continue
            symbol, _, raw = item.partition("=")
            try:
                prices[symbol.strip()] = Decimal(raw.strip())
            except InvalidOperation:
                continue
        return prices


# =============================================================================
# Database Configuration
# =============================================================================


class DatabaseConfig(BaseSettings):
    """Database configuration."""

    model_config = SettingsConfigDict(
        env_file=".env", case_sensitive=False, extra="ignore", populate_by_name=True
    )

    database_url: str = Field(
        default="sqlite:///./data/autoinvest.db", validation_alias="DATABASE_URL"
    )


# =============================================================================
# Logging Configuration
# =============================================================================


class LoggingConfig(BaseSettings):
    """Logging configuration."""

    model_config = SettingsConfigDict(
        env_file=".env", case_sensitive=False, extra="ignore", populate_by_name=True
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", validation_alias="LOG_LEVEL"
    )
    log_file: str = Field(default="logs/autoinvest.log", validation_alias="LOG_FILE")


# =============================================================================
# Demo Configuration
# =============================================================================


class DemoConfig(BaseSettings):
    """Settings for demo seeding."""

    model_config = SettingsConfigDict(
        env_file=".env", case_sensitive=False, extra="ignore", populate_by_name=True
    )

    minimum_balance: Decimal = Field(
        default=Decimal("1000"), validation_alias="DEMO_MINIMUM_BALANCE"
    )


# =============================================================================
# Global Configuration Container
# =============================================================================


class AutoInvestConfig:
    """
    Container for all configuration sections.

    Usage:
        from autoinvest.core.config import app_config

        interval = app_config.scheduler.scan_interval_seconds
        if amount > app_config.limits.max_amount:
            ...
    """

    def __init__(self):
        self.system = SystemConfig()
        self.scheduler = SchedulerConfig()
        self.limits = OrderLimitsConfig()
        self.price_feed = PriceFeedConfig()
        self.database = DatabaseConfig()
        self.logging = LoggingConfig()
        self.demo = DemoConfig()

    def validate_configuration(self) -> Dict:
        """Check cross-section consistency and return a report."""
        issues = []

        if self.limits.min_amount <= 0:
            issues.append("ORDER_MIN_AMOUNT must be positive")
        if self.limits.min_amount > self.limits.max_amount:
            issues.append("ORDER_MIN_AMOUNT must not exceed ORDER_MAX_AMOUNT")
        if self.scheduler.price_timeout_seconds >= self.scheduler.scan_interval_seconds:
            issues.append("PRICE_TIMEOUT_SECONDS must be shorter than the scan interval")
        if self.price_feed.provider == "static" and not self.price_feed.static_prices:
            issues.append("STATIC_PRICES is empty; every order will fail price lookup")

        if self.system.timezone:
            from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

            try:
                ZoneInfo(self.system.timezone)
            except (ZoneInfoNotFoundError, ValueError):
                issues.append(f"Unknown TIMEZONE: {self.system.timezone}")

        return {"valid": len(issues) == 0, "issues": issues}


# =============================================================================
# Global Configuration Instances
# =============================================================================

app_config = AutoInvestConfig()


__all__ = [
    "AutoInvestConfig",
    "app_config",
    "SystemConfig",
    "SchedulerConfig",
    "OrderLimitsConfig",
    "PriceFeedConfig",
    "DatabaseConfig",
    "LoggingConfig",
    "DemoConfig",
]
