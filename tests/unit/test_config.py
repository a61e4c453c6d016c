"""
Unit tests for configuration.

Tests cover:
- Section defaults
- Environment variable loading
- Validators and cross-section validation
"""
from decimal import Decimal

import pytest
from pydantic import ValidationError

from autoinvest.core.config import (
    AutoInvestConfig,
    DatabaseConfig,
    LoggingConfig,
    OrderLimitsConfig,
    PriceFeedConfig,
    SchedulerConfig,
    SystemConfig,
)


class TestSchedulerConfig:
    """Test scheduler configuration."""

    def test_defaults(self):
        config = SchedulerConfig(_env_file=None)
        assert config.scan_interval_seconds == 3600
        assert config.price_timeout_seconds == 10
        assert config.max_concurrent_executions == 4
        assert config.allow_stale_price_fallback is False

    def test_from_environment(self, monkeypatch):
        monkeypatch.setenv("SCAN_INTERVAL_SECONDS", "60")
        monkeypatch.setenv("ALLOW_STALE_PRICE_FALLBACK", "true")

        config = SchedulerConfig(_env_file=None)

        assert config.scan_interval_seconds == 60
        assert config.allow_stale_price_fallback is True

    @pytest.mark.parametrize("field", ["scan_interval_seconds", "price_timeout_seconds"])
    def test_non_positive_seconds_rejected(self, field):
        with pytest.raises(ValidationError):
            SchedulerConfig(**{field: 0})

    def test_concurrency_at_least_one(self):
        with pytest.raises(ValidationError):
            SchedulerConfig(max_concurrent_executions=0)


class TestOrderLimitsConfig:
    """Test order limit configuration."""

    def test_defaults(self):
        config = OrderLimitsConfig(_env_file=None)
        assert config.min_amount == Decimal("10")
        assert config.max_amount == Decimal("1000")
        assert config.currency == "GBP"

    def test_from_environment(self, monkeypatch):
        monkeypatch.setenv("ORDER_MAX_AMOUNT", "250.50")
        config = OrderLimitsConfig(_env_file=None)
        assert config.max_amount == Decimal("250.50")


class TestPriceFeedConfig:
    """Test price feed configuration."""

    def test_static_prices_parsing(self):
        config = PriceFeedConfig(static_prices_str="AAPL=150, TSLA = 200.5,bad,MSFT=oops")
        assert config.static_prices == {"AAPL": Decimal("150"), "TSLA": Decimal("200.5")}

    def test_unknown_provider_rejected(self):
        with pytest.raises(ValidationError):
            PriceFeedConfig(provider="yahoo")


class TestOtherSections:
    """Database, logging and system sections."""

    def test_database_default(self):
        assert DatabaseConfig(_env_file=None).database_url.startswith("sqlite:///")

    def test_invalid_log_level(self):
        with pytest.raises(ValidationError):
            LoggingConfig(log_level="LOUD")

    def test_timezone_from_environment(self, monkeypatch):
        monkeypatch.setenv("TIMEZONE", "Europe/London")
        assert SystemConfig(_env_file=None).timezone == "Europe/London"


class TestValidateConfiguration:
    """Cross-section validation."""

    @pytest.fixture
    def config(self):
        config = AutoInvestConfig()
        config.limits = OrderLimitsConfig(min_amount=Decimal("10"), max_amount=Decimal("1000"))
        config.scheduler = SchedulerConfig(scan_interval_seconds=3600, price_timeout_seconds=10)
        config.price_feed = PriceFeedConfig(provider="static", static_prices_str="AAPL=150")
        config.system = SystemConfig(timezone=None)
        return config

    def test_valid(self, config):
        assert config.validate_configuration() == {"valid": True, "issues": []}

    def test_inverted_limits(self, config):
        config.limits = OrderLimitsConfig(min_amount=Decimal("500"), max_amount=Decimal("100"))
        result = config.validate_configuration()
        assert not result["valid"]
        assert any("ORDER_MIN_AMOUNT" in issue for issue in result["issues"])

    def test_timeout_longer_than_interval(self, config):
        config.scheduler = SchedulerConfig(scan_interval_seconds=5, price_timeout_seconds=10)
        assert not config.validate_configuration()["valid"]

    def test_empty_static_prices(self, config):
        config.price_feed = PriceFeedConfig(provider="static", static_prices_str="")
        assert not config.validate_configuration()["valid"]

    def test_unknown_timezone(self, config):
        config.system = SystemConfig(timezone="Mars/Olympus_Mons")
        result = config.validate_configuration()
        assert not result["valid"]
        assert "Unknown TIMEZONE" in result["issues"][0]
