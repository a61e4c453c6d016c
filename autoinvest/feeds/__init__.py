"""Price feeds consumed by the execution engine."""

from typing import Optional

from autoinvest.core.config import PriceFeedConfig, app_config
from autoinvest.feeds.base import PriceFeed
from autoinvest.feeds.ccxt_feed import CcxtPriceFeed
from autoinvest.feeds.static import StaticPriceFeed


def create_price_feed(config: Optional[PriceFeedConfig] = None) -> PriceFeed:
    """Factory function to create the configured price feed."""
    config = config or app_config.price_feed
    if config.provider == "ccxt":
        return CcxtPriceFeed(
            exchange_id=config.exchange_id,
            quote_currency=config.quote_currency,
        )
    if config.provider == "static":
        return StaticPriceFeed(config.static_prices)
    raise ValueError(f"Unknown price feed provider: {config.provider}")


__all__ = [
    'PriceFeed',
    'StaticPriceFeed',
    'CcxtPriceFeed',
    'create_price_feed',
]
