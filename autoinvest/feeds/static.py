"""In-memory price feed."""
from decimal import Decimal
from typing import Dict, Optional, Set

from autoinvest.feeds.base import PriceFeed


class StaticPriceFeed(PriceFeed):
    """Prices held in a dict; instruments can be marked unavailable."""

    def __init__(self, prices: Optional[Dict[str, Decimal]] = None):
        self._prices: Dict[str, Decimal] = {
            k: Decimal(str(v)) for k, v in (prices or {}).items()
        }
        self._unavailable: Set[str] = set()
        self.lookups = 0

    def set_price(self, instrument_id: str, price: Decimal) -> None:
        self._prices[instrument_id] = Decimal(str(price))
        self._unavailable.discard(instrument_id)

    def mark_unavailable(self, instrument_id: str) -> None:
        self._unavailable.add(instrument_id)

    async def get_price(self, instrument_id: str) -> Optional[Decimal]:
        self.lookups += 1
        if instrument_id in self._unavailable:
            return None
        return self._prices.get(instrument_id)
