"""Base class for price feeds."""
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Optional


class PriceFeed(ABC):
    """Source of current instrument prices."""

    @abstractmethod
    async def get_price(self, instrument_id: str) -> Optional[Decimal]:
        """
        Return the current price for an instrument.

        Args:
            instrument_id: Instrument identifier

        Returns:
            A positive price, or None if the price is unavailable
        """
        pass

    async def close(self) -> None:
        """Release any held connections."""
        pass
