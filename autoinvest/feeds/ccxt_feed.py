"""Price feed backed by a ccxt exchange ticker."""
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, Optional

import ccxt.async_support as ccxt
import structlog

from autoinvest.feeds.base import PriceFeed

logger = structlog.get_logger(__name__)


class CcxtPriceFeed(PriceFeed):
    """
    Last-trade prices from a ccxt exchange (public data, no auth required).

    Instrument ids without a slash are mapped to ``<id>/<quote>`` markets,
    e.g. ``AAPL`` -> ``AAPL/USDT``.
    """

    def __init__(
        self,
        exchange_id: str = "bybit",
        quote_currency: str = "USDT",
        exchange: Optional[Any] = None,
    ):
        self.exchange_id = exchange_id
        self.quote_currency = quote_currency
        self._exchange = exchange

    def _get_exchange(self):
        if self._exchange is None:
            exchange_class = getattr(ccxt, self.exchange_id)
            self._exchange = exchange_class({
                'enableRateLimit': True,
                'options': {'defaultType': 'spot'}
            })
        return self._exchange

    def market_symbol(self, instrument_id: str) -> str:
        if '/' in instrument_id:
            return instrument_id
        return f"{instrument_id}/{self.quote_currency}"

    async def get_price(self, instrument_id: str) -> Optional[Decimal]:
        symbol = self.market_symbol(instrument_id)
        try:
            ticker: Dict[str, Any] = await self._get_exchange().fetch_ticker(symbol)
        except ccxt.BaseError as e:
            logger.warning("ccxt_feed.ticker_error", symbol=symbol, error=str(e))
            return None

        last = ticker.get('last') or ticker.get('close')
        if last is None:
            logger.warning("ccxt_feed.no_last_price", symbol=symbol)
            return None

        try:
            price = Decimal(str(last))
        except InvalidOperation:
            return None
        return price if price > 0 else None

    async def close(self) -> None:
        if self._exchange is not None:
            await self._exchange.close()
