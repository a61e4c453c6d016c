"""Cash and holdings ledger with weighted-average-cost accounting.

The Ledger is the only component that mutates cash or holdings. Every
mutation runs under the ledger's lock and, when a durable store is attached,
persists the full ledger state before the lock is released. Readers receive
copies, so the invariants below cannot be broken from outside:

- cash_balance never goes negative; a buy that would overdraw is rejected
- buy: average_cost' = (old_shares*old_avg + cost) / (old_shares + shares), where
  cost defaults to shares*price; a first buy takes average_cost = price
- sell: average_cost is unchanged; the holding is dropped below DUST_SHARES
"""
import asyncio
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional

import structlog

from autoinvest.core.clock import Clock, SystemClock
from autoinvest.core.exceptions import (
    InsufficientFundsError,
    InsufficientSharesError,
    LedgerValidationError,
    UnknownInstrumentError,
)
from autoinvest.core.models import (
    Holding,
    LedgerEvent,
    LedgerEventType,
    LedgerState,
    ProfitLoss,
    ensure_utc,
)
from autoinvest.storage.base import DurableStore

logger = structlog.get_logger(__name__)

LEDGER_KEY = "ledger"

# Positions smaller than this are treated as closed
DUST_SHARES = Decimal("0.0001")


class Ledger:
    """
    Cash balance, per-instrument holdings and an append-only event history.

    Args:
        clock: Time source for event timestamps
        store: Optional durable store; state is saved after every mutation
        cash_balance: Opening cash balance
    """

    def __init__(
        self,
        clock: Optional[Clock] = None,
        store: Optional[DurableStore] = None,
        cash_balance: Decimal = Decimal("0"),
    ):
        if cash_balance < 0:
            raise LedgerValidationError("Opening cash balance cannot be negative")

        self.clock = clock or SystemClock()
        self.store = store
        self._lock = asyncio.Lock()

        self._cash_balance = Decimal(cash_balance)
        self._holdings: Dict[str, Holding] = {}
        self._events: List[LedgerEvent] = []

    # =========================================================================
    # Persistence
    # =========================================================================

    def snapshot(self) -> LedgerState:
        """Copy of the full ledger state."""
        return LedgerState(
            cash_balance=self._cash_balance,
            holdings={k: h.model_copy() for k, h in self._holdings.items()},
            events=list(self._events),
        )

    async def load(self) -> bool:
        """Restore state from the store. Returns True if state was found."""
        if self.store is None:
            return False

        blob = await self.store.load(LEDGER_KEY)
        if blob is None:
            return False

        state = LedgerState.model_validate_json(blob)
        async with self._lock:
            self._cash_balance = state.cash_balance
            self._holdings = dict(state.holdings)
            self._events = list(state.events)

        logger.info(
            "ledger.loaded",
            cash_balance=str(self._cash_balance),
            holdings=len(self._holdings),
            events=len(self._events),
        )
        return True

    async def _persist(self) -> None:
        # Caller holds self._lock
        if self.store is None:
            return
        await self.store.save(LEDGER_KEY, self.snapshot().model_dump_json().encode())

    # =========================================================================
    # Queries
    # =========================================================================

    @property
    def cash_balance(self) -> Decimal:
        return self._cash_balance

    @property
    def holdings(self) -> Dict[str, Holding]:
        return {k: h.model_copy() for k, h in self._holdings.items()}

    @property
    def events(self) -> List[LedgerEvent]:
        return list(self._events)

    def get_holding(self, instrument_id: str) -> Optional[Holding]:
        holding = self._holdings.get(instrument_id)
        return holding.model_copy() if holding else None

    def shares_owned(self, instrument_id: str) -> Decimal:
        holding = self._holdings.get(instrument_id)
        return holding.shares if holding else Decimal("0")

    def owns(self, instrument_id: str) -> bool:
        return self.shares_owned(instrument_id) > DUST_SHARES

    def last_price(self, instrument_id: str) -> Optional[Decimal]:
        """Most recent price seen for a held instrument."""
        holding = self._holdings.get(instrument_id)
        return holding.last_price if holding else None

    def portfolio_value(self) -> Decimal:
        """Holdings valued at their last seen prices (cash excluded)."""
        return sum((h.market_value for h in self._holdings.values()), Decimal("0"))

    def total_value(self) -> Decimal:
        """Holdings plus cash."""
        return self.portfolio_value() + self._cash_balance

    def total_cost_basis(self) -> Decimal:
        return sum((h.total_cost for h in self._holdings.values()), Decimal("0"))

    def holding_profit_loss(self, instrument_id: str) -> ProfitLoss:
        holding = self._holdings.get(instrument_id)
        if holding is None:
            return ProfitLoss(value=Decimal("0"), percent=Decimal("0"))
        return ProfitLoss(value=holding.profit_loss, percent=holding.profit_loss_pct)

    def total_profit_loss(self) -> ProfitLoss:
        cost = self.total_cost_basis()
        value = self.portfolio_value() - cost
        percent = (value / cost) * 100 if cost > 0 else Decimal("0")
        return ProfitLoss(value=value, percent=percent)

    def value_at(self, moment: datetime) -> Decimal:
        """Total value recorded by the last event at or before ``moment``."""
        moment = ensure_utc(moment)
        value = Decimal("0")
        for event in self._events:
            if event.timestamp > moment:
                break
            value = event.total_value_after
        return value

    # =========================================================================
    # Trading
    # =========================================================================

    async def buy(
        self,
        instrument_id: str,
        shares: Decimal,
        price_per_share: Decimal,
        cost: Optional[Decimal] = None,
    ) -> LedgerEvent:
        """
        Buy shares, debiting cash.

        Args:
            instrument_id: Instrument identifier
            shares: Quantity bought
            price_per_share: Execution price
            cost: Exact cash to debit; defaults to shares * price. Fixed-amount
                purchases pass the amount so a rounded share quotient never
                costs more than was spent.

        Raises:
            LedgerValidationError: shares, price or cost not positive
            InsufficientFundsError: cost exceeds the cash balance
        """
        shares = Decimal(shares)
        price_per_share = Decimal(price_per_share)
        if shares <= 0 or price_per_share <= 0:
            raise LedgerValidationError("Shares and price must be positive")
        if cost is not None:
            cost = Decimal(cost)
            if not cost.is_finite() or cost <= 0:
                raise LedgerValidationError("Cost must be positive")

        async with self._lock:
            if cost is None:
                cost = shares * price_per_share
            if cost > self._cash_balance:
                logger.warning(
                    "ledger.buy_rejected",
                    instrument_id=instrument_id,
                    cost=str(cost),
                    cash_balance=str(self._cash_balance),
                )
                raise InsufficientFundsError(
                    f"Buying {shares} {instrument_id} costs {cost}, "
                    f"cash balance is {self._cash_balance}"
                )

            self._cash_balance -= cost

            existing = self._holdings.get(instrument_id)
            if existing is None:
                self._holdings[instrument_id] = Holding(
                    instrument_id=instrument_id,
                    shares=shares,
                    average_cost=price_per_share,
                    last_price=price_per_share,
                )
            else:
                total_shares = existing.shares + shares
                total_cost = existing.shares * existing.average_cost + cost
                self._holdings[instrument_id] = Holding(
                    instrument_id=instrument_id,
                    shares=total_shares,
                    average_cost=total_cost / total_shares,
                    last_price=price_per_share,
                )

            event = self._record_event(LedgerEventType.BUY, instrument_id, shares, price_per_share)
            await self._persist()

        logger.info(
            "ledger.buy",
            instrument_id=instrument_id,
            shares=str(shares),
            price=str(price_per_share),
            cash_balance=str(self._cash_balance),
        )
        return event

    async def sell(self, instrument_id: str, shares: Decimal, price_per_share: Decimal) -> LedgerEvent:
        """
        Sell shares, crediting cash.

        Raises:
            LedgerValidationError: shares or price not positive
            UnknownInstrumentError: instrument not held
            InsufficientSharesError: more shares than held
        """
        shares = Decimal(shares)
        price_per_share = Decimal(price_per_share)
        if shares <= 0 or price_per_share <= 0:
            raise LedgerValidationError("Shares and price must be positive")

        async with self._lock:
            holding = self._holdings.get(instrument_id)
            if holding is None:
                raise UnknownInstrumentError(f"No holding for {instrument_id}")
            if shares > holding.shares:
                raise InsufficientSharesError(
                    f"Cannot sell {shares} {instrument_id}, holding {holding.shares}"
                )

            self._cash_balance += shares * price_per_share

            remaining = holding.shares - shares
            if remaining < DUST_SHARES:
                del self._holdings[instrument_id]
            else:
                self._holdings[instrument_id] = holding.model_copy(
                    update={"shares": remaining, "last_price": price_per_share}
                )

            event = self._record_event(LedgerEventType.SELL, instrument_id, shares, price_per_share)
            await self._persist()

        logger.info(
            "ledger.sell",
            instrument_id=instrument_id,
            shares=str(shares),
            price=str(price_per_share),
            cash_balance=str(self._cash_balance),
        )
        return event

    def _record_event(
        self,
        event_type: LedgerEventType,
        instrument_id: str,
        shares: Decimal,
        price_per_share: Decimal,
    ) -> LedgerEvent:
        event = LedgerEvent(
            timestamp=self.clock.now(),
            type=event_type,
            instrument_id=instrument_id,
            shares=shares,
            price_per_share=price_per_share,
            total_value_after=self.total_value(),
        )
        self._events.append(event)
        return event

    # =========================================================================
    # Cash Movements
    # =========================================================================

    async def deposit(self, amount: Decimal) -> Decimal:
        """Add cash. Returns the new balance."""
        amount = Decimal(amount)
        if amount <= 0:
            raise LedgerValidationError("Deposit amount must be positive")

        async with self._lock:
            self._cash_balance += amount
            await self._persist()

        logger.info("ledger.deposit", amount=str(amount), cash_balance=str(self._cash_balance))
        return self._cash_balance

    async def withdraw(self, amount: Decimal) -> Decimal:
        """Remove cash, clamping the balance at zero. Returns the new balance."""
        amount = Decimal(amount)
        if amount <= 0:
            raise LedgerValidationError("Withdrawal amount must be positive")

        async with self._lock:
            self._cash_balance = max(Decimal("0"), self._cash_balance - amount)
            await self._persist()

        logger.info("ledger.withdraw", amount=str(amount), cash_balance=str(self._cash_balance))
        return self._cash_balance

    async def update_price(self, instrument_id: str, price: Decimal) -> None:
        """Record a newer price for a held instrument."""
        price = Decimal(price)
        if price <= 0:
            raise LedgerValidationError("Price must be positive")

        async with self._lock:
            holding = self._holdings.get(instrument_id)
            if holding is None:
                return
            self._holdings[instrument_id] = holding.model_copy(update={"last_price": price})
            await self._persist()

    async def reset(self) -> None:
        """Clear cash, holdings and history."""
        async with self._lock:
            self._cash_balance = Decimal("0")
            self._holdings = {}
            self._events = []
            await self._persist()

        logger.info("ledger.reset")
