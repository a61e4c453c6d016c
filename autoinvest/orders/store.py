"""In-memory store of recurring orders with persistence round-trip.

The store is the single owner of RecurringOrder mutation. Lifecycle:

    ACTIVE <-> PAUSED
    ACTIVE / PAUSED -> CANCELLED (terminal)

Schedule fields (last_executed_at, next_due_at, purchase_count,
total_invested) only change through record_success.
"""
import asyncio
from datetime import datetime, tzinfo
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional, Union

import structlog
from pydantic import TypeAdapter, ValidationError

from autoinvest.core.config import OrderLimitsConfig, app_config
from autoinvest.core.exceptions import OrderNotFoundError, OrderStateError, OrderValidationError
from autoinvest.core.models import Frequency, RecurringOrder, RecurringOrderStatus, ensure_utc
from autoinvest.core.schedule import next_due
from autoinvest.storage.base import DurableStore

logger = structlog.get_logger(__name__)

ORDERS_KEY = "recurring_orders"

_orders_adapter = TypeAdapter(List[RecurringOrder])


class OrderStore:
    """
    Collection of recurring orders.

    Args:
        limits: Amount bounds applied on add
        tz: Zone for due-date arithmetic; None uses the process's local zone
        store: Optional durable store; the order list is saved after every mutation
    """

    def __init__(
        self,
        limits: Optional[OrderLimitsConfig] = None,
        tz: Optional[tzinfo] = None,
        store: Optional[DurableStore] = None,
    ):
        self.limits = limits or app_config.limits
        self.tz = tz
        self.store = store
        self._lock = asyncio.Lock()
        self._orders: Dict[str, RecurringOrder] = {}

    # =========================================================================
    # Persistence
    # =========================================================================

    async def load(self) -> int:
        """Restore orders from the store. Returns the number loaded."""
        if self.store is None:
            return 0

        blob = await self.store.load(ORDERS_KEY)
        if blob is None:
            return 0

        orders = _orders_adapter.validate_json(blob)
        async with self._lock:
            self._orders = {order.id: order for order in orders}

        logger.info("order_store.loaded", count=len(orders))
        return len(orders)

    def dump(self) -> bytes:
        """Serialize the order list."""
        return _orders_adapter.dump_json(list(self._orders.values()))

    async def _persist(self) -> None:
        # Caller holds self._lock
        if self.store is None:
            return
        await self.store.save(ORDERS_KEY, self.dump())

    # =========================================================================
    # Creation
    # =========================================================================

    def _validate(self, order: RecurringOrder) -> None:
        if not isinstance(order.frequency, Frequency):
            raise OrderValidationError(f"Unrecognized frequency: {order.frequency!r}")
        if not (self.limits.min_amount <= order.amount <= self.limits.max_amount):
            raise OrderValidationError(
                f"Amount {order.amount} outside "
                f"[{self.limits.min_amount}, {self.limits.max_amount}]"
            )
        if order.status == RecurringOrderStatus.CANCELLED:
            raise OrderValidationError("Cannot add a cancelled order")

    async def add(self, order: RecurringOrder) -> str:
        """
        Add a recurring order.

        next_due_at is recomputed from last_executed_at (or created_at).

        Returns:
            The order id

        Raises:
            OrderValidationError: amount out of range or unknown frequency
        """
        self._validate(order)

        order = order.model_copy(deep=True)
        order.next_due_at = next_due(order.frequency, order.schedule_anchor, self.tz)

        async with self._lock:
            if order.id in self._orders:
                raise OrderValidationError(f"Duplicate order id {order.id}")
            self._orders[order.id] = order
            await self._persist()

        logger.info(
            "order_store.order_added",
            order_id=order.id,
            instrument_id=order.instrument_id,
            amount=str(order.amount),
            frequency=order.frequency.value,
            next_due_at=order.next_due_at.isoformat(),
        )
        return order.id

    async def create(
        self,
        instrument_id: str,
        amount: Union[Decimal, str, int, float],
        frequency: Union[Frequency, str],
        created_at: Optional[datetime] = None,
        instrument_name: Optional[str] = None,
    ) -> RecurringOrder:
        """Validate raw input, build an order and add it."""
        try:
            frequency = Frequency(frequency)
        except ValueError:
            raise OrderValidationError(f"Unrecognized frequency: {frequency!r}") from None

        try:
            amount = Decimal(str(amount))
        except InvalidOperation:
            raise OrderValidationError(f"Invalid amount: {amount!r}") from None
        if not amount.is_finite():
            raise OrderValidationError(f"Amount must be finite: {amount}")

        if not instrument_id:
            raise OrderValidationError("instrument_id is required")

        fields = dict(
            instrument_id=instrument_id,
            amount=amount,
            frequency=frequency,
            instrument_name=instrument_name,
            currency=self.limits.currency,
        )
        if created_at is not None:
            fields["created_at"] = created_at

        try:
            order = RecurringOrder(**fields)
        except ValidationError as e:
            raise OrderValidationError(str(e)) from e

        order_id = await self.add(order)
        return self.get(order_id)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def _require(self, order_id: str) -> RecurringOrder:
        # Caller holds self._lock
        order = self._orders.get(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    async def pause(self, order_id: str) -> RecurringOrder:
        """Pause an active order. Pausing a paused order is a no-op."""
        async with self._lock:
            order = self._require(order_id)
            if order.status == RecurringOrderStatus.CANCELLED:
                raise OrderStateError(f"Order {order_id} is cancelled and cannot be paused")
            if order.status == RecurringOrderStatus.ACTIVE:
                order.status = RecurringOrderStatus.PAUSED
                await self._persist()
                logger.info("order_store.order_paused", order_id=order_id)
            return order.model_copy()

    async def resume(self, order_id: str) -> RecurringOrder:
        """
        Resume a paused order.

        next_due_at is left untouched, so an order that fell due while
        paused is due again immediately.
        """
        async with self._lock:
            order = self._require(order_id)
            if order.status == RecurringOrderStatus.CANCELLED:
                raise OrderStateError(f"Order {order_id} is cancelled and cannot be resumed")
            if order.status == RecurringOrderStatus.PAUSED:
                order.status = RecurringOrderStatus.ACTIVE
                await self._persist()
                logger.info(
                    "order_store.order_resumed",
                    order_id=order_id,
                    next_due_at=order.next_due_at.isoformat(),
                )
            return order.model_copy()

    async def cancel(self, order_id: str) -> RecurringOrder:
        """Cancel an order. Idempotent."""
        async with self._lock:
            order = self._require(order_id)
            if order.status != RecurringOrderStatus.CANCELLED:
                order.status = RecurringOrderStatus.CANCELLED
                await self._persist()
                logger.info("order_store.order_cancelled", order_id=order_id)
            return order.model_copy()

    async def remove(self, order_id: str) -> None:
        """Delete an order entirely."""
        async with self._lock:
            order = self._require(order_id)
            del self._orders[order_id]
            await self._persist()

        logger.info(
            "order_store.order_removed",
            order_id=order_id,
            instrument_id=order.instrument_id,
        )

    # =========================================================================
    # Execution Bookkeeping
    # =========================================================================

    async def due_orders(self, now: datetime) -> List[RecurringOrder]:
        """Active orders whose due time has passed. No ordering guarantee."""
        now = ensure_utc(now)
        async with self._lock:
            return [o.model_copy() for o in self._orders.values() if o.is_due(now)]

    async def is_active(self, order_id: str) -> bool:
        async with self._lock:
            return self._require(order_id).is_active

    async def record_success(
        self,
        order_id: str,
        executed_at: datetime,
        amount: Decimal,
    ) -> RecurringOrder:
        """Count a successful execution and advance the schedule."""
        executed_at = ensure_utc(executed_at)
        async with self._lock:
            order = self._require(order_id)
            updated = order.model_copy(
                update={
                    "purchase_count": order.purchase_count + 1,
                    "total_invested": order.total_invested + Decimal(amount),
                    "last_executed_at": executed_at,
                    "next_due_at": next_due(order.frequency, executed_at, self.tz),
                }
            )
            self._orders[order_id] = updated
            await self._persist()

        logger.info(
            "order_store.success_recorded",
            order_id=order_id,
            purchase_count=updated.purchase_count,
            total_invested=str(updated.total_invested),
            next_due_at=updated.next_due_at.isoformat(),
        )
        return updated.model_copy()

    async def record_failure(self, order_id: str) -> RecurringOrder:
        """Acknowledge a failed execution. The schedule is left untouched."""
        async with self._lock:
            order = self._require(order_id)

        logger.debug("order_store.failure_recorded", order_id=order_id)
        return order.model_copy()

    # =========================================================================
    # Queries
    # =========================================================================

    def get(self, order_id: str) -> RecurringOrder:
        order = self._orders.get(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        return order.model_copy()

    def list_orders(self, status: Optional[RecurringOrderStatus] = None) -> List[RecurringOrder]:
        return [
            o.model_copy()
            for o in self._orders.values()
            if status is None or o.status == status
        ]

    def active_orders(self) -> List[RecurringOrder]:
        return self.list_orders(RecurringOrderStatus.ACTIVE)

    def paused_orders(self) -> List[RecurringOrder]:
        return self.list_orders(RecurringOrderStatus.PAUSED)

    def cancelled_orders(self) -> List[RecurringOrder]:
        return self.list_orders(RecurringOrderStatus.CANCELLED)

    def order_for_instrument(self, instrument_id: str) -> Optional[RecurringOrder]:
        """First active order for an instrument, if any."""
        for order in self._orders.values():
            if order.instrument_id == instrument_id and order.is_active:
                return order.model_copy()
        return None

    def has_active_order_for(self, instrument_id: str) -> bool:
        return self.order_for_instrument(instrument_id) is not None

    def __len__(self) -> int:
        return len(self._orders)

    # =========================================================================
    # Statistics
    # =========================================================================

    def total_monthly_investment(self) -> Decimal:
        """Approximate monthly spend across active orders."""
        return sum(
            (o.amount * o.frequency.monthly_multiplier for o in self._orders.values() if o.is_active),
            Decimal("0"),
        )

    def total_invested(self) -> Decimal:
        return sum((o.total_invested for o in self._orders.values()), Decimal("0"))

    def total_executions(self) -> int:
        return sum(o.purchase_count for o in self._orders.values())
