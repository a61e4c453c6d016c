"""
Unit tests for the recurring order store.

Tests cover:
- Validation on add
- Pause / resume / cancel lifecycle
- Due-order selection and success bookkeeping
- Queries, statistics and persistence
"""
from datetime import timedelta, timezone
from decimal import Decimal

import pytest
import pytest_asyncio

from autoinvest.core.exceptions import (
    AutoInvestError,
    OrderNotFoundError,
    OrderStateError,
    OrderValidationError,
)
from autoinvest.core.models import Frequency, RecurringOrder, RecurringOrderStatus
from autoinvest.orders.store import ORDERS_KEY, OrderStore


# =============================================================================
# Add / Create
# =============================================================================

class TestAdd:
    """Adding orders."""

    @pytest.mark.asyncio
    async def test_add_computes_next_due_from_created_at(self, order_store, now):
        order = RecurringOrder(
            instrument_id="AAPL",
            amount=Decimal("50"),
            frequency=Frequency.WEEKLY,
            created_at=now,
        )
        order_id = await order_store.add(order)

        stored = order_store.get(order_id)
        assert stored.next_due_at == now + timedelta(days=7)
        assert stored.status == RecurringOrderStatus.ACTIVE
        assert stored.purchase_count == 0

    @pytest.mark.asyncio
    async def test_add_anchors_on_last_execution(self, order_store, now):
        order = RecurringOrder(
            instrument_id="AAPL",
            amount=Decimal("50"),
            frequency=Frequency.DAILY,
            created_at=now - timedelta(days=30),
            last_executed_at=now,
        )
        order_id = await order_store.add(order)
        assert order_store.get(order_id).next_due_at == now + timedelta(days=1)

    @pytest.mark.asyncio
    async def test_add_does_not_alias_caller_object(self, order_store):
        order = RecurringOrder(instrument_id="AAPL", amount=Decimal("50"), frequency=Frequency.DAILY)
        await order_store.add(order)
        assert order.next_due_at is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", ["9.99", "1000.01", "0", "-5"])
    async def test_amount_outside_limits_rejected(self, order_store, amount):
        with pytest.raises(OrderValidationError):
            await order_store.create("AAPL", amount, "weekly")
        assert len(order_store) == 0

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", ["10", "1000"])
    async def test_amount_bounds_inclusive(self, order_store, amount):
        order = await order_store.create("AAPL", amount, "weekly")
        assert order.amount == Decimal(amount)

    @pytest.mark.asyncio
    async def test_unknown_frequency_rejected(self, order_store):
        with pytest.raises(OrderValidationError):
            await order_store.create("AAPL", "50", "fortnightly")

    @pytest.mark.asyncio
    async def test_invalid_amount_rejected(self, order_store):
        with pytest.raises(OrderValidationError):
            await order_store.create("AAPL", "fifty", "weekly")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("amount", ["inf", "-inf", "nan", "NaN", "sNaN", float("inf")])
    async def test_non_finite_amount_rejected(self, order_store, amount):
        with pytest.raises(OrderValidationError):
            await order_store.create("AAPL", amount, "weekly")
        assert len(order_store) == 0

    @pytest.mark.asyncio
    async def test_model_validation_error_is_wrapped(self, order_store):
        with pytest.raises(OrderValidationError):
            await order_store.create("AAPL", "50", "weekly", instrument_name=123)
        assert len(order_store) == 0

    @pytest.mark.asyncio
    async def test_missing_instrument_rejected(self, order_store):
        with pytest.raises(OrderValidationError):
            await order_store.create("", "50", "weekly")

    @pytest.mark.asyncio
    async def test_cancelled_order_rejected(self, order_store):
        order = RecurringOrder(
            instrument_id="AAPL",
            amount=Decimal("50"),
            frequency=Frequency.WEEKLY,
            status=RecurringOrderStatus.CANCELLED,
        )
        with pytest.raises(OrderValidationError):
            await order_store.add(order)

    @pytest.mark.asyncio
    async def test_duplicate_id_rejected(self, order_store):
        order = RecurringOrder(instrument_id="AAPL", amount=Decimal("50"), frequency=Frequency.WEEKLY)
        await order_store.add(order)
        with pytest.raises(OrderValidationError):
            await order_store.add(order)

    @pytest.mark.asyncio
    async def test_create_uses_configured_currency(self, order_store, now):
        order = await order_store.create(
            "AAPL", 50, Frequency.MONTHLY, created_at=now, instrument_name="Apple Inc"
        )
        assert order.currency == "GBP"
        assert order.instrument_name == "Apple Inc"
        assert order.next_due_at.month == 7

    def test_validation_errors_share_a_base(self):
        assert issubclass(OrderValidationError, AutoInvestError)


# =============================================================================
# Lifecycle
# =============================================================================

class TestLifecycle:
    """Pause, resume and cancel."""

    @pytest_asyncio.fixture
    async def order_id(self, order_store, add_due_order):
        return await add_due_order(order_store)

    @pytest.mark.asyncio
    async def test_pause_and_resume(self, order_store, order_id):
        paused = await order_store.pause(order_id)
        assert paused.status == RecurringOrderStatus.PAUSED

        resumed = await order_store.resume(order_id)
        assert resumed.status == RecurringOrderStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_pause_is_idempotent(self, order_store, order_id):
        await order_store.pause(order_id)
        again = await order_store.pause(order_id)
        assert again.status == RecurringOrderStatus.PAUSED

    @pytest.mark.asyncio
    async def test_resume_active_is_noop(self, order_store, order_id):
        resumed = await order_store.resume(order_id)
        assert resumed.status == RecurringOrderStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_resume_keeps_next_due(self, order_store, order_id, now):
        before = order_store.get(order_id).next_due_at
        await order_store.pause(order_id)
        await order_store.resume(order_id)

        after = order_store.get(order_id)
        assert after.next_due_at == before
        assert after.is_due(now)

    @pytest.mark.asyncio
    async def test_cancel_is_terminal(self, order_store, order_id):
        await order_store.cancel(order_id)

        with pytest.raises(OrderStateError):
            await order_store.resume(order_id)
        with pytest.raises(OrderStateError):
            await order_store.pause(order_id)
        assert order_store.get(order_id).status == RecurringOrderStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_cancel_is_idempotent(self, order_store, order_id):
        await order_store.cancel(order_id)
        again = await order_store.cancel(order_id)
        assert again.status == RecurringOrderStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_cancel_paused_order(self, order_store, order_id):
        await order_store.pause(order_id)
        cancelled = await order_store.cancel(order_id)
        assert cancelled.status == RecurringOrderStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_unknown_id(self, order_store):
        for operation in (order_store.pause, order_store.resume, order_store.cancel, order_store.remove):
            with pytest.raises(OrderNotFoundError) as exc_info:
                await operation("missing")
            assert exc_info.value.order_id == "missing"

        with pytest.raises(OrderNotFoundError):
            order_store.get("missing")

    @pytest.mark.asyncio
    async def test_remove(self, order_store, order_id):
        await order_store.remove(order_id)
        assert len(order_store) == 0

    @pytest.mark.asyncio
    async def test_returned_orders_are_copies(self, order_store, order_id):
        copy = order_store.get(order_id)
        copy.status = RecurringOrderStatus.CANCELLED
        assert order_store.get(order_id).is_active


# =============================================================================
# Due Orders and Bookkeeping
# =============================================================================

class TestDueOrders:
    """Due-order selection and execution bookkeeping."""

    @pytest.mark.asyncio
    async def test_only_active_past_due_orders(self, order_store, add_due_order, now):
        due = await add_due_order(order_store, "AAPL")
        exactly_now = await add_due_order(order_store, "MSFT", due_at=now)
        await add_due_order(order_store, "TSLA", due_at=now + timedelta(minutes=1))
        paused = await add_due_order(order_store, "NVDA")
        cancelled = await add_due_order(order_store, "AMZN")
        await order_store.pause(paused)
        await order_store.cancel(cancelled)

        ids = {o.id for o in await order_store.due_orders(now)}
        assert ids == {due, exactly_now}

    @pytest.mark.asyncio
    async def test_record_success_advances_schedule(self, order_store, add_due_order, now):
        order_id = await add_due_order(order_store, frequency=Frequency.WEEKLY)

        updated = await order_store.record_success(order_id, now, Decimal("50"))

        assert updated.purchase_count == 1
        assert updated.total_invested == Decimal("50")
        assert updated.last_executed_at == now
        assert updated.next_due_at == now + timedelta(days=7)
        assert updated.next_due_at > updated.last_executed_at
        assert await order_store.due_orders(now) == []

    @pytest.mark.asyncio
    async def test_record_failure_leaves_schedule(self, order_store, add_due_order, now):
        order_id = await add_due_order(order_store)
        before = order_store.get(order_id)

        await order_store.record_failure(order_id)

        assert order_store.get(order_id) == before
        assert [o.id for o in await order_store.due_orders(now)] == [order_id]

    @pytest.mark.asyncio
    async def test_record_for_unknown_order(self, order_store, now):
        with pytest.raises(OrderNotFoundError):
            await order_store.record_success("missing", now, Decimal("50"))
        with pytest.raises(OrderNotFoundError):
            await order_store.record_failure("missing")

    @pytest.mark.asyncio
    async def test_is_active(self, order_store, add_due_order):
        order_id = await add_due_order(order_store)
        assert await order_store.is_active(order_id)
        await order_store.pause(order_id)
        assert not await order_store.is_active(order_id)


# =============================================================================
# Queries and Statistics
# =============================================================================

class TestQueries:
    """Listing, lookups and spend statistics."""

    @pytest.mark.asyncio
    async def test_status_lists(self, order_store, add_due_order):
        active = await add_due_order(order_store, "AAPL")
        paused = await add_due_order(order_store, "TSLA")
        cancelled = await add_due_order(order_store, "MSFT")
        await order_store.pause(paused)
        await order_store.cancel(cancelled)

        assert [o.id for o in order_store.active_orders()] == [active]
        assert [o.id for o in order_store.paused_orders()] == [paused]
        assert [o.id for o in order_store.cancelled_orders()] == [cancelled]
        assert len(order_store.list_orders()) == 3

    @pytest.mark.asyncio
    async def test_instrument_lookup(self, order_store, add_due_order):
        order_id = await add_due_order(order_store, "AAPL")

        assert order_store.order_for_instrument("AAPL").id == order_id
        assert order_store.has_active_order_for("AAPL")
        assert not order_store.has_active_order_for("TSLA")

        await order_store.pause(order_id)
        assert order_store.order_for_instrument("AAPL") is None

    @pytest.mark.asyncio
    async def test_total_monthly_investment(self, order_store):
        await order_store.create("AAPL", "50", "weekly")
        await order_store.create("TSLA", "100", "monthly")
        await order_store.create("MSFT", "75", "biweekly")
        paused = await order_store.create("NVDA", "20", "daily")
        await order_store.pause(paused.id)

        # 50*4.33 + 100*1 + 75*2.17
        assert order_store.total_monthly_investment() == Decimal("479.25")

    @pytest.mark.asyncio
    async def test_totals(self, order_store, add_due_order, now):
        first = await add_due_order(order_store, "AAPL")
        second = await add_due_order(order_store, "TSLA", amount=Decimal("100"))
        await order_store.record_success(first, now, Decimal("50"))
        await order_store.record_success(second, now, Decimal("100"))

        assert order_store.total_invested() == Decimal("150")
        assert order_store.total_executions() == 2


# =============================================================================
# Persistence
# =============================================================================

class TestPersistence:
    """Order list round-trip through a durable store."""

    @pytest.mark.asyncio
    async def test_round_trip(self, test_limits_config, memory_store, add_due_order, now):
        store = OrderStore(limits=test_limits_config, tz=timezone.utc, store=memory_store)
        first = await add_due_order(store, "AAPL")
        second = await add_due_order(store, "TSLA")
        await store.pause(second)
        await store.record_success(first, now, Decimal("50"))

        restored = OrderStore(limits=test_limits_config, tz=timezone.utc, store=memory_store)
        assert await restored.load() == 2

        assert restored.get(first) == store.get(first)
        assert restored.get(second).status == RecurringOrderStatus.PAUSED
        assert restored.dump() == store.dump()

    @pytest.mark.asyncio
    async def test_every_mutation_saves(self, test_limits_config, memory_store, add_due_order):
        store = OrderStore(limits=test_limits_config, tz=timezone.utc, store=memory_store)
        order_id = await add_due_order(store)
        await store.pause(order_id)
        await store.pause(order_id)

        # The repeated pause is a no-op
        assert memory_store.save_count == 2
        assert await memory_store.load(ORDERS_KEY) is not None

    @pytest.mark.asyncio
    async def test_load_empty(self, test_limits_config, memory_store):
        store = OrderStore(limits=test_limits_config, store=memory_store)
        assert await store.load() == 0
