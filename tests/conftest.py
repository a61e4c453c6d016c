"""Pytest fixtures and utilities for the AutoInvest test suite."""
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from autoinvest.core.clock import FixedClock
from autoinvest.core.config import OrderLimitsConfig, SchedulerConfig
from autoinvest.core.engine import ExecutionEngine
from autoinvest.core.models import Frequency, RecurringOrder
from autoinvest.feeds.static import StaticPriceFeed
from autoinvest.history.log import HistoryLog
from autoinvest.ledger.ledger import Ledger
from autoinvest.orders.store import OrderStore
from autoinvest.storage.base import MemoryStore

# Reference scan time used across the suite
NOW = datetime(2025, 6, 2, 12, 0, tzinfo=timezone.utc)


# Fixed-length steps used to back-date orders so they fall due on a given time
_STEPS = {
    Frequency.DAILY: timedelta(days=1),
    Frequency.WEEKLY: timedelta(days=7),
    Frequency.BIWEEKLY: timedelta(days=14),
}


# =============================================================================
# Helper Fixtures
# =============================================================================

@pytest.fixture
def now():
    """Reference scan time."""
    return NOW


@pytest.fixture
def add_due_order():
    """Factory adding an order whose next_due_at lands exactly on ``due_at``.

    The store must do its arithmetic in UTC.
    """
    async def _add(
        store: OrderStore,
        instrument_id: str = "AAPL",
        amount: Decimal = Decimal("50"),
        frequency: Frequency = Frequency.WEEKLY,
        due_at: datetime = NOW - timedelta(hours=1),
    ) -> str:
        order = RecurringOrder(
            instrument_id=instrument_id,
            amount=amount,
            frequency=frequency,
            created_at=due_at - _STEPS[frequency],
        )
        return await store.add(order)

    return _add


# =============================================================================
# Configuration Fixtures
# =============================================================================

@pytest.fixture
def test_limits_config():
    """Create a test order limits configuration."""
    return OrderLimitsConfig(
        min_amount=Decimal("10"),
        max_amount=Decimal("1000"),
        currency="GBP",
    )


@pytest.fixture
def test_scheduler_config():
    """Create a test scheduler configuration."""
    return SchedulerConfig(
        scan_interval_seconds=3600,
        price_timeout_seconds=0.2,
        max_concurrent_executions=4,
        allow_stale_price_fallback=False,
    )


# =============================================================================
# Component Fixtures
# =============================================================================

@pytest.fixture
def fixed_clock():
    """Clock frozen at NOW."""
    return FixedClock(NOW)


@pytest.fixture
def memory_store():
    """Dict-backed durable store."""
    return MemoryStore()


@pytest.fixture
def ledger(fixed_clock):
    """Ledger funded with 1000."""
    return Ledger(clock=fixed_clock, cash_balance=Decimal("1000"))


@pytest.fixture
def order_store(test_limits_config):
    """Order store doing calendar arithmetic in UTC."""
    return OrderStore(limits=test_limits_config, tz=timezone.utc)


@pytest.fixture
def history():
    """Empty history log."""
    return HistoryLog()


@pytest.fixture
def price_feed():
    """Static feed quoting AAPL at 200."""
    return StaticPriceFeed({"AAPL": Decimal("200"), "TSLA": Decimal("250")})


@pytest.fixture
def engine(order_store, history, ledger, price_feed, fixed_clock, test_scheduler_config):
    """Execution engine wired to in-memory components."""
    return ExecutionEngine(
        orders=order_store,
        history=history,
        ledger=ledger,
        price_feed=price_feed,
        clock=fixed_clock,
        config=test_scheduler_config,
    )
