"""Demo seeding: starter orders with back-dated history and a funded wallet."""
from datetime import datetime, timedelta
from decimal import Decimal
from typing import List, Optional

import structlog

from autoinvest.core.models import ExecutionRecord, Frequency, RecurringOrder
from autoinvest.core.schedule import add_months
from autoinvest.history.log import HistoryLog
from autoinvest.ledger.ledger import Ledger
from autoinvest.orders.store import OrderStore

logger = structlog.get_logger(__name__)

# (instrument_id, name, amount, frequency, assumed price)
DEMO_ORDERS = [
    ("AAPL", "Apple Inc", Decimal("50"), Frequency.WEEKLY, Decimal("150")),
    ("TSLA", "Tesla Inc", Decimal("100"), Frequency.MONTHLY, Decimal("200")),
    ("MSFT", "Microsoft", Decimal("75"), Frequency.BIWEEKLY, Decimal("320")),
]


async def ensure_minimum_balance(ledger: Ledger, minimum: Decimal) -> Decimal:
    """Top the ledger up to ``minimum`` cash. Returns the amount added."""
    shortfall = Decimal(minimum) - ledger.cash_balance
    if shortfall <= 0:
        return Decimal("0")
    await ledger.deposit(shortfall)
    logger.info("demo.balance_topped_up", added=str(shortfall), cash_balance=str(ledger.cash_balance))
    return shortfall


def _past_executions(frequency: Frequency, now: datetime) -> List[datetime]:
    """Back-dated execution times, oldest first."""
    if frequency == Frequency.MONTHLY:
        return [add_months(now, -1)]
    if frequency == Frequency.BIWEEKLY:
        return [now - timedelta(weeks=2)]
    return [now - timedelta(weeks=2), now - timedelta(weeks=1)]


async def seed_demo_orders(
    orders: OrderStore,
    history: HistoryLog,
    now: datetime,
    created_at: Optional[datetime] = None,
) -> List[RecurringOrder]:
    """
    Create the demo orders with simulated past executions.

    Does nothing if the store already holds orders.
    """
    if len(orders) > 0:
        logger.info("demo.orders_exist_skipping", count=len(orders))
        return []

    created_at = created_at or add_months(now, -2)
    seeded = []

    for instrument_id, name, amount, frequency, price in DEMO_ORDERS:
        executions = _past_executions(frequency, now)
        last_executed = executions[-1]

        order = RecurringOrder(
            instrument_id=instrument_id,
            instrument_name=name,
            amount=amount,
            frequency=frequency,
            currency=orders.limits.currency,
            created_at=created_at,
            last_executed_at=last_executed,
            purchase_count=len(executions),
            total_invested=amount * len(executions),
        )
        order_id = await orders.add(order)
        stored = orders.get(order_id)

        for executed_at in executions:
            await history.append(
                ExecutionRecord.succeeded(
                    stored,
                    timestamp=executed_at,
                    price_per_share=price,
                    shares_acquired=amount / price,
                )
            )
        seeded.append(stored)

    logger.info("demo.orders_seeded", count=len(seeded))
    return seeded
