"""Execution engine - scans due recurring orders and executes them."""
import asyncio
from datetime import datetime
from decimal import Decimal
from typing import Dict, List, Optional, Set, Tuple

import structlog

from autoinvest.core.clock import Clock, SystemClock
from autoinvest.core.config import SchedulerConfig, app_config
from autoinvest.core.exceptions import LedgerError, OrderNotFoundError
from autoinvest.core.models import ExecutionRecord, FailureReason, RecurringOrder, ensure_utc
from autoinvest.feeds.base import PriceFeed
from autoinvest.history.log import HistoryLog
from autoinvest.ledger.ledger import Ledger
from autoinvest.orders.store import OrderStore

logger = structlog.get_logger(__name__)


class ExecutionEngine:
    """
    Executes due recurring orders against the ledger.

    Per due order, in isolation:
    1. Price lookup (bounded by a timeout) - unavailable fails the attempt
    2. Funds check against the ledger's cash balance
    3. shares = amount / price
    4. Re-check the order is still active, then buy through the ledger
    5. On success advance the schedule and record a success; on any
       failure record the reason and leave the schedule untouched so the
       order is retried on the next scan

    The engine holds no ledger or order state of its own; all mutations go
    through the Ledger and OrderStore.
    """

    def __init__(
        self,
        orders: OrderStore,
        history: HistoryLog,
        ledger: Ledger,
        price_feed: PriceFeed,
        clock: Optional[Clock] = None,
        config: Optional[SchedulerConfig] = None,
    ):
        self.orders = orders
        self.history = history
        self.ledger = ledger
        self.price_feed = price_feed
        self.clock = clock or SystemClock()
        self.config = config or app_config.scheduler

        # Orders currently being executed by some scan
        self._in_flight: Set[str] = set()
        self._semaphore = asyncio.Semaphore(self.config.max_concurrent_executions)

        # Statistics
        self.scans_completed = 0
        self.last_scan_at: Optional[datetime] = None

    async def scan_once(self, now: Optional[datetime] = None) -> List[ExecutionRecord]:
        """
        Run one pass over all due orders.

        Never raises for per-order failures; each outcome is recorded in the
        history log.

        Args:
            now: Scan time; defaults to the clock's current time

        Returns:
            Records produced by this scan
        """
        now = ensure_utc(now) if now is not None else self.clock.now()

        due = await self.orders.due_orders(now)

        # No await between the check and the add, so claiming is atomic
        claimed = [order for order in due if order.id not in self._in_flight]
        for order in claimed:
            self._in_flight.add(order.id)

        skipped = len(due) - len(claimed)
        if skipped:
            logger.info("engine.orders_in_flight_skipped", count=skipped)

        results = await asyncio.gather(*(self._run_order(order, now) for order in claimed))
        records = [r for r in results if r is not None]

        self.scans_completed += 1
        self.last_scan_at = now

        logger.info(
            "engine.scan_complete",
            now=now.isoformat(),
            due=len(due),
            succeeded=sum(1 for r in records if r.success),
            failed=sum(1 for r in records if not r.success),
        )
        return records

    async def _run_order(self, order: RecurringOrder, now: datetime) -> Optional[ExecutionRecord]:
        try:
            async with self._semaphore:
                return await self._execute(order, now)
        except Exception as e:
            # One order's problem must not abort the scan
            logger.error(
                "engine.order_error",
                order_id=order.id,
                instrument_id=order.instrument_id,
                error=str(e),
                exc_info=True,
            )
            return None
        finally:
            self._in_flight.discard(order.id)

    async def _execute(self, order: RecurringOrder, now: datetime) -> ExecutionRecord:
        price, used_fallback = await self._lookup_price(order.instrument_id)
        if price is None:
            return await self._fail(order, now, FailureReason.PRICE_UNAVAILABLE)

        if order.amount > self.ledger.cash_balance:
            return await self._fail(order, now, FailureReason.INSUFFICIENT_FUNDS)

        shares = order.amount / price

        # A cancel or pause may have landed while the price lookup was pending
        if not await self._still_active(order.id):
            return await self._fail(order, now, FailureReason.ORDER_CANCELLED)

        try:
            # Debit exactly the order amount; amount / price may round up
            await self.ledger.buy(order.instrument_id, shares, price, cost=order.amount)
        except LedgerError as e:
            logger.warning("engine.ledger_rejected", order_id=order.id, error=str(e))
            return await self._fail(order, now, FailureReason.LEDGER_REJECTED)

        record = ExecutionRecord.succeeded(
            order,
            timestamp=now,
            price_per_share=price,
            shares_acquired=shares,
            used_fallback_price=used_fallback,
        )
        await self._settle_success(order, now, record)

        logger.info(
            "engine.execution_succeeded",
            order_id=order.id,
            instrument_id=order.instrument_id,
            amount=str(order.amount),
            price=str(price),
            shares=str(shares),
        )
        return record

    async def _settle_success(self, order: RecurringOrder, now: datetime, record: ExecutionRecord) -> None:
        """Book a purchase the ledger has already accepted.

        Both steps are attempted whatever the other does. The order store and
        history log apply changes in memory before persisting, so a failed save
        still advances the schedule and keeps the record; the next scan does
        not buy again.
        """
        try:
            await self.orders.record_success(order.id, now, order.amount)
        except OrderNotFoundError:
            logger.warning("engine.order_removed_after_purchase", order_id=order.id)
        except Exception as e:
            logger.error(
                "engine.schedule_update_failed",
                order_id=order.id,
                instrument_id=order.instrument_id,
                amount=str(order.amount),
                error=str(e),
                exc_info=True,
            )

        try:
            await self.history.append(record)
        except Exception as e:
            logger.error(
                "engine.history_append_failed",
                order_id=order.id,
                record_id=record.id,
                error=str(e),
                exc_info=True,
            )

    async def _still_active(self, order_id: str) -> bool:
        try:
            return await self.orders.is_active(order_id)
        except OrderNotFoundError:
            return False

    async def _fail(self, order: RecurringOrder, now: datetime, reason: FailureReason) -> ExecutionRecord:
        record = ExecutionRecord.failed(order, timestamp=now, reason=reason)
        await self.history.append(record)

        try:
            await self.orders.record_failure(order.id)
        except OrderNotFoundError:
            logger.warning("engine.order_removed_during_execution", order_id=order.id)

        logger.warning(
            "engine.execution_failed",
            order_id=order.id,
            instrument_id=order.instrument_id,
            reason=reason.value,
            consecutive_failures=self.history.consecutive_failures(order.id),
        )
        return record

    async def _lookup_price(self, instrument_id: str) -> Tuple[Optional[Decimal], bool]:
        """Return (price, used_fallback). A timeout counts as unavailable."""
        price: Optional[Decimal] = None
        try:
            price = await asyncio.wait_for(
                self.price_feed.get_price(instrument_id),
                timeout=self.config.price_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "engine.price_timeout",
                instrument_id=instrument_id,
                timeout=self.config.price_timeout_seconds,
            )
        except Exception as e:
            logger.warning("engine.price_error", instrument_id=instrument_id, error=str(e))

        if price is not None and price <= 0:
            logger.warning("engine.price_invalid", instrument_id=instrument_id, price=str(price))
            price = None

        if price is None and self.config.allow_stale_price_fallback:
            stale = self.ledger.last_price(instrument_id)
            if stale is not None:
                logger.warning(
                    "engine.price_fallback_used",
                    instrument_id=instrument_id,
                    price=str(stale),
                )
                return stale, True

        return price, False

    def get_status(self) -> Dict:
        """Get current engine status."""
        return {
            'scans_completed': self.scans_completed,
            'last_scan_at': self.last_scan_at.isoformat() if self.last_scan_at else None,
            'in_flight': len(self._in_flight),
            'orders': {
                'active': len(self.orders.active_orders()),
                'paused': len(self.orders.paused_orders()),
                'cancelled': len(self.orders.cancelled_orders()),
            },
            'monthly_investment': str(self.orders.total_monthly_investment()),
            'total_invested': str(self.orders.total_invested()),
            'total_executions': self.orders.total_executions(),
            'history': {
                'records': len(self.history),
                'successes': self.history.success_count,
                'failures': self.history.failure_count,
            },
            'ledger': {
                'cash_balance': str(self.ledger.cash_balance),
                'portfolio_value': str(self.ledger.portfolio_value()),
                'holdings': len(self.ledger.holdings),
            },
        }


class ScanScheduler:
    """
    Drives ExecutionEngine.scan_once at a fixed cadence.

    The first scan runs as soon as the scheduler starts. ``trigger`` runs an
    extra scan on demand (manual force check).
    """

    def __init__(self, engine: ExecutionEngine, interval_seconds: Optional[float] = None):
        self.engine = engine
        self.interval_seconds = interval_seconds or engine.config.scan_interval_seconds

        self._running = False
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self):
        """Start the scan loop."""
        if self._running:
            return
        logger.info("scheduler.starting", interval_seconds=self.interval_seconds)
        self._running = True
        self._task = asyncio.create_task(self._main_loop())

    async def stop(self):
        """Stop the scan loop gracefully."""
        logger.info("scheduler.stopping")
        self._running = False

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        logger.info("scheduler.stopped")

    async def trigger(self) -> List[ExecutionRecord]:
        """Run one scan immediately."""
        logger.info("scheduler.manual_trigger")
        return await self.engine.scan_once(self.engine.clock.now())

    async def _main_loop(self):
        while self._running:
            try:
                await self.engine.scan_once(self.engine.clock.now())
            except Exception as e:
                logger.error("scheduler.scan_error", error=str(e), exc_info=True)

            await asyncio.sleep(self.interval_seconds)
