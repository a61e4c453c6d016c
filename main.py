"""
AutoInvest - Main Entry Point

Recurring-order scheduling and execution engine.

Usage:
    # Check configuration
    python main.py --check

    # Initialize database
    python main.py --init-db

    # Show status
    python main.py --status

    # Register a standing order: buy 50 of AAPL every week
    python main.py --add AAPL 50 weekly

    # Pause / resume / cancel an order
    python main.py --pause <order-id>

    # Top up cash and run one scan now (manual force check)
    python main.py --deposit 500 --scan-once

    # Run the scheduler loop until interrupted
    python main.py --run
"""

import argparse
import asyncio
import signal
from decimal import Decimal
from typing import Dict, Optional

import structlog

from autoinvest.core.clock import Clock, SystemClock
from autoinvest.core.config import app_config
from autoinvest.core.demo import ensure_minimum_balance, seed_demo_orders
from autoinvest.core.engine import ExecutionEngine, ScanScheduler
from autoinvest.core.exceptions import AutoInvestError
from autoinvest.core.schedule import resolve_timezone
from autoinvest.feeds import PriceFeed, create_price_feed
from autoinvest.history import HistoryLog
from autoinvest.ledger import Ledger
from autoinvest.orders import OrderStore
from autoinvest.storage import Database
from autoinvest.utils.logging_config import setup_logging

logger = structlog.get_logger(__name__)


class AutoInvestApp:
    """
    Composition root wiring the components for the real application.

    Every component is constructed here with its collaborators injected;
    nothing else in the package holds process-wide state.
    """

    def __init__(
        self,
        database: Optional[Database] = None,
        price_feed: Optional[PriceFeed] = None,
        clock: Optional[Clock] = None,
    ):
        self.database = database or Database()
        self.price_feed = price_feed or create_price_feed()
        self.clock = clock or SystemClock()
        tz = resolve_timezone(app_config.system.timezone)

        self.ledger = Ledger(clock=self.clock, store=self.database)
        self.orders = OrderStore(limits=app_config.limits, tz=tz, store=self.database)
        self.history = HistoryLog(store=self.database)
        self.engine = ExecutionEngine(
            orders=self.orders,
            history=self.history,
            ledger=self.ledger,
            price_feed=self.price_feed,
            clock=self.clock,
            config=app_config.scheduler,
        )
        self.scheduler = ScanScheduler(self.engine)

        self._shutdown_event = asyncio.Event()

    async def initialize(self):
        """Create tables and restore persisted state."""
        logger.info("app.initializing", price_feed=app_config.price_feed.provider)

        await self.database.initialize()
        await self.ledger.load()
        await self.orders.load()
        await self.history.load()

        logger.info(
            "app.initialized",
            orders=len(self.orders),
            history=len(self.history),
            cash_balance=str(self.ledger.cash_balance),
        )

    async def run(self):
        """Run the scan loop until a shutdown signal arrives."""
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self._shutdown_event.set)
            except NotImplementedError:
                # Signal handlers are unavailable on some platforms
                pass

        await self.scheduler.start()
        await self._shutdown_event.wait()
        await self.shutdown()

    async def shutdown(self):
        """Stop the scheduler and close connections."""
        logger.info("app.shutting_down")
        await self.scheduler.stop()
        await self.price_feed.close()
        await self.database.close()
        logger.info("app.shutdown_complete")

    def get_status(self) -> Dict:
        """Status summary for display."""
        status = self.engine.get_status()
        status["timestamp"] = self.clock.now().isoformat()
        status["orders_detail"] = [
            {
                "id": order.id,
                "instrument_id": order.instrument_id,
                "amount": str(order.amount),
                "frequency": order.frequency.value,
                "status": order.status.value,
                "next_due_at": order.next_due_at.isoformat() if order.next_due_at else None,
                "purchase_count": order.purchase_count,
                "consecutive_failures": self.history.consecutive_failures(order.id),
            }
            for order in self.orders.list_orders()
        ]
        status["recent_executions"] = [
            {
                "order_id": record.order_id,
                "timestamp": record.timestamp.isoformat(),
                "success": record.success,
                "shares": str(record.shares_acquired),
                "error": record.error_reason.value if record.error_reason else None,
            }
            for record in self.history.newest_first(limit=5)
        ]
        return status


def check_configuration() -> Dict:
    """Check if configuration is valid."""
    validation = app_config.validate_configuration()
    warnings = []

    if app_config.scheduler.allow_stale_price_fallback:
        warnings.append("Stale price fallback is ENABLED; purchases may use old prices")
    if app_config.price_feed.provider == "static":
        warnings.append("Using static prices (no live price feed)")

    return {
        "valid": validation["valid"],
        "issues": validation["issues"],
        "warnings": warnings,
        "price_feed": app_config.price_feed.provider,
        "scan_interval_seconds": app_config.scheduler.scan_interval_seconds,
    }


def print_status(status: Dict):
    """Print formatted status output."""
    print("\n" + "=" * 60)
    print("           AUTOINVEST - STATUS")
    print("=" * 60)

    print(f"\nTimestamp: {status.get('timestamp', 'N/A')}")

    ledger = status.get("ledger", {})
    print("\nLedger:")
    print(f"   Cash: {ledger.get('cash_balance', 'N/A')}")
    print(f"   Holdings value: {ledger.get('portfolio_value', 'N/A')}")

    print(f"\nOrders (monthly spend ~{status.get('monthly_investment', '0')}):")
    orders = status.get("orders_detail", [])
    if not orders:
        print("   No recurring orders")
    for order in orders:
        line = (
            f"   {order['id'][:8]} {order['instrument_id']} {order['amount']} "
            f"{order['frequency']} [{order['status']}] next {order['next_due_at']}"
        )
        if order["consecutive_failures"]:
            line += f" ({order['consecutive_failures']} failed attempts)"
        print(line)

    executions = status.get("recent_executions", [])
    if executions:
        print("\nRecent executions:")
        for record in executions:
            outcome = f"bought {record['shares']}" if record["success"] else record["error"]
            print(f"   {record['timestamp']} {record['order_id'][:8]} {outcome}")

    print("\n" + "=" * 60)


async def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="AutoInvest - recurring-order scheduling and execution engine"
    )

    parser.add_argument("--check", action="store_true", help="Check configuration and exit")
    parser.add_argument("--init-db", action="store_true", help="Initialize database and exit")
    parser.add_argument("--status", action="store_true", help="Show status and exit")
    parser.add_argument("--run", action="store_true", help="Run the scan loop")
    parser.add_argument("--scan-once", action="store_true", help="Run one scan now")
    parser.add_argument("--seed-demo", action="store_true", help="Seed demo orders and funds")
    parser.add_argument("--deposit", type=Decimal, metavar="AMOUNT", help="Deposit cash")
    parser.add_argument(
        "--add",
        nargs=3,
        metavar=("INSTRUMENT", "AMOUNT", "FREQUENCY"),
        help="Add a recurring order (frequency: daily, weekly, biweekly, monthly)",
    )
    parser.add_argument("--pause", metavar="ORDER_ID", help="Pause an order")
    parser.add_argument("--resume", metavar="ORDER_ID", help="Resume an order")
    parser.add_argument("--cancel", metavar="ORDER_ID", help="Cancel an order")

    args = parser.parse_args()

    setup_logging()

    config_check = check_configuration()
    for warning in config_check["warnings"]:
        print(warning)

    if args.check:
        print("\n" + "=" * 60)
        print("           CONFIGURATION CHECK")
        print("=" * 60)
        if config_check["valid"]:
            print("\nConfiguration is valid")
        else:
            print("\nConfiguration errors:")
            for issue in config_check["issues"]:
                print(f"   - {issue}")
        print(f"\nPrice feed: {config_check['price_feed']}")
        print(f"Scan interval: {config_check['scan_interval_seconds']}s")
        print("\n" + "=" * 60)
        return

    if not config_check["valid"]:
        print("\nConfiguration errors:")
        for issue in config_check["issues"]:
            print(f"   - {issue}")
        print("\nPlease check your .env file and try again.")
        return

    if args.init_db:
        print("\nInitializing database...")
        db = Database()
        await db.initialize()
        print("Database initialized successfully")
        await db.close()
        return

    app = AutoInvestApp()
    await app.initialize()

    try:
        if args.seed_demo:
            added = await ensure_minimum_balance(app.ledger, app_config.demo.minimum_balance)
            seeded = await seed_demo_orders(app.orders, app.history, app.clock.now())
            print(f"Added {added} cash, seeded {len(seeded)} demo orders")

        if args.deposit is not None:
            balance = await app.ledger.deposit(args.deposit)
            print(f"Deposited {args.deposit}; cash balance {balance}")

        if args.add:
            instrument_id, amount, frequency = args.add
            order = await app.orders.create(instrument_id, amount, frequency)
            print(f"Added order {order.id}, next due {order.next_due_at.isoformat()}")

        if args.pause:
            await app.orders.pause(args.pause)
            print(f"Paused {args.pause}")
        if args.resume:
            await app.orders.resume(args.resume)
            print(f"Resumed {args.resume}")
        if args.cancel:
            await app.orders.cancel(args.cancel)
            print(f"Cancelled {args.cancel}")

        if args.scan_once:
            records = await app.scheduler.trigger()
            print(f"Scan complete: {len(records)} executions attempted")

        if args.status:
            print_status(app.get_status())

        if args.run:
            # run() shuts the app down itself when the loop ends
            await app.run()
            return

    except AutoInvestError as e:
        print(f"\nError: {e}")
    except KeyboardInterrupt:
        print("\n\nShutdown requested by user...")
    except Exception as e:
        logger.error("main.error", error=str(e), exc_info=True)
        print(f"\nFatal error: {e}")
        raise
    finally:
        if not args.run:
            await app.shutdown()


if __name__ == "__main__":
    asyncio.run(main())
