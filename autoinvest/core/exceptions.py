"""Exception hierarchy for the recurring-order engine.

Only structural problems are raised to callers (bad input, unknown ids,
illegal lifecycle transitions, ledger rejections). Steady-state execution
failures are recorded in the history log instead.
"""


class AutoInvestError(Exception):
    """Base class for all errors raised by the engine."""


# =============================================================================
# Order Store Errors
# =============================================================================

class OrderValidationError(AutoInvestError):
    """Raised when a recurring order fails validation on add."""


class OrderNotFoundError(AutoInvestError):
    """Raised when an operation references an unknown order id."""

    def __init__(self, order_id: str):
        super().__init__(f"Recurring order {order_id} not found")
        self.order_id = order_id


class OrderStateError(AutoInvestError):
    """Raised on an illegal lifecycle transition (e.g. resuming a cancelled order)."""


# =============================================================================
# Ledger Errors
# =============================================================================

class LedgerError(AutoInvestError):
    """Base class for ledger rejections."""


class LedgerValidationError(LedgerError):
    """Raised for non-positive amounts, shares or prices."""


class InsufficientFundsError(LedgerError):
    """Raised when a buy would overdraw the cash balance."""


class InsufficientSharesError(LedgerError):
    """Raised when a sell exceeds the held quantity."""


class UnknownInstrumentError(LedgerError):
    """Raised when selling an instrument that is not held."""
