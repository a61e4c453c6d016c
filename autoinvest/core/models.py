"""Data models for the recurring-order engine.

This module defines the data structures shared by the components:
- RecurringOrder: a standing instruction to buy a fixed amount on a schedule
- ExecutionRecord: an immutable log entry for one execution attempt
- Holding / LedgerEvent / LedgerState: the cash and holdings ledger

All monetary values and share quantities use Decimal for precision.
All timestamps are timezone-aware UTC datetime objects.
"""

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Normalise a datetime to aware UTC; naive values are taken as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# =============================================================================
# Enums
# =============================================================================

class Frequency(str, Enum):
    """How often a recurring order executes."""
    DAILY = "daily"
    WEEKLY = "weekly"
    BIWEEKLY = "biweekly"
    MONTHLY = "monthly"

    @property
    def display_name(self) -> str:
        """Human-readable label."""
        return {
            Frequency.DAILY: "Daily",
            Frequency.WEEKLY: "Weekly",
            Frequency.BIWEEKLY: "Every 2 weeks",
            Frequency.MONTHLY: "Monthly",
        }[self]

    @property
    def monthly_multiplier(self) -> Decimal:
        """Approximate executions per month, used for spend estimates."""
        return {
            Frequency.DAILY: Decimal("30"),
            Frequency.WEEKLY: Decimal("4.33"),
            Frequency.BIWEEKLY: Decimal("2.17"),
            Frequency.MONTHLY: Decimal("1"),
        }[self]


class RecurringOrderStatus(str, Enum):
    """Recurring order lifecycle status."""
    ACTIVE = "active"
    PAUSED = "paused"
    CANCELLED = "cancelled"       # Terminal


class FailureReason(str, Enum):
    """Why an execution attempt failed."""
    PRICE_UNAVAILABLE = "price_unavailable"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    LEDGER_REJECTED = "ledger_rejected"
    ORDER_CANCELLED = "order_cancelled"


class LedgerEventType(str, Enum):
    """Ledger event kind."""
    BUY = "buy"
    SELL = "sell"


# =============================================================================
# Recurring Order Models
# =============================================================================

class RecurringOrder(BaseModel):
    """A standing instruction to buy a fixed amount of an instrument.

    Attributes:
        instrument_id: Tradable instrument identifier (e.g., "AAPL")
        amount: Fixed monetary amount per execution
        frequency: Daily, weekly, biweekly or monthly
        id: Internal order ID (UUID)
        instrument_name: Optional display name
        currency: Currency of ``amount``
        status: Active, paused or cancelled
        created_at: Creation timestamp
        last_executed_at: Timestamp of the last successful execution
        next_due_at: When the order next becomes due
        purchase_count: Number of successful executions
        total_invested: Sum of amounts across successful executions
    """
    model_config = ConfigDict(validate_assignment=True)

    instrument_id: str = Field(..., min_length=1, description="Instrument identifier")
    amount: Decimal = Field(..., description="Amount per execution")
    frequency: Frequency = Field(..., description="Execution frequency")

    id: str = Field(default_factory=lambda: str(uuid4()), description="Internal order ID")
    instrument_name: Optional[str] = Field(default=None, description="Display name")
    currency: str = Field(default="GBP", description="Currency of amount")
    status: RecurringOrderStatus = Field(
        default=RecurringOrderStatus.ACTIVE, description="Lifecycle status"
    )

    created_at: datetime = Field(default_factory=utc_now, description="Creation time")
    last_executed_at: Optional[datetime] = Field(default=None, description="Last success")
    next_due_at: Optional[datetime] = Field(default=None, description="Next due time")

    purchase_count: int = Field(default=0, ge=0, description="Successful executions")
    total_invested: Decimal = Field(default=Decimal("0"), ge=0, description="Total invested")

    @field_validator("created_at", "last_executed_at", "next_due_at")
    @classmethod
    def normalise_timestamps(cls, v: Optional[datetime]) -> Optional[datetime]:
        """Store every timestamp as aware UTC."""
        if v is None:
            return v
        return ensure_utc(v)

    @property
    def is_active(self) -> bool:
        """True if the order is eligible for execution."""
        return self.status == RecurringOrderStatus.ACTIVE

    @property
    def schedule_anchor(self) -> datetime:
        """Reference time for the next due date."""
        return self.last_executed_at or self.created_at

    def is_due(self, now: datetime) -> bool:
        """True if active and the due time has passed."""
        if not self.is_active or self.next_due_at is None:
            return False
        return self.next_due_at <= ensure_utc(now)


# =============================================================================
# Execution History Models
# =============================================================================

class ExecutionRecord(BaseModel):
    """Immutable record of one execution attempt.

    Price and shares are zero on failure; ``error_reason`` is set iff the
    attempt failed.
    """
    model_config = ConfigDict(frozen=True)

    order_id: str = Field(..., description="Owning recurring order")
    instrument_id: str = Field(..., description="Instrument identifier")
    timestamp: datetime = Field(..., description="Attempt time")
    amount: Decimal = Field(..., description="Order amount")
    success: bool = Field(..., description="Whether the purchase went through")

    id: str = Field(default_factory=lambda: str(uuid4()), description="Record ID")
    price_per_share: Decimal = Field(default=Decimal("0"), ge=0)
    shares_acquired: Decimal = Field(default=Decimal("0"), ge=0)
    error_reason: Optional[FailureReason] = Field(default=None)
    used_fallback_price: bool = Field(default=False)

    @field_validator("timestamp")
    @classmethod
    def normalise_timestamp(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @model_validator(mode="after")
    def check_outcome_fields(self) -> "ExecutionRecord":
        """error_reason is set iff the attempt failed."""
        if self.success and self.error_reason is not None:
            raise ValueError("Successful records cannot carry an error_reason")
        if not self.success:
            if self.error_reason is None:
                raise ValueError("Failed records require an error_reason")
            if self.price_per_share != 0 or self.shares_acquired != 0:
                raise ValueError("Failed records must have zero price and shares")
        return self

    @classmethod
    def succeeded(
        cls,
        order: RecurringOrder,
        timestamp: datetime,
        price_per_share: Decimal,
        shares_acquired: Decimal,
        used_fallback_price: bool = False,
    ) -> "ExecutionRecord":
        """Build a success record for an order."""
        return cls(
            order_id=order.id,
            instrument_id=order.instrument_id,
            timestamp=timestamp,
            amount=order.amount,
            success=True,
            price_per_share=price_per_share,
            shares_acquired=shares_acquired,
            used_fallback_price=used_fallback_price,
        )

    @classmethod
    def failed(
        cls,
        order: RecurringOrder,
        timestamp: datetime,
        reason: FailureReason,
    ) -> "ExecutionRecord":
        """Build a failure record for an order."""
        return cls(
            order_id=order.id,
            instrument_id=order.instrument_id,
            timestamp=timestamp,
            amount=order.amount,
            success=False,
            error_reason=reason,
        )


# =============================================================================
# Ledger Models
# =============================================================================

class Holding(BaseModel):
    """Position in one instrument.

    ``last_price`` is the most recent price seen for the instrument and is
    used to value the holding.
    """

    instrument_id: str = Field(..., description="Instrument identifier")
    shares: Decimal = Field(..., ge=0, description="Shares held")
    average_cost: Decimal = Field(..., ge=0, description="Average cost per share")
    last_price: Decimal = Field(..., ge=0, description="Last seen price")

    @property
    def total_cost(self) -> Decimal:
        """Cost basis of the position."""
        return self.shares * self.average_cost

    @property
    def market_value(self) -> Decimal:
        """Value at the last seen price."""
        return self.shares * self.last_price

    @property
    def profit_loss(self) -> Decimal:
        """Unrealized PnL against cost basis."""
        return self.market_value - self.total_cost

    @property
    def profit_loss_pct(self) -> Decimal:
        """Unrealized PnL as a percentage of cost basis."""
        if self.total_cost == 0:
            return Decimal("0")
        return (self.profit_loss / self.total_cost) * 100


class LedgerEvent(BaseModel):
    """Append-only ledger event."""
    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    type: LedgerEventType
    instrument_id: str
    shares: Decimal
    price_per_share: Decimal
    total_value_after: Decimal

    @field_validator("timestamp")
    @classmethod
    def normalise_timestamp(cls, v: datetime) -> datetime:
        return ensure_utc(v)


class LedgerState(BaseModel):
    """Serializable snapshot of the ledger."""

    cash_balance: Decimal = Field(default=Decimal("0"), ge=0)
    holdings: Dict[str, Holding] = Field(default_factory=dict)
    events: List[LedgerEvent] = Field(default_factory=list)


class ProfitLoss(BaseModel):
    """Profit/loss summary for a holding or the whole portfolio."""

    value: Decimal
    percent: Decimal

    @property
    def is_positive(self) -> bool:
        return self.value >= 0
