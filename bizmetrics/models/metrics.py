"""
Dashboard metrics snapshot models.

A MetricsSnapshot is one computed, timestamped instance of every dashboard
figure. Snapshots are frozen all the way down, nested sequences and
records included, so a served snapshot cannot alter what the cache and
history hold. History entries are evicted, never mutated.
Money and percentage fields are Decimals quantized to cents and serialize to
JSON numbers.
"""

import hashlib
import json
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from types import MappingProxyType
from typing import Annotated, Any, Mapping

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, PlainSerializer, computed_field

from .enums import UrgencyLevel
from .records import CustomerRecord, OrderRecord

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

Money = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]
Percent = Annotated[Decimal, PlainSerializer(float, return_type=float, when_used="json")]

# Read-only histogram; serializes back to a plain dict
Counts = Annotated[
    Mapping[str, int],
    AfterValidator(lambda v: MappingProxyType(dict(v))),
    PlainSerializer(dict, return_type=dict),
]

# Fields covered by the snapshot checksum
CHECKSUM_FIELDS = (
    "monthly_revenue",
    "active_orders",
    "total_customers",
    "total_outstanding",
    "paid_revenue",
)

# Scalar figures written to the durable metric store, by metric type
PERSISTED_METRICS = (
    "monthly_revenue",
    "active_orders",
    "total_customers",
    "completion_rate",
    "average_order_value",
    "total_outstanding",
    "paid_revenue",
    "payment_rate",
)

# Counts compared exactly; everything else is compared within a tolerance
INTEGER_METRICS = frozenset({"active_orders", "total_customers"})


def round_money(value: Any) -> Decimal:
    """Round to two decimals, half-up."""
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def compute_checksum(values: Mapping[str, Any]) -> str:
    """
    Deterministic checksum over the five core snapshot figures.

    Values are rendered canonically (cents for money, integers for counts)
    before hashing, so two recomputations over unchanged data agree.

    Args:
        values: Mapping containing every key in CHECKSUM_FIELDS

    Returns:
        First 16 hex characters of the SHA-256 digest
    """
    canonical = {
        "monthly_revenue": str(round_money(values["monthly_revenue"])),
        "active_orders": int(values["active_orders"]),
        "total_customers": int(values["total_customers"]),
        "total_outstanding": str(round_money(values["total_outstanding"])),
        "paid_revenue": str(round_money(values["paid_revenue"])),
    }
    payload = json.dumps(canonical, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()[:16]


class ReceivableEntry(BaseModel):
    """Unpaid balance on an open order, classified by days past due."""

    model_config = ConfigDict(frozen=True)

    order_id: str = Field(description="Order identifier")
    order_number: str = Field(description="Human-facing order number")
    customer_id: str = Field(description="Owing customer")
    balance_amount: Money = Field(ge=0, description="Unpaid balance")
    days_past_due: int = Field(description="Whole days since the due date (0 if none)")
    urgency_level: UrgencyLevel = Field(description="Aging bucket")


class ReceivablesAging(BaseModel):
    """Receivables with their aging aggregates."""

    model_config = ConfigDict(frozen=True)

    entries: tuple[ReceivableEntry, ...] = ()
    critical_count: int = Field(default=0, ge=0)
    high_count: int = Field(default=0, ge=0)
    total_critical_amount: Money = Field(default=ZERO)
    total_high_amount: Money = Field(default=ZERO)
    overdue_amount: Money = Field(default=ZERO, description="Balance past its due date")
    total_receivables: Money = Field(default=ZERO, description="Sum of all entry balances")


class MetricsSnapshot(BaseModel):
    """
    One computed instance of all dashboard metrics.

    Attributes:
        timestamp: When the snapshot was computed
        monthly_revenue: Order value created this calendar month
        previous_month_revenue: Order value created last calendar month
        revenue_growth: Month-over-month revenue change in percent
        active_orders: Orders neither completed nor cancelled
        order_count: All orders
        completed_order_count: Orders with status completed
        completion_rate: completed / all orders, in percent
        total_customers: All customers
        new_customers_this_month: Customers created this month
        customer_growth: Month-over-month new-customer change in percent
        total_revenue: Value of all orders
        average_order_value: total_revenue / order_count
        paid_revenue: Full amount of completed orders plus deposits elsewhere
        monthly_paid_revenue: paid_revenue restricted to this month's orders
        total_outstanding: Sum of open-order balances
        monthly_outstanding: total_outstanding restricted to this month's orders
        payment_rate: monthly_paid_revenue / monthly_revenue, in percent
        weekly_orders: Orders created in the trailing 7 days
        weekly_revenue: Order value created in the trailing 7 days
        orders_by_status: Histogram of order statuses
        receivables_aging: Open balances bucketed by days past due
        recent_orders: Five most recently created orders
        top_customers: Five customers with the highest lifetime spend
    """

    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    monthly_revenue: Money = ZERO
    previous_month_revenue: Money = ZERO
    revenue_growth: Percent = ZERO
    active_orders: int = 0
    order_count: int = 0
    completed_order_count: int = 0
    completion_rate: Percent = ZERO
    total_customers: int = 0
    new_customers_this_month: int = 0
    customer_growth: Percent = ZERO
    total_revenue: Money = ZERO
    average_order_value: Money = ZERO
    paid_revenue: Money = ZERO
    monthly_paid_revenue: Money = ZERO
    total_outstanding: Money = ZERO
    monthly_outstanding: Money = ZERO
    payment_rate: Percent = ZERO
    weekly_orders: int = 0
    weekly_revenue: Money = ZERO
    orders_by_status: Counts = Field(default_factory=lambda: MappingProxyType({}))
    receivables_aging: ReceivablesAging = Field(default_factory=ReceivablesAging)
    recent_orders: tuple[OrderRecord, ...] = ()
    top_customers: tuple[CustomerRecord, ...] = ()

    @computed_field  # type: ignore[prop-decorator]
    @property
    def checksum(self) -> str:
        return compute_checksum({name: getattr(self, name) for name in CHECKSUM_FIELDS})

    @classmethod
    def empty(cls, timestamp: datetime) -> "MetricsSnapshot":
        """All-zero snapshot served when nothing has ever been calculated."""
        return cls(timestamp=timestamp)

    def core_values(self) -> dict[str, Any]:
        """The checksum fields, keyed by name."""
        return {name: getattr(self, name) for name in CHECKSUM_FIELDS}
