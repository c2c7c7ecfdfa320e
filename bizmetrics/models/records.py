"""
Raw record models supplied by the storage layer.

Orders and customers are the only inputs the metrics engine reads. Stored
metrics are the only durable output: full snapshots are never persisted, just
the derived scalar figures keyed by metric type.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .enums import CLOSED_STATUSES, OrderStatus


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes as UTC so all comparisons are offset-aware."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class OrderRecord(BaseModel):
    """
    A customer order as read from storage.

    Attributes:
        id: Storage identifier of the order
        order_number: Human-facing order number (defaults to the id)
        customer_id: Identifier of the ordering customer
        total_amount: Full price of the order
        deposit_amount: Amount already paid against the order
        status: Production lifecycle status
        due_date: When the balance is due, if agreed
        created_at: When the order was placed
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Storage identifier of the order")
    order_number: Optional[str] = Field(default=None, description="Human-facing order number")
    customer_id: str = Field(description="Identifier of the ordering customer")
    total_amount: Decimal = Field(ge=0, description="Full price of the order")
    deposit_amount: Decimal = Field(default=Decimal("0"), ge=0, description="Amount paid so far")
    status: OrderStatus = Field(description="Production lifecycle status")
    due_date: Optional[datetime] = Field(default=None, description="Balance due date")
    created_at: datetime = Field(description="When the order was placed")

    @field_validator("deposit_amount", mode="before")
    @classmethod
    def default_missing_deposit(cls, v):
        """Storage rows carry NULL for orders without a deposit."""
        return Decimal("0") if v is None else v

    @field_validator("due_date", "created_at")
    @classmethod
    def normalize_timezone(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(v)

    @property
    def display_number(self) -> str:
        return self.order_number or self.id

    @property
    def balance_amount(self) -> Decimal:
        """Unpaid remainder, never negative."""
        return max(Decimal("0"), self.total_amount - self.deposit_amount)

    @property
    def is_open(self) -> bool:
        return self.status not in CLOSED_STATUSES

    @property
    def paid_amount(self) -> Decimal:
        """Completed orders are fully paid; everything else has paid its deposit."""
        if self.status == OrderStatus.COMPLETED:
            return self.total_amount
        return self.deposit_amount


class CustomerRecord(BaseModel):
    """A customer as read from storage."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Storage identifier of the customer")
    first_name: Optional[str] = Field(default=None, description="Given name")
    last_name: Optional[str] = Field(default=None, description="Family name")
    total_spent: Decimal = Field(default=Decimal("0"), description="Lifetime spend")
    created_at: datetime = Field(description="When the customer was created")

    @field_validator("total_spent", mode="before")
    @classmethod
    def default_missing_spend(cls, v):
        return Decimal("0") if v is None else v

    @field_validator("created_at")
    @classmethod
    def normalize_timezone(cls, v: datetime) -> datetime:
        return _as_utc(v)


class StoredMetric(BaseModel):
    """
    A durably persisted scalar metric.

    Attributes:
        metric_type: Metric key (e.g., "monthly_revenue")
        value: Last written value
        updated_at: When the value was last upserted
    """

    model_config = ConfigDict(frozen=True)

    metric_type: str = Field(description="Metric key")
    value: Decimal = Field(description="Last written value")
    updated_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="When the value was last upserted",
    )

    @field_validator("updated_at")
    @classmethod
    def normalize_timezone(cls, v: datetime) -> datetime:
        return _as_utc(v)
