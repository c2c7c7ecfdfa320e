"""
Dashboard Metrics Calculator.

Pure aggregation of raw orders and customers into a MetricsSnapshot. The
calculator performs no I/O: the service reads collections from storage and
hands them in together with the reference instant, so two calls over the same
data at the same instant produce identical snapshots.

Calculation Rules:
    - Orders are partitioned by calendar month of creation (UTC)
    - Completed orders count as fully paid, all others as deposit-only
    - Outstanding balance is max(0, total - deposit) over open orders
    - Every ratio guards its denominator; nothing is ever NaN
    - Money and percentages are rounded half-up to cents at the end
"""

from collections import Counter
from collections.abc import Iterable, Mapping
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Any, Optional, TypeVar

import structlog
from pydantic import BaseModel, ValidationError

from bizmetrics.models.enums import OrderStatus, UrgencyLevel
from bizmetrics.models.metrics import (
    MetricsSnapshot,
    ReceivableEntry,
    ReceivablesAging,
    round_money,
)
from bizmetrics.models.records import CustomerRecord, OrderRecord

RecordT = TypeVar("RecordT", bound=BaseModel)

HUNDRED = Decimal("100")


class CalculationError(Exception):
    """Raised when input collections are missing or malformed."""

    pass


def month_bounds(now: datetime) -> tuple[datetime, datetime]:
    """Start of the current and of the previous calendar month."""
    month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    previous_start = (month_start - timedelta(days=1)).replace(day=1)
    return month_start, previous_start


def percent_of(numerator: Decimal, denominator: Decimal) -> Decimal:
    """numerator / denominator as a percentage, 0 when the denominator is 0."""
    if denominator == 0:
        return Decimal("0")
    return Decimal(numerator) * HUNDRED / Decimal(denominator)


def growth_rate(current: Decimal, previous: Decimal) -> Decimal:
    """
    Percent change from previous to current.

    A rise from zero reports 100%, zero to zero reports 0%.
    """
    if previous == 0:
        return HUNDRED if current > 0 else Decimal("0")
    return (Decimal(current) - Decimal(previous)) * HUNDRED / Decimal(previous)


def classify_urgency(days_past_due: int) -> UrgencyLevel:
    """Map days past due onto an aging bucket."""
    if days_past_due > 30:
        return UrgencyLevel.CRITICAL
    if days_past_due > 14:
        return UrgencyLevel.HIGH
    if days_past_due > 7:
        return UrgencyLevel.MEDIUM
    return UrgencyLevel.NORMAL


class MetricsCalculator:
    """
    Aggregates orders and customers into dashboard metrics.

    Attributes:
        weekly_window: Trailing window for order velocity
        recent_orders_limit: Number of recent orders carried on the snapshot
        top_customers_limit: Number of top customers carried on the snapshot

    Example:
        >>> calculator = MetricsCalculator()
        >>> snapshot = calculator.calculate(orders, customers, now=datetime.now(timezone.utc))
        >>> snapshot.total_outstanding
        Decimal('80.00')
    """

    def __init__(
        self,
        weekly_window: timedelta = timedelta(days=7),
        recent_orders_limit: int = 5,
        top_customers_limit: int = 5,
    ):
        self.weekly_window = weekly_window
        self.recent_orders_limit = recent_orders_limit
        self.top_customers_limit = top_customers_limit
        self.logger = structlog.get_logger()

    def calculate(
        self,
        orders: Optional[Iterable[Any]],
        customers: Optional[Iterable[Any]],
        now: Optional[datetime] = None,
    ) -> MetricsSnapshot:
        """
        Compute a full snapshot.

        Args:
            orders: OrderRecord instances or mappings coercible to them
            customers: CustomerRecord instances or mappings coercible to them
            now: Reference instant (default: current UTC time)

        Returns:
            A new, immutable MetricsSnapshot stamped with ``now``

        Raises:
            CalculationError: If either collection is missing or malformed
        """
        if now is None:
            now = datetime.now(timezone.utc)
        elif now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)

        order_records = self._coerce(orders, OrderRecord, "orders")
        customer_records = self._coerce(customers, CustomerRecord, "customers")

        month_start, previous_start = month_bounds(now)
        week_start = now - self.weekly_window

        this_month = [o for o in order_records if o.created_at >= month_start]
        previous_month = [
            o for o in order_records if previous_start <= o.created_at < month_start
        ]
        this_week = [o for o in order_records if o.created_at >= week_start]
        open_orders = [o for o in order_records if o.is_open]

        monthly_revenue = sum((o.total_amount for o in this_month), Decimal("0"))
        previous_month_revenue = sum((o.total_amount for o in previous_month), Decimal("0"))
        total_revenue = sum((o.total_amount for o in order_records), Decimal("0"))

        order_count = len(order_records)
        completed_count = sum(1 for o in order_records if o.status == OrderStatus.COMPLETED)

        paid_revenue = sum((o.paid_amount for o in order_records), Decimal("0"))
        monthly_paid_revenue = sum((o.paid_amount for o in this_month), Decimal("0"))

        total_outstanding = sum((o.balance_amount for o in open_orders), Decimal("0"))
        monthly_outstanding = sum(
            (o.balance_amount for o in this_month if o.is_open), Decimal("0")
        )

        new_customers = sum(1 for c in customer_records if c.created_at >= month_start)
        previous_customers = sum(
            1 for c in customer_records if previous_start <= c.created_at < month_start
        )

        average_order_value = (
            total_revenue / order_count if order_count else Decimal("0")
        )

        snapshot = MetricsSnapshot(
            timestamp=now,
            monthly_revenue=round_money(monthly_revenue),
            previous_month_revenue=round_money(previous_month_revenue),
            revenue_growth=round_money(growth_rate(monthly_revenue, previous_month_revenue)),
            active_orders=len(open_orders),
            order_count=order_count,
            completed_order_count=completed_count,
            completion_rate=round_money(percent_of(completed_count, order_count)),
            total_customers=len(customer_records),
            new_customers_this_month=new_customers,
            customer_growth=round_money(
                growth_rate(Decimal(new_customers), Decimal(previous_customers))
            ),
            total_revenue=round_money(total_revenue),
            average_order_value=round_money(average_order_value),
            paid_revenue=round_money(paid_revenue),
            monthly_paid_revenue=round_money(monthly_paid_revenue),
            total_outstanding=round_money(total_outstanding),
            monthly_outstanding=round_money(monthly_outstanding),
            payment_rate=round_money(percent_of(monthly_paid_revenue, monthly_revenue)),
            weekly_orders=len(this_week),
            weekly_revenue=round_money(sum((o.total_amount for o in this_week), Decimal("0"))),
            orders_by_status=dict(Counter(o.status.value for o in order_records)),
            receivables_aging=self.build_receivables_aging(open_orders, now),
            recent_orders=self._recent_orders(order_records),
            top_customers=self._top_customers(customer_records),
        )

        self.logger.debug(
            "metrics_calculated",
            order_count=order_count,
            customer_count=len(customer_records),
            monthly_revenue=str(snapshot.monthly_revenue),
            total_outstanding=str(snapshot.total_outstanding),
            checksum=snapshot.checksum,
        )

        return snapshot

    def build_receivables_aging(
        self,
        open_orders: list[OrderRecord],
        now: datetime,
    ) -> ReceivablesAging:
        """
        Bucket every open order with a positive balance by days past due.

        Orders without a due date are 0 days past due. Orders not yet due
        carry a negative day count and stay in the normal bucket.
        """
        entries = []
        for order in open_orders:
            balance = order.balance_amount
            if balance <= 0:
                continue
            days_past_due = (now - order.due_date) // timedelta(days=1) if order.due_date else 0
            entries.append(
                ReceivableEntry(
                    order_id=order.id,
                    order_number=order.display_number,
                    customer_id=order.customer_id,
                    balance_amount=round_money(balance),
                    days_past_due=days_past_due,
                    urgency_level=classify_urgency(days_past_due),
                )
            )

        entries.sort(key=lambda e: (-e.days_past_due, e.order_id))

        critical = [e for e in entries if e.urgency_level == UrgencyLevel.CRITICAL]
        high = [e for e in entries if e.urgency_level == UrgencyLevel.HIGH]

        return ReceivablesAging(
            entries=entries,
            critical_count=len(critical),
            high_count=len(high),
            total_critical_amount=round_money(sum((e.balance_amount for e in critical), Decimal("0"))),
            total_high_amount=round_money(sum((e.balance_amount for e in high), Decimal("0"))),
            overdue_amount=round_money(
                sum((e.balance_amount for e in entries if e.days_past_due > 0), Decimal("0"))
            ),
            total_receivables=round_money(sum((e.balance_amount for e in entries), Decimal("0"))),
        )

    def _recent_orders(self, orders: list[OrderRecord]) -> list[OrderRecord]:
        ordered = sorted(orders, key=lambda o: (o.created_at, o.id), reverse=True)
        return ordered[: self.recent_orders_limit]

    def _top_customers(self, customers: list[CustomerRecord]) -> list[CustomerRecord]:
        spenders = [c for c in customers if c.total_spent > 0]
        spenders.sort(key=lambda c: (-c.total_spent, c.id))
        return spenders[: self.top_customers_limit]

    def _coerce(
        self,
        collection: Optional[Iterable[Any]],
        model: type[RecordT],
        name: str,
    ) -> list[RecordT]:
        """Validate an input collection into a list of record models."""
        if collection is None:
            raise CalculationError(f"Missing {name} collection")
        if isinstance(collection, (str, bytes, Mapping)) or not isinstance(collection, Iterable):
            raise CalculationError(
                f"Malformed {name} collection: expected a sequence, got {type(collection).__name__}"
            )

        records = []
        for index, item in enumerate(collection):
            if isinstance(item, model):
                records.append(item)
                continue
            if not isinstance(item, Mapping):
                raise CalculationError(
                    f"Malformed {name} entry at index {index}: {type(item).__name__}"
                )
            try:
                records.append(model.model_validate(item))
            except ValidationError as e:
                self.logger.warning(
                    "record_validation_failed",
                    collection=name,
                    index=index,
                    error_count=e.error_count(),
                )
                raise CalculationError(f"Malformed {name} entry at index {index}: {e}") from e
        return records
