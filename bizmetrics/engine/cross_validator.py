"""
Cross-Validation Against Raw Storage.

Recomputes monthly revenue, active orders, total customers and total
outstanding straight from the raw order and customer collections, with its
own arithmetic and no cache, and diffs the result against the latest snapshot
in history. It is O(n) over all orders and meant as an on-demand operational
self-test, never as a hot-path check.
"""

from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Optional

import structlog

from bizmetrics.models.validation import CrossValidationResult
from bizmetrics.storage.base import StorageBackend

from .history import SnapshotHistory

_CLOSED = ("completed", "cancelled")


class CrossValidator:
    """
    Independently recomputes key aggregates and compares them with history.

    Attributes:
        storage: Source of raw orders and customers
        history: Snapshot history whose latest entry is checked
        tolerance: Absolute tolerance for money comparisons

    Example:
        >>> validator = CrossValidator(storage, history)
        >>> result = validator.cross_validate_with_database()
        >>> result.valid, result.discrepancies
        (True, [])
    """

    def __init__(
        self,
        storage: StorageBackend,
        history: SnapshotHistory,
        tolerance: float = 0.01,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.storage = storage
        self.history = history
        self.tolerance = Decimal(str(tolerance))
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.logger = structlog.get_logger()

    def cross_validate_with_database(self) -> CrossValidationResult:
        """
        Recompute from storage and diff against the latest snapshot.

        Returns:
            CrossValidationResult; on storage failure ``valid`` is False with
            a single discrepancy describing the failure
        """
        try:
            orders = self.storage.get_orders()
            customers = self.storage.get_customers()
        except Exception as e:
            self.logger.error("cross_validation_failed", error=str(e), exc_info=True)
            return CrossValidationResult(
                valid=False,
                discrepancies=[f"Failed to perform database cross-validation: {e}"],
            )

        now = self.clock()
        month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)

        db_monthly_revenue = Decimal("0")
        db_active_orders = 0
        db_total_outstanding = Decimal("0")
        negative_balances = 0

        for order in orders:
            if order.created_at >= month_start:
                db_monthly_revenue += order.total_amount
            if order.status.value in _CLOSED:
                continue
            db_active_orders += 1
            raw_balance = order.total_amount - (order.deposit_amount or Decimal("0"))
            if raw_balance < 0:
                negative_balances += 1
            db_total_outstanding += max(Decimal("0"), raw_balance)

        recomputed = {
            "monthly_revenue": _cents(db_monthly_revenue),
            "active_orders": db_active_orders,
            "total_customers": len(customers),
            "total_outstanding": _cents(db_total_outstanding),
        }

        discrepancies: list[str] = []
        latest = self.history.latest()
        if latest is not None:
            if abs(latest.monthly_revenue - recomputed["monthly_revenue"]) > self.tolerance:
                discrepancies.append(
                    f"Monthly revenue: cached ${latest.monthly_revenue} "
                    f"vs database ${recomputed['monthly_revenue']}"
                )
            if latest.active_orders != db_active_orders:
                discrepancies.append(
                    f"Active orders: cached {latest.active_orders} vs database {db_active_orders}"
                )
            if latest.total_customers != len(customers):
                discrepancies.append(
                    f"Total customers: cached {latest.total_customers} vs database {len(customers)}"
                )
            if abs(latest.total_outstanding - recomputed["total_outstanding"]) > self.tolerance:
                discrepancies.append(
                    f"Total outstanding: cached ${latest.total_outstanding} "
                    f"vs database ${recomputed['total_outstanding']}"
                )

        if negative_balances:
            self.logger.warning("negative_order_balances", count=negative_balances)

        result = CrossValidationResult(
            valid=not discrepancies,
            discrepancies=discrepancies,
            recomputed=recomputed,
            negative_balance_orders=negative_balances,
            compared_snapshot_at=latest.timestamp if latest is not None else None,
        )

        log = self.logger.info if result.valid else self.logger.error
        log(
            "cross_validation_complete",
            valid=result.valid,
            discrepancy_count=len(discrepancies),
            compared_snapshot=latest.checksum if latest is not None else None,
        )
        return result


def _cents(value: Decimal) -> Decimal:
    return value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
