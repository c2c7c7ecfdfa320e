"""
Snapshot Consistency Validation.

Two independent checks run against every freshly calculated snapshot:

Business rules (all evaluated, no short-circuit):
    - monthly_revenue >= 0
    - total_outstanding >= 0
    - paid_revenue >= 0
    - active_orders >= 0
    - payment_rate <= 150
    - paid_revenue <= 2 x monthly_revenue when monthly_revenue > 0

Stored-value comparison:
    Counts (active_orders, total_customers) must match exactly. Money and
    percentage figures must agree within an absolute tolerance (default 0.01,
    one cent), the same tolerance a persisted value has to survive a
    write/read round trip.

Violations and mismatches are logged; the calculated snapshot stays
authoritative.
"""

from collections.abc import Mapping
from decimal import Decimal, InvalidOperation
from typing import Optional, Union

import structlog

from bizmetrics.models.metrics import INTEGER_METRICS, PERSISTED_METRICS, ZERO, MetricsSnapshot
from bizmetrics.models.records import StoredMetric
from bizmetrics.models.validation import (
    ConsistencyViolation,
    StoredComparison,
    ValidationResult,
)

StoredValue = Union[StoredMetric, Decimal, int, float, str]


def _as_decimal(value: StoredValue) -> Optional[Decimal]:
    """Stored value as a finite Decimal, None if it is not a number."""
    if isinstance(value, StoredMetric):
        value = value.value
    elif isinstance(value, float):
        value = str(value)
    try:
        number = Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        return None
    return number if number.is_finite() else None


class ConsistencyValidator:
    """
    Checks snapshots against business invariants and persisted values.

    Attributes:
        tolerance: Absolute tolerance for money/percentage comparisons
        max_payment_rate: Highest plausible payment rate, in percent
        paid_to_revenue_ratio: Highest plausible paid_revenue / monthly_revenue
        metric_types: Stored metric types compared against a snapshot

    Example:
        >>> validator = ConsistencyValidator()
        >>> result = validator.validate_business_rules(snapshot)
        >>> result.valid
        True
    """

    def __init__(
        self,
        tolerance: float = 0.01,
        max_payment_rate: float = 150.0,
        paid_to_revenue_ratio: float = 2.0,
        metric_types: tuple[str, ...] = PERSISTED_METRICS,
    ):
        self.tolerance = Decimal(str(tolerance))
        self.max_payment_rate = Decimal(str(max_payment_rate))
        self.paid_to_revenue_ratio = Decimal(str(paid_to_revenue_ratio))
        self.metric_types = frozenset(metric_types)
        self.logger = structlog.get_logger()

    def validate_business_rules(self, snapshot: MetricsSnapshot) -> ValidationResult:
        """
        Evaluate every business rule against a snapshot.

        Args:
            snapshot: Snapshot to check

        Returns:
            ValidationResult listing all violated rules
        """
        violations: list[ConsistencyViolation] = []

        def check(passed: bool, rule: str, metric: str, message: str) -> None:
            if not passed:
                violations.append(
                    ConsistencyViolation(
                        rule=rule,
                        metric=metric,
                        value=float(getattr(snapshot, metric)),
                        message=message,
                    )
                )

        check(
            snapshot.monthly_revenue >= 0,
            "revenue_non_negative",
            "monthly_revenue",
            "Monthly revenue cannot be negative",
        )
        check(
            snapshot.total_outstanding >= 0,
            "outstanding_non_negative",
            "total_outstanding",
            "Total outstanding cannot be negative - check payment calculations",
        )
        check(
            snapshot.paid_revenue >= 0,
            "paid_revenue_non_negative",
            "paid_revenue",
            "Paid revenue cannot be negative",
        )
        check(
            snapshot.active_orders >= 0,
            "active_orders_non_negative",
            "active_orders",
            "Active orders count cannot be negative",
        )
        check(
            snapshot.payment_rate <= self.max_payment_rate,
            "payment_rate_bounded",
            "payment_rate",
            f"Payment rate over {self.max_payment_rate}% suggests calculation error",
        )
        check(
            not (
                snapshot.monthly_revenue > 0
                and snapshot.paid_revenue > snapshot.monthly_revenue * self.paid_to_revenue_ratio
            ),
            "paid_revenue_plausible",
            "paid_revenue",
            "Paid revenue significantly exceeds monthly revenue - verify calculations",
        )

        for violation in violations:
            self.logger.error(
                "consistency_violation",
                rule=violation.rule,
                metric=violation.metric,
                value=violation.value,
                checksum=snapshot.checksum,
            )

        return ValidationResult(valid=not violations, violations=violations)

    def diff_stored(
        self,
        stored: Mapping[str, StoredValue],
        calculated: MetricsSnapshot,
    ) -> list[StoredComparison]:
        """
        Compare every stored metric with its freshly calculated counterpart.

        Only the persisted metric types are compared. Other keys and values
        that are not finite numbers are skipped with a warning.
        """
        comparisons = []
        for metric_type, stored_value in stored.items():
            if metric_type not in self.metric_types:
                self.logger.warning("stored_metric_ignored", metric_type=metric_type, reason="unknown_type")
                continue
            stored_number = _as_decimal(stored_value)
            if stored_number is None:
                self.logger.warning("stored_metric_ignored", metric_type=metric_type, reason="not_numeric")
                continue
            calculated_number = Decimal(getattr(calculated, metric_type))

            if metric_type in INTEGER_METRICS:
                matches = stored_number == calculated_number
            else:
                matches = abs(stored_number - calculated_number) <= self.tolerance

            comparisons.append(
                StoredComparison(
                    metric_type=metric_type,
                    stored=float(stored_number),
                    calculated=float(calculated_number),
                    matches=matches,
                )
            )
        return comparisons

    def compare_to_stored(
        self,
        stored: Mapping[str, StoredValue],
        calculated: MetricsSnapshot,
    ) -> bool:
        """
        True when every stored metric agrees with the calculated snapshot.

        Mismatches are logged as inconsistencies, nothing else.
        """
        mismatches = [c for c in self.diff_stored(stored, calculated) if not c.matches]
        for mismatch in mismatches:
            self.logger.warning(
                "metrics_inconsistency_detected",
                metric_type=mismatch.metric_type,
                stored=mismatch.stored,
                calculated=mismatch.calculated,
            )
        return not mismatches

    def correct(self, snapshot: MetricsSnapshot) -> MetricsSnapshot:
        """
        Return a copy with out-of-range figures clamped into range.

        Negative money and count figures become zero and the payment rate is
        capped. The original snapshot is left untouched.
        """
        updates = {}
        for field in (
            "monthly_revenue",
            "total_outstanding",
            "monthly_outstanding",
            "paid_revenue",
            "monthly_paid_revenue",
        ):
            if getattr(snapshot, field) < 0:
                updates[field] = ZERO
        if snapshot.active_orders < 0:
            updates["active_orders"] = 0
        if snapshot.payment_rate > self.max_payment_rate:
            updates["payment_rate"] = self.max_payment_rate.quantize(Decimal("0.01"))

        if not updates:
            return snapshot

        self.logger.warning("snapshot_corrected", fields=sorted(updates))
        return snapshot.model_copy(update=updates)
