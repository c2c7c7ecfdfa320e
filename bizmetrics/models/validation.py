"""
Self-audit result models.

These describe what the consistency, anomaly and cross-validation checks
found. None of them block serving: they are logged and surfaced through the
validation endpoints.
"""

from datetime import datetime, timezone
from typing import Optional, Union

from pydantic import BaseModel, Field

from .enums import AnomalySeverity
from .metrics import MetricsSnapshot, Money


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Anomaly(BaseModel):
    """
    A suspicious change between two consecutive snapshots.

    Attributes:
        metric: Snapshot field that changed
        severity: WARNING for large moves, CRITICAL for sign flips
        previous: Value in the preceding snapshot
        current: Value in the newest snapshot
        change_ratio: |current - previous| / max(|previous|, 1)
        message: Human-readable description
        detected_at: When the comparison ran
    """

    metric: str
    severity: AnomalySeverity
    previous: float
    current: float
    change_ratio: float
    message: str
    detected_at: datetime = Field(default_factory=_utcnow)


class ConsistencyViolation(BaseModel):
    """A business-rule invariant that a snapshot failed."""

    rule: str = Field(description="Rule identifier (e.g., 'outstanding_non_negative')")
    metric: str = Field(description="Snapshot field the rule checks")
    value: float = Field(description="Offending value")
    message: str = Field(description="Human-readable explanation")


class ValidationResult(BaseModel):
    """Outcome of evaluating every business rule against one snapshot."""

    valid: bool
    violations: list[ConsistencyViolation] = Field(default_factory=list)

    @property
    def messages(self) -> list[str]:
        return [v.message for v in self.violations]


class StoredComparison(BaseModel):
    """One metric compared between the durable store and a fresh calculation."""

    metric_type: str
    stored: float
    calculated: float
    matches: bool


class CrossValidationResult(BaseModel):
    """
    Outcome of recomputing key figures straight from raw storage.

    Attributes:
        valid: True when no discrepancy was found
        discrepancies: Human-readable differences vs the latest snapshot
        recomputed: Independently recomputed values
        negative_balance_orders: Open orders whose deposit exceeds their total
        compared_snapshot_at: Timestamp of the snapshot compared against
        validated_at: When the cross-validation ran
    """

    valid: bool
    discrepancies: list[str] = Field(default_factory=list)
    recomputed: dict[str, Union[int, Money]] = Field(default_factory=dict)
    negative_balance_orders: int = 0
    compared_snapshot_at: Optional[datetime] = None
    validated_at: datetime = Field(default_factory=_utcnow)


class MetricsValidationReport(BaseModel):
    """
    Operator-facing diagnostic comparing fresh, stored and rule-checked values.

    Attributes:
        calculated: Freshly calculated snapshot (None if calculation failed)
        stored: Last persisted scalar metrics keyed by metric type
        consistent: True when stored values agree and no rule is violated
        issues: Every problem found, as messages
        rule_violations: Structured business-rule violations
        validated_at: When the report was produced
    """

    calculated: Optional[MetricsSnapshot] = None
    stored: dict[str, Union[int, Money]] = Field(default_factory=dict)
    consistent: bool
    issues: list[str] = Field(default_factory=list)
    rule_violations: list[ConsistencyViolation] = Field(default_factory=list)
    validated_at: datetime = Field(default_factory=_utcnow)
