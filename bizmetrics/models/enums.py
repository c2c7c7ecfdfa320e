"""
Enumeration types for the metrics engine.

All enums inherit from str to ensure JSON serialization compatibility.
"""

from enum import Enum


class OrderStatus(str, Enum):
    """
    Production lifecycle of a framing order.

    Completed orders count as fully paid; completed and cancelled orders are
    closed and never carry a receivable.
    """

    PENDING = "pending"
    MEASURING = "measuring"
    DESIGNING = "designing"
    CUTTING = "cutting"
    ASSEMBLY = "assembly"
    COMPLETED = "completed"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


CLOSED_STATUSES = frozenset({OrderStatus.COMPLETED, OrderStatus.CANCELLED})


class UrgencyLevel(str, Enum):
    """Aging bucket of a receivable, by days past its due date."""

    NORMAL = "normal"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class AnomalySeverity(str, Enum):
    """Severity of a change between two consecutive snapshots."""

    WARNING = "warning"
    CRITICAL = "critical"


class InvalidMetricsPolicy(str, Enum):
    """
    Handling of a freshly calculated snapshot that breaks a business rule.

    SERVE keeps the value as calculated, CORRECT clamps offending fields into
    their valid range, REJECT discards the snapshot and falls back to the last
    good one.
    """

    SERVE = "serve"
    CORRECT = "correct"
    REJECT = "reject"


class PipelineState(str, Enum):
    """States a dashboard metrics request moves through."""

    MISS = "miss"
    CALCULATING = "calculating"
    VALIDATING = "validating"
    PERSISTING = "persisting"
    CACHED = "cached"
    SERVED = "served"
    FAILED = "failed"
