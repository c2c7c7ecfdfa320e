"""
Pydantic v2 data models for the metrics engine.

Model Organization:
    - enums: Order status, urgency, anomaly severity and policy enums
    - records: Raw orders, customers and stored scalar metrics
    - metrics: Dashboard snapshot, receivables aging and checksum helpers
    - validation: Self-audit results (anomalies, violations, reports)
"""

from .enums import (
    CLOSED_STATUSES,
    AnomalySeverity,
    InvalidMetricsPolicy,
    OrderStatus,
    PipelineState,
    UrgencyLevel,
)
from .metrics import (
    CHECKSUM_FIELDS,
    INTEGER_METRICS,
    PERSISTED_METRICS,
    MetricsSnapshot,
    ReceivableEntry,
    ReceivablesAging,
    compute_checksum,
    round_money,
)
from .records import CustomerRecord, OrderRecord, StoredMetric
from .validation import (
    Anomaly,
    ConsistencyViolation,
    CrossValidationResult,
    MetricsValidationReport,
    StoredComparison,
    ValidationResult,
)

__all__ = [
    # Enumerations
    "AnomalySeverity",
    "CLOSED_STATUSES",
    "InvalidMetricsPolicy",
    "OrderStatus",
    "PipelineState",
    "UrgencyLevel",
    # Records
    "CustomerRecord",
    "OrderRecord",
    "StoredMetric",
    # Snapshot models
    "CHECKSUM_FIELDS",
    "INTEGER_METRICS",
    "PERSISTED_METRICS",
    "MetricsSnapshot",
    "ReceivableEntry",
    "ReceivablesAging",
    "compute_checksum",
    "round_money",
    # Audit models
    "Anomaly",
    "ConsistencyViolation",
    "CrossValidationResult",
    "MetricsValidationReport",
    "StoredComparison",
    "ValidationResult",
]
