"""
Metrics engine core components.

- Calculation: orders and customers -> immutable dashboard snapshot
- Caching: TTL-gated last snapshot
- History: fixed-capacity ring buffer of recent snapshots
- Self-audit: business-rule validation, snapshot anomaly detection and
  cross-validation against raw storage

All components are pure or own their state behind a lock, and take their
collaborators through the constructor.
"""

__all__ = [
    "AnomalyDetector",
    "CalculationError",
    "ConsistencyValidator",
    "CrossValidator",
    "MetricsCache",
    "MetricsCalculator",
    "SnapshotHistory",
]

from bizmetrics.engine.anomaly import AnomalyDetector
from bizmetrics.engine.cache import MetricsCache
from bizmetrics.engine.calculator import CalculationError, MetricsCalculator
from bizmetrics.engine.consistency import ConsistencyValidator
from bizmetrics.engine.cross_validator import CrossValidator
from bizmetrics.engine.history import SnapshotHistory
