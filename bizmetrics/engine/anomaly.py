"""
Snapshot-to-Snapshot Anomaly Detection.

Compares the newest snapshot in history with its immediate predecessor and
flags changes that usually mean a calculation went wrong rather than that the
business moved:

    1. Magnitude: change = |current - previous| / max(|previous|, 1)
       on each core figure; above the threshold (default 0.20) is a WARNING
    2. Sign flip on total_outstanding (non-negative to negative or back) is
       CRITICAL, since outstanding balance can never legitimately go negative

Rules are evaluated independently. Detection only logs and reports; it never
alters or blocks the snapshot being served.
"""

from decimal import Decimal
from typing import Optional, Union

import structlog

from bizmetrics.models.enums import AnomalySeverity
from bizmetrics.models.metrics import CHECKSUM_FIELDS, MetricsSnapshot
from bizmetrics.models.validation import Anomaly

from .history import SnapshotHistory

Number = Union[int, float, Decimal]


def change_ratio(previous: Number, current: Number) -> float:
    """Relative change with the denominator floored at 1."""
    previous = float(previous)
    current = float(current)
    return abs(current - previous) / max(abs(previous), 1.0)


class AnomalyDetector:
    """
    Detects suspicious changes between consecutive snapshots.

    Attributes:
        change_threshold: Relative change above which a WARNING is raised
        fields: Snapshot fields checked for magnitude changes

    Example:
        >>> detector = AnomalyDetector(change_threshold=0.20)
        >>> anomalies = detector.compare(previous_snapshot, current_snapshot)
        >>> [a.severity for a in anomalies]
        [<AnomalySeverity.WARNING: 'warning'>, <AnomalySeverity.CRITICAL: 'critical'>]
    """

    SIGN_CHECKED_FIELD = "total_outstanding"

    def __init__(
        self,
        change_threshold: float = 0.20,
        fields: tuple[str, ...] = CHECKSUM_FIELDS,
    ):
        self.change_threshold = change_threshold
        self.fields = fields
        self.logger = structlog.get_logger()

    def detect_latest(self, history: SnapshotHistory) -> list[Anomaly]:
        """
        Compare the two newest history entries.

        Returns:
            Detected anomalies; empty when history holds fewer than two entries
        """
        pair = history.latest_pair()
        if pair is None:
            return []
        previous, current = pair
        return self.compare(previous, current)

    def compare(self, previous: MetricsSnapshot, current: MetricsSnapshot) -> list[Anomaly]:
        """Evaluate every rule between two snapshots and log what was found."""
        anomalies: list[Anomaly] = []

        for field in self.fields:
            anomaly = self._check_magnitude(field, getattr(previous, field), getattr(current, field))
            if anomaly is not None:
                anomalies.append(anomaly)

        sign_flip = self._check_sign_flip(
            getattr(previous, self.SIGN_CHECKED_FIELD),
            getattr(current, self.SIGN_CHECKED_FIELD),
        )
        if sign_flip is not None:
            anomalies.append(sign_flip)

        for anomaly in anomalies:
            log = self.logger.error if anomaly.severity == AnomalySeverity.CRITICAL else self.logger.warning
            log(
                "metric_anomaly_detected",
                metric=anomaly.metric,
                severity=anomaly.severity.value,
                previous=anomaly.previous,
                current=anomaly.current,
                change_ratio=round(anomaly.change_ratio, 4),
            )

        return anomalies

    def _check_magnitude(self, field: str, previous: Number, current: Number) -> Optional[Anomaly]:
        ratio = change_ratio(previous, current)
        if ratio <= self.change_threshold:
            return None
        return Anomaly(
            metric=field,
            severity=AnomalySeverity.WARNING,
            previous=float(previous),
            current=float(current),
            change_ratio=ratio,
            message=(
                f"{field} changed by {ratio * 100:.1f}% "
                f"from {float(previous):.2f} to {float(current):.2f}"
            ),
        )

    def _check_sign_flip(self, previous: Number, current: Number) -> Optional[Anomaly]:
        flipped = (previous >= 0 and current < 0) or (previous < 0 and current >= 0)
        if not flipped:
            return None
        return Anomaly(
            metric=self.SIGN_CHECKED_FIELD,
            severity=AnomalySeverity.CRITICAL,
            previous=float(previous),
            current=float(current),
            change_ratio=change_ratio(previous, current),
            message=(
                f"{self.SIGN_CHECKED_FIELD} sign changed "
                f"from {float(previous):.2f} to {float(current):.2f}"
            ),
        )
