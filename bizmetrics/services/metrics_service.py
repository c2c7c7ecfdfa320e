"""
Dashboard Metrics Service.

Owns the per-process cache and snapshot history and runs every dashboard
request through the same pipeline:

    MISS -> CALCULATING -> VALIDATING -> PERSISTING -> CACHED -> SERVED
                 |
                 +-> FAILED (serve last good snapshot, else the all-zero default)

Validation never blocks on its own: violations are logged and, depending on
the invalid-metrics policy, the snapshot is served as-is, corrected, or
rejected. Persistence is best-effort; a failed durable write is logged and the
freshly calculated snapshot is still served.

Concurrent cache misses may both recompute and persist. The calculation is a
deterministic function of the stored data, so the duplicate work is wasted
but harmless.
"""

from datetime import datetime, timezone
from typing import Callable, Optional

import structlog

from bizmetrics.config import Settings
from bizmetrics.engine.anomaly import AnomalyDetector
from bizmetrics.engine.cache import MetricsCache
from bizmetrics.engine.calculator import CalculationError, MetricsCalculator
from bizmetrics.engine.consistency import ConsistencyValidator
from bizmetrics.engine.cross_validator import CrossValidator
from bizmetrics.engine.history import SnapshotHistory
from bizmetrics.models.enums import InvalidMetricsPolicy, PipelineState
from bizmetrics.models.metrics import INTEGER_METRICS, MetricsSnapshot
from bizmetrics.models.validation import (
    Anomaly,
    CrossValidationResult,
    MetricsValidationReport,
)
from bizmetrics.storage.base import PersistenceError, StorageBackend, StorageError
from bizmetrics.storage.metrics_store import MetricsStore


class MetricsService:
    """
    Cached-or-fresh dashboard metrics with continuous self-audit.

    Attributes:
        storage: Source of orders and customers
        cache: TTL cache of the last snapshot
        history: Ring buffer of recent snapshots
        policy: Handling of snapshots that violate business rules
        last_state: Final pipeline state of the most recent request
        last_anomalies: Anomalies found on the most recent append

    Example:
        >>> service = MetricsService(storage=DuckDBStorage("./data/metrics.duckdb"))
        >>> snapshot = service.get_dashboard_metrics()
        >>> report = service.validate_metrics()
    """

    def __init__(
        self,
        storage: StorageBackend,
        calculator: Optional[MetricsCalculator] = None,
        cache: Optional[MetricsCache] = None,
        history: Optional[SnapshotHistory] = None,
        anomaly_detector: Optional[AnomalyDetector] = None,
        validator: Optional[ConsistencyValidator] = None,
        metrics_store: Optional[MetricsStore] = None,
        cross_validator: Optional[CrossValidator] = None,
        policy: InvalidMetricsPolicy = InvalidMetricsPolicy.SERVE,
        history_window_hours: float = 6,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.storage = storage
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.calculator = calculator or MetricsCalculator()
        self.cache = cache or MetricsCache()
        self.history = history if history is not None else SnapshotHistory()
        self.anomaly_detector = anomaly_detector or AnomalyDetector()
        self.validator = validator or ConsistencyValidator()
        self.metrics_store = metrics_store or MetricsStore(storage)
        self.cross_validator = cross_validator or CrossValidator(
            storage, self.history, tolerance=float(self.validator.tolerance), clock=self.clock
        )
        self.policy = policy
        self.history_window_hours = history_window_hours
        self.last_state: Optional[PipelineState] = None
        self.last_anomalies: list[Anomaly] = []
        self.logger = structlog.get_logger()

    @classmethod
    def from_settings(
        cls,
        storage: StorageBackend,
        settings: Settings,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> "MetricsService":
        """Build a service with every component tuned from settings."""
        history = SnapshotHistory(capacity=settings.snapshot_history_capacity)
        validator = ConsistencyValidator(
            tolerance=settings.consistency_tolerance,
            max_payment_rate=settings.max_payment_rate,
        )
        return cls(
            storage=storage,
            cache=MetricsCache(ttl_seconds=settings.metrics_cache_ttl_seconds),
            history=history,
            anomaly_detector=AnomalyDetector(change_threshold=settings.anomaly_change_threshold),
            validator=validator,
            policy=settings.invalid_metrics_policy,
            history_window_hours=settings.history_window_hours,
            clock=clock,
        )

    # =========================================================================
    # Exposed operations
    # =========================================================================

    def get_dashboard_metrics(self) -> MetricsSnapshot:
        """
        Return the cached snapshot if fresh, otherwise recompute.

        Never raises for calculation or storage failures: the worst outcome is
        a stale or all-zero snapshot. Details are available from
        validate_metrics().
        """
        now = self.clock()
        cached = self.cache.get(now)
        if cached is not None:
            self._transition(PipelineState.SERVED, source="cache")
            return cached

        self._transition(PipelineState.MISS)
        return self._recompute(now)

    def refresh_metrics(self) -> MetricsSnapshot:
        """Force a recomputation regardless of cache freshness."""
        self.cache.invalidate()
        return self.get_dashboard_metrics()

    def validate_metrics(self) -> MetricsValidationReport:
        """
        Diagnostic comparison of a fresh calculation against stored metrics
        and business rules. Nothing is cached or persisted.
        """
        now = self.clock()
        issues: list[str] = []

        try:
            stored = self.metrics_store.load()
        except StorageError as e:
            self.logger.warning("stored_metrics_unavailable", error=str(e))
            stored = {}
            issues.append(f"Stored metrics unavailable: {e}")
        stored_values = {
            metric_type: int(m.value) if metric_type in INTEGER_METRICS else m.value
            for metric_type, m in stored.items()
        }

        try:
            calculated = self._calculate(now)
        except CalculationError as e:
            self.logger.error("metrics_validation_calculation_failed", error=str(e))
            return MetricsValidationReport(
                calculated=None,
                stored=stored_values,
                consistent=False,
                issues=issues + [f"Calculation failed: {e}"],
                validated_at=now,
            )

        for comparison in self.validator.diff_stored(stored, calculated):
            if not comparison.matches:
                issues.append(
                    f"{comparison.metric_type}: stored {comparison.stored:.2f} "
                    f"vs calculated {comparison.calculated:.2f}"
                )

        rules = self.validator.validate_business_rules(calculated)
        issues.extend(rules.messages)

        report = MetricsValidationReport(
            calculated=calculated,
            stored=stored_values,
            consistent=not issues,
            issues=issues,
            rule_violations=rules.violations,
            validated_at=now,
        )
        self.logger.info(
            "metrics_validated",
            consistent=report.consistent,
            issue_count=len(issues),
        )
        return report

    def cross_validate(self) -> CrossValidationResult:
        """Recompute key figures from raw storage and diff against history."""
        return self.cross_validator.cross_validate_with_database()

    def recent_history(self, hours: Optional[float] = None) -> list[MetricsSnapshot]:
        """Snapshots recorded within the trailing window (default from settings)."""
        return self.history.recent(hours or self.history_window_hours, now=self.clock())

    def status(self) -> dict:
        """Cache, history and pipeline diagnostics."""
        cached_at = self.cache.cached_at
        return {
            "last_state": self.last_state.value if self.last_state else None,
            "policy": self.policy.value,
            "cache": self.cache.stats.to_dict(),
            "cached_at": cached_at.isoformat() if cached_at else None,
            "history_size": len(self.history),
            "history_capacity": self.history.capacity,
            "last_anomalies": [a.model_dump(mode="json") for a in self.last_anomalies],
        }

    # =========================================================================
    # Pipeline
    # =========================================================================

    def _recompute(self, now: datetime) -> MetricsSnapshot:
        self._transition(PipelineState.CALCULATING)
        try:
            snapshot = self._calculate(now)
        except CalculationError as e:
            return self._fail(now, str(e))

        self._transition(PipelineState.VALIDATING)
        self._check_against_stored(snapshot)
        rules = self.validator.validate_business_rules(snapshot)
        if not rules.valid:
            if self.policy == InvalidMetricsPolicy.REJECT:
                return self._fail(now, "; ".join(rules.messages))
            if self.policy == InvalidMetricsPolicy.CORRECT:
                snapshot = self.validator.correct(snapshot)

        previous = self.history.append_with_previous(snapshot)
        self.last_anomalies = (
            self.anomaly_detector.compare(previous, snapshot) if previous is not None else []
        )

        self._transition(PipelineState.PERSISTING)
        try:
            self.metrics_store.persist(snapshot)
        except PersistenceError as e:
            self.logger.error("metrics_persist_failed", error=str(e))

        self.cache.set(snapshot, now)
        self._transition(PipelineState.CACHED)
        self._transition(PipelineState.SERVED, source="fresh", checksum=snapshot.checksum)
        return snapshot

    def _calculate(self, now: datetime) -> MetricsSnapshot:
        try:
            orders = self.storage.get_orders()
            customers = self.storage.get_customers()
        except Exception as e:
            raise CalculationError(f"Failed to read input collections: {e}") from e
        return self.calculator.calculate(orders, customers, now)

    def _check_against_stored(self, snapshot: MetricsSnapshot) -> None:
        try:
            stored = self.metrics_store.load()
        except StorageError as e:
            self.logger.warning("stored_metrics_unavailable", error=str(e))
            return
        if not stored:
            return
        if self.validator.compare_to_stored(stored, snapshot):
            self.logger.debug("metrics_consistent_with_stored")
        else:
            self.logger.info("metrics_inconsistent_with_stored", action="using_calculated")

    def _fail(self, now: datetime, reason: str) -> MetricsSnapshot:
        self._transition(PipelineState.FAILED, reason=reason)
        fallback = self.cache.last_good()
        if fallback is not None:
            self.logger.warning("serving_last_good_snapshot", snapshot_at=fallback.timestamp.isoformat())
            return fallback
        self.logger.warning("serving_default_snapshot")
        return MetricsSnapshot.empty(now)

    def _transition(self, state: PipelineState, **context) -> None:
        self.last_state = state
        structlog.contextvars.bind_contextvars(pipeline_state=state.value)
        if state == PipelineState.FAILED:
            self.logger.error("metrics_pipeline_state", state=state.value, **context)
        else:
            self.logger.debug("metrics_pipeline_state", state=state.value, **context)
