"""
Durable store of derived scalar metrics.

Full snapshots are never persisted. On every fresh calculation the service
writes the handful of scalar figures listed in PERSISTED_METRICS, and reads
them back to check the next calculation for silent drift.
"""

from decimal import Decimal

import structlog

from bizmetrics.models.metrics import PERSISTED_METRICS, MetricsSnapshot
from bizmetrics.models.records import StoredMetric

from .base import PersistenceError, StorageBackend, StorageError

logger = structlog.get_logger(__name__)


class MetricsStore:
    """
    Persists and loads scalar metrics through a storage backend.

    Example:
        >>> store = MetricsStore(storage)
        >>> store.persist(snapshot)
        >>> store.load()["monthly_revenue"].value
        Decimal('300.00')
    """

    def __init__(self, storage: StorageBackend, metric_types: tuple[str, ...] = PERSISTED_METRICS):
        self.storage = storage
        self.metric_types = metric_types

    def persist(self, snapshot: MetricsSnapshot) -> int:
        """
        Upsert every persisted figure of a snapshot.

        Returns:
            Number of metrics written

        Raises:
            PersistenceError: On the first failed write; earlier writes stay
        """
        written = 0
        for metric_type in self.metric_types:
            value = Decimal(getattr(snapshot, metric_type))
            try:
                self.storage.store_business_metric(metric_type, value)
            except PersistenceError:
                raise
            except Exception as e:
                raise PersistenceError(f"Failed to persist {metric_type}: {e}") from e
            written += 1

        logger.info("metrics_persisted", count=written, checksum=snapshot.checksum)
        return written

    def load(self) -> dict[str, StoredMetric]:
        """
        Read persisted metrics keyed by metric type.

        Raises:
            StorageError: If the backend read fails
        """
        try:
            metrics = self.storage.get_business_metrics()
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to load stored metrics: {e}") from e
        return {m.metric_type: m for m in metrics}
