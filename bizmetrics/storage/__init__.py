"""
Data storage layer.

Raw orders and customers feed the metrics engine; derived scalar metrics are
upserted into business_metrics. All storage uses DuckDB.
"""

from functools import lru_cache

from bizmetrics.config import get_settings

from .base import PersistenceError, StorageBackend, StorageError
from .duckdb_storage import DuckDBStorage
from .metrics_store import MetricsStore


@lru_cache
def get_storage() -> StorageBackend:
    """
    Get cached storage backend instance (singleton).

    Returns:
        StorageBackend implementation instance
    """
    settings = get_settings()
    return DuckDBStorage(db_path=settings.db_path)


__all__ = [
    "DuckDBStorage",
    "MetricsStore",
    "PersistenceError",
    "StorageBackend",
    "StorageError",
    "get_storage",
]
