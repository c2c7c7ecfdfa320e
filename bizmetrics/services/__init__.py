"""
Business logic layer.
Services orchestrate data access, validation, and domain logic.
"""

from functools import lru_cache

from bizmetrics.config import get_settings
from bizmetrics.storage import get_storage

from .metrics_service import MetricsService


@lru_cache
def get_metrics_service() -> MetricsService:
    """
    Get the per-process metrics service (built lazily on first use).

    Each worker process owns an independent cache and history; there is no
    cross-worker coherency.
    """
    return MetricsService.from_settings(get_storage(), get_settings())


__all__ = ["MetricsService", "get_metrics_service"]
