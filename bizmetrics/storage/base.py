"""
Abstract storage interface for the metrics engine.

The engine reads orders and customers and durably upserts scalar business
metrics. Nothing else about the surrounding application (authentication,
imports, payments) is visible through this interface, which keeps the engine
testable against an in-memory backend and deployable against DuckDB.
"""

from abc import ABC, abstractmethod
from decimal import Decimal

from bizmetrics.models.records import CustomerRecord, OrderRecord, StoredMetric


class StorageError(Exception):
    """Base exception for all storage operation failures."""

    pass


class PersistenceError(StorageError):
    """Raised when a durable metric write fails."""

    pass


class StorageBackend(ABC):
    """
    Abstract base class for all storage implementations.

    Implementations should ensure:
    - Thread safety for concurrent access
    - Idempotent metric upserts keyed by metric type
    - Errors surfaced as StorageError with structured logging
    """

    @abstractmethod
    def get_orders(self) -> list[OrderRecord]:
        """
        Read every order.

        Returns:
            All orders, newest first

        Raises:
            StorageError: If the read fails
        """
        pass

    @abstractmethod
    def get_customers(self) -> list[CustomerRecord]:
        """
        Read every customer.

        Returns:
            All customers, newest first

        Raises:
            StorageError: If the read fails
        """
        pass

    @abstractmethod
    def store_business_metric(self, metric_type: str, value: Decimal) -> None:
        """
        Upsert one scalar business metric.

        Writing the same metric type twice keeps only the latest value.

        Args:
            metric_type: Metric key (e.g., "monthly_revenue")
            value: Value to persist

        Raises:
            PersistenceError: If the write fails
        """
        pass

    @abstractmethod
    def get_business_metrics(self) -> list[StoredMetric]:
        """
        Read every persisted business metric.

        Returns:
            One StoredMetric per metric type

        Raises:
            StorageError: If the read fails
        """
        pass
