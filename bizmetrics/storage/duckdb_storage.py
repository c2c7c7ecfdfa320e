"""
DuckDB storage implementation for the metrics engine.

Provides a local storage backend with thread-local connections and idempotent
schema creation. Orders and customers are the raw inputs of the metrics
engine; business_metrics holds the derived scalar figures, one row per metric
type, upserted on every persist.
"""

import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from decimal import Decimal
from pathlib import Path
from typing import Iterable

import duckdb
import structlog

from bizmetrics.config import get_settings
from bizmetrics.models.records import CustomerRecord, OrderRecord, StoredMetric

from .base import PersistenceError, StorageBackend, StorageError

logger = structlog.get_logger(__name__)


class DuckDBStorage(StorageBackend):
    """
    DuckDB implementation of the storage backend.

    Attributes:
        db_path: Path to the DuckDB database file
        _local: Thread-local storage for per-thread connections
        _lock: Thread lock for schema operations
        _initialized: Flag tracking whether schema is initialized
    """

    def __init__(self, db_path: str = "./data/bizmetrics.duckdb"):
        """
        Initialize DuckDB storage backend.

        Args:
            db_path: Path to DuckDB database file (default: ./data/bizmetrics.duckdb)
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._local = threading.local()
        self._lock = threading.Lock()
        self._initialized = False

        logger.info("duckdb_storage_initialized", db_path=str(self.db_path))

        self._initialize_schema()

    @contextmanager
    def _get_connection(self):
        """
        Get a thread-local DuckDB connection.

        Yields:
            DuckDB connection instance

        Raises:
            StorageError: If connection cannot be established
        """
        if not hasattr(self._local, "connection"):
            try:
                self._local.connection = duckdb.connect(str(self.db_path))
                logger.debug("duckdb_connection_created", thread_id=threading.get_ident())
            except Exception as e:
                logger.error("duckdb_connection_failed", error=str(e))
                raise StorageError(f"Failed to connect to DuckDB: {e}") from e

        try:
            yield self._local.connection
        except Exception:
            try:
                self._local.connection.rollback()
            except duckdb.Error:
                # No transaction was open
                pass
            raise

    def _initialize_schema(self):
        """
        Create tables if missing. Idempotent.

        Raises:
            StorageError: If schema creation fails
        """
        if self._initialized:
            return

        with self._lock:
            if self._initialized:
                return

            try:
                with self._get_connection() as conn:
                    conn.execute("""
                        CREATE TABLE IF NOT EXISTS orders (
                            id VARCHAR PRIMARY KEY,
                            order_number VARCHAR,
                            customer_id VARCHAR NOT NULL,
                            total_amount DECIMAL(12, 2) NOT NULL,
                            deposit_amount DECIMAL(12, 2),
                            status VARCHAR NOT NULL,
                            due_date TIMESTAMP,
                            created_at TIMESTAMP NOT NULL
                        )
                    """)

                    conn.execute("""
                        CREATE INDEX IF NOT EXISTS idx_orders_created_at
                        ON orders(created_at)
                    """)

                    conn.execute("""
                        CREATE TABLE IF NOT EXISTS customers (
                            id VARCHAR PRIMARY KEY,
                            first_name VARCHAR,
                            last_name VARCHAR,
                            total_spent DECIMAL(12, 2),
                            created_at TIMESTAMP NOT NULL
                        )
                    """)

                    conn.execute("""
                        CREATE TABLE IF NOT EXISTS business_metrics (
                            metric_type VARCHAR PRIMARY KEY,
                            value DECIMAL(18, 4) NOT NULL,
                            updated_at TIMESTAMP NOT NULL
                        )
                    """)

                    conn.commit()
                    logger.info("duckdb_schema_initialized")
                    self._initialized = True

            except Exception as e:
                logger.error("duckdb_schema_initialization_failed", error=str(e))
                raise StorageError(f"Failed to initialize schema: {e}") from e

    def clear_for_testing(self) -> None:
        """
        Truncate all tables. No-op unless settings.testing is enabled.
        """
        if not get_settings().testing:
            logger.warning("clear_for_testing_refused", db_path=str(self.db_path))
            return
        with self._get_connection() as conn:
            for table in ("orders", "customers", "business_metrics"):
                conn.execute(f"DELETE FROM {table}")
            conn.commit()

    # =========================================================================
    # Raw inputs
    # =========================================================================

    def write_orders(self, orders: Iterable[OrderRecord]) -> int:
        """Insert or replace orders. Used for seeding and tests."""
        try:
            with self._get_connection() as conn:
                written = 0
                for order in orders:
                    conn.execute(
                        """
                        INSERT OR REPLACE INTO orders (
                            id, order_number, customer_id, total_amount,
                            deposit_amount, status, due_date, created_at
                        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                        """,
                        [
                            order.id,
                            order.order_number,
                            order.customer_id,
                            order.total_amount,
                            order.deposit_amount,
                            order.status.value,
                            _to_naive_utc(order.due_date),
                            _to_naive_utc(order.created_at),
                        ],
                    )
                    written += 1
                conn.commit()
                logger.info("orders_written", count=written)
                return written

        except Exception as e:
            logger.error("write_orders_failed", error=str(e))
            raise StorageError(f"Failed to write orders: {e}") from e

    def write_customers(self, customers: Iterable[CustomerRecord]) -> int:
        """Insert or replace customers. Used for seeding and tests."""
        try:
            with self._get_connection() as conn:
                written = 0
                for customer in customers:
                    conn.execute(
                        """
                        INSERT OR REPLACE INTO customers (
                            id, first_name, last_name, total_spent, created_at
                        ) VALUES (?, ?, ?, ?, ?)
                        """,
                        [
                            customer.id,
                            customer.first_name,
                            customer.last_name,
                            customer.total_spent,
                            _to_naive_utc(customer.created_at),
                        ],
                    )
                    written += 1
                conn.commit()
                logger.info("customers_written", count=written)
                return written

        except Exception as e:
            logger.error("write_customers_failed", error=str(e))
            raise StorageError(f"Failed to write customers: {e}") from e

    def get_orders(self) -> list[OrderRecord]:
        """Read every order, newest first."""
        try:
            with self._get_connection() as conn:
                rows = conn.execute(
                    """
                    SELECT id, order_number, customer_id, total_amount,
                           deposit_amount, status, due_date, created_at
                    FROM orders
                    ORDER BY created_at DESC
                    """
                ).fetchall()

                orders = [
                    OrderRecord(
                        id=row[0],
                        order_number=row[1],
                        customer_id=row[2],
                        total_amount=row[3],
                        deposit_amount=row[4],
                        status=row[5],
                        due_date=row[6],
                        created_at=row[7],
                    )
                    for row in rows
                ]
                logger.debug("orders_read", count=len(orders))
                return orders

        except Exception as e:
            logger.error("read_orders_failed", error=str(e))
            raise StorageError(f"Failed to read orders: {e}") from e

    def get_customers(self) -> list[CustomerRecord]:
        """Read every customer, newest first."""
        try:
            with self._get_connection() as conn:
                rows = conn.execute(
                    """
                    SELECT id, first_name, last_name, total_spent, created_at
                    FROM customers
                    ORDER BY created_at DESC
                    """
                ).fetchall()

                customers = [
                    CustomerRecord(
                        id=row[0],
                        first_name=row[1],
                        last_name=row[2],
                        total_spent=row[3],
                        created_at=row[4],
                    )
                    for row in rows
                ]
                logger.debug("customers_read", count=len(customers))
                return customers

        except Exception as e:
            logger.error("read_customers_failed", error=str(e))
            raise StorageError(f"Failed to read customers: {e}") from e

    # =========================================================================
    # Business metrics
    # =========================================================================

    def store_business_metric(self, metric_type: str, value: Decimal) -> None:
        """Upsert one scalar metric keyed by metric type."""
        try:
            with self._get_connection() as conn:
                conn.execute(
                    """
                    INSERT OR REPLACE INTO business_metrics (metric_type, value, updated_at)
                    VALUES (?, ?, ?)
                    """,
                    [metric_type, Decimal(value), _to_naive_utc(datetime.now(timezone.utc))],
                )
                conn.commit()
                logger.debug("business_metric_stored", metric_type=metric_type, value=str(value))

        except Exception as e:
            logger.error("store_business_metric_failed", metric_type=metric_type, error=str(e))
            raise PersistenceError(f"Failed to store business metric {metric_type}: {e}") from e

    def get_business_metrics(self) -> list[StoredMetric]:
        """Read every persisted metric."""
        try:
            with self._get_connection() as conn:
                rows = conn.execute(
                    """
                    SELECT metric_type, value, updated_at
                    FROM business_metrics
                    ORDER BY metric_type ASC
                    """
                ).fetchall()

                metrics = [
                    StoredMetric(metric_type=row[0], value=row[1], updated_at=row[2])
                    for row in rows
                ]
                logger.debug("business_metrics_read", count=len(metrics))
                return metrics

        except Exception as e:
            logger.error("read_business_metrics_failed", error=str(e))
            raise StorageError(f"Failed to read business metrics: {e}") from e


def _to_naive_utc(value):
    """DuckDB TIMESTAMP columns hold naive UTC values."""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)
