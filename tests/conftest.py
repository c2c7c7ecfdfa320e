"""
Pytest configuration and shared fixtures for the bizmetrics test suite.

Provides record/snapshot factories, an in-memory storage backend with failure
switches, a fixed clock and an API client wired to the real DuckDB backend.
"""

import os
import tempfile
import uuid as _uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional

import pytest
from fastapi.testclient import TestClient

# Set testing environment BEFORE importing the app.
# Use a temp path (must not exist - DuckDB creates the file).
_test_db_path = os.path.join(tempfile.gettempdir(), f"bizmetrics_test_{_uuid.uuid4().hex[:8]}.duckdb")
os.environ["TESTING"] = "true"
os.environ["DB_PATH"] = _test_db_path


from bizmetrics.models.enums import OrderStatus
from bizmetrics.models.metrics import MetricsSnapshot
from bizmetrics.models.records import CustomerRecord, OrderRecord, StoredMetric
from bizmetrics.storage.base import PersistenceError, StorageBackend, StorageError

# Mid-month, mid-day reference instant used across suites
NOW = datetime(2025, 6, 15, 12, 0, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Model factories
# ---------------------------------------------------------------------------

def make_order(
    total_amount: str = "100.00",
    deposit_amount: Optional[str] = "0.00",
    status: OrderStatus = OrderStatus.PENDING,
    created_at: Optional[datetime] = None,
    due_date: Optional[datetime] = None,
    **overrides,
) -> OrderRecord:
    """Factory function for creating test OrderRecord objects."""
    order_id = overrides.pop("id", f"ord_{_uuid.uuid4().hex[:8]}")
    defaults = dict(
        id=order_id,
        order_number=f"ORD-{order_id[-4:].upper()}",
        customer_id="cust_001",
        total_amount=Decimal(total_amount),
        deposit_amount=Decimal(deposit_amount) if deposit_amount is not None else None,
        status=status,
        due_date=due_date,
        created_at=created_at or NOW - timedelta(days=2),
    )
    defaults.update(overrides)
    return OrderRecord(**defaults)


def make_customer(
    total_spent: str = "0.00",
    created_at: Optional[datetime] = None,
    **overrides,
) -> CustomerRecord:
    """Factory function for creating test CustomerRecord objects."""
    defaults = dict(
        id=f"cust_{_uuid.uuid4().hex[:8]}",
        first_name="Ada",
        last_name="Framer",
        total_spent=Decimal(total_spent),
        created_at=created_at or NOW - timedelta(days=40),
    )
    defaults.update(overrides)
    return CustomerRecord(**defaults)


def make_snapshot(timestamp: Optional[datetime] = None, **overrides) -> MetricsSnapshot:
    """Factory function for creating test MetricsSnapshot objects."""
    defaults = dict(
        timestamp=timestamp or NOW,
        monthly_revenue=Decimal("300.00"),
        active_orders=1,
        order_count=2,
        completed_order_count=1,
        completion_rate=Decimal("50.00"),
        total_customers=3,
        total_revenue=Decimal("300.00"),
        average_order_value=Decimal("150.00"),
        paid_revenue=Decimal("220.00"),
        monthly_paid_revenue=Decimal("220.00"),
        total_outstanding=Decimal("80.00"),
        monthly_outstanding=Decimal("80.00"),
        payment_rate=Decimal("73.33"),
    )
    defaults.update(overrides)
    return MetricsSnapshot(**defaults)


def scenario_orders() -> list[OrderRecord]:
    """One pending order with a deposit and one completed order, both this month."""
    return [
        make_order(
            id="ord_pending",
            total_amount="100.00",
            deposit_amount="20.00",
            status=OrderStatus.PENDING,
            created_at=NOW - timedelta(days=3),
        ),
        make_order(
            id="ord_completed",
            total_amount="200.00",
            deposit_amount="200.00",
            status=OrderStatus.COMPLETED,
            created_at=NOW - timedelta(days=5),
        ),
    ]


# ---------------------------------------------------------------------------
# Mock storage - in-memory backend for pure unit tests
# ---------------------------------------------------------------------------

class MockStorage(StorageBackend):
    """
    In-memory StorageBackend for unit tests.

    Set ``fail_reads``, ``fail_metric_reads`` or ``fail_writes`` to make the
    corresponding operations raise.
    """

    def __init__(self, orders=None, customers=None):
        self.orders: list[OrderRecord] = list(orders or [])
        self.customers: list[CustomerRecord] = list(customers or [])
        self.metrics: dict[str, StoredMetric] = {}
        self.fail_reads = False
        self.fail_metric_reads = False
        self.fail_writes = False
        self.read_count = 0

    def get_orders(self):
        self.read_count += 1
        if self.fail_reads:
            raise StorageError("Failed to read orders: connection refused")
        return list(self.orders)

    def get_customers(self):
        if self.fail_reads:
            raise StorageError("Failed to read customers: connection refused")
        return list(self.customers)

    def store_business_metric(self, metric_type, value):
        if self.fail_writes:
            raise PersistenceError(f"Failed to store business metric {metric_type}: disk full")
        self.metrics[metric_type] = StoredMetric(metric_type=metric_type, value=Decimal(value))

    def get_business_metrics(self):
        if self.fail_metric_reads:
            raise StorageError("Failed to read business metrics: connection refused")
        return list(self.metrics.values())


class FixedClock:
    """Manually advanced clock for cache and history tests."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


# ---------------------------------------------------------------------------
# Pytest fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def now():
    """Fixed reference instant."""
    return NOW


@pytest.fixture
def clock():
    """Fresh FixedClock starting at NOW."""
    return FixedClock()


@pytest.fixture
def mock_storage():
    """Fresh, empty MockStorage instance for each test."""
    return MockStorage()


@pytest.fixture
def sample_orders():
    """The pending + completed two-order scenario."""
    return scenario_orders()


@pytest.fixture
def sample_customers():
    """Three customers: two older spenders and one created this month."""
    return [
        make_customer(id="cust_001", total_spent="200.00"),
        make_customer(id="cust_002", total_spent="450.00"),
        make_customer(id="cust_003", created_at=NOW - timedelta(days=1)),
    ]


@pytest.fixture
def populated_storage(mock_storage, sample_orders, sample_customers):
    """MockStorage pre-populated with the sample orders and customers."""
    mock_storage.orders.extend(sample_orders)
    mock_storage.customers.extend(sample_customers)
    return mock_storage


@pytest.fixture
def client():
    """FastAPI test client for integration tests."""
    from bizmetrics.main import app
    with TestClient(app) as c:
        yield c
