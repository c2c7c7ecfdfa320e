"""
Snapshot History Ring Buffer.

Keeps the last N dashboard snapshots (default 24) for trend comparison and
debugging. Storage is a fixed-size slot array with a head index and a size;
appending at capacity overwrites the oldest slot. Oldest trend data is
discarded permanently: this is diagnostic history, not a ledger.

All reads and writes go through one lock, so appends are serialized even when
requests are served from a thread pool.
"""

import threading
from datetime import datetime, timedelta, timezone
from typing import Optional

import structlog

from bizmetrics.models.metrics import MetricsSnapshot, compute_checksum


class SnapshotHistory:
    """
    Fixed-capacity FIFO of MetricsSnapshot.

    Attributes:
        capacity: Maximum number of retained snapshots

    Example:
        >>> history = SnapshotHistory(capacity=24)
        >>> history.append(snapshot)
        >>> history.latest() is snapshot
        True
    """

    def __init__(self, capacity: int = 24):
        if capacity < 1:
            raise ValueError(f"History capacity must be positive, got {capacity}")
        self.capacity = capacity
        self._slots: list[Optional[MetricsSnapshot]] = [None] * capacity
        self._head = 0  # index of the oldest entry
        self._size = 0
        self._lock = threading.Lock()
        self.logger = structlog.get_logger()

    def __len__(self) -> int:
        with self._lock:
            return self._size

    def append(self, snapshot: MetricsSnapshot) -> Optional[MetricsSnapshot]:
        """
        Insert a snapshot at the tail, evicting the oldest one at capacity.

        Args:
            snapshot: Snapshot to record

        Returns:
            The evicted snapshot, or None if nothing was evicted
        """
        _, evicted = self._record(snapshot)
        return evicted

    def append_with_previous(self, snapshot: MetricsSnapshot) -> Optional[MetricsSnapshot]:
        """
        Insert a snapshot and return the entry it now directly follows.

        The predecessor is read under the same lock as the insert, so
        concurrent appenders each get their own immediate predecessor.

        Returns:
            The previous latest snapshot, or None if history was empty
        """
        previous, _ = self._record(snapshot)
        return previous

    def snapshots(self) -> list[MetricsSnapshot]:
        """All retained snapshots, oldest first."""
        with self._lock:
            return self._ordered()

    def latest(self) -> Optional[MetricsSnapshot]:
        with self._lock:
            if self._size == 0:
                return None
            return self._slots[(self._head + self._size - 1) % self.capacity]

    def latest_pair(self) -> Optional[tuple[MetricsSnapshot, MetricsSnapshot]]:
        """(previous, latest) or None with fewer than two entries."""
        with self._lock:
            if self._size < 2:
                return None
            tail = (self._head + self._size - 1) % self.capacity
            return self._slots[(tail - 1) % self.capacity], self._slots[tail]

    def recent(self, hours: float = 6, now: Optional[datetime] = None) -> list[MetricsSnapshot]:
        """
        Snapshots taken within the trailing window.

        Each call returns a fresh list, so the result can be iterated any
        number of times and is unaffected by later appends.

        Args:
            hours: Window size in hours
            now: Reference instant (default: current UTC time)
        """
        cutoff = (now or datetime.now(timezone.utc)) - timedelta(hours=hours)
        return [s for s in self.snapshots() if s.timestamp >= cutoff]

    def clear(self) -> None:
        with self._lock:
            self._slots = [None] * self.capacity
            self._head = 0
            self._size = 0

    @staticmethod
    def checksum(snapshot: MetricsSnapshot) -> str:
        """Deterministic hash over the five core figures of a snapshot."""
        return compute_checksum(snapshot.core_values())

    def _record(
        self, snapshot: MetricsSnapshot
    ) -> tuple[Optional[MetricsSnapshot], Optional[MetricsSnapshot]]:
        """Append under the lock; returns (previous latest, evicted)."""
        with self._lock:
            previous = None
            if self._size:
                previous = self._slots[(self._head + self._size - 1) % self.capacity]
            evicted = None
            if self._size == self.capacity:
                evicted = self._slots[self._head]
                self._slots[self._head] = snapshot
                self._head = (self._head + 1) % self.capacity
            else:
                self._slots[(self._head + self._size) % self.capacity] = snapshot
                self._size += 1
            size = self._size

        self.logger.debug(
            "snapshot_recorded",
            checksum=snapshot.checksum,
            history_size=size,
            evicted=evicted is not None,
        )
        return previous, evicted

    def _ordered(self) -> list[MetricsSnapshot]:
        return [
            self._slots[(self._head + i) % self.capacity]
            for i in range(self._size)
        ]
