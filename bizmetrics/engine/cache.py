"""
TTL cache for the most recent dashboard snapshot.

Holds exactly one snapshot together with the instant it was cached. A read
hits only while the snapshot is younger than the TTL. Invalidation forces the
next read to miss but keeps the snapshot around as the last good value, which
the service falls back to when a recalculation fails.
"""

import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import structlog

from bizmetrics.models.metrics import MetricsSnapshot


@dataclass
class CacheStats:
    """Cache statistics for monitoring."""

    hits: int = 0
    misses: int = 0
    sets: int = 0
    invalidations: int = 0

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return (self.hits / total * 100) if total > 0 else 0.0

    def to_dict(self) -> dict:
        """Convert to dictionary for API response."""
        return {
            "hits": self.hits,
            "misses": self.misses,
            "sets": self.sets,
            "invalidations": self.invalidations,
            "hit_rate_percent": round(self.hit_rate, 2),
        }


class MetricsCache:
    """
    Single-slot snapshot cache with a freshness window.

    Attributes:
        ttl: Maximum age at which the cached snapshot is still served
        stats: Hit/miss counters

    Example:
        >>> cache = MetricsCache(ttl_seconds=300)
        >>> cache.set(snapshot, now)
        >>> cache.get(now + timedelta(seconds=10)) is snapshot
        True
    """

    def __init__(self, ttl_seconds: float = 300):
        self.ttl = timedelta(seconds=ttl_seconds)
        self.stats = CacheStats()
        self._snapshot: Optional[MetricsSnapshot] = None
        self._cached_at: Optional[datetime] = None
        self._lock = threading.Lock()
        self.logger = structlog.get_logger()

    def get(self, now: Optional[datetime] = None) -> Optional[MetricsSnapshot]:
        """
        Return the cached snapshot if it is still fresh.

        Args:
            now: Reference instant (default: current UTC time)

        Returns:
            The snapshot on a hit, None on a miss
        """
        now = now or datetime.now(timezone.utc)
        with self._lock:
            if (
                self._snapshot is not None
                and self._cached_at is not None
                and now - self._cached_at < self.ttl
            ):
                self.stats.hits += 1
                return self._snapshot
            self.stats.misses += 1
            return None

    def set(self, snapshot: MetricsSnapshot, now: Optional[datetime] = None) -> None:
        """Replace the cached snapshot."""
        now = now or datetime.now(timezone.utc)
        with self._lock:
            self._snapshot = snapshot
            self._cached_at = now
            self.stats.sets += 1
        self.logger.debug("metrics_cache_set", cached_at=now.isoformat(), checksum=snapshot.checksum)

    def invalidate(self) -> None:
        """Force the next get() to miss. The snapshot is kept as last good value."""
        with self._lock:
            self._cached_at = None
            self.stats.invalidations += 1
        self.logger.info("metrics_cache_invalidated")

    def last_good(self) -> Optional[MetricsSnapshot]:
        """Most recently cached snapshot regardless of age."""
        with self._lock:
            return self._snapshot

    @property
    def cached_at(self) -> Optional[datetime]:
        with self._lock:
            return self._cached_at
