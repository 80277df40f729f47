"""Thread-safe metrics sink written by workload workers.

Workers record committed/aborted transactions, query types, latencies and
tagged errors. The band executor reads cumulative snapshots: a counts-only
baseline after warmup and, after measurement, a snapshot holding only the
latencies recorded since that baseline.

Latencies are kept in a ring buffer of the most recent max_latency_samples
entries. Positions are absolute (the number of samples ever recorded), so a
baseline position stays valid after older samples are evicted.
"""

from __future__ import annotations

import threading
from collections import deque
from dataclasses import dataclass, field
from itertools import islice
from typing import Any

DEFAULT_MAX_LATENCY_SAMPLES = 50000

QUERY_TYPES = ("SELECT", "INSERT", "UPDATE", "DELETE", "OTHER")


def classify_query(sql: str) -> str:
    """Classify a SQL statement by its leading keyword.

    Example:
        >>> classify_query("  with x as (select 1) select * from x")
        'SELECT'
        >>> classify_query("VACUUM")
        'OTHER'
    """
    words = sql.strip().split(None, 1)
    if not words:
        return "OTHER"
    keyword = words[0].upper()
    if keyword in ("SELECT", "WITH"):
        return "SELECT"
    if keyword in ("INSERT", "UPDATE", "DELETE"):
        return keyword
    return "OTHER"


@dataclass(frozen=True)
class MetricsSnapshot:
    """Point-in-time copy of a MetricsSink."""

    committed: int = 0
    aborted: int = 0
    queries: int = 0
    query_counts: dict[str, int] = field(default_factory=dict)
    errors: int = 0
    error_types: dict[str, int] = field(default_factory=dict)
    latencies_ns: tuple[int, ...] = ()
    pg_stats: dict[str, Any] | None = None
    latency_index: int = 0

    def delta(self, baseline: MetricsSnapshot) -> MetricsSnapshot:
        """Subtract baseline counts, keeping this snapshot's latencies."""
        return MetricsSnapshot(
            committed=self.committed - baseline.committed,
            aborted=self.aborted - baseline.aborted,
            queries=self.queries - baseline.queries,
            query_counts=_subtract(self.query_counts, baseline.query_counts),
            errors=self.errors - baseline.errors,
            error_types=_subtract(self.error_types, baseline.error_types),
            latencies_ns=self.latencies_ns,
            pg_stats=self.pg_stats,
            latency_index=self.latency_index,
        )


def _subtract(current: dict[str, int], baseline: dict[str, int]) -> dict[str, int]:
    result = {}
    for key, value in current.items():
        diff = value - baseline.get(key, 0)
        if diff:
            result[key] = diff
    return result


class MetricsSink:
    """Lock-protected counters and latency ring shared by worker tasks."""

    def __init__(self, max_latency_samples: int = DEFAULT_MAX_LATENCY_SAMPLES):
        self.max_latency_samples = max_latency_samples
        self._lock = threading.Lock()
        self._committed = 0
        self._aborted = 0
        self._queries = 0
        self._query_counts: dict[str, int] = {}
        self._errors = 0
        self._error_types: dict[str, int] = {}
        self._latencies: deque[int] = deque(maxlen=max_latency_samples)
        self._latency_total = 0
        self._pg_stats: dict[str, Any] | None = None

    def record_transaction(self, success: bool, latency_ns: int | None = None) -> None:
        """Count a committed or aborted transaction, optionally with its latency."""
        with self._lock:
            if success:
                self._committed += 1
            else:
                self._aborted += 1
            if latency_ns is not None:
                self._append_latency(latency_ns)

    def record_query(self, query_type: str) -> None:
        key = query_type.upper() if query_type.upper() in QUERY_TYPES else "OTHER"
        with self._lock:
            self._queries += 1
            self._query_counts[key] = self._query_counts.get(key, 0) + 1

    def record_latency(self, latency_ns: int) -> None:
        with self._lock:
            self._append_latency(latency_ns)

    def record_error(self, error_type: str = "unknown") -> None:
        with self._lock:
            self._errors += 1
            self._error_types[error_type] = self._error_types.get(error_type, 0) + 1

    def update_pg_stats(self, stats: dict[str, Any]) -> None:
        with self._lock:
            self._pg_stats = dict(stats)

    def _append_latency(self, latency_ns: int) -> None:
        # Caller holds the lock; the deque evicts the oldest sample when full.
        self._latencies.append(int(latency_ns))
        self._latency_total += 1

    def _latencies_from(self, start: int) -> tuple[int, ...]:
        # Caller holds the lock.
        oldest = self._latency_total - len(self._latencies)
        skip = max(0, start - oldest)
        return tuple(islice(self._latencies, skip, None))

    @property
    def latency_count(self) -> int:
        """Number of latencies recorded so far, evicted ones included."""
        with self._lock:
            return self._latency_total

    def counts(self) -> MetricsSnapshot:
        """Snapshot counters only, without latencies."""
        return self.snapshot(include_latencies=False)

    def snapshot(self, include_latencies: bool = True, since: int = 0) -> MetricsSnapshot:
        """Snapshot counters and the retained latencies recorded at or after `since`.

        Args:
            include_latencies: False for a counts-only snapshot
            since: Absolute latency position, usually a baseline's latency_index

        Returns:
            MetricsSnapshot whose latency_index marks the current position
        """
        with self._lock:
            return MetricsSnapshot(
                committed=self._committed,
                aborted=self._aborted,
                queries=self._queries,
                query_counts=dict(self._query_counts),
                errors=self._errors,
                error_types=dict(self._error_types),
                latencies_ns=self._latencies_from(since) if include_latencies else (),
                pg_stats=dict(self._pg_stats) if self._pg_stats is not None else None,
                latency_index=self._latency_total,
            )

    def latencies_since(self, start: int) -> list[int]:
        """Retained latencies recorded at or after absolute position `start`."""
        with self._lock:
            return list(self._latencies_from(start))
