"""
Duration accumulation for benchmark executions.

Workers record the duration of every successful execution here; the runner
takes a snapshot once all workers have settled. The recorder is passed to the
runner explicitly, so tests can substitute their own implementation.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any, Protocol, Sequence


@dataclass
class QueryTimes:
    """Recorded durations for one query text."""

    query: str
    times_ms: list[float] = field(default_factory=list)


class MetricsRecorder(Protocol):
    """Interface the benchmark runner records durations through."""

    def record(
        self, duration_ms: float, query: str, params: Sequence[Any] = ()
    ) -> None: ...

    def reset(self) -> None: ...

    def snapshot(self, query: str) -> list[float]: ...

    def queries(self) -> list[QueryTimes]: ...


class MemoryMetrics:
    """
    In-memory, thread-safe duration store keyed by query text.

    `record` may be called from any number of concurrent workers. `reset` and
    `snapshot` are meant to be called between phases, when no worker is
    recording.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._times: dict[str, list[float]] = {}

    def record(
        self, duration_ms: float, query: str, params: Sequence[Any] = ()
    ) -> None:
        with self._lock:
            self._times.setdefault(query, []).append(float(duration_ms))

    def reset(self) -> None:
        with self._lock:
            self._times.clear()

    def snapshot(self, query: str) -> list[float]:
        """Copy of the durations recorded for `query`, in recording order."""
        with self._lock:
            return list(self._times.get(query, ()))

    def queries(self) -> list[QueryTimes]:
        """All recorded queries, in order of their first recording."""
        with self._lock:
            return [QueryTimes(query=q, times_ms=list(t)) for q, t in self._times.items()]

    def __len__(self) -> int:
        with self._lock:
            return sum(len(t) for t in self._times.values())
