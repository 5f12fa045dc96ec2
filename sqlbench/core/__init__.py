"""
Benchmark Engine Package

Usage:
    from sqlbench.core import BenchmarkRunner

    runner = BenchmarkRunner(pool, BenchmarkConfig(query=..., concurrency=8))
    report = await runner.run(rows)
"""

from sqlbench.core.benchmark import BenchmarkAborted, BenchmarkRunner, QueryExecutor
from sqlbench.core.errors import ErrorGroup, QueryError
from sqlbench.core.limiter import ConcurrencyLimiter
from sqlbench.core.metrics import MemoryMetrics, MetricsRecorder, QueryTimes
from sqlbench.core.reporting import format_errors, render_report

__all__ = [
    "BenchmarkAborted",
    "BenchmarkRunner",
    "ConcurrencyLimiter",
    "ErrorGroup",
    "MemoryMetrics",
    "MetricsRecorder",
    "QueryError",
    "QueryExecutor",
    "QueryTimes",
    "format_errors",
    "render_report",
]
