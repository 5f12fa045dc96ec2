"""
Data Models

Pydantic models shared by the benchmark engine, the connectors and the CLI.
"""

from sqlbench.models.benchmark import BenchmarkConfig, BenchmarkPhase, ParameterRow
from sqlbench.models.report import BenchmarkReport, DistributionBucket, DurationSummary

__all__ = [
    "BenchmarkConfig",
    "BenchmarkPhase",
    "BenchmarkReport",
    "DistributionBucket",
    "DurationSummary",
    "ParameterRow",
]
