"""
Benchmark Report Models

Defines Pydantic models for the statistics derived from a finished run.
"""

from typing import List, Optional

from pydantic import BaseModel, Field


class DistributionBucket(BaseModel):
    """One equal-width latency interval and the number of samples in it."""

    lower_ms: float = Field(..., description="Lower bound (ms)")
    upper_ms: float = Field(..., description="Upper bound, inclusive (ms)")
    count: int = Field(0, ge=0, description="Samples in this bucket")


class DurationSummary(BaseModel):
    """Reduction of a non-empty collection of durations."""

    count: int = Field(..., ge=1, description="Number of samples")
    total_ms: float = Field(..., description="Sum of all durations (ms)")
    min_ms: float = Field(..., description="Fastest execution (ms)")
    max_ms: float = Field(..., description="Slowest execution (ms)")
    median_ms: float = Field(..., description="Median duration (ms)")
    mean_ms: float = Field(..., description="Mean duration (ms)")
    distribution: List[DistributionBucket] = Field(
        default_factory=list, description="Latency histogram, ascending"
    )


class BenchmarkReport(BaseModel):
    """
    Results from a benchmark run.

    `summary` is None when no execution succeeded.
    """

    query: str = Field(..., description="Query that was benchmarked")
    parameter_count: int = Field(..., ge=0, description="Rows in the parameter set")
    repeat: int = Field(1, ge=1, description="Times the parameter set was run")
    wall_ms: float = Field(..., description="Wall-clock time of the measured phase")
    summary: Optional[DurationSummary] = Field(
        None, description="Statistics over successful executions"
    )
    errors: List[str] = Field(
        default_factory=list, description="Captured execution errors (capped)"
    )

    @property
    def total_queries(self) -> int:
        return self.parameter_count * self.repeat

    @property
    def sample_count(self) -> int:
        return self.summary.count if self.summary is not None else 0
