"""
Benchmark Configuration Models

Defines Pydantic models for a benchmark run:
- Run configuration (query, concurrency, repeat, warm-up, fail-fast)
- Run phases
"""

from enum import Enum
from typing import Any, Tuple

from pydantic import BaseModel, Field, field_validator

# One row of positional values bound to the query placeholders.
ParameterRow = Tuple[Any, ...]


class BenchmarkPhase(str, Enum):
    """Benchmark execution phase."""

    IDLE = "idle"
    WARMUP = "warmup"
    MEASURING = "measuring"
    REPORTING = "reporting"
    DONE = "done"
    ABORTED = "aborted"


class BenchmarkConfig(BaseModel):
    """
    Configuration for a single benchmark run.

    The parameter rows are not part of the configuration; they are handed to
    the runner separately since they can be large.
    """

    query: str = Field(..., description="Query with positional `?` placeholders")
    concurrency: int = Field(1, ge=1, description="Maximum concurrent executions")
    repeat: int = Field(1, ge=1, description="Times to run the full parameter set")
    warmup: bool = Field(
        False, description="Run the parameter set once before measuring"
    )
    fail_fast: bool = Field(False, description="Abort on the first execution error")
    bucket_count: int = Field(4, ge=1, description="Histogram bucket count")

    @field_validator("query")
    @classmethod
    def _query_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("query must not be empty")
        return v
