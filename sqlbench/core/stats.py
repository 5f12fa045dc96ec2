"""Statistical reduction of benchmark durations.

All functions are pure and order-independent: they give the same result for
any permutation of the input, so the order in which concurrent workers finish
does not matter. Durations are float milliseconds.

Empty input is an error for every reduction except `total`; callers report a
"no data" state instead of calling these with nothing recorded.
"""

from __future__ import annotations

import math
from bisect import bisect_left
from collections.abc import Iterable

from sqlbench.models import DistributionBucket, DurationSummary


def _require_samples(durations: Iterable[float], name: str) -> list[float]:
    samples = [float(d) for d in durations]
    if not samples:
        raise ValueError(f"{name}() arg is an empty collection")
    return samples


def total(durations: Iterable[float]) -> float:
    """Sum of all durations (0.0 for an empty collection)."""
    return math.fsum(float(d) for d in durations)


def minimum(durations: Iterable[float]) -> float:
    return min(_require_samples(durations, "minimum"))


def maximum(durations: Iterable[float]) -> float:
    return max(_require_samples(durations, "maximum"))


def mean(durations: Iterable[float]) -> float:
    samples = _require_samples(durations, "mean")
    return math.fsum(samples) / len(samples)


def median(durations: Iterable[float]) -> float:
    """Median duration.

    For an even number of samples this is the exact arithmetic mean of the two
    middle values; no rounding happens here (rendering rounds to whole ms).
    """
    ordered = sorted(_require_samples(durations, "median"))
    mid = len(ordered) // 2
    if len(ordered) % 2:
        return ordered[mid]
    return (ordered[mid - 1] + ordered[mid]) / 2.0


def distribute(
    durations: Iterable[float], bucket_count: int = 4
) -> list[DistributionBucket]:
    """Split durations into equal-width buckets between min and max.

    Buckets are returned in ascending order and partition [min, max]: each
    bucket's upper bound is the next bucket's lower bound, the first lower
    bound is min and the last upper bound is exactly max. A value equal to a
    bucket's upper bound belongs to that bucket. When every duration is the
    same a single bucket spanning that value is returned.

    Args:
        durations: Non-empty collection of durations (ms)
        bucket_count: Number of buckets (>= 1)

    Returns:
        List of DistributionBucket whose counts sum to len(durations)
    """
    if bucket_count < 1:
        raise ValueError(f"bucket_count must be at least 1, got {bucket_count}")
    samples = _require_samples(durations, "distribute")
    lo, hi = min(samples), max(samples)
    if lo == hi:
        return [DistributionBucket(lower_ms=lo, upper_ms=hi, count=len(samples))]

    width = (hi - lo) / bucket_count
    # Last bound is pinned to max so float error can never leave max unplaced.
    uppers = [lo + width * (i + 1) for i in range(bucket_count - 1)] + [hi]
    counts = [0] * bucket_count
    for d in samples:
        counts[min(bisect_left(uppers, d), bucket_count - 1)] += 1

    lowers = [lo] + uppers[:-1]
    return [
        DistributionBucket(lower_ms=low, upper_ms=up, count=n)
        for low, up, n in zip(lowers, uppers, counts)
    ]


def summarize(durations: Iterable[float], bucket_count: int = 4) -> DurationSummary:
    """Reduce a non-empty collection of durations to a DurationSummary."""
    samples = _require_samples(durations, "summarize")
    return DurationSummary(
        count=len(samples),
        total_ms=total(samples),
        min_ms=minimum(samples),
        max_ms=maximum(samples),
        median_ms=median(samples),
        mean_ms=mean(samples),
        distribution=distribute(samples, bucket_count),
    )
