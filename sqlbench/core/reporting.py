"""Plain-text rendering of benchmark reports."""

from __future__ import annotations

import math
from typing import Sequence

from sqlbench.models import BenchmarkReport

BAR_CHAR = "▬"


def round_ms(value: float) -> int:
    """Round a millisecond value to the nearest whole ms, halves rounding up."""
    return int(math.floor(float(value) + 0.5))


def format_header(report: BenchmarkReport) -> str:
    header = f"Ran {report.total_queries} queries in total"
    if report.repeat > 1:
        header += f" ({report.repeat} × {report.parameter_count} parameters)"
    return header


def render_report(report: BenchmarkReport, *, bar_width: int = 50) -> str:
    """
    Render the report shown at the end of a run.

    Every duration is shown in whole milliseconds. The histogram lists each
    bucket's upper bound, its sample count, a bar proportional to its share
    of all samples (`bar_width` characters for 100%) and that share in percent.
    """
    lines = [format_header(report)]
    lines.append(f"  Wall time: {round_ms(report.wall_ms):>6} ms")

    summary = report.summary
    if summary is None:
        lines.append("")
        lines.append("  No successful executions recorded.")
        return "\n".join(lines) + "\n"

    lines.append(f"  Run time:  {round_ms(summary.total_ms):>6} ms")
    lines.append(f"  Min:       {round_ms(summary.min_ms):>6} ms")
    lines.append(f"  Max:       {round_ms(summary.max_ms):>6} ms")
    lines.append(f"  Median:    {round_ms(summary.median_ms):>6} ms")
    lines.append(f"  Mean:      {round_ms(summary.mean_ms):>6} ms")

    lines.append("")
    lines.append("  Distribution:")
    labels = [str(round_ms(b.upper_ms)) for b in summary.distribution]
    counts = [str(b.count) for b in summary.distribution]
    width_dur = max(len(s) for s in labels)
    width_num = max(len(s) for s in counts)
    for label, bucket in zip(labels, summary.distribution):
        share = bucket.count / summary.count
        # Bar lengths round halves to even (12.5 -> 12); durations round half up.
        bar = BAR_CHAR * round(bar_width * share)
        lines.append(
            f"    ≤ {label:>{width_dur}} ms → {bucket.count:>{width_num}}  "
            f"{bar} {share * 100:.1f}%"
        )
    return "\n".join(lines) + "\n"


def format_errors(messages: Sequence[str]) -> str:
    """One captured error per line, for the diagnostic stream."""
    return "".join(f"{msg}\n" for msg in messages)
