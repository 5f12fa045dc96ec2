"""
Benchmark Runner

Drives a benchmark run:
- optional warm-up pass over the parameter set (timings discarded)
- `repeat` measured rounds through a shared ConcurrencyLimiter
- reduction of the recorded durations into a BenchmarkReport
"""

from __future__ import annotations

import logging
import time
from typing import Any, Callable, Optional, Protocol, Sequence

from sqlbench.core.errors import ErrorGroup, QueryError
from sqlbench.core.limiter import ConcurrencyLimiter
from sqlbench.core.metrics import MemoryMetrics, MetricsRecorder
from sqlbench.core.stats import summarize
from sqlbench.models import BenchmarkConfig, BenchmarkPhase, BenchmarkReport, ParameterRow

logger = logging.getLogger(__name__)


class QueryExecutor(Protocol):
    """Anything that can run the benchmarked query once and time it."""

    async def execute(self, query: str, params: Sequence[Any]) -> float:
        """Run `query` with positional `params`; return the elapsed ms or raise."""
        ...


class BenchmarkAborted(Exception):
    """Raised when fail-fast stops a run; no report is produced."""

    def __init__(self, errors: Sequence[BaseException]):
        self.errors = list(errors)
        if self.errors:
            msg = f"benchmark aborted on error: {self.errors[0]}"
        else:
            msg = "benchmark aborted"
        super().__init__(msg)


class BenchmarkRunner:
    """
    Runs one benchmark and produces its report.

    Workers only share the metrics recorder and the error group; both are
    internally synchronized. With fail-fast enabled the first captured error
    stops further submissions. Executions already running are allowed to
    finish, then BenchmarkAborted is raised instead of returning a report.
    """

    def __init__(
        self,
        executor: QueryExecutor,
        config: BenchmarkConfig,
        *,
        metrics: Optional[MetricsRecorder] = None,
        errors: Optional[ErrorGroup] = None,
        clock: Callable[[], float] = time.perf_counter,
    ):
        """
        Initialize the runner.

        Args:
            executor: Query execution capability
            config: Run configuration
            metrics: Duration recorder; defaults to an in-memory store
            errors: Error group; defaults to one holding 10 errors
            clock: Monotonic clock in seconds, used for the wall time
        """
        self.executor = executor
        self.config = config
        self.metrics: MetricsRecorder = metrics if metrics is not None else MemoryMetrics()
        self.errors = errors if errors is not None else ErrorGroup()
        self._clock = clock

        self.phase = BenchmarkPhase.IDLE
        self._aborted = False

    @property
    def aborted(self) -> bool:
        return self._aborted

    async def run(self, params: Sequence[ParameterRow]) -> BenchmarkReport:
        """
        Execute the benchmark over `params`.

        Args:
            params: Parameter rows; each row is executed once per round

        Returns:
            BenchmarkReport for the measured phase

        Raises:
            BenchmarkAborted: fail-fast is enabled and an execution failed
        """
        if self.phase != BenchmarkPhase.IDLE:
            raise RuntimeError(f"benchmark already run (phase={self.phase.value})")

        rows = [tuple(row) for row in params]
        limiter = ConcurrencyLimiter(self.config.concurrency)
        started = self._clock()

        if self.config.warmup:
            self.phase = BenchmarkPhase.WARMUP
            logger.info(
                "Warmup: %d parameters, concurrency=%d",
                len(rows),
                self.config.concurrency,
            )
            await self._submit_round(limiter, rows)
            await limiter.wait()
            self._raise_if_aborted()
            if len(self.errors):
                logger.warning(
                    "Warmup finished with %d error(s); discarding them", len(self.errors)
                )
            self.metrics.reset()
            self.errors.reset()
            started = self._clock()

        self.phase = BenchmarkPhase.MEASURING
        logger.info(
            "Measuring: %d round(s) × %d parameters, concurrency=%d",
            self.config.repeat,
            len(rows),
            self.config.concurrency,
        )
        # All rounds go through the same limiter before a single wait, so the
        # concurrency bound holds across round boundaries.
        for _ in range(self.config.repeat):
            if self._aborted:
                break
            await self._submit_round(limiter, rows)
        await limiter.wait()
        self._raise_if_aborted()
        wall_ms = (self._clock() - started) * 1000.0

        self.phase = BenchmarkPhase.REPORTING
        samples = self.metrics.snapshot(self.config.query)
        if len(self.errors):
            logger.warning("%d execution error(s) captured", len(self.errors))
        logger.info(
            "Measured %d successful execution(s) in %.1f ms (peak concurrency %d)",
            len(samples),
            wall_ms,
            limiter.peak_running,
        )
        report = BenchmarkReport(
            query=self.config.query,
            parameter_count=len(rows),
            repeat=self.config.repeat,
            wall_ms=wall_ms,
            summary=summarize(samples, self.config.bucket_count) if samples else None,
            errors=self.errors.messages(),
        )
        self.phase = BenchmarkPhase.DONE
        return report

    async def _submit_round(
        self, limiter: ConcurrencyLimiter, rows: Sequence[ParameterRow]
    ) -> None:
        for row in rows:
            if self._aborted:
                return
            await limiter.submit(lambda row=row: self._execute(row))

    async def _execute(self, row: ParameterRow) -> None:
        # Tasks that start after an abort never reach the database.
        if self._aborted:
            return
        try:
            elapsed_ms = await self.executor.execute(self.config.query, row)
        except Exception as e:
            err = QueryError(row, e)
            if self.errors.append(err) and self.config.fail_fast:
                if not self._aborted:
                    logger.error("Fail-fast: stopping after error: %s", err)
                self._aborted = True
            else:
                logger.debug("Execution failed: %s", err)
            return
        self.metrics.record(elapsed_ms, self.config.query, row)

    def _raise_if_aborted(self) -> None:
        if self._aborted:
            self.phase = BenchmarkPhase.ABORTED
            raise BenchmarkAborted(self.errors.errors)
