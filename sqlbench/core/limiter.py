"""Bounded-concurrency task runner for benchmark executions.

Submitted tasks run as asyncio tasks with at most `limit` of them running at
any point in time. The bound is global: rounds submitted back to back before a
single `wait()` still share the same slots.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)

TaskFactory = Callable[[], Awaitable[Any]]


class ConcurrencyLimiter:
    """Runs submitted tasks with at most `limit` of them running at once.

    Task failures never propagate out of the limiter; callers are expected to
    capture their own errors inside the task. Anything that still escapes is
    logged and dropped.

    Attributes:
        limit: Maximum number of tasks running simultaneously
    """

    def __init__(self, limit: int) -> None:
        """Initialize the limiter.

        Args:
            limit: Maximum number of simultaneously running tasks (>= 1)
        """
        if limit < 1:
            raise ValueError(f"concurrency limit must be at least 1, got {limit}")
        self.limit = int(limit)
        self._slots = asyncio.Semaphore(self.limit)
        self._tasks: set[asyncio.Task[None]] = set()
        self._running = 0
        self._peak_running = 0
        self._submitted = 0

    @property
    def running(self) -> int:
        """Number of tasks currently executing."""
        return self._running

    @property
    def peak_running(self) -> int:
        """Highest number of tasks that were ever executing at the same time."""
        return self._peak_running

    @property
    def pending(self) -> int:
        """Number of submitted tasks that have not completed yet."""
        return len(self._tasks)

    @property
    def submitted(self) -> int:
        """Total number of tasks submitted over the limiter's lifetime."""
        return self._submitted

    async def submit(self, factory: TaskFactory) -> None:
        """Schedule `factory()` to run, suspending while all slots are taken.

        Args:
            factory: Zero-argument callable returning an awaitable
        """
        await self._slots.acquire()
        try:
            task = asyncio.create_task(self._run(factory))
        except BaseException:
            self._slots.release()
            raise
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        self._submitted += 1

    async def _run(self, factory: TaskFactory) -> None:
        self._running += 1
        if self._running > self._peak_running:
            self._peak_running = self._running
        try:
            await factory()
        except Exception as e:
            logger.error(
                "Uncaptured error in limited task: %s: %s", type(e).__name__, e
            )
        finally:
            self._running -= 1
            self._slots.release()

    async def wait(self) -> None:
        """Block until every submitted task has completed.

        Returns immediately when nothing was submitted. The limiter can be
        reused for further rounds afterwards.
        """
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
