"""
Verbose query logging.

Wraps a connection pool so every benchmarked execution is logged with its
parameters and, optionally, the query plan. Long values are truncated so a
large parameter file does not flood the log.
"""

from __future__ import annotations

import logging
from typing import Any, Sequence

from sqlbench.connectors import ConnectionPool

logger = logging.getLogger(__name__)


def _truncate_str_for_log(value: Any, *, max_chars: int = 800) -> str:
    s = str(value)
    if len(s) <= max_chars:
        return s
    return s[:max_chars] + "…[truncated]"


def _preview_query_for_log(query: str, *, max_chars: int = 2000) -> str:
    # Collapse whitespace so multi-line queries log on one line.
    return _truncate_str_for_log(" ".join(query.split()), max_chars=max_chars)


def _preview_params_for_log(params: Sequence[Any], *, max_items: int = 20) -> str:
    items = [_truncate_str_for_log(repr(p), max_chars=200) for p in params[:max_items]]
    if len(params) > max_items:
        items.append(f"… +{len(params) - max_items} more")
    return "[" + ", ".join(items) + "]"


class LoggingExecutor:
    """
    Query executor that logs each execution before delegating to a pool.

    With `explain=True` the plan for every execution is fetched and logged
    as well. Fetching the plan is not part of the measured duration.
    """

    def __init__(self, pool: ConnectionPool, *, explain: bool = False):
        self.pool = pool
        self.explain = explain

    async def execute(self, query: str, params: Sequence[Any]) -> float:
        logger.info(
            "Query: %s; params=%s",
            _preview_query_for_log(query),
            _preview_params_for_log(params),
        )
        if self.explain:
            try:
                plan = await self.pool.explain(query, params)
            except Exception as e:
                logger.warning("Could not explain query: %s", e)
            else:
                logger.info("Plan:\n%s", plan)
        return await self.pool.execute(query, params)
