"""
SQLite Connection Pool

The stdlib sqlite3 module is synchronous; every call runs in a thread pool so
benchmark workers never block the event loop. Each worker checks out its own
connection, so up to `pool_size` queries run in parallel.
"""

from __future__ import annotations

import asyncio
import csv
import logging
import sqlite3
import time
from concurrent.futures import Executor, ThreadPoolExecutor
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Sequence

from sqlbench.config import settings
from sqlbench.connectors.base import ConnectionPool

logger = logging.getLogger(__name__)

MEMORY_PATH = ":memory:"


def _quote_ident(name: str) -> str:
    return ".".join('"' + part.replace('"', '""') + '"' for part in name.split("."))


def _timed_fetch(conn: sqlite3.Connection, query: str, params: tuple) -> float:
    start = time.perf_counter()
    cursor = conn.execute(query, params)
    try:
        cursor.fetchall()
    finally:
        cursor.close()
    return (time.perf_counter() - start) * 1000.0


def _fetch_all(conn: sqlite3.Connection, query: str, params: tuple) -> list:
    cursor = conn.execute(query, params)
    try:
        return cursor.fetchall()
    finally:
        cursor.close()


def _load_csv(conn: sqlite3.Connection, table: str, path: Path) -> int:
    with path.open(newline="", encoding="utf-8") as fp:
        reader = csv.reader(fp)
        header = next(reader, None)
        if not header:
            raise ValueError(f"{path}: empty CSV file, expected a header row")
        columns = ", ".join(_quote_ident(c) for c in header)
        marks = ", ".join("?" for _ in header)
        sql = f"INSERT INTO {_quote_ident(table)} ({columns}) VALUES ({marks})"

        inserted = 0

        def _rows():
            nonlocal inserted
            for row in reader:
                inserted += 1
                yield row

        conn.execute("BEGIN")
        try:
            conn.executemany(sql, _rows())
        except BaseException:
            conn.execute("ROLLBACK")
            raise
        conn.execute("COMMIT")
    return inserted


class SQLiteConnectionPool(ConnectionPool):
    """
    Fixed-size pool of sqlite3 connections to one database file.
    """

    def __init__(
        self,
        path: str | Path,
        pool_size: int = 1,
        *,
        timeout: float | None = None,
        executor: Executor | None = None,
        pool_name: str = "default",
    ):
        """
        Initialize SQLite connection pool.

        Args:
            path: Database file (created if missing) or ":memory:"
            pool_size: Number of connections; forced to 1 for ":memory:",
                       where every connection would see a different database
            timeout: Seconds to wait on a locked database
            executor: Thread pool to run sqlite3 calls in; one is created
                      (and owned) when omitted
            pool_name: Descriptive name for logging
        """
        self.path = str(path)
        self.pool_size = 1 if self.path == MEMORY_PATH else max(1, int(pool_size))
        self.timeout = settings.SQLITE_TIMEOUT if timeout is None else float(timeout)
        self.pool_name = pool_name

        self._executor: Executor | None = executor
        self._owns_executor = executor is None
        self._connections: list[sqlite3.Connection] = []
        self._idle: asyncio.Queue[sqlite3.Connection] | None = None
        self._initialized = False

        logger.info(
            "[%s] SQLite pool configured: %s, pool_size=%d",
            pool_name,
            self.path,
            self.pool_size,
        )

    def _run_in_executor(self, func, *args):
        loop = asyncio.get_running_loop()
        return loop.run_in_executor(self._executor, func, *args)

    def _connect(self) -> sqlite3.Connection:
        # isolation_level=None: autocommit, transactions only where explicit.
        return sqlite3.connect(
            self.path,
            timeout=self.timeout,
            check_same_thread=False,
            isolation_level=None,
        )

    async def initialize(self) -> None:
        """Open `pool_size` connections."""
        if self._initialized:
            return

        if self._executor is None:
            self._executor = ThreadPoolExecutor(
                max_workers=self.pool_size, thread_name_prefix="sqlbench-sqlite"
            )
        self._idle = asyncio.Queue()
        for _ in range(self.pool_size):
            conn = await self._run_in_executor(self._connect)
            self._connections.append(conn)
            self._idle.put_nowait(conn)

        self._initialized = True
        logger.info(
            "[%s] SQLite pool ready with %d connection(s)",
            self.pool_name,
            len(self._connections),
        )

    @asynccontextmanager
    async def get_connection(self) -> AsyncIterator[sqlite3.Connection]:
        """
        Check out a connection for exclusive use (async context manager).

        Waits when all connections are in use.
        """
        if not self._initialized:
            await self.initialize()
        assert self._idle is not None

        conn = await self._idle.get()
        try:
            yield conn
        finally:
            self._idle.put_nowait(conn)

    async def execute(self, query: str, params: Sequence[Any]) -> float:
        """Execute the query once, fetch and discard its rows, return elapsed ms."""
        async with self.get_connection() as conn:
            return await self._run_in_executor(_timed_fetch, conn, query, tuple(params))

    async def explain(self, query: str, params: Sequence[Any]) -> str:
        async with self.get_connection() as conn:
            rows = await self._run_in_executor(
                _fetch_all, conn, f"EXPLAIN QUERY PLAN {query}", tuple(params)
            )
        # Rows are (id, parent, notused, detail).
        return "\n".join(str(row[-1]) for row in rows)

    async def execute_script(self, sql: str) -> None:
        async with self.get_connection() as conn:
            await self._run_in_executor(conn.executescript, sql)

    async def load_csv(self, table: str, path: str | Path) -> int:
        """Insert every CSV row into `table` in one transaction."""
        async with self.get_connection() as conn:
            return await self._run_in_executor(_load_csv, conn, table, Path(path))

    async def close(self) -> None:
        """Close all connections and the owned thread pool."""
        for conn in self._connections:
            try:
                await self._run_in_executor(conn.close)
            except sqlite3.Error as e:
                logger.warning("[%s] Failed to close connection: %s", self.pool_name, e)
        self._connections.clear()
        self._idle = None
        self._initialized = False
        if self._owns_executor and self._executor is not None:
            self._executor.shutdown(wait=True)
            self._executor = None
        logger.info("[%s] SQLite pool closed", self.pool_name)
