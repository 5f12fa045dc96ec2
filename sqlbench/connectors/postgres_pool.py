"""
Postgres Connection Pool Manager

Manages async connection pooling for Postgres with retry logic, and runs the
benchmarked query with `?` placeholders and text parameters (as read from CSV).
"""

import csv
import getpass
import logging
import os
import random
import shlex
import socket
import time
from contextlib import asynccontextmanager
from datetime import UTC, date, datetime
from datetime import time as dt_time
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import unquote, urlparse
from uuid import UUID
import asyncio

import asyncpg
from asyncpg import Pool
from asyncpg.exceptions import (
    TooManyConnectionsError,
    CannotConnectNowError,
    DuplicateDatabaseError,
    InvalidCatalogNameError,
)

from sqlbench.config import settings
from sqlbench.connectors.base import (
    ConnectionPool,
    ConnectionStringError,
    PoolInitializationError,
)

logger = logging.getLogger(__name__)

# libpq keyword -> asyncpg.create_pool keyword
_LIBPQ_KEYWORDS = {
    "host": "host",
    "hostaddr": "host",
    "port": "port",
    "dbname": "database",
    "database": "database",
    "user": "user",
    "password": "password",
    "sslmode": "ssl",
    "connect_timeout": "timeout",
}

_INT_TYPES = {"int2", "int4", "int8", "oid"}
_FLOAT_TYPES = {"float4", "float8"}
_TRUE_VALUES = {"t", "true", "y", "yes", "on", "1"}


def parse_libpq_dsn(connect: str) -> Dict[str, Any]:
    """
    Convert a libpq connection string to asyncpg keyword arguments.

    Accepts both URIs ("postgresql://user@host/db"), passed on as `dsn`, and
    keyword/value strings ("dbname=mydb user=bench"). An empty string returns
    no arguments, so asyncpg falls back to the PG* environment variables.
    """
    connect = connect.strip()
    if not connect:
        return {}
    if connect.startswith(("postgres://", "postgresql://")):
        return {"dsn": connect}

    kwargs: Dict[str, Any] = {}
    try:
        parts = shlex.split(connect)
    except ValueError as e:
        raise ConnectionStringError(f"invalid postgres connection string: {e}") from e
    for part in parts:
        key, sep, value = part.partition("=")
        if not sep:
            raise ConnectionStringError(
                f"invalid postgres connection string: {part!r} is not key=value"
            )
        key = key.strip().lower()
        target = _LIBPQ_KEYWORDS.get(key)
        if target is None:
            logger.warning("Ignoring unsupported postgres connection option %r", key)
            continue
        if target == "port":
            try:
                kwargs[target] = int(value)
            except ValueError as e:
                raise ConnectionStringError(f"invalid postgres port: {value!r}") from e
        elif target == "timeout":
            try:
                kwargs[target] = float(value)
            except ValueError as e:
                raise ConnectionStringError(
                    f"invalid postgres connect_timeout: {value!r}"
                ) from e
        else:
            kwargs[target] = value
    return kwargs


def coerce_param(value: Any, type_name: str) -> Any:
    """
    Convert a text parameter to the Python type asyncpg expects for `type_name`.

    asyncpg binds parameters in binary and refuses e.g. a str for an int4
    placeholder, while parameter files only hold strings. Non-string values
    and unknown types are returned unchanged; an empty string binds NULL for
    every non-text type.
    """
    if not isinstance(value, str):
        return value
    if type_name in ("text", "varchar", "bpchar", "name", "json", "jsonb", "unknown"):
        return value
    if value == "":
        return None
    if type_name in _INT_TYPES:
        return int(value)
    if type_name in _FLOAT_TYPES:
        return float(value)
    if type_name == "numeric":
        return Decimal(value)
    if type_name == "bool":
        return value.strip().lower() in _TRUE_VALUES
    if type_name == "date":
        return date.fromisoformat(value)
    if type_name == "time":
        return dt_time.fromisoformat(value)
    if type_name == "timestamp":
        return datetime.fromisoformat(value)
    if type_name == "timestamptz":
        ts = datetime.fromisoformat(value)
        # Naive values in a parameter file are taken as UTC.
        return ts if ts.tzinfo is not None else ts.replace(tzinfo=UTC)
    if type_name == "uuid":
        return UUID(value)
    return value


class PostgresConnectionPool(ConnectionPool):
    """
    Async connection pool for Postgres with retry logic.
    """

    def __init__(
        self,
        connect_kwargs: Optional[Dict[str, Any]] = None,
        min_size: int = 1,
        max_size: int = 10,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        command_timeout: float = 60.0,
        create_database: bool = True,
        pool_name: str = "default",
    ):
        """
        Initialize Postgres connection pool.

        Args:
            connect_kwargs: asyncpg connection arguments (see parse_libpq_dsn)
            min_size: Minimum pool size
            max_size: Maximum pool size
            max_retries: Max retry attempts for transient failures
            retry_delay: Delay between retries in seconds
            command_timeout: Command timeout in seconds
            create_database: Create the database when it does not exist
            pool_name: Descriptive name for logging
        """
        self.connect_kwargs = dict(connect_kwargs or {})
        self.max_size = max(1, int(max_size))
        self.min_size = max(0, min(int(min_size), self.max_size))
        self.max_retries = max(1, int(max_retries))
        self.retry_delay = retry_delay
        self.command_timeout = command_timeout
        self.create_database = create_database
        self.pool_name = pool_name

        self._pool: Optional[Pool] = None
        # backend pid -> {query: prepared statement}
        self._statements: Dict[int, Dict[str, Any]] = {}
        self._initialized = False

        logger.info(
            "[%s] Postgres pool configured: %s, size=%d-%d",
            pool_name,
            self._describe_target(),
            self.min_size,
            self.max_size,
        )

    @classmethod
    def from_connect_string(
        cls, connect: str, *, max_size: int = 10, pool_name: str = "default"
    ) -> "PostgresConnectionPool":
        """Build a pool from the connect part of a `postgres+...` string."""
        return cls(
            connect_kwargs=parse_libpq_dsn(connect),
            min_size=settings.POSTGRES_POOL_MIN_SIZE,
            max_size=max_size,
            max_retries=settings.POSTGRES_CONNECT_RETRIES,
            retry_delay=settings.POSTGRES_RETRY_DELAY,
            command_timeout=settings.POSTGRES_COMMAND_TIMEOUT,
            create_database=settings.POSTGRES_CREATE_DATABASE,
            pool_name=pool_name,
        )

    def _describe_target(self) -> str:
        if "dsn" in self.connect_kwargs:
            return "dsn"
        user = self.connect_kwargs.get("user", "$PGUSER")
        host = self.connect_kwargs.get("host", "$PGHOST")
        port = self.connect_kwargs.get("port", "$PGPORT")
        database = self.connect_kwargs.get("database", "$PGDATABASE")
        return f"{user}@{host}:{port}/{database}"

    def _database_name(self) -> Optional[str]:
        """Name of the database the pool connects to, resolved like libpq does."""
        if self.connect_kwargs.get("database"):
            return self.connect_kwargs["database"]
        if "dsn" in self.connect_kwargs:
            path = unquote(urlparse(self.connect_kwargs["dsn"]).path.lstrip("/"))
            if path:
                return path
        return (
            os.environ.get("PGDATABASE")
            or self.connect_kwargs.get("user")
            or os.environ.get("PGUSER")
            or getpass.getuser()
        )

    async def _create_database(self) -> None:
        name = self._database_name()
        if not name:
            raise ConnectionStringError("cannot tell which database to create")

        logger.info("[%s] Database %r does not exist; creating it", self.pool_name, name)
        conn = await asyncpg.connect(**{**self.connect_kwargs, "database": "postgres"})
        try:
            await conn.execute('CREATE DATABASE "{}"'.format(name.replace('"', '""')))
        except DuplicateDatabaseError:
            # Created by someone else in the meantime.
            pass
        finally:
            await conn.close()

    async def _reset_statements(self, conn: Any) -> None:
        # A new server connection may reuse the pid of a closed one.
        self._statements.pop(conn.get_server_pid(), None)

    async def _create_pool(self) -> Pool:
        kwargs = dict(
            min_size=self.min_size,
            max_size=self.max_size,
            command_timeout=self.command_timeout,
            init=self._reset_statements,
            **self.connect_kwargs,
        )
        try:
            return await asyncpg.create_pool(**kwargs)
        except InvalidCatalogNameError:
            if not self.create_database:
                raise
            await self._create_database()
            return await asyncpg.create_pool(**kwargs)

    async def initialize(self):
        """Initialize the connection pool."""
        if self._initialized:
            return

        logger.info(f"[{self.pool_name}] Creating Postgres connection pool...")

        errors: List[str] = []

        for attempt in range(self.max_retries):
            try:
                self._pool = await self._create_pool()

                self._initialized = True
                logger.info(
                    f"[{self.pool_name}] Postgres pool ready "
                    f"(size: {self.min_size}-{self.max_size})"
                )
                return

            except (CannotConnectNowError, TooManyConnectionsError) as e:
                errors.append(f"{type(e).__name__}: {e}")
                if attempt < self.max_retries - 1:
                    logger.warning(
                        f"Pool creation attempt {attempt + 1} failed, retrying: {e}"
                    )
                    await asyncio.sleep(self.retry_delay * (attempt + 1))
                else:
                    logger.error(
                        f"Failed to create pool after {self.max_retries} attempts"
                    )
                    raise PoolInitializationError(
                        f"could not create Postgres pool after {self.max_retries} attempts: {e}",
                        errors=errors,
                    ) from e
            except (socket.gaierror, OSError) as e:
                errors.append(f"{type(e).__name__}: {e}")
                # DNS resolution or network errors can be transient
                if attempt < self.max_retries - 1:
                    jitter = random.uniform(0, 0.5)
                    delay = self.retry_delay * (attempt + 1) + jitter
                    logger.warning(
                        f"[{self.pool_name}] Pool creation attempt {attempt + 1} failed "
                        f"(DNS/network error: {e}), retrying in {delay:.1f}s..."
                    )
                    await asyncio.sleep(delay)
                else:
                    logger.error(
                        f"[{self.pool_name}] DNS/network error creating pool after "
                        f"{self.max_retries} attempts: {e}. Target: {self._describe_target()}"
                    )
                    raise PoolInitializationError(
                        f"could not reach Postgres at {self._describe_target()}: {e}",
                        errors=errors,
                    ) from e
            except Exception as e:
                logger.error(
                    f"Unexpected error creating pool: {type(e).__name__}: {e or '(no message)'}"
                )
                raise

    @asynccontextmanager
    async def get_connection(self):
        """
        Get a connection from the pool (async context manager).

        Usage:
            async with pool.get_connection() as conn:
                result = await conn.fetch("SELECT 1")

        Yields:
            Connection: Connection from pool
        """
        if not self._initialized:
            await self.initialize()

        if self._pool is None:
            raise RuntimeError("Pool not initialized")

        async with self._pool.acquire() as conn:
            yield conn

    @staticmethod
    def _convert_placeholders(query: str) -> str:
        """
        Convert `?` placeholders to `$1, $2, ...` for asyncpg.

        Question marks inside string literals are left alone.
        """
        result = []
        idx = 0
        i = 0
        in_string = False
        string_char = None

        while i < len(query):
            ch = query[i]

            # Track string literals to avoid converting ? inside them
            if ch in ("'", '"') and (i == 0 or query[i - 1] != "\\"):
                if not in_string:
                    in_string = True
                    string_char = ch
                elif ch == string_char:
                    in_string = False
                    string_char = None

            if ch == "?" and not in_string:
                idx += 1
                result.append(f"${idx}")
            else:
                result.append(ch)
            i += 1

        return "".join(result)

    @staticmethod
    def _coerce_params(stmt: Any, params: Sequence[Any]) -> List[Any]:
        types = stmt.get_parameters()
        if len(types) != len(params):
            raise ValueError(
                f"query expects {len(types)} parameter(s), got {len(params)}"
            )
        return [coerce_param(value, t.name) for value, t in zip(params, types)]

    async def _prepare_cached(self, conn: Any, query: str) -> Any:
        """
        Prepare `query` once per server connection and reuse the statement.

        Statements are keyed by the backend pid, since the pool hands out a
        new proxy object on every acquire.
        """
        cache = self._statements.setdefault(conn.get_server_pid(), {})
        stmt = cache.get(query)
        if stmt is None:
            stmt = await conn.prepare(query)
            cache[query] = stmt
        return stmt

    async def execute(self, query: str, params: Sequence[Any]) -> float:
        """
        Execute the query once and return the elapsed time in milliseconds.

        The statement is prepared on the first execution on each connection
        and reused afterwards; preparing is not timed. Result rows are fetched
        and discarded.
        """
        converted_query = self._convert_placeholders(query)
        async with self.get_connection() as conn:
            stmt = await self._prepare_cached(conn, converted_query)
            args = self._coerce_params(stmt, params)

            start_time = time.perf_counter()
            await stmt.fetch(*args)
            return (time.perf_counter() - start_time) * 1000.0

    async def explain(self, query: str, params: Sequence[Any]) -> str:
        converted_query = self._convert_placeholders(query)
        async with self.get_connection() as conn:
            stmt = await self._prepare_cached(conn, f"EXPLAIN {converted_query}")
            args = self._coerce_params(stmt, params)
            rows = await stmt.fetch(*args)
        return "\n".join(str(row[0]) for row in rows)

    async def execute_script(self, sql: str) -> None:
        async with self.get_connection() as conn:
            # Without arguments asyncpg uses the simple query protocol, which
            # accepts several statements at once.
            await conn.execute(sql)

    async def load_csv(self, table: str, path: str | Path) -> int:
        """Load a CSV file into `table` with COPY (the server parses the values)."""
        path = Path(path)
        with path.open(newline="", encoding="utf-8") as fp:
            header = next(csv.reader(fp), None)
        if not header:
            raise ValueError(f"{path}: empty CSV file, expected a header row")

        schema_name, _, table_name = table.rpartition(".")
        async with self.get_connection() as conn:
            status = await conn.copy_to_table(
                table_name,
                source=path,
                columns=header,
                schema_name=schema_name or None,
                format="csv",
                header=True,
            )
        # Status string is e.g. "COPY 200"
        parts = str(status or "").split()
        try:
            return int(parts[-1])
        except (IndexError, ValueError):
            return -1

    async def close(self):
        """Close the connection pool."""
        if self._pool is not None:
            logger.info("Closing Postgres connection pool...")
            await self._pool.close()
            self._pool = None
            self._statements.clear()
            self._initialized = False
            logger.info("Postgres pool closed")
