#!/usr/bin/env python3
"""
Unit tests for the database connectors.

Postgres is exercised through mocks (no server needed); SQLite runs against a
real database file in a temporary directory.
"""

import sqlite3
import sys
from contextlib import asynccontextmanager
from datetime import UTC, date, datetime
from decimal import Decimal
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock, patch

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

import pytest
from asyncpg.exceptions import InvalidCatalogNameError

from sqlbench.connectors import (
    ConnectionStringError,
    PoolInitializationError,
    PostgresConnectionPool,
    SQLiteConnectionPool,
    create_pool,
    parse_connect_string,
)
from sqlbench.connectors.postgres_pool import coerce_param, parse_libpq_dsn

SCHEMA = """
create table cpu_usage (
    ts    timestamp,
    host  text,
    usage double precision
);
create index cpu_usage_host on cpu_usage (host);
"""

DATA = """ts,host,usage
2024-01-01 00:00:00,web-1,12.5
2024-01-01 00:01:00,web-1,13.0
2024-01-01 00:00:00,web-2,80.25
"""


def _make_mock_statement(*type_names: str) -> MagicMock:
    """Create a mock asyncpg prepared statement with the given parameter types."""
    stmt = MagicMock()
    stmt.get_parameters = MagicMock(
        return_value=[SimpleNamespace(name=n) for n in type_names]
    )
    stmt.fetch = AsyncMock(return_value=[])
    return stmt


def _attach_mock_connection(pool: PostgresConnectionPool, conn) -> None:
    @asynccontextmanager
    async def _get_connection():
        yield conn

    pool.get_connection = _get_connection


# ============================================================================
# Connection strings
# ============================================================================


@pytest.mark.parametrize(
    "value,expected",
    [
        ("postgres+dbname=x", ("postgres", "dbname=x")),
        ("postgresql+", ("postgres", "")),
        ("pq+host=db", ("postgres", "host=db")),
        ("sqlite+/tmp/a.db", ("sqlite", "/tmp/a.db")),
        ("SQLite3+:memory:", ("sqlite", ":memory:")),
        ("postgresql://u@h/db", ("postgres", "postgresql://u@h/db")),
    ],
)
def test_parse_connect_string(value, expected):
    assert parse_connect_string(value) == expected


@pytest.mark.parametrize("value", ["dbname=x", "mysql+root@/db", ""])
def test_parse_connect_string_rejects(value):
    with pytest.raises(ConnectionStringError):
        parse_connect_string(value)


def test_create_pool_picks_engine(tmp_path):
    pg = create_pool("postgres+dbname=bench port=5433", pool_size=8)
    assert isinstance(pg, PostgresConnectionPool)
    assert pg.max_size == 8
    assert pg.connect_kwargs == {"database": "bench", "port": 5433}

    lite = create_pool(f"sqlite+{tmp_path / 'x.db'}", pool_size=4)
    assert isinstance(lite, SQLiteConnectionPool)
    assert lite.pool_size == 4


def test_create_pool_sqlite_needs_path():
    with pytest.raises(ConnectionStringError):
        create_pool("sqlite+")


def test_sqlite_memory_forces_single_connection():
    pool = create_pool("sqlite+:memory:", pool_size=8)
    assert pool.pool_size == 1


# ============================================================================
# Postgres helpers
# ============================================================================


def test_parse_libpq_dsn_keywords():
    kwargs = parse_libpq_dsn(
        "host=localhost port=5432 dbname=bench user=me password='a b' "
        "sslmode=disable connect_timeout=3"
    )
    assert kwargs == {
        "host": "localhost",
        "port": 5432,
        "database": "bench",
        "user": "me",
        "password": "a b",
        "ssl": "disable",
        "timeout": 3.0,
    }


def test_parse_libpq_dsn_uri_and_empty():
    assert parse_libpq_dsn("postgres://me@db/bench") == {"dsn": "postgres://me@db/bench"}
    assert parse_libpq_dsn("  ") == {}


def test_parse_libpq_dsn_ignores_unknown_keys():
    assert parse_libpq_dsn("dbname=x application_name=y") == {"database": "x"}


@pytest.mark.parametrize("value", ["dbname", "port=abc", "host='unterminated"])
def test_parse_libpq_dsn_rejects(value):
    with pytest.raises(ConnectionStringError):
        parse_libpq_dsn(value)


@pytest.mark.parametrize(
    "value,type_name,expected",
    [
        ("42", "int4", 42),
        ("1.5", "float8", 1.5),
        ("1.10", "numeric", Decimal("1.10")),
        ("true", "bool", True),
        ("f", "bool", False),
        ("2024-01-02", "date", date(2024, 1, 2)),
        ("web-1", "text", "web-1"),
        ("", "int4", None),
        ("", "text", ""),
        (7, "int4", 7),
    ],
)
def test_coerce_param(value, type_name, expected):
    assert coerce_param(value, type_name) == expected


def test_coerce_param_timestamps():
    naive = coerce_param("2024-01-01 10:00:00", "timestamp")
    assert naive == datetime(2024, 1, 1, 10, 0)
    assert naive.tzinfo is None

    aware = coerce_param("2024-01-01 10:00:00", "timestamptz")
    assert aware == datetime(2024, 1, 1, 10, 0, tzinfo=UTC)


def test_convert_placeholders():
    convert = PostgresConnectionPool._convert_placeholders
    assert convert("select ? , ?") == "select $1 , $2"
    assert convert("select '?' where a = ?") == "select '?' where a = $1"
    assert convert("select 1") == "select 1"


@pytest.mark.asyncio
async def test_postgres_execute_coerces_and_times():
    pool = PostgresConnectionPool(connect_kwargs={"database": "bench"})
    stmt = _make_mock_statement("text", "int4")
    conn = MagicMock()
    conn.prepare = AsyncMock(return_value=stmt)
    _attach_mock_connection(pool, conn)

    elapsed = await pool.execute("select * from t where a = ? and b = ?", ("x", "5"))

    assert elapsed >= 0.0
    conn.prepare.assert_awaited_once_with("select * from t where a = $1 and b = $2")
    stmt.fetch.assert_awaited_once_with("x", 5)


@pytest.mark.asyncio
async def test_postgres_execute_rejects_param_count_mismatch():
    pool = PostgresConnectionPool()
    conn = MagicMock()
    conn.prepare = AsyncMock(return_value=_make_mock_statement("int4"))
    _attach_mock_connection(pool, conn)

    with pytest.raises(ValueError, match="expects 1 parameter"):
        await pool.execute("select ?", ())


@pytest.mark.asyncio
async def test_postgres_explain_and_script():
    pool = PostgresConnectionPool()
    stmt = _make_mock_statement("int4")
    stmt.fetch = AsyncMock(return_value=[("Seq Scan on t",), ("  Filter: (a = $1)",)])
    conn = MagicMock()
    conn.prepare = AsyncMock(return_value=stmt)
    conn.execute = AsyncMock(return_value="CREATE TABLE")
    _attach_mock_connection(pool, conn)

    plan = await pool.explain("select * from t where a = ?", ("1",))
    await pool.execute_script("create table t (a int); create index on t (a);")

    assert plan == "Seq Scan on t\n  Filter: (a = $1)"
    conn.prepare.assert_awaited_once_with("EXPLAIN select * from t where a = $1")
    conn.execute.assert_awaited_once()


@pytest.mark.asyncio
async def test_postgres_load_csv_uses_copy(tmp_path):
    csv_path = tmp_path / "data.csv"
    csv_path.write_text(DATA)
    pool = PostgresConnectionPool()
    conn = MagicMock()
    conn.copy_to_table = AsyncMock(return_value="COPY 3")
    _attach_mock_connection(pool, conn)

    inserted = await pool.load_csv("public.cpu_usage", csv_path)

    assert inserted == 3
    kwargs = conn.copy_to_table.await_args.kwargs
    assert conn.copy_to_table.await_args.args == ("cpu_usage",)
    assert kwargs["columns"] == ["ts", "host", "usage"]
    assert kwargs["schema_name"] == "public"
    assert kwargs["format"] == "csv"
    assert kwargs["header"] is True


@pytest.mark.asyncio
async def test_postgres_initialize_retries_network_errors():
    pool = PostgresConnectionPool(max_retries=2, retry_delay=0.0)
    fake_pool = MagicMock()
    fake_pool.close = AsyncMock()

    with patch(
        "sqlbench.connectors.postgres_pool.asyncpg.create_pool",
        new=AsyncMock(side_effect=[OSError("connection refused"), fake_pool]),
    ) as create:
        await pool.initialize()

    assert create.await_count == 2
    await pool.close()
    fake_pool.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_postgres_initialize_gives_up():
    pool = PostgresConnectionPool(max_retries=1)

    with patch(
        "sqlbench.connectors.postgres_pool.asyncpg.create_pool",
        new=AsyncMock(side_effect=OSError("connection refused")),
    ):
        with pytest.raises(PoolInitializationError) as exc_info:
            await pool.initialize()

    assert exc_info.value.errors == ["OSError: connection refused"]


def _make_mock_connection(pid: int, stmt) -> MagicMock:
    """Create a mock pooled connection for one server backend."""
    conn = MagicMock()
    conn.get_server_pid = MagicMock(return_value=pid)
    conn.prepare = AsyncMock(return_value=stmt)
    return conn


@pytest.mark.asyncio
async def test_postgres_statement_prepared_once_per_connection():
    pool = PostgresConnectionPool()
    stmt = _make_mock_statement("text")
    conn = _make_mock_connection(101, stmt)
    _attach_mock_connection(pool, conn)

    await pool.execute("select * from t where a = ?", ("x",))
    await pool.execute("select * from t where a = ?", ("y",))

    conn.prepare.assert_awaited_once_with("select * from t where a = $1")
    assert stmt.fetch.await_count == 2


@pytest.mark.asyncio
async def test_postgres_statement_cache_is_per_backend():
    pool = PostgresConnectionPool()
    first = _make_mock_connection(101, _make_mock_statement("text"))
    second = _make_mock_connection(202, _make_mock_statement("text"))

    _attach_mock_connection(pool, first)
    await pool.execute("select ?", ("x",))
    _attach_mock_connection(pool, second)
    await pool.execute("select ?", ("x",))

    first.prepare.assert_awaited_once()
    second.prepare.assert_awaited_once()


@pytest.mark.asyncio
async def test_postgres_new_connection_drops_cached_statements():
    pool = PostgresConnectionPool()
    conn = _make_mock_connection(101, _make_mock_statement("text"))
    _attach_mock_connection(pool, conn)

    await pool.execute("select ?", ("x",))
    # The pool's init hook runs when a new backend reuses the pid.
    await pool._reset_statements(conn)
    await pool.execute("select ?", ("x",))

    assert conn.prepare.await_count == 2


@pytest.mark.asyncio
async def test_postgres_creates_missing_database():
    pool = PostgresConnectionPool(connect_kwargs={"database": "bench", "user": "me"})
    fake_pool = MagicMock()
    admin = MagicMock()
    admin.execute = AsyncMock(return_value="CREATE DATABASE")
    admin.close = AsyncMock()

    with patch(
        "sqlbench.connectors.postgres_pool.asyncpg.create_pool",
        new=AsyncMock(side_effect=[InvalidCatalogNameError("no bench"), fake_pool]),
    ) as create, patch(
        "sqlbench.connectors.postgres_pool.asyncpg.connect",
        new=AsyncMock(return_value=admin),
    ) as connect:
        await pool.initialize()

    assert create.await_count == 2
    connect.assert_awaited_once_with(database="postgres", user="me")
    admin.execute.assert_awaited_once_with('CREATE DATABASE "bench"')
    admin.close.assert_awaited_once()


@pytest.mark.asyncio
async def test_postgres_missing_database_without_create():
    pool = PostgresConnectionPool(
        connect_kwargs={"database": "bench"}, create_database=False
    )

    with patch(
        "sqlbench.connectors.postgres_pool.asyncpg.create_pool",
        new=AsyncMock(side_effect=InvalidCatalogNameError("does not exist")),
    ), patch(
        "sqlbench.connectors.postgres_pool.asyncpg.connect", new=AsyncMock()
    ) as connect:
        with pytest.raises(InvalidCatalogNameError):
            await pool.initialize()

    connect.assert_not_awaited()


def test_postgres_database_name_from_dsn():
    pool = PostgresConnectionPool(connect_kwargs={"dsn": "postgresql://me@db/my%20bench"})
    assert pool._database_name() == "my bench"


# ============================================================================
# SQLite
# ============================================================================


@pytest.mark.asyncio
async def test_sqlite_setup_and_execute(tmp_path):
    csv_path = tmp_path / "data.csv"
    csv_path.write_text(DATA)

    async with SQLiteConnectionPool(tmp_path / "bench.db", pool_size=2) as pool:
        await pool.execute_script(SCHEMA)
        inserted = await pool.load_csv("cpu_usage", csv_path)
        elapsed = await pool.execute(
            "select * from cpu_usage where host = ?", ("web-1",)
        )
        plan = await pool.explain("select * from cpu_usage where host = ?", ("web-1",))

    assert inserted == 3
    assert isinstance(elapsed, float)
    assert elapsed >= 0.0
    assert "cpu_usage" in plan


@pytest.mark.asyncio
async def test_sqlite_query_error_propagates(tmp_path):
    async with SQLiteConnectionPool(tmp_path / "bench.db") as pool:
        with pytest.raises(sqlite3.OperationalError):
            await pool.execute("select * from missing where a = ?", ("1",))


@pytest.mark.asyncio
async def test_sqlite_load_csv_rolls_back(tmp_path):
    csv_path = tmp_path / "data.csv"
    csv_path.write_text("ts,host,nope\n2024-01-01,web-1,1\n")

    async with SQLiteConnectionPool(tmp_path / "bench.db") as pool:
        await pool.execute_script(SCHEMA)
        with pytest.raises(sqlite3.OperationalError):
            await pool.load_csv("cpu_usage", csv_path)
        async with pool.get_connection() as conn:
            count = conn.execute("select count(*) from cpu_usage").fetchone()[0]

    assert count == 0
