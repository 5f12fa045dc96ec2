"""
Database Connectors

Factory and exports for the supported database engines. Connection strings
have the form "engine+connect", e.g.:

    postgres+dbname=mydb user=bench
    postgres+postgresql://bench@localhost/mydb
    sqlite+/tmp/bench.sqlite3
"""

from sqlbench.connectors.base import (
    ConnectionPool,
    ConnectionStringError,
    PoolInitializationError,
)
from sqlbench.connectors.postgres_pool import PostgresConnectionPool
from sqlbench.connectors.sqlite_pool import SQLiteConnectionPool

ENGINES = {
    "postgres": "postgres",
    "postgresql": "postgres",
    "pq": "postgres",
    "sqlite": "sqlite",
    "sqlite3": "sqlite",
}


def parse_connect_string(value: str) -> tuple[str, str]:
    """
    Split a connection string into (engine, connect).

    A bare postgres URI without the "engine+" prefix is accepted as well.

    Raises:
        ConnectionStringError: If the engine is missing or unknown
    """
    value = value.strip()
    if value.startswith(("postgres://", "postgresql://")):
        return "postgres", value

    engine, sep, connect = value.partition("+")
    if not sep:
        raise ConnectionStringError(
            f"invalid connection string {value!r}: must be as 'engine+connect', "
            "e.g. 'postgres+dbname=mydb' or 'sqlite+/tmp/db.sqlite3'"
        )
    engine = engine.strip().lower()
    if engine not in ENGINES:
        raise ConnectionStringError(
            f"unknown database engine {engine!r}; supported: postgres, sqlite"
        )
    return ENGINES[engine], connect


def create_pool(connect_string: str, *, pool_size: int = 1) -> ConnectionPool:
    """
    Factory function to create the connection pool for a connection string.

    Args:
        connect_string: "engine+connect" string
        pool_size: Connections to allow at once; use the benchmark concurrency

    Returns:
        An uninitialized ConnectionPool

    Raises:
        ConnectionStringError: If the string is malformed or the engine unknown
    """
    engine, connect = parse_connect_string(connect_string)

    if engine == "postgres":
        return PostgresConnectionPool.from_connect_string(
            connect, max_size=pool_size, pool_name="benchmark"
        )
    elif engine == "sqlite":
        if not connect.strip():
            raise ConnectionStringError(
                "sqlite needs a database path, e.g. 'sqlite+/tmp/db.sqlite3'"
            )
        return SQLiteConnectionPool(
            connect.strip(), pool_size=pool_size, pool_name="benchmark"
        )
    else:
        raise ConnectionStringError(f"Unsupported database engine: {engine}")


__all__ = [
    "ConnectionPool",
    "ConnectionStringError",
    "PoolInitializationError",
    "PostgresConnectionPool",
    "SQLiteConnectionPool",
    "create_pool",
    "parse_connect_string",
]
