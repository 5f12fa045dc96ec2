"""
Base Connection Pool

Abstract interface shared by the database connectors. The benchmark engine only
uses `execute`; setup and verbose logging use the rest.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Sequence


class ConnectionStringError(ValueError):
    """Raised for a malformed or unsupported `engine+connect` string."""


class PoolInitializationError(Exception):
    """Raised when the connection pool could not be created after retries."""

    def __init__(self, message: str, errors: list[str]):
        super().__init__(message)
        self.errors = errors


class ConnectionPool(ABC):
    """
    Abstract base class for database connection pools.

    Implementations must allow `execute` to be awaited concurrently from many
    workers at once.
    """

    pool_name: str = "default"

    @abstractmethod
    async def initialize(self) -> None:
        """Open the pool's connections."""

    @abstractmethod
    async def close(self) -> None:
        """Close all connections."""

    @abstractmethod
    async def execute(self, query: str, params: Sequence[Any]) -> float:
        """
        Run a query once with positional parameters, discarding any rows.

        Args:
            query: SQL query using `?` placeholders
            params: Positional parameter values

        Returns:
            Elapsed execution time in milliseconds
        """

    @abstractmethod
    async def explain(self, query: str, params: Sequence[Any]) -> str:
        """Return the engine's query plan for `query` as text."""

    @abstractmethod
    async def execute_script(self, sql: str) -> None:
        """Run a (possibly multi-statement) SQL script."""

    @abstractmethod
    async def load_csv(self, table: str, path: str | Path) -> int:
        """
        Insert the rows of a CSV file into `table`.

        The first CSV row names the columns.

        Returns:
            Number of rows inserted (-1 if the engine does not report it)
        """

    async def __aenter__(self) -> "ConnectionPool":
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()
