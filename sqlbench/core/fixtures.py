"""
Database setup from `--setup` entries.

Entries run in the order given:
- "table:file.csv" bulk-loads the CSV into an existing table
- anything else is read and run as a SQL script
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable

from sqlbench.connectors import ConnectionPool

logger = logging.getLogger(__name__)


class FixtureError(Exception):
    """A setup entry could not be applied."""


def parse_setup_entry(entry: str) -> tuple[str | None, Path]:
    """
    Split a setup entry into (table, path).

    Returns (None, path) for SQL scripts.

    Raises:
        FixtureError: A CSV entry is not prefixed with a table name
    """
    if Path(entry).suffix.lower() != ".csv":
        return None, Path(entry)
    table, sep, file = entry.partition(":")
    if not sep or not table or not file:
        raise FixtureError(
            f"wrong value for --setup: {entry!r}: csv files need to be as "
            "'tablename:file.csv'"
        )
    return table, Path(file)


async def apply_fixture(pool: ConnectionPool, entry: str) -> None:
    """Apply one setup entry to the database."""
    table, path = parse_setup_entry(entry)

    if table is None:
        logger.info("Running setup %r as SQL", str(path))
        try:
            sql = path.read_text(encoding="utf-8")
        except OSError as e:
            raise FixtureError(f"reading {str(path)!r}: {e}") from e
        try:
            await pool.execute_script(sql)
        except Exception as e:
            raise FixtureError(f"running {str(path)!r}: {e}") from e
        return

    logger.info("Loading setup %r as CSV into table %r", str(path), table)
    if not path.is_file():
        raise FixtureError(f"reading {str(path)!r}: no such file")
    try:
        inserted = await pool.load_csv(table, path)
    except Exception as e:
        raise FixtureError(f"loading {str(path)!r} into {table!r}: {e}") from e
    logger.info("Loaded %d row(s) into %r", inserted, table)


async def apply_fixtures(pool: ConnectionPool, entries: Iterable[str]) -> None:
    """Apply every setup entry in order, stopping at the first failure."""
    for entry in entries:
        await apply_fixture(pool, entry)
