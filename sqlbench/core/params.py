"""
Parameter loading for benchmark queries.

Every parameter file is a CSV file whose first row is a header; each following
row becomes one ParameterRow, bound positionally to the query's placeholders.
Values are kept as strings. "-" reads from stdin.
"""

from __future__ import annotations

import csv
import logging
import sys
from typing import IO, Iterable, List, Optional

from sqlbench.models import ParameterRow

logger = logging.getLogger(__name__)

STDIN = "-"


class ParameterError(Exception):
    """A parameter file could not be read."""


def read_param_rows(fp: IO[str], *, source: str = STDIN) -> List[ParameterRow]:
    """Read the rows of one CSV stream, skipping its header row."""
    try:
        rows = list(csv.reader(fp))
    except csv.Error as e:
        raise ParameterError(f"{source}: {e}") from e
    return [tuple(row) for row in rows[1:] if row]


def load_params(
    sources: Iterable[str], *, stdin: Optional[IO[str]] = None
) -> List[ParameterRow]:
    """
    Load and concatenate parameter rows from every source, in order.

    Args:
        sources: CSV file paths, or "-" for stdin
        stdin: Stream used for "-" (defaults to sys.stdin)

    Returns:
        All parameter rows

    Raises:
        ParameterError: A file is missing or is not valid CSV
    """
    all_rows: List[ParameterRow] = []
    for source in sources:
        if source == STDIN:
            stream = stdin if stdin is not None else sys.stdin
            rows = read_param_rows(stream, source="<stdin>")
        else:
            logger.info("Reading parameters from %r", source)
            try:
                with open(source, newline="", encoding="utf-8") as fp:
                    rows = read_param_rows(fp, source=source)
            except OSError as e:
                raise ParameterError(f"{source}: {e.strerror or e}") from e
        logger.info("%d parameters read", len(rows))
        all_rows.extend(rows)
    return all_rows
