"""Command-line entry point: run a benchmark of one SQL query."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Optional, Sequence

from sqlbench.config import settings
from sqlbench.connectors import ConnectionStringError, create_pool
from sqlbench.core import (
    BenchmarkAborted,
    BenchmarkRunner,
    ErrorGroup,
    QueryExecutor,
    format_errors,
    render_report,
)
from sqlbench.core.fixtures import FixtureError, apply_fixtures
from sqlbench.core.params import ParameterError, load_params
from sqlbench.core.query_log import LoggingExecutor
from sqlbench.models import BenchmarkConfig

logger = logging.getLogger(__name__)

DESCRIPTION = """\
sqlbench runs benchmarks on an SQL database.

It runs --query once for every row of --params, and reports timing statistics.
Tables can be set up first with --setup. For example:

    % sqlbench \\
        --db     sqlite+/tmp/test.sqlite3 \\
        --setup  testdata/schema.sql \\
        --setup  cpu_usage:testdata/data.csv \\
        --params testdata/params.csv \\
        --query  'select * from cpu_usage where host=? and ts>=? and ts<=?'
"""

EPILOG = """\
setup entries run in order: any *.csv file needs to be prefixed with the table
name as "tbl:file.csv" and is inserted into that table; anything else is run
as SQL. For example, to create "mytable" with schema.sql and then insert data
from data.csv:

    % sqlbench --setup schema.sql --setup mytable:data.csv ...

connection strings are "engine+connect", e.g. "postgres+dbname=mydb" or
"sqlite+/tmp/db.sqlite3". A bare "postgres+" uses the PG* environment variables.
"""


def _positive_int(value: str) -> int:
    try:
        n = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid int value: {value!r}")
    if n < 1:
        raise argparse.ArgumentTypeError(f"must be at least 1, got {n}")
    return n


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sqlbench",
        description=DESCRIPTION,
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    data = parser.add_argument_group("data flags")
    data.add_argument(
        "-s",
        "--setup",
        action="append",
        default=[],
        metavar="FILE",
        help="set up the database; can be given more than once, run in order.",
    )
    data.add_argument(
        "-q",
        "--query",
        required=True,
        help='query to run; use "?" as placeholders for the parameters.',
    )
    data.add_argument(
        "-p",
        "--params",
        action="append",
        metavar="FILE",
        help='a CSV file with parameters, one row per execution, with a header '
        'row; "-" (the default) reads from stdin. Can be given more than once.',
    )

    other = parser.add_argument_group("other flags")
    other.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="log every query as it's run; add twice to also log the query plan.",
    )
    other.add_argument(
        "-d",
        "--db",
        default=settings.SQLBENCH_DB,
        help=f'database connection string (default: "{settings.SQLBENCH_DB}").',
    )
    other.add_argument(
        "-w",
        "--warmup",
        action="store_true",
        help="run the parameter set once before measuring anything.",
    )
    other.add_argument(
        "-c",
        "--concurrent",
        type=_positive_int,
        default=settings.DEFAULT_CONCURRENCY,
        metavar="N",
        help=f"run N queries concurrently (default: {settings.DEFAULT_CONCURRENCY}).",
    )
    other.add_argument(
        "-r",
        "--repeat",
        type=_positive_int,
        default=settings.DEFAULT_REPEAT,
        metavar="N",
        help=f"repeat the parameter set N times (default: {settings.DEFAULT_REPEAT}).",
    )
    other.add_argument(
        "-f",
        "--failfast",
        action="store_true",
        help="exit immediately on the first error.",
    )
    return parser


def _fatal(msg: object) -> int:
    print(f"sqlbench: {msg}", file=sys.stderr)
    return 1


async def _run(args: argparse.Namespace) -> int:
    try:
        rows = load_params(args.params or ["-"])
    except ParameterError as e:
        return _fatal(e)

    try:
        pool = create_pool(args.db, pool_size=args.concurrent)
    except ConnectionStringError as e:
        return _fatal(e)

    try:
        try:
            await pool.initialize()
            await apply_fixtures(pool, args.setup)
        except FixtureError as e:
            return _fatal(e)
        except Exception as e:
            return _fatal(f"connecting to {args.db!r}: {type(e).__name__}: {e}")

        executor: QueryExecutor = pool
        if args.verbose >= 1:
            executor = LoggingExecutor(pool, explain=args.verbose >= 2)

        config = BenchmarkConfig(
            query=args.query,
            concurrency=args.concurrent,
            repeat=args.repeat,
            warmup=args.warmup,
            fail_fast=args.failfast,
            bucket_count=settings.DISTRIBUTION_BUCKETS,
        )
        runner = BenchmarkRunner(
            executor, config, errors=ErrorGroup(max_size=settings.ERROR_CAPACITY)
        )
        try:
            report = await runner.run(rows)
        except BenchmarkAborted as e:
            return _fatal(e)
    finally:
        await pool.close()

    if report.errors:
        sys.stderr.write(format_errors(report.errors))
    sys.stdout.write(render_report(report, bar_width=settings.HISTOGRAM_BAR_WIDTH))
    return 0


def _configure_logging(verbose: int) -> None:
    if verbose >= 1:
        level = logging.INFO
    else:
        level = getattr(logging, settings.LOG_LEVEL.upper(), logging.WARNING)
    logging.basicConfig(level=level, format=settings.LOG_FORMAT, stream=sys.stderr)


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    _configure_logging(args.verbose)
    try:
        return asyncio.run(_run(args))
    except KeyboardInterrupt:
        print("[sqlbench] interrupted", file=sys.stderr)
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
