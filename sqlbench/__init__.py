"""
sqlbench: run latency benchmarks of a parameterized SQL query.

The query is executed once per parameter row (optionally repeated, optionally
after a warm-up pass) with bounded concurrency, and the timings are reduced to
summary statistics and a latency histogram.
"""

__version__ = "0.1.0"
