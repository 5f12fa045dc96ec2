"""
Error capture for concurrent benchmark executions.

A failure storm (e.g. a dropped table) can fail every single execution, so the
group only keeps the first `max_size` errors; the rest are reported as having
happened but are not stored.
"""

from __future__ import annotations

import threading
from typing import Any, Optional, Sequence


class QueryError(Exception):
    """A single query execution failed."""

    def __init__(self, params: Sequence[Any], cause: BaseException):
        self.params = tuple(params)
        self.cause = cause
        super().__init__(f"{_describe(cause)} (params: {_preview_params(self.params)})")


def _describe(exc: BaseException) -> str:
    msg = str(exc).strip()
    if not msg:
        return type(exc).__name__
    return f"{type(exc).__name__}: {msg}"


def _preview_params(params: Sequence[Any], *, max_chars: int = 200) -> str:
    text = ", ".join(repr(p) for p in params)
    if len(text) > max_chars:
        text = text[:max_chars] + "…"
    return f"[{text}]"


class ErrorGroup:
    """Thread-safe, capacity-bounded list of errors."""

    def __init__(self, max_size: int = 10) -> None:
        if max_size < 1:
            raise ValueError(f"max_size must be at least 1, got {max_size}")
        self.max_size = int(max_size)
        self._lock = threading.Lock()
        self._errors: list[BaseException] = []

    def append(self, err: Optional[BaseException]) -> bool:
        """
        Add an error to the group.

        Returns True if `err` is an error, whether or not it was stored, so
        the caller can act on every failure (fail-fast). None is ignored and
        returns False.
        """
        if err is None:
            return False
        with self._lock:
            if len(self._errors) < self.max_size:
                self._errors.append(err)
        return True

    def reset(self) -> None:
        with self._lock:
            self._errors.clear()

    @property
    def errors(self) -> list[BaseException]:
        with self._lock:
            return list(self._errors)

    def messages(self) -> list[str]:
        return [str(e) or type(e).__name__ for e in self.errors]

    def __len__(self) -> int:
        with self._lock:
            return len(self._errors)
