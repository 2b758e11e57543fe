"""
Small shared utilities.
"""
from __future__ import annotations

import time
import itertools
from contextlib import contextmanager
from typing import Generator


@contextmanager
def timer() -> Generator[dict, None, None]:
    """Context manager that records elapsed wall-clock milliseconds."""
    result: dict = {}
    start = time.perf_counter()
    try:
        yield result
    finally:
        result["elapsed_ms"] = int((time.perf_counter() - start) * 1000)


class RequestTokens:
    """Monotonically increasing request tokens, one counter per key.

    ``issue(key)`` returns a fresh token and makes it the current one for
    *key*; ``is_current(key, token)`` tells a completing request whether it
    has been superseded in the meantime.
    """

    def __init__(self) -> None:
        self._counter = itertools.count(1)
        self._current: dict[str, int] = {}

    def issue(self, key: str) -> int:
        token = next(self._counter)
        self._current[key] = token
        return token

    def invalidate(self, key: str) -> None:
        self._current.pop(key, None)

    def is_current(self, key: str, token: int) -> bool:
        return self._current.get(key) == token
