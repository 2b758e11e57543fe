"""
Row-count preview -- a debounced "how many rows would this match" counter.

Each ``schedule(filters)`` restarts the debounce window.  When the window
expires a count is issued under a fresh request token; only the latest
token's result is applied, so a slow early count can never overwrite a
fast later one.  In-flight counts are not cancelled, their results are
simply ignored.  No retry: ``refresh()`` re-issues on demand.
"""
from __future__ import annotations

import asyncio
from enum import Enum
from typing import Awaitable, Callable, Sequence

from src.rules.model import CompiledFilter
from src.core.config import get_settings
from src.core.logging import get_logger
from src.core.utils import RequestTokens

logger = get_logger(__name__)

Counter = Callable[[list[CompiledFilter]], Awaitable[int]]

_TOKEN_KEY = "count"


class PreviewState(str, Enum):
    idle = "idle"
    counting = "counting"
    counted = "counted"
    failed = "failed"


class RowCountPreview:
    def __init__(self, counter: Counter, debounce_ms: int | None = None):
        if debounce_ms is None:
            debounce_ms = get_settings().preview_debounce_ms
        self._counter = counter
        self._debounce_s = max(debounce_ms, 0) / 1000
        self._tokens = RequestTokens()
        self._timer: asyncio.Task | None = None
        self._inflight: set[asyncio.Task] = set()
        self._filters: list[CompiledFilter] = []

        self.state = PreviewState.idle
        self.count: int | None = None
        self.error: str | None = None

    def schedule(self, filters: Sequence[CompiledFilter]) -> None:
        """Restart the debounce window for *filters*.  Needs a running loop."""
        self._filters = list(filters)
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        self._timer = asyncio.ensure_future(self._debounce(self._filters))

    async def _debounce(self, filters: list[CompiledFilter]) -> None:
        await asyncio.sleep(self._debounce_s)
        self._start(filters)

    def _start(self, filters: list[CompiledFilter]) -> asyncio.Task:
        token = self._tokens.issue(_TOKEN_KEY)
        self.state = PreviewState.counting
        task = asyncio.ensure_future(self._run(filters, token))
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)
        return task

    async def _run(self, filters: list[CompiledFilter], token: int) -> None:
        try:
            count = await self._counter(filters)
        except Exception as exc:  # surfaced through state, not raised
            if self._tokens.is_current(_TOKEN_KEY, token):
                logger.warning("Row count failed: %s", exc)
                self.state = PreviewState.failed
                self.error = str(exc)
            else:
                logger.debug("Ignoring failure of stale count (token %d)", token)
            return

        if not self._tokens.is_current(_TOKEN_KEY, token):
            logger.debug("Discarding stale count %d (token %d)", count, token)
            return
        self.count = count
        self.error = None
        self.state = PreviewState.counted

    async def refresh(self) -> None:
        """Re-issue the count for the last scheduled filters, skipping the debounce."""
        if self._timer is not None and not self._timer.done():
            self._timer.cancel()
        await self._start(self._filters)

    async def wait(self) -> None:
        """Wait for the pending debounce and every in-flight count to settle."""
        if self._timer is not None:
            try:
                await self._timer
            except asyncio.CancelledError:
                pass
        while self._inflight:
            await asyncio.gather(*list(self._inflight))
