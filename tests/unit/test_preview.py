"""
Unit tests -- row-count preview: debounce, last-write-wins, failure state.
"""
import asyncio

from src.rules.model import CompiledFilter
from src.rules.preview import PreviewState, RowCountPreview


GT = CompiledFilter(field="retail", operator="gt", value=10)
CA = CompiledFilter(field="origin_state", operator="eq", value="CA")


def test_starts_idle():
    async def noop(filters):
        return 0
    preview = RowCountPreview(noop, debounce_ms=0)
    assert preview.state is PreviewState.idle
    assert preview.count is None


def test_debounce_collapses_bursts():
    calls = []

    async def counter(filters):
        calls.append(list(filters))
        return len(filters)

    async def scenario():
        preview = RowCountPreview(counter, debounce_ms=20)
        preview.schedule([GT])
        preview.schedule([GT, CA])
        await preview.wait()
        return preview

    preview = asyncio.run(scenario())
    assert calls == [[GT, CA]]
    assert preview.state is PreviewState.counted
    assert preview.count == 2


def test_stale_count_discarded():
    release_first = None

    async def counter(filters):
        if len(filters) == 1:
            await release_first.wait()
            return 111
        return 222

    async def scenario():
        nonlocal release_first
        release_first = asyncio.Event()
        preview = RowCountPreview(counter, debounce_ms=0)
        preview.schedule([GT])
        await asyncio.sleep(0.01)          # first count now in flight
        preview.schedule([GT, CA])
        await asyncio.sleep(0.01)          # second count done
        assert preview.count == 222
        release_first.set()
        await preview.wait()
        return preview

    preview = asyncio.run(scenario())
    assert preview.count == 222
    assert preview.state is PreviewState.counted


def test_failure_sets_failed_state():
    async def counter(filters):
        raise RuntimeError("store down")

    async def scenario():
        preview = RowCountPreview(counter, debounce_ms=0)
        preview.schedule([GT])
        await preview.wait()
        return preview

    preview = asyncio.run(scenario())
    assert preview.state is PreviewState.failed
    assert preview.error == "store down"


def test_refresh_reissues_without_retry():
    calls = []

    async def counter(filters):
        calls.append(1)
        if len(calls) == 1:
            raise RuntimeError("flaky")
        return 7

    async def scenario():
        preview = RowCountPreview(counter, debounce_ms=0)
        preview.schedule([GT])
        await preview.wait()
        assert preview.state is PreviewState.failed
        await preview.refresh()
        return preview

    preview = asyncio.run(scenario())
    assert len(calls) == 2
    assert preview.state is PreviewState.counted
    assert preview.count == 7
    assert preview.error is None
