from __future__ import annotations

import asyncio

import pytest

from src.execution.blocks import BlockRunResult, LiveCompileScheduler, run_block
from src.execution.errors import SnippetRuntimeError
from src.execution.types import OutputItem, Variant


class _RecordingExecutor:
    def __init__(self, *, error: bool = False) -> None:
        self.calls: list[tuple[str, object]] = []
        self.error = error

    async def __call__(self, code, variant, on_output) -> None:
        self.calls.append((code, variant))
        if self.error:
            on_output(OutputItem.new("error", "bad"))
            return
        on_output(OutputItem.new("result", code.upper()))


def test_run_block_collects_outputs():
    ex = _RecordingExecutor()
    result = asyncio.run(run_block("b1", "abc", "javascript", executor=ex))

    assert result.block_id == "b1"
    assert [o.content for o in result.outputs] == ["ABC"]
    assert result.has_error is False
    d = result.to_dict()
    assert d["block_id"] == "b1"
    assert d["outputs"][0]["kind"] == "result"


def test_run_block_flags_errors():
    result = asyncio.run(run_block("b1", "x", "javascript", executor=_RecordingExecutor(error=True)))
    assert result.has_error is True


def test_raise_for_error_uses_first_error_item():
    result = BlockRunResult(
        block_id="b1",
        outputs=[
            OutputItem.new("log", "before"),
            OutputItem.new("error", "boom"),
            OutputItem.new("error", "second"),
        ],
    )
    with pytest.raises(SnippetRuntimeError, match="^boom$"):
        result.raise_for_error()


def test_raise_for_error_is_silent_without_errors():
    result = asyncio.run(run_block("b1", "abc", "javascript", executor=_RecordingExecutor()))
    result.raise_for_error()


def test_each_run_replaces_previous_outputs():
    ex = _RecordingExecutor()

    async def _twice() -> tuple[BlockRunResult, BlockRunResult]:
        first = await run_block("b1", "one", "javascript", executor=ex)
        second = await run_block("b1", "two", "javascript", executor=ex)
        return first, second

    first, second = asyncio.run(_twice())
    assert [o.content for o in first.outputs] == ["ONE"]
    assert [o.content for o in second.outputs] == ["TWO"]


def test_live_compile_debounces_rapid_edits():
    ex = _RecordingExecutor()
    results: list[BlockRunResult] = []

    async def _edit() -> None:
        live = LiveCompileScheduler(results.append, delay_s=0.05, executor=ex)
        live.schedule("b1", "a", "javascript")
        live.schedule("b1", "ab", "javascript")
        live.schedule("b1", "abc", "javascript")
        assert live.pending_blocks() == ["b1"]
        await asyncio.sleep(0.2)
        await live.close()

    asyncio.run(_edit())

    assert ex.calls == [("abc", "javascript")]
    assert [r.outputs[0].content for r in results] == ["ABC"]


def test_live_compile_keeps_blocks_independent():
    ex = _RecordingExecutor()
    results: list[BlockRunResult] = []

    async def _edit() -> None:
        live = LiveCompileScheduler(results.append, delay_s=0.05, executor=ex)
        live.schedule("b1", "one", "javascript")
        live.schedule("b2", "two", "javascript")
        await asyncio.sleep(0.2)
        await live.close()

    asyncio.run(_edit())

    assert sorted(r.block_id for r in results) == ["b1", "b2"]


def test_prose_markup_is_not_delayed():
    ex = _RecordingExecutor()
    results: list[BlockRunResult] = []

    async def _edit() -> None:
        live = LiveCompileScheduler(results.append, delay_s=60, executor=ex)
        live.schedule("notes", "# hi", Variant.PROSE_MARKUP)
        await asyncio.sleep(0.05)
        await live.close()

    asyncio.run(_edit())

    assert [r.block_id for r in results] == ["notes"]


def test_close_cancels_pending_ticks():
    ex = _RecordingExecutor()
    results: list[BlockRunResult] = []

    async def _edit() -> None:
        live = LiveCompileScheduler(results.append, delay_s=60, executor=ex)
        live.schedule("b1", "a", "javascript")
        await live.close()
        assert live.pending_blocks() == []

    asyncio.run(_edit())

    assert ex.calls == []
    assert results == []


def test_async_result_handler_and_handler_failures():
    ex = _RecordingExecutor()
    seen: list[str] = []

    async def _handler(result: BlockRunResult) -> None:
        seen.append(result.block_id)
        raise RuntimeError("socket closed")

    async def _edit() -> None:
        live = LiveCompileScheduler(_handler, delay_s=0, executor=ex)
        live.schedule("b1", "a", "javascript")
        await asyncio.sleep(0.05)
        await live.close()

    asyncio.run(_edit())

    assert seen == ["b1"]
