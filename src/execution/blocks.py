"""Per-block runs and debounced live compilation.

A block's outputs always come from its latest run: each run collects into a
fresh list and the caller replaces what it showed before. Overlapping runs of
the same block are not serialized; a newer edit only cancels a debounce tick
that has not started executing yet.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any

from src.execution.config import live_compile_delay_s
from src.execution.errors import SnippetRuntimeError
from src.execution.orchestrator import execute
from src.execution.types import OutputItem, Variant

logger = logging.getLogger(__name__)

Executor = Callable[..., Awaitable[None]]
ResultHandler = Callable[["BlockRunResult"], Any]


@dataclass
class BlockRunResult:
    block_id: str
    outputs: list[OutputItem] = field(default_factory=list)

    @property
    def has_error(self) -> bool:
        return any(o.kind == "error" for o in self.outputs)

    def raise_for_error(self) -> None:
        """Raise `SnippetRuntimeError` with the first error item's text, if any."""
        for o in self.outputs:
            if o.kind == "error":
                raise SnippetRuntimeError(o.content)

    def to_dict(self) -> dict[str, Any]:
        return {
            "block_id": self.block_id,
            "outputs": [o.to_dict() for o in self.outputs],
            "has_error": self.has_error,
        }


async def run_block(
    block_id: str,
    code: str,
    variant: Variant | str,
    *,
    executor: Executor | None = None,
) -> BlockRunResult:
    result = BlockRunResult(block_id=block_id)
    run = executor or execute
    await run(code, variant, result.outputs.append)
    return result


class LiveCompileScheduler:
    def __init__(
        self,
        on_result: ResultHandler,
        *,
        delay_s: float | None = None,
        executor: Executor | None = None,
    ) -> None:
        self._on_result = on_result
        self._delay_s = float(delay_s) if delay_s is not None else live_compile_delay_s()
        self._executor = executor
        self._pending: dict[str, asyncio.Task[None]] = {}
        self._inflight: set[asyncio.Task[None]] = set()

    def pending_blocks(self) -> list[str]:
        return list(self._pending.keys())

    def schedule(self, block_id: str, code: str, variant: Variant | str) -> None:
        prev = self._pending.pop(block_id, None)
        if prev is not None and not prev.done():
            prev.cancel()

        immediate = False
        try:
            immediate = Variant.parse(variant) is Variant.PROSE_MARKUP
        except ValueError:
            pass
        delay = 0.0 if immediate else self._delay_s

        task = asyncio.ensure_future(self._tick(block_id, code, variant, delay))
        self._pending[block_id] = task
        self._inflight.add(task)
        task.add_done_callback(self._inflight.discard)

    async def _tick(self, block_id: str, code: str, variant: Variant | str, delay: float) -> None:
        if delay > 0:
            await asyncio.sleep(delay)
        # From here on the run belongs to nobody's debounce: newer edits start
        # their own run instead of cancelling this one.
        if self._pending.get(block_id) is asyncio.current_task():
            self._pending.pop(block_id, None)

        result = await run_block(block_id, code, variant, executor=self._executor)
        try:
            maybe = self._on_result(result)
            if inspect.isawaitable(maybe):
                await maybe
        except Exception:
            logger.exception("Live compile result handler failed (block=%s)", block_id)

    async def close(self) -> None:
        for task in list(self._pending.values()):
            task.cancel()
        self._pending.clear()
        if self._inflight:
            await asyncio.gather(*list(self._inflight), return_exceptions=True)
