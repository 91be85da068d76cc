"""
Isolation host: runs compiled snippets in their own execution context.

Plain-value mode starts one context per invocation and waits for its `done`
message, a wall-clock timeout, or the context exiting on its own, whichever
comes first. Rendering mode only builds a self-contained document; it starts
nothing and waits for nothing.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from typing import Literal

from src.execution.classifier import classify
from src.execution.config import exec_timeout_s
from src.execution.errors import ExecutionTimeout
from src.execution.harness import render_bootstrap_module, render_view_document
from src.execution.protocol import (
    MessageBus,
    ProtocolMessage,
    next_correlation_id,
    parse_message,
)
from src.execution.types import CompiledSnippet, OutputItem
from src.sandbox_backends.base import ContextBackend, ExecutionContext
from src.sandbox_backends.factory import get_backend

logger = logging.getLogger(__name__)

OutputCallback = Callable[[OutputItem], None]
WaitOutcome = Literal["done", "exited", "timeout"]


class IsolationHost:
    def __init__(
        self,
        *,
        backend: ContextBackend | None = None,
        bus: MessageBus | None = None,
        timeout_s: float | None = None,
    ) -> None:
        self._backend = backend
        self.bus = bus or MessageBus()
        self.timeout_s = float(timeout_s) if timeout_s is not None else exec_timeout_s()

    @property
    def backend(self) -> ContextBackend:
        if self._backend is None:
            self._backend = get_backend()
        return self._backend

    def render_view(self, compiled: CompiledSnippet) -> OutputItem:
        return OutputItem.new("rendered-view", render_view_document(compiled))

    async def run_plain(self, compiled: CompiledSnippet, on_output: OutputCallback) -> None:
        correlation_id = next_correlation_id()
        done = asyncio.Event()

        def _on_message(message: ProtocolMessage) -> None:
            if done.is_set():
                return
            if message.kind == "done":
                logger.debug("Context %s signalled done", correlation_id)
                done.set()
                return
            item = classify(message)
            if item is not None:
                on_output(item)

        def _on_line(line: str) -> None:
            message = parse_message(line)
            if message is None:
                if line.strip():
                    logger.debug("Ignoring non-protocol output from %s: %.200s", correlation_id, line)
                return
            self.bus.publish(message)

        subscription = self.bus.subscribe(correlation_id, _on_message)
        context: ExecutionContext | None = None
        try:
            try:
                context = await self.backend.start(
                    correlation_id=correlation_id,
                    entry_source=render_bootstrap_module(correlation_id, compiled),
                    on_line=_on_line,
                )
            except OSError as exc:
                logger.error("Failed to start execution context %s: %s", correlation_id, exc)
                on_output(OutputItem.new("error", f"Failed to start execution context: {exc}"))
                return

            outcome, exit_code = await self._wait(context, done)
            if outcome == "timeout":
                logger.info("Context %s timed out after %ss", correlation_id, self.timeout_s)
                on_output(OutputItem.new("error", str(ExecutionTimeout(self.timeout_s))))
            elif outcome == "exited":
                detail = context.stderr_tail()
                logger.info(
                    "Context %s exited without completing (code %s)", correlation_id, exit_code
                )
                on_output(
                    OutputItem.new(
                        "error",
                        f"Execution context exited unexpectedly (code {exit_code})"
                        + (f": {detail}" if detail else ""),
                    )
                )
        finally:
            # Late messages from this context now reach nobody.
            subscription.close()
            if context is not None:
                await context.close()

    async def _wait(
        self, context: ExecutionContext, done: asyncio.Event
    ) -> tuple[WaitOutcome, int | None]:
        done_task = asyncio.ensure_future(done.wait())
        exit_task = asyncio.ensure_future(context.wait_exited())
        try:
            finished, _ = await asyncio.wait(
                {done_task, exit_task},
                timeout=self.timeout_s,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            for task in (done_task, exit_task):
                if not task.done():
                    task.cancel()
            await asyncio.gather(done_task, exit_task, return_exceptions=True)

        if done.is_set():
            return "done", None
        if exit_task in finished:
            exc = exit_task.exception()
            if exc is not None:
                raise exc
            return "exited", exit_task.result()
        return "timeout", None
