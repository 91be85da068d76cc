from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable

from src.execution.errors import InitializationError, TranspileError
from src.execution.import_rewrite import rewrite_imports
from src.execution.isolation import IsolationHost
from src.execution.markup import render_markup_document
from src.execution.transpiler import TranspilerAdapter, get_transpiler
from src.execution.types import OutputItem, Variant

logger = logging.getLogger(__name__)

OutputCallback = Callable[[OutputItem], None]

_host: IsolationHost | None = None


def get_host() -> IsolationHost:
    global _host
    if _host is None:
        _host = IsolationHost()
    return _host


def wants_rendering(code: str, variant: Variant) -> bool:
    """Markup-capable snippets that contain markup or export a component render a view."""
    if not variant.is_markup_capable:
        return False
    return "<" in code or "export default" in code or "export function" in code


async def execute(
    code: str,
    variant: Variant | str,
    on_output: OutputCallback,
    *,
    transpiler: TranspilerAdapter | None = None,
    host: IsolationHost | None = None,
) -> None:
    """Run one snippet and report its effects through `on_output`, in order.

    Never raises for problems inside the invocation: each failure is reported
    as one `error` item and the call returns normally.
    """
    if not (code or "").strip():
        return

    try:
        v = Variant.parse(variant)
    except ValueError as exc:
        on_output(OutputItem.new("error", str(exc)))
        return

    if v is Variant.PROSE_MARKUP:
        on_output(OutputItem.new("rendered-view", render_markup_document(code)))
        return

    adapter = transpiler or get_transpiler()
    isolation = host or get_host()

    try:
        await adapter.ensure_initialized()
    except InitializationError as exc:
        on_output(OutputItem.new("error", f"Failed to initialize transpiler: {exc}"))
        return

    try:
        source = rewrite_imports(code)
        try:
            compiled = await asyncio.to_thread(adapter.transpile, source, v)
        except TranspileError as exc:
            on_output(OutputItem.new("error", f"Transpilation error: {exc}"))
            return

        if wants_rendering(code, v):
            logger.debug("Rendering %s snippet as a view", v.value)
            on_output(isolation.render_view(compiled))
            return

        await isolation.run_plain(compiled, on_output)
    except asyncio.CancelledError:
        raise
    except Exception as exc:
        logger.exception("Unexpected failure while executing a %s snippet", v.value)
        on_output(OutputItem.new("error", f"Internal error: {exc}"))


_DONE = object()


async def iter_outputs(
    code: str,
    variant: Variant | str,
    *,
    transpiler: TranspilerAdapter | None = None,
    host: IsolationHost | None = None,
) -> AsyncIterator[OutputItem]:
    """Yield the items of one invocation as they are produced."""
    queue: asyncio.Queue[object] = asyncio.Queue()

    async def _run() -> None:
        try:
            await execute(code, variant, queue.put_nowait, transpiler=transpiler, host=host)
        finally:
            queue.put_nowait(_DONE)

    task = asyncio.ensure_future(_run())
    try:
        while True:
            item = await queue.get()
            if item is _DONE:
                break
            yield item  # type: ignore[misc]
        await task
    finally:
        if not task.done():
            task.cancel()
