from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from src.execution.protocol import ProtocolMessage
from src.execution.types import CONSOLE_METHODS, OutputItem


def _as_text(value: Any) -> str:
    # Arguments arrive already stringified by the context; this only covers
    # hand-built messages.
    if value is None:
        return "null"
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def format_args(values: Iterable[Any]) -> str:
    return " ".join(_as_text(v) for v in values)


def classify(message: ProtocolMessage) -> OutputItem | None:
    """Map one protocol message to at most one output item.

    `done` and value-less `result` messages produce nothing.
    """
    payload = message.payload or {}
    if message.kind == "console":
        method = str(payload.get("method") or "log")
        kind = method if method in CONSOLE_METHODS else "log"
        args = payload.get("args")
        if not isinstance(args, list):
            args = [] if args is None else [args]
        return OutputItem.new(kind, format_args(args))  # type: ignore[arg-type]
    if message.kind == "error":
        return OutputItem.new("error", _as_text(payload.get("message") or "Unknown error"))
    if message.kind == "result":
        if "value" not in payload:
            return None
        return OutputItem.new("result", _as_text(payload.get("value")))
    return None
