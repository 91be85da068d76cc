"""
Context-to-host message protocol.

An execution context writes one JSON object per stdout line:

    {"correlation_id": "exec_...", "kind": "console", "payload": {...}}

`kind` is one of console / error / result / done. Lines that are not well-formed
protocol messages are ignored by the parser. Delivery is scoped per invocation:
each invocation subscribes for its own correlation id and unsubscribes on
teardown, so messages from a context that is already torn down (or from any
other invocation) reach nobody.
"""

from __future__ import annotations

import itertools
import json
import logging
import threading
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Literal

logger = logging.getLogger(__name__)

MessageKind = Literal["console", "error", "result", "done"]
MESSAGE_KINDS: tuple[str, ...] = ("console", "error", "result", "done")

MessageHandler = Callable[["ProtocolMessage"], None]

_counter = itertools.count(1)


def next_correlation_id() -> str:
    """Process-wide unique id; the counter never repeats within a process."""
    return f"exec_{time.time_ns() // 1_000_000}_{next(_counter)}"


@dataclass(frozen=True)
class ProtocolMessage:
    correlation_id: str
    kind: MessageKind
    payload: dict[str, Any] = field(default_factory=dict)

    def to_json(self) -> str:
        return json.dumps(
            {
                "correlation_id": self.correlation_id,
                "kind": self.kind,
                "payload": self.payload,
            },
            separators=(",", ":"),
        )


def parse_message(line: str | bytes) -> ProtocolMessage | None:
    if isinstance(line, bytes):
        line = line.decode("utf-8", errors="replace")
    raw = (line or "").strip()
    if not raw.startswith("{"):
        return None
    try:
        obj = json.loads(raw)
    except ValueError:
        return None
    if not isinstance(obj, dict):
        return None
    cid = obj.get("correlation_id")
    kind = obj.get("kind")
    payload = obj.get("payload")
    if not isinstance(cid, str) or not cid:
        return None
    if kind not in MESSAGE_KINDS:
        return None
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        return None
    return ProtocolMessage(correlation_id=cid, kind=kind, payload=payload)


class Subscription:
    def __init__(self, bus: MessageBus, correlation_id: str) -> None:
        self._bus = bus
        self.correlation_id = correlation_id
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._bus._unsubscribe(self.correlation_id)

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        self.close()


class MessageBus:
    """Routes protocol messages to the one handler registered for their id."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._handlers: dict[str, MessageHandler] = {}

    def subscribe(self, correlation_id: str, handler: MessageHandler) -> Subscription:
        cid = (correlation_id or "").strip()
        if not cid:
            raise ValueError("correlation_id is required")
        with self._lock:
            if cid in self._handlers:
                raise ValueError(f"correlation id already subscribed: {cid}")
            self._handlers[cid] = handler
        return Subscription(self, cid)

    def _unsubscribe(self, correlation_id: str) -> None:
        with self._lock:
            self._handlers.pop(correlation_id, None)

    def is_subscribed(self, correlation_id: str) -> bool:
        with self._lock:
            return correlation_id in self._handlers

    def __len__(self) -> int:
        with self._lock:
            return len(self._handlers)

    def publish(self, message: ProtocolMessage) -> bool:
        """Deliver `message`; returns False when nobody is listening for it."""
        with self._lock:
            handler = self._handlers.get(message.correlation_id)
        if handler is None:
            logger.debug(
                "Dropping %s message for inactive context %s",
                message.kind,
                message.correlation_id,
            )
            return False
        try:
            handler(message)
        except Exception:
            logger.exception(
                "Message handler failed (context=%s kind=%s)",
                message.correlation_id,
                message.kind,
            )
        return True
