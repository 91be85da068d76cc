from __future__ import annotations

from collections.abc import Callable
from typing import Protocol

LineHandler = Callable[[str], None]


class ExecutionContext(Protocol):
    """One isolated runtime instance, owned by exactly one invocation.

    `close()` must be idempotent: the first call releases every resource the
    context holds (process, staging files); later calls do nothing.
    """

    correlation_id: str

    async def wait_exited(self) -> int: ...

    def stderr_tail(self) -> str: ...

    async def close(self) -> None: ...


class ContextBackend(Protocol):
    """Abstract execution context backend.

    `start` stages `entry_source` as the context's entry module, starts it and
    feeds every line the context writes to stdout into `on_line`, in order.
    """

    async def start(
        self, *, correlation_id: str, entry_source: str, on_line: LineHandler
    ) -> ExecutionContext: ...
