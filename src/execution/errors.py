from __future__ import annotations


class ExecutionError(Exception):
    """Base class for failures inside one snippet invocation."""


class TranspileError(ExecutionError):
    """The snippet is not valid source for its declared variant."""

    def __init__(self, message: str, *, location: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.location = location

    def __str__(self) -> str:
        if self.location:
            return f"{self.message} ({self.location})"
        return self.message


class SnippetRuntimeError(ExecutionError):
    """An exception thrown (or a promise rejected) by the user's code."""


class ExecutionTimeout(ExecutionError):
    def __init__(self, timeout_s: float) -> None:
        super().__init__(f"Execution timed out ({_fmt_seconds(timeout_s)}s)")
        self.timeout_s = timeout_s


class InitializationError(ExecutionError):
    """The transpiler could not be initialized.

    Sticky for the lifetime of the process: every later invocation re-raises the
    cached instance instead of retrying.
    """


def _fmt_seconds(value: float) -> str:
    if float(value).is_integer():
        return str(int(value))
    return f"{value:g}"
