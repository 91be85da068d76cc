"""Snippet execution pipeline.

Source normalization, transpilation, isolated execution, output capture and
cleanup for one snippet invocation. `execute()` is the entry point.
"""

from src.execution.errors import (
    ExecutionError,
    ExecutionTimeout,
    InitializationError,
    SnippetRuntimeError,
    TranspileError,
)
from src.execution.orchestrator import execute, iter_outputs
from src.execution.types import CompiledSnippet, OutputItem, Variant

__all__ = [
    "CompiledSnippet",
    "ExecutionError",
    "ExecutionTimeout",
    "InitializationError",
    "OutputItem",
    "SnippetRuntimeError",
    "TranspileError",
    "Variant",
    "execute",
    "iter_outputs",
]
