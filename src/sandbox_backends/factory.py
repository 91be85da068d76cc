from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover
    from .base import ContextBackend


def get_backend() -> ContextBackend:
    """Backend for plain-value contexts: one runtime child process per context."""
    from src.execution.config import runtime_cmd, staging_tmp_dir

    from .subprocess_backend import SubprocessContextBackend

    return SubprocessContextBackend(command=runtime_cmd(), tmp_dir=staging_tmp_dir())
