"""Execution contexts backed by a short-lived JavaScript runtime process.

Each context is one child process (Deno by default, started without any
permission flags) running an entry module staged in its own temporary
directory. The process runs in a new session so teardown can kill the whole
process group. Teardown happens once; it kills the group and removes the
staging directory.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import shutil
import signal
import tempfile
from pathlib import Path

from src.execution.config import max_stderr_chars, runtime_cmd, staging_tmp_dir
from src.sandbox_backends.base import LineHandler

logger = logging.getLogger(__name__)

ENTRY_FILENAME = "entry.mjs"

# Console output of one call is a single protocol line; allow large ones.
_STREAM_LIMIT = 32 * 1024 * 1024

# Passed through to the runtime so it can find its module cache; nothing else
# from the host environment reaches the context.
_ENV_PASSTHROUGH = (
    "PATH",
    "HOME",
    "DENO_DIR",
    "XDG_CACHE_HOME",
    "SYSTEMROOT",
    "TMPDIR",
)


def _context_env() -> dict[str, str]:
    env = {k: os.environ[k] for k in _ENV_PASSTHROUGH if k in os.environ}
    env["NO_COLOR"] = "1"
    return env


def _decode_line(b: bytes) -> str:
    return b.decode("utf-8", errors="replace").rstrip("\r\n")


class SubprocessContext:
    def __init__(
        self,
        *,
        correlation_id: str,
        proc: asyncio.subprocess.Process,
        staging_dir: str,
        on_line: LineHandler,
        max_stderr: int,
    ) -> None:
        self.correlation_id = correlation_id
        self.staging_dir = staging_dir
        self._proc = proc
        self._on_line = on_line
        self._max_stderr = max_stderr
        self._stderr = bytearray()
        self._closed = False
        self._stdout_task = asyncio.ensure_future(self._read_stdout())
        self._stderr_task = asyncio.ensure_future(self._read_stderr())

    @property
    def pid(self) -> int:
        return self._proc.pid

    @property
    def closed(self) -> bool:
        return self._closed

    async def _read_stdout(self) -> None:
        stream = self._proc.stdout
        assert stream is not None
        while True:
            try:
                line = await stream.readline()
            except ValueError:
                logger.warning(
                    "Context %s wrote an oversized line; dropping it", self.correlation_id
                )
                continue
            if not line:
                return
            self._on_line(_decode_line(line))

    async def _read_stderr(self) -> None:
        stream = self._proc.stderr
        assert stream is not None
        while True:
            chunk = await stream.read(8192)
            if not chunk:
                return
            self._stderr.extend(chunk)
            # Keep only the tail.
            overflow = len(self._stderr) - self._max_stderr * 4
            if overflow > 0:
                del self._stderr[:overflow]

    def stderr_tail(self) -> str:
        text = bytes(self._stderr).decode("utf-8", errors="replace").strip()
        if len(text) > self._max_stderr:
            text = "..." + text[-self._max_stderr :]
        return text

    async def wait_exited(self) -> int:
        """Resolve once stdout is drained and the process has exited."""
        # Shielded: a cancelled waiter must not stop the readers.
        await asyncio.shield(self._stdout_task)
        await asyncio.shield(self._stderr_task)
        return int(await self._proc.wait())

    def _kill_process_tree(self) -> None:
        # `start_new_session=True` makes the pid the process group id on POSIX.
        if self._proc.returncode is not None:
            return
        try:
            os.killpg(self._proc.pid, signal.SIGKILL)
        except Exception:
            with contextlib.suppress(Exception):
                self._proc.kill()

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        logger.debug("Tearing down context %s (pid=%s)", self.correlation_id, self.pid)

        self._kill_process_tree()
        try:
            await asyncio.wait_for(self._proc.wait(), timeout=2.0)
        except Exception:
            logger.warning(
                "Context %s (pid=%s) did not exit after kill",
                self.correlation_id,
                self.pid,
            )

        for task in (self._stdout_task, self._stderr_task):
            if not task.done():
                task.cancel()
        await asyncio.gather(self._stdout_task, self._stderr_task, return_exceptions=True)

        shutil.rmtree(self.staging_dir, ignore_errors=True)


class SubprocessContextBackend:
    def __init__(
        self,
        *,
        command: list[str] | None = None,
        tmp_dir: str | None = None,
        max_stderr: int | None = None,
    ) -> None:
        self.command = list(command) if command else runtime_cmd()
        self.tmp_dir = tmp_dir or staging_tmp_dir()
        self.max_stderr = int(max_stderr or max_stderr_chars())

    async def start(
        self, *, correlation_id: str, entry_source: str, on_line: LineHandler
    ) -> SubprocessContext:
        staging_dir = tempfile.mkdtemp(prefix=f"snippetbox-{correlation_id}-", dir=self.tmp_dir)
        try:
            entry = Path(staging_dir) / ENTRY_FILENAME
            entry.write_text(entry_source, encoding="utf-8")
            proc = await asyncio.create_subprocess_exec(
                *self.command,
                str(entry),
                cwd=staging_dir,
                env=_context_env(),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=True,
                limit=_STREAM_LIMIT,
            )
        except BaseException:
            shutil.rmtree(staging_dir, ignore_errors=True)
            raise

        logger.debug(
            "Started context %s (pid=%s, entry=%s)", correlation_id, proc.pid, entry
        )
        return SubprocessContext(
            correlation_id=correlation_id,
            proc=proc,
            staging_dir=staging_dir,
            on_line=on_line,
            max_stderr=self.max_stderr,
        )
