"""
Transpiler adapter around the `esbuild` executable.

esbuild strips TypeScript types and turns JSX into `React.createElement` calls.
Its output is then normalized so it can be evaluated inside a wrapper function:
static imports are hoisted out, export syntax is removed and a default export
is recorded on `__snippet_exports`.

Initialization (locating and probing the executable) happens once per adapter
and is single-flight: concurrent callers share one probe, and a failure is
cached and re-raised to every later caller until the process restarts.
"""

from __future__ import annotations

import asyncio
import logging
import re
import subprocess
from typing import Any

from src.execution.config import esbuild_cmd, transpile_timeout_s
from src.execution.errors import InitializationError, TranspileError
from src.execution.types import CompiledSnippet, Variant

logger = logging.getLogger(__name__)

EXPORTS_SLOT = "__snippet_exports"

JSX_FACTORY = "React.createElement"
JSX_FRAGMENT = "React.Fragment"
TARGET = "es2022"

_LOADERS: dict[Variant, str] = {
    Variant.TYPED_SCRIPT: "ts",
    Variant.TYPED_SCRIPT_MARKUP: "tsx",
    Variant.PLAIN_SCRIPT: "js",
    Variant.PLAIN_SCRIPT_MARKUP: "jsx",
}

_IMPORT_DECL_RE = re.compile(r"^import\s[\s\S]*?;[ \t]*$\n?", re.MULTILINE)
_EXPORT_DEFAULT_FN_RE = re.compile(
    r"^export\s+default\s+((?:async\s+)?function\s*\*?\s*([A-Za-z_$][\w$]*))",
    re.MULTILINE,
)
_EXPORT_DEFAULT_CLASS_RE = re.compile(
    r"^export\s+default\s+class\s+([A-Za-z_$][\w$]*)", re.MULTILINE
)
_EXPORT_DEFAULT_RE = re.compile(r"^export\s+default\s+", re.MULTILINE)
_EXPORT_DECL_RE = re.compile(
    r"^export\s+(?=(?:async\s+)?function\b|class\b|const\b|let\b|var\b)",
    re.MULTILINE,
)
_EXPORT_LIST_RE = re.compile(
    r"""^export\s*(?:\*[^;\n]*|\{(?P<names>[^}]*)\}(?P<source>\s*from\s*["'][^"'\n]*["'])?)\s*;?[ \t]*$\n?""",
    re.MULTILINE,
)
_AS_DEFAULT_RE = re.compile(r"([A-Za-z_$][\w$]*)\s+as\s+default\b")
_ESBUILD_ERROR_RE = re.compile(r"\[ERROR\]\s*(.+)")
_ESBUILD_LOCATION_RE = re.compile(r"^\s*(\S+:\d+:\d+):\s*$", re.MULTILINE)


def loader_for(variant: Variant | str) -> str:
    v = Variant.parse(variant)
    loader = _LOADERS.get(v)
    if loader is None:
        raise ValueError(f"Variant {v.value} is not transpiled")
    return loader


def _export_list(m: re.Match[str]) -> str:
    # `export { x as default }` is how esbuild spells some default exports.
    names = m.group("names")
    if names is None or m.group("source"):
        return ""
    d = _AS_DEFAULT_RE.search(names)
    return f"{EXPORTS_SLOT}.default = {d.group(1)};\n" if d else ""


def normalize_module(code: str) -> tuple[tuple[str, ...], str]:
    """Split module code into (hoisted imports, function-safe body)."""
    imports = tuple(m.group(0).strip() for m in _IMPORT_DECL_RE.finditer(code))
    body = _IMPORT_DECL_RE.sub("", code)

    default_name: str | None = None
    m = _EXPORT_DEFAULT_FN_RE.search(body)
    if m:
        # Function declarations hoist, so the slot can be filled up front.
        default_name = m.group(2)
        body = body[: m.start()] + m.group(1) + body[m.end() :]
    body = _EXPORT_DEFAULT_CLASS_RE.sub(
        lambda c: f"const {c.group(1)} = {EXPORTS_SLOT}.default = class {c.group(1)}",
        body,
    )
    body = _EXPORT_DEFAULT_RE.sub(f"{EXPORTS_SLOT}.default = ", body)
    body = _EXPORT_LIST_RE.sub(_export_list, body)
    body = _EXPORT_DECL_RE.sub("", body)
    if default_name:
        body = f"{EXPORTS_SLOT}.default = {default_name};\n" + body
    return imports, body.strip("\n")


def _esbuild_error(stderr: str, returncode: int) -> TranspileError:
    m = _ESBUILD_ERROR_RE.search(stderr)
    if m:
        loc = _ESBUILD_LOCATION_RE.search(stderr, m.end())
        return TranspileError(m.group(1).strip(), location=loc.group(1) if loc else None)
    first = next((ln.strip() for ln in stderr.splitlines() if ln.strip()), "")
    return TranspileError(first or f"esbuild exited with code {returncode}")


class TranspilerAdapter:
    def __init__(
        self, *, command: list[str] | None = None, timeout_s: float | None = None
    ) -> None:
        self._command = list(command) if command else esbuild_cmd()
        self._timeout_s = float(timeout_s or transpile_timeout_s())
        self._init_task: asyncio.Future[str] | None = None
        self._version: str | None = None

    @property
    def command(self) -> list[str]:
        return list(self._command)

    def state(self) -> dict[str, Any]:
        task = self._init_task
        if task is None or not task.done():
            status = "pending"
            error = None
        elif task.cancelled():
            status, error = "failed", "initialization cancelled"
        elif task.exception() is not None:
            status, error = "failed", str(task.exception())
        else:
            status, error = "ready", None
        return {
            "status": status,
            "version": self._version,
            "error": error,
            "command": self.command,
        }

    def _probe(self) -> str:
        try:
            proc = subprocess.run(
                [*self._command, "--version"],
                capture_output=True,
                timeout=self._timeout_s,
            )
        except FileNotFoundError as exc:
            raise InitializationError(
                f"esbuild executable not found: {self._command[0]}"
            ) from exc
        except (OSError, subprocess.TimeoutExpired) as exc:
            raise InitializationError(f"esbuild probe failed: {exc}") from exc
        if proc.returncode != 0:
            detail = proc.stderr.decode("utf-8", errors="replace").strip()
            raise InitializationError(
                f"esbuild probe exited with code {proc.returncode}"
                + (f": {detail}" if detail else "")
            )
        return proc.stdout.decode("utf-8", errors="replace").strip()

    async def _initialize(self) -> str:
        logger.info("Initializing transpiler (%s)", " ".join(self._command))
        try:
            version = await asyncio.to_thread(self._probe)
        except InitializationError:
            logger.error("Transpiler initialization failed", exc_info=True)
            raise
        self._version = version
        logger.info("Transpiler ready (esbuild %s)", version)
        return version

    async def ensure_initialized(self) -> str:
        """Initialize once; every caller shares the first caller's outcome."""
        if self._init_task is None:
            self._init_task = asyncio.ensure_future(self._initialize())
        # Shielded so a cancelled caller does not cancel the shared probe.
        return await asyncio.shield(self._init_task)

    def transpile(self, code: str, variant: Variant | str) -> CompiledSnippet:
        v = Variant.parse(variant)
        loader = loader_for(v)
        if self._version is None:
            raise InitializationError("Transpiler is not initialized")

        args = [
            *self._command,
            f"--loader={loader}",
            "--format=esm",
            f"--target={TARGET}",
            "--jsx=transform",
            f"--jsx-factory={JSX_FACTORY}",
            f"--jsx-fragment={JSX_FRAGMENT}",
            f"--sourcefile=snippet.{loader}",
            "--log-level=error",
            "--color=false",
        ]
        try:
            proc = subprocess.run(
                args,
                input=(code or "").encode("utf-8"),
                capture_output=True,
                timeout=self._timeout_s,
            )
        except subprocess.TimeoutExpired as exc:
            raise TranspileError(
                f"esbuild did not finish within {self._timeout_s:g}s"
            ) from exc
        except OSError as exc:
            raise TranspileError(f"esbuild could not be started: {exc}") from exc

        if proc.returncode != 0:
            err = _esbuild_error(
                proc.stderr.decode("utf-8", errors="replace"), proc.returncode
            )
            logger.debug("Transpile failed (%s): %s", loader, err)
            raise err

        out = proc.stdout.decode("utf-8", errors="replace")
        imports, body = normalize_module(out)
        return CompiledSnippet(code=out, variant=v, imports=imports, body=body)


_transpiler: TranspilerAdapter | None = None


def get_transpiler() -> TranspilerAdapter:
    global _transpiler
    if _transpiler is None:
        _transpiler = TranspilerAdapter()
    return _transpiler
