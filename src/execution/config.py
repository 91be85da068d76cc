from __future__ import annotations

import os
import shlex


def _env_int(name: str, default: int) -> int:
    raw = (os.environ.get(name) or "").strip()
    if not raw:
        return int(default)
    try:
        return int(raw)
    except Exception:
        return int(default)


def _env_float(name: str, default: float) -> float:
    raw = (os.environ.get(name) or "").strip()
    if not raw:
        return float(default)
    try:
        return float(raw)
    except Exception:
        return float(default)


def _env_cmd(name: str, default: str) -> list[str]:
    raw = (os.environ.get(name) or "").strip()
    try:
        parts = shlex.split(raw) if raw else []
    except ValueError:
        parts = []
    return parts or shlex.split(default)


def esbuild_cmd() -> list[str]:
    return _env_cmd("SNIPPETBOX_ESBUILD_CMD", "esbuild")


def transpile_timeout_s() -> float:
    return max(1.0, _env_float("SNIPPETBOX_TRANSPILE_TIMEOUT_S", 30))


def runtime_cmd() -> list[str]:
    # No --allow-* flags: the context gets no fs/env/net/run access. Remote
    # module imports from the module host are allowed by the runtime itself.
    return _env_cmd(
        "SNIPPETBOX_RUNTIME_CMD", "deno run --quiet --no-prompt --no-config"
    )


def exec_timeout_s() -> float:
    return max(0.1, _env_float("SNIPPETBOX_EXEC_TIMEOUT_S", 10))


def module_host_url() -> str:
    return (
        (os.environ.get("SNIPPETBOX_MODULE_HOST_URL") or "https://esm.sh")
        .strip()
        .rstrip("/")
    ) or "https://esm.sh"


def react_version() -> str:
    return (os.environ.get("SNIPPETBOX_REACT_VERSION") or "18").strip() or "18"


def live_compile_delay_s() -> float:
    return max(0, _env_int("SNIPPETBOX_LIVE_COMPILE_DELAY_MS", 800)) / 1000


def max_stderr_chars() -> int:
    return max(200, _env_int("SNIPPETBOX_MAX_STDERR_CHARS", 4000))


def staging_tmp_dir() -> str | None:
    return (os.environ.get("SNIPPETBOX_TMP_DIR") or "").strip() or None
