import sys
from pathlib import Path

import pytest

# Ensure the repo root is on sys.path so tests can import the local `src/` package.
ROOT = str(Path(__file__).resolve().parents[1])
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

FIXTURES = Path(__file__).resolve().parent / "fixtures"


@pytest.fixture
def fake_esbuild_cmd() -> list[str]:
    return [sys.executable, str(FIXTURES / "fake_esbuild.py")]


@pytest.fixture
def fake_runtime_cmd() -> list[str]:
    return [sys.executable, str(FIXTURES / "fake_runtime.py")]


@pytest.fixture(autouse=True)
def _isolate_snippetbox_env(monkeypatch: pytest.MonkeyPatch) -> None:
    # A developer's local .env must not leak into unit tests.
    for name in (
        "SNIPPETBOX_ESBUILD_CMD",
        "SNIPPETBOX_RUNTIME_CMD",
        "SNIPPETBOX_EXEC_TIMEOUT_S",
        "SNIPPETBOX_MODULE_HOST_URL",
        "SNIPPETBOX_REACT_VERSION",
        "SNIPPETBOX_LIVE_COMPILE_DELAY_MS",
        "SNIPPETBOX_TMP_DIR",
    ):
        monkeypatch.delenv(name, raising=False)
