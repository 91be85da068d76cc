from __future__ import annotations

import time
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Any, Literal

OutputKind = Literal["log", "error", "warn", "info", "result", "rendered-view"]

CONSOLE_METHODS: tuple[str, ...] = ("log", "error", "warn", "info")


class Variant(Enum):
    TYPED_SCRIPT = "typed-script"
    TYPED_SCRIPT_MARKUP = "typed-script-markup"
    PLAIN_SCRIPT = "plain-script"
    PLAIN_SCRIPT_MARKUP = "plain-script-markup"
    PROSE_MARKUP = "prose-markup"

    @property
    def is_markup_capable(self) -> bool:
        return self in (Variant.TYPED_SCRIPT_MARKUP, Variant.PLAIN_SCRIPT_MARKUP)

    @property
    def is_typed(self) -> bool:
        return self in (Variant.TYPED_SCRIPT, Variant.TYPED_SCRIPT_MARKUP)

    @classmethod
    def parse(cls, raw: Variant | str) -> Variant:
        if isinstance(raw, Variant):
            return raw
        key = str(raw or "").strip().lower()
        if key in _ALIASES:
            return _ALIASES[key]
        for v in cls:
            if v.value == key:
                return v
        raise ValueError(f"Unsupported variant: {raw}")

    @classmethod
    def from_filename(cls, filename: str) -> Variant:
        name = (filename or "").strip()
        dot = name.rfind(".")
        ext = name[dot + 1 :].lower() if dot > 0 else ""
        v = _EXTENSIONS.get(ext)
        if v is None:
            raise ValueError(f"Unsupported file extension: {filename}")
        return v


# Block type names used by the editor's project files.
_ALIASES: dict[str, Variant] = {
    "typescript": Variant.TYPED_SCRIPT,
    "tsx": Variant.TYPED_SCRIPT_MARKUP,
    "javascript": Variant.PLAIN_SCRIPT,
    "jsx": Variant.PLAIN_SCRIPT_MARKUP,
    "markdown": Variant.PROSE_MARKUP,
}

_EXTENSIONS: dict[str, Variant] = {
    "ts": Variant.TYPED_SCRIPT,
    "tsx": Variant.TYPED_SCRIPT_MARKUP,
    "js": Variant.PLAIN_SCRIPT,
    "jsx": Variant.PLAIN_SCRIPT_MARKUP,
    "md": Variant.PROSE_MARKUP,
}


def _now_ms() -> int:
    return time.time_ns() // 1_000_000


@dataclass(frozen=True)
class OutputItem:
    id: str
    kind: OutputKind
    content: str
    created_at: int

    @classmethod
    def new(cls, kind: OutputKind, content: str) -> OutputItem:
        return cls(
            id=uuid.uuid4().hex,
            kind=kind,
            content=content,
            created_at=_now_ms(),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "kind": self.kind,
            "content": self.content,
            "created_at": self.created_at,
        }


@dataclass(frozen=True)
class CompiledSnippet:
    """Transpiled snippet, split so the body can run inside a wrapper function.

    `imports` are static import declarations that must stay at module top level;
    `body` is everything else, with export syntax removed. `code` is the
    untouched transpiler output.
    """

    code: str
    variant: Variant
    imports: tuple[str, ...] = ()
    body: str = ""
