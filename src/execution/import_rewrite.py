"""
Bare module specifier rewriting.

Snippets import packages by name (`import _ from 'lodash'`). The execution
context has no package manager, so bare names are pointed at the remote module
host instead: `import _ from 'https://esm.sh/lodash'`.

Only bare specifiers are rewritten. Relative (`./x`, `../x`), absolute (`/x`)
and URL-like (`https://...`, `node:fs`, `data:...`) specifiers are left alone,
which also makes the rewrite idempotent. This is a textual rewrite of
`import <bindings> from '<specifier>'`; re-exports and dynamic `import()` are
not touched.
"""

from __future__ import annotations

import re

from src.execution.config import module_host_url

_IMPORT_FROM_RE = re.compile(
    r"""(?P<head>\bimport\s+(?P<bindings>[\w$*{}\s,]+?)\s+from\s+)(?P<quote>['"])(?P<spec>[^'"\n]+)(?P=quote)"""
)
_URL_SCHEME_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*:")


def is_bare_specifier(spec: str) -> bool:
    s = (spec or "").strip()
    if not s:
        return False
    if s.startswith((".", "/")):
        return False
    return not _URL_SCHEME_RE.match(s)


def rewrite_imports(code: str, *, base_url: str | None = None) -> str:
    """Point bare `import ... from '<pkg>'` specifiers at the remote module host."""
    if not code or "import" not in code:
        return code
    base = (base_url or module_host_url()).rstrip("/")

    def _sub(m: re.Match[str]) -> str:
        spec = m.group("spec")
        if not is_bare_specifier(spec):
            return m.group(0)
        q = m.group("quote")
        return f"{m.group('head')}{q}{base}/{spec.strip()}{q}"

    return _IMPORT_FROM_RE.sub(_sub, code)
