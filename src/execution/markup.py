"""
Prose markup (a small Markdown subset) to display HTML.

Supported: `#`/`##`/`###` headings, `***bold italic***`, `**bold**`, `*italic*`,
fenced code blocks, inline code, `[text](url)` links, blank-line paragraphs and
single-newline line breaks.

Raw text is escaped (`&`, `<`, `>`) before any structural substitution so the
user's prose can never inject active markup. Code spans are cut out before the
inline rules run and restored afterwards, so their content is shown verbatim.
"""

from __future__ import annotations

import re

_FENCE_RE = re.compile(r"```([\w+-]*)\n([\s\S]*?)```")
_INLINE_CODE_RE = re.compile(r"`([^`\n]+)`")
_H3_RE = re.compile(r"^### (.*)$", re.MULTILINE)
_H2_RE = re.compile(r"^## (.*)$", re.MULTILINE)
_H1_RE = re.compile(r"^# (.*)$", re.MULTILINE)
_BOLD_ITALIC_RE = re.compile(r"\*\*\*(.+?)\*\*\*")
_BOLD_RE = re.compile(r"\*\*(.+?)\*\*")
_ITALIC_RE = re.compile(r"\*(.+?)\*")
_LINK_RE = re.compile(r"\[([^\]]+)\]\(([^)\s]+)\)")
_HEADING_BREAK_RE = re.compile(r"(</h[1-3]>)\n+")
_PLACEHOLDER_RE = re.compile("\x00(\\d+)\x00")
_UNSAFE_SCHEME_RE = re.compile(r"^\s*(javascript|vbscript|data):", re.IGNORECASE)

_DOCUMENT_STYLE = """
    * { margin: 0; padding: 0; box-sizing: border-box; }
    body {
      font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif;
      padding: 16px;
      line-height: 1.6;
      color: #1a1a1a;
    }
    h1, h2, h3 { margin: 1em 0 0.5em; }
    h1 { font-size: 1.5em; }
    h2 { font-size: 1.25em; }
    h3 { font-size: 1.1em; }
    p { margin: 0.5em 0; }
    code { background: #f0f0f0; padding: 0.2em 0.4em; border-radius: 3px; font-size: 0.9em; }
    pre { background: #f0f0f0; padding: 1em; border-radius: 4px; overflow-x: auto; margin: 1em 0; }
    pre code { background: none; padding: 0; }
    a { color: #0066cc; }
"""


def escape_text(text: str) -> str:
    return text.replace("&", "&amp;").replace("<", "&lt;").replace(">", "&gt;")


def _link(m: re.Match[str]) -> str:
    label, href = m.group(1), m.group(2)
    if _UNSAFE_SCHEME_RE.match(href):
        href = "#"
    return f'<a href="{href.replace(chr(34), "&quot;")}">{label}</a>'


def render_markup(text: str) -> str:
    """Render prose markup to an HTML fragment wrapped in a paragraph."""
    # NUL is reserved for the code-span placeholders below.
    src = escape_text((text or "").replace("\r\n", "\n").replace("\x00", ""))

    stash: list[str] = []

    def _keep(html: str) -> str:
        stash.append(html)
        return f"\x00{len(stash) - 1}\x00"

    src = _FENCE_RE.sub(lambda m: _keep(f"<pre><code>{m.group(2)}</code></pre>"), src)
    src = _INLINE_CODE_RE.sub(lambda m: _keep(f"<code>{m.group(1)}</code>"), src)

    src = _H3_RE.sub(r"<h3>\1</h3>", src)
    src = _H2_RE.sub(r"<h2>\1</h2>", src)
    src = _H1_RE.sub(r"<h1>\1</h1>", src)
    src = _BOLD_ITALIC_RE.sub(r"<strong><em>\1</em></strong>", src)
    src = _BOLD_RE.sub(r"<strong>\1</strong>", src)
    src = _ITALIC_RE.sub(r"<em>\1</em>", src)
    src = _LINK_RE.sub(_link, src)

    src = _HEADING_BREAK_RE.sub(r"\1", src)
    src = src.replace("\n\n", "</p><p>").replace("\n", "<br>")
    src = _PLACEHOLDER_RE.sub(lambda m: stash[int(m.group(1))], src)
    return f"<p>{src}</p>"


def markup_document(fragment: str) -> str:
    """Wrap an HTML fragment in a standalone, styled document."""
    return (
        "<!DOCTYPE html>\n"
        "<html>\n"
        "<head>\n"
        '  <meta charset="utf-8">\n'
        f"  <style>{_DOCUMENT_STYLE}  </style>\n"
        "</head>\n"
        f"<body>{fragment}</body>\n"
        "</html>\n"
    )


def render_markup_document(text: str) -> str:
    return markup_document(render_markup(text))
