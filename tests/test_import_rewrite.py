from __future__ import annotations

from src.execution.import_rewrite import is_bare_specifier, rewrite_imports


def test_rewrites_bare_default_import():
    out = rewrite_imports("import _ from 'lodash';", base_url="https://esm.sh")
    assert out == "import _ from 'https://esm.sh/lodash';"


def test_rewrites_named_and_namespace_imports_keeping_quotes():
    src = 'import { format } from "date-fns";\nimport * as R from \'ramda\';\n'
    out = rewrite_imports(src, base_url="https://esm.sh")
    assert 'import { format } from "https://esm.sh/date-fns";' in out
    assert "import * as R from 'https://esm.sh/ramda';" in out


def test_rewrites_scoped_and_subpath_specifiers():
    out = rewrite_imports(
        "import { z } from '@scope/pkg/sub';", base_url="https://cdn.example/"
    )
    assert out == "import { z } from 'https://cdn.example/@scope/pkg/sub';"


def test_rewrites_multiline_bindings():
    src = "import {\n  a,\n  b,\n} from 'pkg';"
    out = rewrite_imports(src, base_url="https://esm.sh")
    assert out.endswith("from 'https://esm.sh/pkg';")


def test_leaves_relative_absolute_and_url_specifiers_alone():
    src = (
        "import a from './a';\n"
        "import b from '../b';\n"
        "import c from '/c.js';\n"
        "import d from 'https://esm.sh/d';\n"
        "import fs from 'node:fs';\n"
    )
    assert rewrite_imports(src, base_url="https://esm.sh") == src


def test_rewrite_is_idempotent():
    once = rewrite_imports("import React from 'react';", base_url="https://esm.sh")
    assert rewrite_imports(once, base_url="https://esm.sh") == once


def test_uses_configured_module_host(monkeypatch):
    monkeypatch.setenv("SNIPPETBOX_MODULE_HOST_URL", "https://mirror.local/")
    assert rewrite_imports("import x from 'x';") == "import x from 'https://mirror.local/x';"


def test_code_without_imports_is_unchanged():
    src = "const important = 1;\nconsole.log(important)"
    assert rewrite_imports(src) == src


def test_is_bare_specifier():
    assert is_bare_specifier("react")
    assert is_bare_specifier("@tanstack/query")
    assert not is_bare_specifier("./x")
    assert not is_bare_specifier("/x")
    assert not is_bare_specifier("https://x")
    assert not is_bare_specifier("")
