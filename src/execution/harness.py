from __future__ import annotations

import json
import re

from src.execution.config import module_host_url, react_version
from src.execution.transpiler import EXPORTS_SLOT
from src.execution.types import CompiledSnippet

NO_COMPONENT_MESSAGE = (
    "No component to render. Make sure your code returns a React element or component."
)


def _js_string(value: str) -> str:
    # JSON is a valid JS string literal; "</" is escaped so the source can sit
    # inside an inline <script> without closing it.
    return json.dumps(value).replace("</", "<\\/")


def _imports_block(compiled: CompiledSnippet) -> str:
    return "".join(f"{line}\n" for line in compiled.imports)


# Runs before any user statement; a SyntaxError seen while it is still false
# can only come from parsing.
_STARTED_MARK = "void(__started=true);"

_STATEMENT_KEYWORD_RE = re.compile(
    r"^(?:(?:const|let|var|function|class|if|for|while|do|try|switch|return|throw"
    r"|break|continue|import|export|debugger|with)\b|async\s+function\b)"
)


def return_last_expression(body: str) -> str:
    """Turn the last top-level expression statement of `body` into a `return`.

    esbuild prints one top-level statement per line starting at column 0, with
    continuation lines indented or starting with a closing bracket. Bodies
    whose last statement is not an expression are returned unchanged.
    """
    lines = body.rstrip().split("\n")
    while lines and lines[-1].lstrip().startswith("//"):
        lines.pop()
    start = None
    for i in range(len(lines) - 1, -1, -1):
        line = lines[i]
        if not line or line[0].isspace() or line[0] in "})]":
            continue
        if line.startswith(("//", "/*")):
            continue
        start = i
        break
    if start is None:
        return body
    head = lines[start]
    if head[0] in "{;" or _STATEMENT_KEYWORD_RE.match(head):
        return body
    stmt = "\n".join(lines[start:]).rstrip()
    if stmt.endswith(";"):
        stmt = stmt[:-1]
    return "\n".join([*lines[:start], f"return ({stmt}\n);"])


# Shared by both documents: value -> text, thrown value -> message, and the
# evaluator. The body is evaluated with a direct eval so it sees the hoisted
# imports and its completion value (the final expression) is returned. Bodies
# that use top-level await cannot be parsed by eval; they run inside an async
# function instead, with the final expression turned into a `return`. The
# plain async body is the fallback when that rewrite does not parse.
def _runtime_helpers_js(source: str) -> str:
    async_sources = [_STARTED_MARK + return_last_expression(source)]
    if async_sources[0] != _STARTED_MARK + source:
        async_sources.append(_STARTED_MARK + source)
    return (
        f"const {EXPORTS_SLOT}={{}};\n"
        "let __started=false;\n"
        f"const __SOURCE={_js_string(_STARTED_MARK + source)};\n"
        f"const __ASYNC_SOURCES=[{','.join(_js_string(s) for s in async_sources)}];\n"
        "function __repr(v){\n"
        "  if(v===null) return 'null';\n"
        "  if(v===undefined) return 'undefined';\n"
        "  if(typeof v==='string') return v;\n"
        "  if(v instanceof Error) return String(v.name||'Error')+': '+String(v.message);\n"
        "  if(typeof v==='object'){\n"
        "    try{\n"
        "      var s=JSON.stringify(v,null,2);\n"
        "      if(typeof s==='string') return s;\n"
        "    }catch(e){}\n"
        "  }\n"
        "  try{return String(v);}catch(e2){return Object.prototype.toString.call(v);}\n"
        "}\n"
        "function __message(e){\n"
        "  try{\n"
        "    if(e && typeof e==='object' && 'message' in e && e.message) return String(e.message);\n"
        "  }catch(x){}\n"
        "  try{return String(e);}catch(x2){return 'Unknown error';}\n"
        "}\n"
        "function __evaluateAsync(){\n"
        "  for(var i=0;;i++){\n"
        "    try{\n"
        "      return eval('(async () => {\\n'+__ASYNC_SOURCES[i]+'\\n})()');\n"
        "    }catch(e){\n"
        "      if(__started || !(e instanceof SyntaxError) || i===__ASYNC_SOURCES.length-1) throw e;\n"
        "    }\n"
        "  }\n"
        "}\n"
        "async function __evaluate(){\n"
        "  var value;\n"
        "  try{\n"
        "    value=eval(__SOURCE);\n"
        "  }catch(e){\n"
        "    if(__started || !(e instanceof SyntaxError) || !/\\bawait\\b/.test(__SOURCE)) throw e;\n"
        "    value=await __evaluateAsync();\n"
        "  }\n"
        "  if(value!==null && typeof value==='object' && typeof value.then==='function'){\n"
        "    value=await value;\n"
        "  }\n"
        f"  if(value===undefined && Object.prototype.hasOwnProperty.call({EXPORTS_SLOT},'default')){{\n"
        f"    value={EXPORTS_SLOT}.default;\n"
        "  }\n"
        "  return value;\n"
        "}\n"
    )


def render_bootstrap_module(correlation_id: str, compiled: CompiledSnippet) -> str:
    """Entry module for a plain-value context.

    Console methods, uncaught errors and unhandled rejections are forwarded as
    protocol lines on stdout, tagged with `correlation_id`. Exactly one `done`
    is written after the body settles, whether it returned or threw.
    """
    return (
        _imports_block(compiled)
        + f"const __EXEC_ID={_js_string(correlation_id)};\n"
        # Captured before interception: the only writer of protocol lines.
        + "const __write=console.log.bind(console);\n"
        + "function __send(kind,payload){\n"
        "  try{__write(JSON.stringify({correlation_id:__EXEC_ID,kind:kind,payload:payload||{}}));}catch(e){}\n"
        "}\n"
        + _runtime_helpers_js(compiled.body)
        + "['log','error','warn','info'].forEach(function(method){\n"
        "  console[method]=function(){\n"
        "    var args=[];\n"
        "    for(var i=0;i<arguments.length;i++) args.push(__repr(arguments[i]));\n"
        "    __send('console',{method:method,args:args});\n"
        "  };\n"
        "});\n"
        "if(typeof globalThis.addEventListener==='function'){\n"
        "  globalThis.addEventListener('error',function(ev){\n"
        "    try{ev.preventDefault();}catch(e){}\n"
        "    __send('error',{message:__message(ev && ev.error!==undefined ? ev.error : (ev && ev.message))});\n"
        "  });\n"
        "  globalThis.addEventListener('unhandledrejection',function(ev){\n"
        "    try{ev.preventDefault();}catch(e){}\n"
        "    __send('error',{message:__message(ev && ev.reason)});\n"
        "  });\n"
        "}else if(typeof process!=='undefined' && process && typeof process.on==='function'){\n"
        "  process.on('uncaughtException',function(e){__send('error',{message:__message(e)});});\n"
        "  process.on('unhandledRejection',function(r){__send('error',{message:__message(r)});});\n"
        "}\n"
        "(async function(){\n"
        "  try{\n"
        "    var value=await __evaluate();\n"
        "    __send('result',value===undefined ? {} : {value:__repr(value)});\n"
        "  }catch(e){\n"
        "    __send('error',{message:__message(e)});\n"
        "  }finally{\n"
        # One macrotask so pending unhandled-rejection events are reported
        # before `done` ends the subscription.
        "    await new Promise(function(r){setTimeout(r,0);});\n"
        "    __send('done',{});\n"
        "  }\n"
        "})();\n"
    )


_VIEW_STYLE = """
    * { margin: 0; padding: 0; box-sizing: border-box; }
    body { font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; }
    #root { padding: 16px; }
    .error { color: red; padding: 16px; font-family: monospace; white-space: pre-wrap; }
    .empty { color: #666; padding: 16px; }
    .loading { color: #666; padding: 16px; }
    pre { white-space: pre-wrap; font-family: monospace; }
"""


def render_view_document(
    compiled: CompiledSnippet,
    *,
    base_url: str | None = None,
    react_major: str | None = None,
) -> str:
    """Self-contained HTML document that renders the snippet's value with React.

    The evaluated value is tagged explicitly (element / component / value /
    none) before rendering. Evaluation and render errors are shown in place of
    the view; nothing is reported back to the host.
    """
    base = (base_url or module_host_url()).rstrip("/")
    ver = (react_major or react_version()).strip()
    react_url = _js_string(f"{base}/react@{ver}")
    react_dom_url = _js_string(f"{base}/react-dom@{ver}/client")
    no_component = _js_string(NO_COMPONENT_MESSAGE)

    script = (
        f"import * as __React from {react_url};\n"
        f"import * as __ReactDOM from {react_dom_url};\n"
        + _imports_block(compiled)
        + "globalThis.React=__React;\n"
        + _runtime_helpers_js(compiled.body)
        + "const __rootEl=document.getElementById('root');\n"
        "function __showError(e){\n"
        "  var box=document.createElement('div');\n"
        "  box.className='error';\n"
        "  box.textContent='Error: '+__message(e);\n"
        "  __rootEl.replaceChildren(box);\n"
        "}\n"
        "window.addEventListener('error',function(ev){__showError(ev && ev.error!==undefined ? ev.error : (ev && ev.message));});\n"
        "window.addEventListener('unhandledrejection',function(ev){__showError(ev && ev.reason);});\n"
        "function __tag(value){\n"
        "  if(value===undefined) return {tag:'none'};\n"
        "  if(__React.isValidElement(value)) return {tag:'element',value:value};\n"
        "  if(typeof value==='function') return {tag:'component',value:value};\n"
        "  return {tag:'value',value:value};\n"
        "}\n"
        "function __render(tagged){\n"
        "  var root=__ReactDOM.createRoot(__rootEl);\n"
        "  switch(tagged.tag){\n"
        "    case 'element': root.render(tagged.value); break;\n"
        "    case 'component': root.render(__React.createElement(tagged.value)); break;\n"
        "    case 'value': root.render(__React.createElement('pre',null,__repr(tagged.value))); break;\n"
        f"    default: root.render(__React.createElement('div',{{className:'empty'}},{no_component}));\n"
        "  }\n"
        "}\n"
        "try{\n"
        "  __render(__tag(await __evaluate()));\n"
        "}catch(e){\n"
        "  __showError(e);\n"
        "}\n"
    )

    return (
        "<!DOCTYPE html>\n"
        "<html>\n"
        "<head>\n"
        '  <meta charset="utf-8">\n'
        f"  <style>{_VIEW_STYLE}  </style>\n"
        "</head>\n"
        "<body>\n"
        '  <div id="root"><div class="loading">Loading React...</div></div>\n'
        # Fires when a module dependency cannot be fetched.
        '  <script type="module" onerror="document.getElementById(\'root\').innerHTML='
        "'<div class=&quot;error&quot;>Error: failed to load module dependencies</div>'\">\n"
        f"{script}"
        "  </script>\n"
        "</body>\n"
        "</html>\n"
    )
