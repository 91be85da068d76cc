"""Stand-in for the JavaScript runtime used by the isolation tests.

Reads the staged entry module (last argv item), extracts its correlation id and
plays back protocol lines. The scenario is picked by a marker word found
anywhere in the entry source.
"""

import json
import re
import sys
import time


def _send(cid: str, kind: str, payload: dict) -> None:
    sys.stdout.write(json.dumps({"correlation_id": cid, "kind": kind, "payload": payload}) + "\n")
    sys.stdout.flush()


def main() -> int:
    with open(sys.argv[-1], encoding="utf-8") as f:
        source = f.read()
    m = re.search(r'const __EXEC_ID=("[^"]*");', source)
    if not m:
        sys.stderr.write("no correlation id in entry module\n")
        return 2
    cid = json.loads(m.group(1))

    if "FAKE_HANG" in source:
        _send(cid, "console", {"method": "log", "args": ["started"]})
        while True:
            time.sleep(1)

    if "FAKE_EXIT" in source:
        sys.stderr.write("fatal: runtime crashed\n")
        sys.stderr.flush()
        return 3

    if "FAKE_STALE" in source:
        _send("exec_0_0", "console", {"method": "log", "args": ["from another context"]})

    if "FAKE_NOISE" in source:
        sys.stdout.write("Download https://esm.sh/lodash\n")
        sys.stdout.flush()

    if "FAKE_SLOW" in source:
        time.sleep(1.0)

    if "FAKE_THROW" in source:
        _send(cid, "error", {"message": "boom"})
        _send(cid, "done", {})
        return 0

    _send(cid, "console", {"method": "log", "args": ["hello", "world"]})
    _send(cid, "console", {"method": "warn", "args": ["careful"]})
    _send(cid, "result", {"value": "42"})
    _send(cid, "done", {})

    if "FAKE_AFTER_DONE" in source:
        _send(cid, "console", {"method": "log", "args": ["late"]})
    return 0


if __name__ == "__main__":
    sys.exit(main())
