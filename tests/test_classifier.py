from __future__ import annotations

from src.execution.classifier import classify, format_args
from src.execution.protocol import ProtocolMessage


def _msg(kind, payload=None):
    return ProtocolMessage("exec_1_1", kind, payload or {})


def test_console_methods_map_to_their_kind():
    for method in ("log", "error", "warn", "info"):
        item = classify(_msg("console", {"method": method, "args": ["a", "b"]}))
        assert item is not None
        assert item.kind == method
        assert item.content == "a b"


def test_unknown_console_method_is_a_log():
    item = classify(_msg("console", {"method": "debug", "args": ["x"]}))
    assert item is not None
    assert item.kind == "log"


def test_console_without_args_is_empty_text():
    item = classify(_msg("console", {"method": "log"}))
    assert item is not None
    assert item.content == ""


def test_error_message():
    item = classify(_msg("error", {"message": "TypeError: x is not a function"}))
    assert item is not None
    assert item.kind == "error"
    assert item.content == "TypeError: x is not a function"

    fallback = classify(_msg("error"))
    assert fallback is not None
    assert fallback.content == "Unknown error"


def test_result_only_when_value_present():
    item = classify(_msg("result", {"value": "42"}))
    assert item is not None
    assert (item.kind, item.content) == ("result", "42")
    assert classify(_msg("result")) is None


def test_done_produces_nothing():
    assert classify(_msg("done")) is None


def test_format_args_renders_scalars():
    assert format_args(["a", 1, None, True, 2.5]) == "a 1 null true 2.5"
