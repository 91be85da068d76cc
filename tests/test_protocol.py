from __future__ import annotations

import json

import pytest

from src.execution.protocol import (
    MessageBus,
    ProtocolMessage,
    next_correlation_id,
    parse_message,
)


def test_correlation_ids_are_unique():
    ids = {next_correlation_id() for _ in range(500)}
    assert len(ids) == 500
    assert all(i.startswith("exec_") for i in ids)


def test_parse_message_accepts_protocol_lines():
    line = json.dumps({"correlation_id": "exec_1_1", "kind": "console", "payload": {"args": ["x"]}})
    msg = parse_message(line + "\n")
    assert msg == ProtocolMessage("exec_1_1", "console", {"args": ["x"]})


def test_parse_message_defaults_missing_payload():
    msg = parse_message(b'{"correlation_id":"exec_1_2","kind":"done"}')
    assert msg is not None
    assert msg.payload == {}


@pytest.mark.parametrize(
    "line",
    [
        "",
        "Download https://esm.sh/react",
        "{not json",
        "[1, 2]",
        '{"kind":"done","payload":{}}',
        '{"correlation_id":"exec_1","kind":"shout","payload":{}}',
        '{"correlation_id":"exec_1","kind":"result","payload":"x"}',
    ],
)
def test_parse_message_rejects_other_output(line):
    assert parse_message(line) is None


def test_to_json_round_trips_through_parser():
    msg = ProtocolMessage("exec_9_9", "error", {"message": "boom"})
    assert parse_message(msg.to_json()) == msg


def test_bus_routes_only_to_matching_subscription():
    bus = MessageBus()
    got_a: list[ProtocolMessage] = []
    got_b: list[ProtocolMessage] = []
    bus.subscribe("a", got_a.append)
    bus.subscribe("b", got_b.append)

    assert bus.publish(ProtocolMessage("a", "done"))
    assert [m.correlation_id for m in got_a] == ["a"]
    assert got_b == []


def test_closed_subscription_receives_nothing():
    bus = MessageBus()
    got: list[ProtocolMessage] = []
    sub = bus.subscribe("exec_x", got.append)
    sub.close()
    sub.close()

    assert sub.closed
    assert not bus.is_subscribed("exec_x")
    assert bus.publish(ProtocolMessage("exec_x", "console", {"args": ["late"]})) is False
    assert got == []
    assert len(bus) == 0


def test_subscription_context_manager_unsubscribes():
    bus = MessageBus()
    with bus.subscribe("exec_cm", lambda _m: None):
        assert bus.is_subscribed("exec_cm")
    assert not bus.is_subscribed("exec_cm")


def test_duplicate_or_empty_subscription_is_rejected():
    bus = MessageBus()
    bus.subscribe("dup", lambda _m: None)
    with pytest.raises(ValueError):
        bus.subscribe("dup", lambda _m: None)
    with pytest.raises(ValueError):
        bus.subscribe("  ", lambda _m: None)


def test_handler_failure_does_not_propagate():
    bus = MessageBus()

    def _boom(_m: ProtocolMessage) -> None:
        raise RuntimeError("handler bug")

    bus.subscribe("exec_err", _boom)
    assert bus.publish(ProtocolMessage("exec_err", "done")) is True
