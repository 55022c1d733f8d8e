import dataclasses

import pytest

from chatstream.events import (
    ErrorEvent,
    TextToken,
    ToolContent,
    ToolEnd,
    ToolStart,
    event_from_dict,
    event_to_dict,
)


def test_variants_carry_only_their_fields():
    assert [f.name for f in dataclasses.fields(ToolStart)] == ["tool_name", "input"]
    assert [f.name for f in dataclasses.fields(ErrorEvent)] == ["message"]


def test_events_are_immutable():
    event = TextToken(content="a")
    with pytest.raises(dataclasses.FrozenInstanceError):
        event.content = "b"


@pytest.mark.parametrize(
    "event,wire",
    [
        (TextToken(content="hi"), {"type": "llm_token", "content": "hi"}),
        (ToolContent(content="x"), {"type": "tool_content", "content": "x"}),
        (ToolStart(tool_name="t"), {"type": "tool_start", "tool_name": "t"}),
        (ToolStart(tool_name="t", input="{}"), {"type": "tool_start", "tool_name": "t", "input": "{}"}),
        (ToolEnd(tool_name="t", output=""), {"type": "tool_end", "tool_name": "t", "output": ""}),
        (ErrorEvent(message="bad"), {"type": "error", "message": "bad"}),
    ],
)
def test_wire_form(event, wire):
    assert event_to_dict(event) == wire
    assert event_from_dict(wire) == event


@pytest.mark.parametrize(
    "data",
    [None, "llm_token", {}, {"type": "llm_token"}, {"type": "llm_token", "content": 3}, {"type": "nope"}],
)
def test_unrecognised_wire_data(data):
    assert event_from_dict(data) is None


def test_error_without_message_gets_default():
    assert event_from_dict({"type": "error"}) == ErrorEvent(message="Unknown error")
