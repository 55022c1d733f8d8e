"""Canonical streaming events emitted by provider adapters."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class StreamEvent:
    """Base for all canonical events."""


@dataclass(frozen=True)
class TextToken(StreamEvent):
    """Incremental assistant text."""

    content: str = ""


@dataclass(frozen=True)
class ToolContent(StreamEvent):
    """Incremental content attributed to a tool; accumulated like text."""

    content: str = ""


@dataclass(frozen=True)
class ToolStart(StreamEvent):
    """A tool invocation has begun."""

    tool_name: str = ""
    input: str | None = None


@dataclass(frozen=True)
class ToolEnd(StreamEvent):
    """A tool invocation has completed.

    ``output`` is opaque; usually, but not always, a JSON document.
    """

    tool_name: str = ""
    output: str | None = None


@dataclass(frozen=True)
class ErrorEvent(StreamEvent):
    """A failure reported by the backend inside the stream."""

    message: str = ""


_WIRE_TYPES: dict[type[StreamEvent], str] = {
    TextToken: "llm_token",
    ToolContent: "tool_content",
    ToolStart: "tool_start",
    ToolEnd: "tool_end",
    ErrorEvent: "error",
}


def event_to_dict(event: StreamEvent) -> dict[str, Any]:
    """Flatten an event into its ``{"type": ...}`` wire form.

    Optional fields that are ``None`` are omitted.
    """
    data: dict[str, Any] = {"type": _WIRE_TYPES[type(event)]}
    if isinstance(event, (TextToken, ToolContent)):
        data["content"] = event.content
    elif isinstance(event, ToolStart):
        data["tool_name"] = event.tool_name
        if event.input is not None:
            data["input"] = event.input
    elif isinstance(event, ToolEnd):
        data["tool_name"] = event.tool_name
        if event.output is not None:
            data["output"] = event.output
    elif isinstance(event, ErrorEvent):
        data["message"] = event.message
    return data


def _opt_str(value: Any) -> str | None:
    return value if isinstance(value, str) else None


def event_from_dict(data: Any) -> StreamEvent | None:
    """Parse the wire form back into an event.

    Returns ``None`` for anything that is not a recognised event shape.
    """
    if not isinstance(data, dict):
        return None
    kind = data.get("type")
    if kind in ("llm_token", "tool_content"):
        content = data.get("content")
        if not isinstance(content, str):
            return None
        cls = TextToken if kind == "llm_token" else ToolContent
        return cls(content=content)
    if kind == "tool_start":
        return ToolStart(
            tool_name=_opt_str(data.get("tool_name")) or "",
            input=_opt_str(data.get("input")),
        )
    if kind == "tool_end":
        return ToolEnd(
            tool_name=_opt_str(data.get("tool_name")) or "",
            output=_opt_str(data.get("output")),
        )
    if kind == "error":
        return ErrorEvent(message=_opt_str(data.get("message")) or "Unknown error")
    return None
