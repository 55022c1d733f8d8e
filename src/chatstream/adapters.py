"""Provider adapters: decoded frames in, canonical events out.

Every adapter exposes :meth:`EventAdapter.apply_all` (all events carried by
one frame) and :meth:`EventAdapter.apply` (the first of them). Adapters never
raise; a frame they do not recognise simply yields no event, which is the
common case for heartbeat and metadata frames.

Stateful adapters keep their tool-call accumulation in a private
:class:`ToolCallAccumulator`, so use the ``create_*`` factories to get a
fresh instance per streaming call.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from typing import Any

from chatstream.events import (
    ErrorEvent,
    StreamEvent,
    TextToken,
    ToolEnd,
    ToolStart,
    event_from_dict,
)
from chatstream.streaming import ToolCallAccumulator

logger = logging.getLogger(__name__)

OPENAI_TOOL_CALLS_FINISH = "tool_calls"


def _dict(value: Any) -> dict:
    return value if isinstance(value, dict) else {}


def _first(value: Any) -> Any:
    if isinstance(value, list) and value:
        return value[0]
    return None


def _str(value: Any) -> str | None:
    return value if isinstance(value, str) else None


def _index(value: Any) -> int:
    # bool is an int subclass; a provider never means True as slot 1
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return 0


def _error_event(frame: dict, fallback: str) -> ErrorEvent | None:
    error = frame.get("error")
    if error is None:
        return None
    if isinstance(error, str):
        return ErrorEvent(message=error or fallback)
    return ErrorEvent(message=_str(_dict(error).get("message")) or fallback)


class EventAdapter(ABC):
    """Maps one decoded provider frame to canonical events."""

    @abstractmethod
    def apply_all(self, frame: Any) -> list[StreamEvent]:
        """Return every event carried by *frame*, in order."""

    def apply(self, frame: Any) -> StreamEvent | None:
        events = self.apply_all(frame)
        return events[0] if events else None

    def __call__(self, frame: Any) -> StreamEvent | None:
        return self.apply(frame)


class OpenAIAdapter(EventAdapter):
    """OpenAI chat-completions chunks (``choices[0].delta``).

    Tool-call arguments accumulate silently per slot; the ``ToolEnd`` events
    are emitted once the choice finishes with ``finish_reason="tool_calls"``.
    """

    def __init__(self) -> None:
        self._calls = ToolCallAccumulator()

    def apply_all(self, frame: Any) -> list[StreamEvent]:
        if not isinstance(frame, dict):
            return []

        error = _error_event(frame, "Unknown OpenAI API error")
        if error is not None:
            return [error]

        choice = _first(frame.get("choices"))
        if not isinstance(choice, dict):
            return []

        events: list[StreamEvent] = []
        delta = _dict(choice.get("delta"))

        content = _str(delta.get("content"))
        if content:
            events.append(TextToken(content=content))

        tool_calls = delta.get("tool_calls")
        if isinstance(tool_calls, list):
            for tool_call in tool_calls:
                event = self._tool_call_fragment(_dict(tool_call))
                if event is not None:
                    events.append(event)

        if choice.get("finish_reason") == OPENAI_TOOL_CALLS_FINISH:
            for slot in self._calls.drain():
                events.append(ToolEnd(tool_name=slot.name, output=slot.partial_arguments))

        return events

    def _tool_call_fragment(self, tool_call: dict) -> StreamEvent | None:
        index = _index(tool_call.get("index"))
        function = _dict(tool_call.get("function"))
        name = _str(function.get("name"))
        arguments = _str(function.get("arguments"))

        if name:
            call_id = _str(tool_call.get("id")) or f"tool_{index}"
            self._calls.start(index, call_id, name, arguments or "")
            return ToolStart(tool_name=name, input=arguments or None)

        if arguments and not self._calls.append(index, arguments):
            logger.debug(f"Dropping arguments for unknown tool call slot {index}")
        return None


class AnthropicAdapter(EventAdapter):
    """Anthropic Messages API events, driven by the event ``type``."""

    def __init__(self) -> None:
        self._calls = ToolCallAccumulator()

    def apply_all(self, frame: Any) -> list[StreamEvent]:
        if not isinstance(frame, dict):
            return []

        kind = frame.get("type")
        index = _index(frame.get("index"))

        if kind == "content_block_start":
            block = _dict(frame.get("content_block"))
            if block.get("type") != "tool_use":
                return []
            name = _str(block.get("name")) or "unknown_tool"
            call_id = _str(block.get("id")) or f"tool_{index}"
            self._calls.start(index, call_id, name)
            return [ToolStart(tool_name=name)]

        if kind == "content_block_delta":
            delta = _dict(frame.get("delta"))
            delta_type = delta.get("type")
            if delta_type == "text_delta":
                text = _str(delta.get("text"))
                return [TextToken(content=text)] if text else []
            if delta_type == "input_json_delta":
                partial = _str(delta.get("partial_json"))
                if partial:
                    self._calls.append(index, partial)
            return []

        if kind == "content_block_stop":
            slot = self._calls.pop(index)
            if slot is None:
                return []
            return [ToolEnd(tool_name=slot.name, output=slot.partial_arguments)]

        if kind == "error":
            return [_error_event(frame, "Unknown Anthropic API error")
                    or ErrorEvent(message="Unknown Anthropic API error")]

        # message_start, message_delta, message_stop and ping carry nothing
        return []


class GeminiAdapter(EventAdapter):
    """Gemini ``streamGenerateContent`` chunks.

    Gemini delivers each function call whole, so no accumulation is needed.
    """

    def apply_all(self, frame: Any) -> list[StreamEvent]:
        if not isinstance(frame, dict):
            return []

        error = _error_event(frame, "Unknown Gemini API error")
        if error is not None:
            return [error]

        candidate = _dict(_first(frame.get("candidates")))
        parts = _dict(candidate.get("content")).get("parts")
        if not isinstance(parts, list):
            return []

        events: list[StreamEvent] = []
        for part in parts:
            event = self._part(_dict(part))
            if event is not None:
                events.append(event)
        return events

    def _part(self, part: dict) -> StreamEvent | None:
        text = _str(part.get("text"))
        if text:
            return TextToken(content=text)

        call = part.get("functionCall")
        if isinstance(call, dict):
            return ToolStart(
                tool_name=_str(call.get("name")) or "unknown_function",
                input=json.dumps(call.get("args") or {}),
            )

        response = part.get("functionResponse")
        if isinstance(response, dict):
            return ToolEnd(
                tool_name=_str(response.get("name")) or "unknown_function",
                output=json.dumps(response.get("response") or {}),
            )
        return None


class CanonicalAdapter(EventAdapter):
    """Frames that are already canonical events in their wire form."""

    def apply_all(self, frame: Any) -> list[StreamEvent]:
        event = event_from_dict(frame)
        return [event] if event is not None else []


class _TextOnlyAdapter(EventAdapter):
    """Stateless adapter that only ever looks for assistant text."""

    def apply_all(self, frame: Any) -> list[StreamEvent]:
        event = self.apply(frame)
        return [event] if event is not None else []

    def apply(self, frame: Any) -> StreamEvent | None:
        if not isinstance(frame, dict):
            return None
        return self._extract(frame)

    @abstractmethod
    def _extract(self, frame: dict) -> StreamEvent | None:
        """Return the text event carried by *frame*, if any."""


class OpenAITextAdapter(_TextOnlyAdapter):
    def _extract(self, frame: dict) -> StreamEvent | None:
        delta = _dict(_dict(_first(frame.get("choices"))).get("delta"))
        content = _str(delta.get("content"))
        return TextToken(content=content) if content else None


class AnthropicTextAdapter(_TextOnlyAdapter):
    # Anthropic reports overload mid-stream only through an error frame,
    # so that one is kept even here.
    def _extract(self, frame: dict) -> StreamEvent | None:
        kind = frame.get("type")
        if kind == "content_block_delta":
            text = _str(_dict(frame.get("delta")).get("text"))
            return TextToken(content=text) if text else None
        if kind == "error":
            return _error_event(frame, "Unknown error") or ErrorEvent(message="Unknown error")
        return None


class GeminiTextAdapter(_TextOnlyAdapter):
    def _extract(self, frame: dict) -> StreamEvent | None:
        candidate = _dict(_first(frame.get("candidates")))
        part = _dict(_first(_dict(candidate.get("content")).get("parts")))
        text = _str(part.get("text"))
        return TextToken(content=text) if text else None


openai_text_adapter = OpenAITextAdapter()
anthropic_text_adapter = AnthropicTextAdapter()
gemini_text_adapter = GeminiTextAdapter()


def create_openai_adapter() -> OpenAIAdapter:
    return OpenAIAdapter()


def create_anthropic_adapter() -> AnthropicAdapter:
    return AnthropicAdapter()


def create_gemini_adapter() -> GeminiAdapter:
    return GeminiAdapter()


def create_canonical_adapter() -> CanonicalAdapter:
    return CanonicalAdapter()
