"""Server-Sent Events parsing and encoding.

Reading goes bytes -> lines -> frames: :class:`LineSplitter` reassembles
lines across arbitrary chunk boundaries and :func:`parse_line` turns one
``data:`` line into a decoded frame. :func:`sse_generator` goes the other
way, encoding canonical events for a downstream client.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator, Callable
from dataclasses import dataclass
from typing import Any

from chatstream.decoding import (
    DEFAULT_MAX_JSON_DEPTH,
    DEFAULT_MAX_JSON_SIZE,
    safe_json_loads,
)
from chatstream.events import StreamEvent, event_to_dict

COMMENT_MARKER = ":"
DONE_SENTINEL = "[DONE]"


@dataclass(frozen=True)
class SSEParserOptions:
    """Options for :func:`parse_line`.

    Args:
        data_field: Field name whose value carries the payload.
        parse_json: Decode payloads as JSON; when False the raw text is
            returned.
        max_json_size: Maximum payload size in UTF-8 bytes.
        max_json_depth: Maximum nesting depth of a decoded payload.
        done_sentinel: Payload that marks the end of the stream.
    """

    data_field: str = "data"
    parse_json: bool = True
    max_json_size: int = DEFAULT_MAX_JSON_SIZE
    max_json_depth: int = DEFAULT_MAX_JSON_DEPTH
    done_sentinel: str = DONE_SENTINEL


DEFAULT_PARSER_OPTIONS = SSEParserOptions()


class LineSplitter:
    """Reassembles complete lines from arbitrarily split text chunks.

    The buffer holds the unterminated tail of everything fed so far. Each
    :meth:`feed` returns the lines completed by that chunk, in order, and
    also hands them to *sink* when one is given.
    """

    def __init__(self, sink: Callable[[str], None] | None = None) -> None:
        self._buffer = ""
        self._sink = sink

    @property
    def buffer(self) -> str:
        return self._buffer

    def feed(self, chunk: str) -> list[str]:
        self._buffer += chunk
        lines = self._buffer.split("\n")
        self._buffer = lines.pop()
        if self._sink is not None:
            for line in lines:
                self._sink(line)
        return lines

    def reset(self) -> None:
        """Drop the partial tail without interpreting it."""
        self._buffer = ""


def parse_line(line: str, options: SSEParserOptions | None = None) -> Any | None:
    """Extract the payload of a single event-stream line.

    Returns ``None`` for blank lines, comments, other fields and the
    termination sentinel. A payload that does not decode as JSON is returned
    as the raw trimmed text: some backends send plain-text data lines, and a
    malformed JSON payload cannot be told apart from one of those.
    """
    opts = options or DEFAULT_PARSER_OPTIONS

    trimmed = line.strip()
    if not trimmed or trimmed.startswith(COMMENT_MARKER):
        return None

    prefix = f"{opts.data_field}:"
    if not trimmed.startswith(prefix):
        return None

    content = trimmed[len(prefix):].strip()
    if content == opts.done_sentinel:
        return None

    if not opts.parse_json:
        return content

    parsed = safe_json_loads(content, opts.max_json_size, opts.max_json_depth)
    if parsed is None and content:
        return content
    return parsed


class SSEParser:
    """Feeds chunks through a :class:`LineSplitter` and :func:`parse_line`.

    ``on_data`` is called once per decoded frame.
    """

    def __init__(
        self,
        on_data: Callable[[Any], None],
        options: SSEParserOptions | None = None,
    ) -> None:
        self._on_data = on_data
        self._options = options or DEFAULT_PARSER_OPTIONS
        self._splitter = LineSplitter()

    def feed(self, chunk: str) -> None:
        for line in self._splitter.feed(chunk):
            self._emit(line)

    def flush(self) -> None:
        """Interpret the unterminated tail as a final line."""
        tail = self._splitter.buffer
        self._splitter.reset()
        if tail:
            self._emit(tail)

    def reset(self) -> None:
        self._splitter.reset()

    def _emit(self, line: str) -> None:
        data = parse_line(line, self._options)
        if data is not None:
            self._on_data(data)


def encode_event(event: StreamEvent) -> str:
    """Encode one canonical event as an SSE record."""
    return f"data: {json.dumps(event_to_dict(event))}\n\n"


async def sse_generator(
    event_stream: AsyncIterator[StreamEvent],
) -> AsyncIterator[str]:
    """Convert a StreamEvent async iterator into SSE-formatted strings."""
    async for event in event_stream:
        yield encode_event(event)
    yield f"data: {DONE_SENTINEL}\n\n"
