"""Stream driver: HTTP request in, canonical events out.

:func:`iter_events` issues the request, reads the body incrementally and
pushes it through a fresh :class:`LineSplitter`, :func:`parse_line` and the
adapter. :func:`stream_sse` wraps it in the ``on_event`` / ``on_complete`` /
``on_error`` callback contract.

Cancellation is cooperative. The token is checked before and after every
read, and each read races against :meth:`CancellationToken.wait`, so a
cancellation that lands while waiting for the network stops immediately.
A cancelled stream ends cleanly; it is never reported as an error.
"""

from __future__ import annotations

import asyncio
import codecs
import logging
from collections.abc import AsyncIterator, Callable
from contextlib import aclosing
from typing import Any

import httpx

from chatstream.adapters import EventAdapter
from chatstream.cancellation import CancellationToken
from chatstream.errors import EmptyResponseBodyError, StreamHTTPError
from chatstream.events import StreamEvent
from chatstream.instrumentation import record_error, record_stream_stats, stream_span
from chatstream.sse import LineSplitter, SSEParserOptions, parse_line

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = httpx.Timeout(600.0, connect=10.0)

DEFAULT_HEADERS = {
    "Content-Type": "application/json",
    "Accept": "text/event-stream",
}


async def _read_next(chunks: AsyncIterator[bytes]) -> bytes | None:
    try:
        return await chunks.__anext__()
    except StopAsyncIteration:
        return None


async def _next_chunk(
    chunks: AsyncIterator[bytes], token: CancellationToken,
) -> bytes | None:
    """Await the next body chunk unless the token is cancelled first.

    Returns ``None`` when the body is exhausted or the token won the race;
    callers tell the two apart by checking the token.
    """
    read = asyncio.ensure_future(_read_next(chunks))
    cancelled = asyncio.ensure_future(token.wait())
    try:
        await asyncio.wait({read, cancelled}, return_when=asyncio.FIRST_COMPLETED)
    finally:
        pending = [t for t in (read, cancelled) if not t.done()]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
    if read.cancelled():
        return None
    return read.result()


def _line_events(
    line: str, adapter: EventAdapter, options: SSEParserOptions | None,
) -> list[StreamEvent]:
    frame = parse_line(line, options)
    if frame is None:
        return []
    return adapter.apply_all(frame)


async def _check_response(response: httpx.Response) -> None:
    if not response.is_success:
        await response.aread()
        raise StreamHTTPError(response.status_code, response.text)
    if response.status_code == 204:
        raise EmptyResponseBodyError()


async def _read_events(
    response: httpx.Response,
    adapter: EventAdapter,
    token: CancellationToken,
    options: SSEParserOptions | None,
) -> AsyncIterator[StreamEvent]:
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    splitter = LineSplitter()
    chunks = response.aiter_bytes()

    try:
        while True:
            if token.cancelled:
                return
            chunk = await _next_chunk(chunks, token)
            if token.cancelled:
                return
            if chunk is None:
                break
            for line in splitter.feed(decoder.decode(chunk)):
                for event in _line_events(line, adapter, options):
                    if token.cancelled:
                        return
                    yield event
    finally:
        await chunks.aclose()

    lines = splitter.feed(decoder.decode(b"", final=True))
    if splitter.buffer:
        lines.append(splitter.buffer)
        splitter.reset()
    for line in lines:
        for event in _line_events(line, adapter, options):
            yield event


async def iter_events(
    url: str,
    adapter: EventAdapter,
    *,
    body: dict[str, Any] | None = None,
    headers: dict[str, str] | None = None,
    method: str = "POST",
    cancel_token: CancellationToken | None = None,
    client: httpx.AsyncClient | None = None,
    parser_options: SSEParserOptions | None = None,
    timeout: httpx.Timeout | float | None = DEFAULT_TIMEOUT,
    system: str = "http",
) -> AsyncIterator[StreamEvent]:
    """Stream canonical events from an SSE endpoint.

    Args:
        url: Endpoint to request.
        adapter: Adapter for this call; stateful adapters must not be
            shared between concurrent calls.
        body: JSON request body.
        headers: Extra headers, overriding the JSON / event-stream defaults.
        method: HTTP method.
        cancel_token: Token observed around every read.
        client: Client to send the request with. When omitted a client is
            created for this call and closed afterwards.
        parser_options: Data field and decoder limits for frame parsing.
        timeout: Timeout for the client created when *client* is omitted.
        system: Provider name recorded on the tracing span.

    Raises:
        StreamHTTPError: The backend answered with a non-success status.
        EmptyResponseBodyError: The backend answered without a body.
        httpx.HTTPError: The request failed at the transport level.
    """
    token = cancel_token or CancellationToken()
    if token.cancelled:
        return

    request_headers = {**DEFAULT_HEADERS, **(headers or {})}
    owns_client = client is None
    http = client or httpx.AsyncClient(timeout=timeout)
    emitted = 0

    try:
        async with stream_span(system, url) as span:
            try:
                async with http.stream(
                    method, url, json=body, headers=request_headers,
                ) as response:
                    await _check_response(response)
                    async with aclosing(
                        _read_events(response, adapter, token, parser_options)
                    ) as events:
                        async for event in events:
                            emitted += 1
                            yield event
            except Exception as e:
                record_error(span, e)
                raise
            record_stream_stats(span, emitted, token.cancelled)
    finally:
        if owns_client:
            await http.aclose()

    if token.cancelled:
        logger.debug(f"Stream from {url} cancelled after {emitted} events")


async def stream_sse(
    url: str,
    adapter: EventAdapter,
    on_event: Callable[[StreamEvent], None],
    on_complete: Callable[[], None],
    on_error: Callable[[Exception], None],
    **options: Any,
) -> None:
    """Drive :func:`iter_events` into callbacks.

    Exactly one of ``on_complete`` or ``on_error`` is called. Cancellation
    through the token, or of the surrounding task, counts as completion.
    Keyword options are passed through to :func:`iter_events`.
    """
    try:
        async with aclosing(iter_events(url, adapter, **options)) as events:
            async for event in events:
                on_event(event)
    except asyncio.CancelledError:
        on_complete()
        raise
    except Exception as e:
        logger.debug(f"Stream from {url} failed: {e}")
        on_error(e)
        return
    on_complete()
