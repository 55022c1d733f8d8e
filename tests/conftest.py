import asyncio
import json

import httpx
import pytest

from chatstream.session import Session


# ---------------------------------------------------------------------------
# Fake response bodies
# ---------------------------------------------------------------------------

class ChunkStream(httpx.AsyncByteStream):
    """Response body that yields pre-split chunks.

    With ``hang=True`` the body never ends after the last chunk, which
    lets tests cancel while the driver is waiting for the network.
    """

    def __init__(self, chunks, hang: bool = False):
        self.chunks = [
            c if isinstance(c, bytes) else c.encode("utf-8") for c in chunks
        ]
        self.hang = hang
        self.delivered = 0
        self.closed = False

    async def __aiter__(self):
        for chunk in self.chunks:
            self.delivered += 1
            yield chunk
        if self.hang:
            await asyncio.Event().wait()

    async def aclose(self):
        self.closed = True


class FakeBackend:
    """MockTransport handler that records requests and replays a body."""

    def __init__(self, chunks=(), status: int = 200, hang: bool = False, text: str | None = None):
        self.status = status
        self.text = text
        self.stream = ChunkStream(chunks, hang=hang)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.text is not None:
            return httpx.Response(self.status, text=self.text)
        return httpx.Response(
            self.status,
            headers={"Content-Type": "text/event-stream"},
            stream=self.stream,
        )

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))

    @property
    def last_body(self) -> dict:
        return json.loads(self.requests[-1].content)


# ---------------------------------------------------------------------------
# Frame builders
# ---------------------------------------------------------------------------

def sse(frame) -> str:
    """Encode a frame as one ``data:`` record."""
    payload = frame if isinstance(frame, str) else json.dumps(frame, ensure_ascii=False)
    return f"data: {payload}\n\n"


def openai_chunk(content=None, tool_calls=None, finish_reason=None) -> dict:
    delta = {}
    if content is not None:
        delta["content"] = content
    if tool_calls is not None:
        delta["tool_calls"] = tool_calls
    return {"choices": [{"index": 0, "delta": delta, "finish_reason": finish_reason}]}


def openai_tool_call(index=0, name=None, arguments=None, call_id=None) -> dict:
    function = {}
    if name is not None:
        function["name"] = name
    if arguments is not None:
        function["arguments"] = arguments
    call = {"index": index, "function": function}
    if call_id is not None:
        call["id"] = call_id
    return call


async def wait_until(predicate, timeout: float = 1.0) -> None:
    """Poll *predicate* until it holds, failing after *timeout* seconds."""
    async def _poll():
        while not predicate():
            await asyncio.sleep(0.001)

    await asyncio.wait_for(_poll(), timeout)


@pytest.fixture
def session():
    return Session(session_id="s1")


@pytest.fixture
def collector():
    """Callback sink recording everything the driver reports."""

    class Collector:
        def __init__(self):
            self.events = []
            self.completed = 0
            self.errors = []

        def on_event(self, event):
            self.events.append(event)

        def on_complete(self):
            self.completed += 1

        def on_error(self, error):
            self.errors.append(error)

    return Collector()
