"""End-to-end tests for Runner turns."""

import asyncio
import itertools
import logging

import pytest

from chatstream.errors import ChatStreamError, StreamHTTPError, TurnInProgressError
from chatstream.events import ErrorEvent, TextToken, ToolContent, ToolEnd, ToolStart
from chatstream.message import Message, MessageRole, TextSegment
from chatstream.provider import AnthropicProvider, OpenAIProvider
from chatstream.runner import Runner
from chatstream.state import TurnState

from tests.conftest import FakeBackend, openai_chunk, sse, wait_until


def scripted(*events, outcome="complete", error=None):
    """A send function that reports *events* and then *outcome*."""
    calls = []

    async def send(params):
        calls.append(params)
        for event in events:
            params.on_event(event)
        if outcome == "complete":
            params.on_complete()
        elif outcome == "error":
            params.on_error(error)

    send.calls = calls
    return send


def blocking(*events):
    """A send function that reports *events* then waits to be cancelled."""

    async def send(params):
        for event in events:
            params.on_event(event)
        await params.cancel_token.wait()
        params.on_event(TextToken(content="late"))
        params.on_complete()

    return send


def history(session):
    session.append(Message(role=MessageRole.USER, content="earlier"))
    session.append(Message(role=MessageRole.ASSISTANT, content="reply"))
    return list(session.transcript)


# ---------------------------------------------------------------------------
# Over HTTP
# ---------------------------------------------------------------------------

class TestProviderTurns:
    @pytest.mark.asyncio
    async def test_openai_two_chunk_turn(self, session):
        backend = FakeBackend([
            'data: {"choices":[{"delta":{"content":"Hel"}}]}\n\n',
            'data: {"choices":[{"delta":{"content":"lo"}}]}\n\ndata: [DONE]\n\n',
        ])
        provider = OpenAIProvider(api_key="sk", base_url="http://test/chat")

        async with backend.client() as client:
            runner = Runner.from_provider(provider, client=client, session=session)
            result = await runner.send_message("Hi")

        assert result.status is TurnState.COMPLETED
        assert result.error is None
        assert result.message.content == "Hello"
        assert result.message.segments == [TextSegment(content="Hello")]
        assert [(m.role, m.content) for m in session.transcript] == [
            (MessageRole.USER, "Hi"),
            (MessageRole.ASSISTANT, "Hello"),
        ]
        assert runner.state is TurnState.IDLE
        assert runner.last_status is TurnState.COMPLETED
        assert backend.last_body["messages"] == [{"role": "user", "content": "Hi"}]
        assert backend.requests[0].headers["authorization"] == "Bearer sk"

    @pytest.mark.asyncio
    async def test_follow_up_turn_sends_history(self, session):
        first = FakeBackend([sse(openai_chunk(content="one"))])
        second = FakeBackend([sse(openai_chunk(content="two"))])
        provider = OpenAIProvider(api_key="sk", base_url="http://test/chat")

        for backend, text in ((first, "a"), (second, "b")):
            async with backend.client() as client:
                runner = Runner.from_provider(provider, client=client, session=session)
                await runner.send_message(text, "gpt-4o")

        assert second.last_body["model"] == "gpt-4o"
        assert second.last_body["messages"] == [
            {"role": "user", "content": "a"},
            {"role": "assistant", "content": "one"},
            {"role": "user", "content": "b"},
        ]

    @pytest.mark.asyncio
    async def test_http_error_fails_turn(self, session):
        backend = FakeBackend(status=401, text="bad key")
        provider = OpenAIProvider(api_key="sk", base_url="http://test/chat")

        async with backend.client() as client:
            runner = Runner.from_provider(provider, client=client, session=session)
            result = await runner.send_message("Hi")

        assert result.status is TurnState.FAILED
        assert result.message is None
        assert isinstance(result.error, StreamHTTPError)
        assert result.error.status_code == 401
        assert [m.content for m in session.transcript] == ["Hi"]

    @pytest.mark.asyncio
    async def test_anthropic_error_frame_keeps_partial_reply(self, session):
        backend = FakeBackend([
            sse({"type": "content_block_delta", "index": 0,
                 "delta": {"type": "text_delta", "text": "Partial"}}),
            sse({"type": "error", "error": {"type": "overloaded_error", "message": "Overloaded"}}),
            sse({"type": "content_block_delta", "index": 0,
                 "delta": {"type": "text_delta", "text": " ignored"}}),
        ])
        provider = AnthropicProvider(api_key="ak", base_url="http://test/messages")

        async with backend.client() as client:
            runner = Runner.from_provider(provider, client=client, session=session)
            result = await runner.send_message("Hi")

        assert result.status is TurnState.FAILED
        assert str(result.error) == "Overloaded"
        assert result.message.content == "Partial"
        assert len(session.transcript) == 2

    @pytest.mark.asyncio
    async def test_stop_mid_stream_keeps_partial_reply(self, session):
        backend = FakeBackend([sse(openai_chunk(content="Hel"))], hang=True)
        provider = OpenAIProvider(api_key="sk", base_url="http://test/chat")

        async with backend.client() as client:
            runner = Runner.from_provider(provider, client=client, session=session)
            task = asyncio.ensure_future(runner.send_message("Hi"))
            await wait_until(lambda: session.transcript and session.transcript[-1].content == "Hel")
            assert runner.stop() is True
            result = await asyncio.wait_for(task, timeout=1)

        assert result.status is TurnState.CANCELLED
        assert result.message.content == "Hel"
        assert [m.content for m in session.transcript] == ["Hi", "Hel"]
        assert backend.stream.closed


# ---------------------------------------------------------------------------
# Turn outcomes
# ---------------------------------------------------------------------------

class TestTurnOutcomes:
    @pytest.mark.asyncio
    async def test_send_receives_prior_history(self, session):
        before = history(session)
        send = scripted(TextToken(content="ok"))
        runner = Runner(send, session=session)

        await runner.send_message("next", "model-x")

        [params] = send.calls
        assert params.user_input == "next"
        assert params.model_name == "model-x"
        assert params.messages == before

    @pytest.mark.asyncio
    async def test_blank_input_is_ignored(self, session):
        send = scripted()
        runner = Runner(send, session=session)

        assert await runner.send_message("   \n") is None
        assert session.transcript == []
        assert send.calls == []

    @pytest.mark.asyncio
    async def test_tool_events_do_not_touch_message(self, session):
        runner = Runner(scripted(
            ToolStart(tool_name="search", input='{"q": 1}'),
            TextToken(content="Found "),
            ToolEnd(tool_name="search", output="[]"),
            ToolContent(content="nothing"),
        ), session=session)

        result = await runner.send_message("look")

        assert result.status is TurnState.COMPLETED
        assert result.message.content == "Found nothing"
        assert result.message.segments == [TextSegment(content="Found nothing")]

    @pytest.mark.asyncio
    async def test_empty_tokens_are_skipped(self, session):
        runner = Runner(scripted(TextToken(content=""), TextToken(content="x")), session=session)
        result = await runner.send_message("go")
        assert result.message.segments == [TextSegment(content="x")]

    @pytest.mark.asyncio
    async def test_send_without_outcome_counts_as_completed(self, session):
        runner = Runner(scripted(TextToken(content="x"), outcome=None), session=session)
        result = await runner.send_message("go")
        assert result.status is TurnState.COMPLETED

    @pytest.mark.asyncio
    async def test_error_event_fails_turn(self, session):
        send = scripted(
            TextToken(content="partial"),
            ErrorEvent(message="rate limited"),
            TextToken(content=" late"),
        )
        runner = Runner(send, session=session)

        result = await runner.send_message("go")

        assert result.status is TurnState.FAILED
        assert isinstance(result.error, ChatStreamError)
        assert str(result.error) == "rate limited"
        assert result.message.content == "partial"
        assert send.calls[0].cancel_token.cancelled

    @pytest.mark.asyncio
    async def test_error_event_logged_once(self, session, caplog):
        runner = Runner(scripted(ErrorEvent(message="rate limited")), session=session)

        with caplog.at_level(logging.ERROR, logger="chatstream.runner"):
            await runner.send_message("go")

        errors = [r for r in caplog.records if r.levelno == logging.ERROR]
        assert len(errors) == 1
        assert "rate limited" in errors[0].message

    @pytest.mark.asyncio
    async def test_whitespace_reply_keeps_content_and_segments_in_step(self, session):
        runner = Runner(
            scripted(TextToken(content="Done."), TextToken(content="\n\n")),
            session=session,
        )

        result = await runner.send_message("go")

        assert result.status is TurnState.COMPLETED
        assert result.message.content == "Done.\n\n"
        assert "".join(s.content for s in result.message.segments) == result.message.content

    @pytest.mark.asyncio
    async def test_whitespace_only_reply_keeps_its_segment(self, session):
        runner = Runner(scripted(TextToken(content="  ")), session=session)

        result = await runner.send_message("go")

        assert result.status is TurnState.COMPLETED
        assert result.message.content == "  "
        assert result.message.segments == [TextSegment(content="  ")]

    @pytest.mark.asyncio
    async def test_error_before_content_drops_placeholder(self, session):
        before = history(session)
        runner = Runner(scripted(outcome="error", error=RuntimeError("down")), session=session)

        result = await runner.send_message("go")

        assert result.status is TurnState.FAILED
        assert result.message is None
        assert [m.content for m in session.transcript] == [m.content for m in before] + ["go"]

    @pytest.mark.asyncio
    async def test_send_exception_never_escapes(self, session):
        async def send(params):
            raise RuntimeError("boom")

        runner = Runner(send, session=session)
        result = await runner.send_message("go")

        assert result.status is TurnState.FAILED
        assert str(result.error) == "boom"
        assert runner.state is TurnState.IDLE

    @pytest.mark.asyncio
    async def test_custom_message_ids(self, session):
        counter = itertools.count(1)
        runner = Runner(
            scripted(TextToken(content="x")),
            session=session,
            generate_id=lambda: f"m{next(counter)}",
        )
        await runner.send_message("go")
        assert [m.id for m in session.transcript] == ["m1", "m2"]

    @pytest.mark.asyncio
    async def test_max_messages_trims_history(self):
        runner = Runner(scripted(TextToken(content="x")), max_messages=3)
        await runner.send_message("a")
        await runner.send_message("b")
        assert [m.content for m in runner.messages] == ["x", "b", "x"]


# ---------------------------------------------------------------------------
# Stopping
# ---------------------------------------------------------------------------

class TestStop:
    @pytest.mark.asyncio
    async def test_stop_before_any_content_leaves_no_trace(self, session):
        before = history(session)
        runner = Runner(blocking(), session=session)

        task = asyncio.ensure_future(runner.send_message("go"))
        await wait_until(lambda: runner.is_streaming)
        runner.stop()
        result = await asyncio.wait_for(task, timeout=1)

        assert result.status is TurnState.CANCELLED
        assert result.message is None
        assert session.transcript == before
        assert all(a is b for a, b in zip(session.transcript, before))

    @pytest.mark.asyncio
    async def test_events_after_stop_are_ignored(self, session):
        runner = Runner(blocking(TextToken(content="kept")), session=session)

        task = asyncio.ensure_future(runner.send_message("go"))
        await wait_until(lambda: runner.is_streaming and session.transcript[-1].content)
        runner.stop()
        result = await asyncio.wait_for(task, timeout=1)

        assert result.status is TurnState.CANCELLED
        assert result.message.content == "kept"
        assert result.error is None

    @pytest.mark.asyncio
    async def test_second_send_while_streaming_is_rejected(self):
        runner = Runner(blocking())

        task = asyncio.ensure_future(runner.send_message("one"))
        await wait_until(lambda: runner.is_streaming)
        with pytest.raises(TurnInProgressError):
            await runner.send_message("two")
        runner.stop()
        await asyncio.wait_for(task, timeout=1)

        assert runner.state is TurnState.IDLE

    @pytest.mark.asyncio
    async def test_stop_when_idle(self):
        assert Runner(scripted()).stop() is False

    @pytest.mark.asyncio
    async def test_task_cancellation_propagates(self, session):
        runner = Runner(blocking(TextToken(content="x")), session=session)

        task = asyncio.ensure_future(runner.send_message("go"))
        await wait_until(lambda: runner.is_streaming)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert runner.last_status is TurnState.CANCELLED
        assert runner.state is TurnState.IDLE

    @pytest.mark.asyncio
    async def test_clear_stops_and_empties(self, session):
        runner = Runner(blocking(), session=session)

        task = asyncio.ensure_future(runner.send_message("go"))
        await wait_until(lambda: runner.is_streaming)
        runner.clear()
        result = await asyncio.wait_for(task, timeout=1)

        assert result.status is TurnState.CANCELLED
        assert session.transcript == []


@pytest.mark.asyncio
async def test_handle_event_feeds_current_turn(session):
    runner = Runner(blocking(), session=session)
    runner.handle_event(TextToken(content="dropped"))

    task = asyncio.ensure_future(runner.send_message("go"))
    await wait_until(lambda: runner.is_streaming)
    runner.handle_event(TextToken(content="pushed"))
    runner.stop()
    result = await asyncio.wait_for(task, timeout=1)

    assert result.message.content == "pushed"
    assert [m.content for m in session.transcript] == ["go", "pushed"]


@pytest.mark.asyncio
async def test_concurrent_runners_are_independent():
    first = Runner(scripted(TextToken(content="A")))
    second = Runner(scripted(TextToken(content="B")))

    a, b = await asyncio.gather(first.send_message("x"), second.send_message("y"))

    assert a.message.content == "A"
    assert b.message.content == "B"
    assert first.session is not second.session
