import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field

import httpx

from chatstream.cancellation import CancellationToken
from chatstream.driver import stream_sse
from chatstream.errors import ChatStreamError, TurnInProgressError
from chatstream.events import (
    ErrorEvent,
    StreamEvent,
    TextToken,
    ToolContent,
    ToolEnd,
    ToolStart,
)
from chatstream.message import Message, MessageRole, TextSegment, new_message_id
from chatstream.provider import ModelProvider
from chatstream.session import Session
from chatstream.sse import SSEParserOptions
from chatstream.state import TurnState

logger = logging.getLogger(__name__)


@dataclass
class SendParams:
    """What a send function gets for one turn.

    Args:
        user_input: The text the user sent.
        model_name: Model requested for this turn, possibly empty.
        messages: History before this turn, oldest first.
        on_event: Feed each canonical event here.
        on_complete: Call once the stream ends or is cancelled.
        on_error: Call once on a transport failure.
        cancel_token: Cancelled when the caller stops the turn.
    """

    user_input: str
    model_name: str
    messages: list[Message]
    on_event: Callable[[StreamEvent], None]
    on_complete: Callable[[], None]
    on_error: Callable[[Exception], None]
    cancel_token: CancellationToken


SendFn = Callable[[SendParams], Awaitable[None]]


@dataclass
class TurnResult:
    """The outcome of a single Runner.send_message() call.

    ``message`` is ``None`` when the turn left no assistant message behind.
    """

    status: TurnState
    message: Message | None
    error: Exception | None = None


@dataclass
class _Turn:
    message: Message
    snapshot: list[Message]
    token: CancellationToken = field(default_factory=CancellationToken)
    status: TurnState = TurnState.SENDING
    error: Exception | None = None


class Runner:
    """Drives one conversational turn at a time.

    ``send_message`` appends the user message and an empty assistant
    placeholder to the session, then hands callbacks to ``send`` and
    accumulates the canonical events it reports into the placeholder.
    Nothing raised inside ``send`` escapes; every turn ends as completed,
    cancelled or failed and the runner goes back to idle.

    Args:
        send: Async callable that performs the request for a turn.
        session: Conversation history; a fresh one by default.
        generate_id: Id factory for new messages.
        max_messages: Overrides ``session.max_messages`` when given.
    """

    def __init__(
        self,
        send: SendFn,
        *,
        session: Session | None = None,
        generate_id: Callable[[], str] | None = None,
        max_messages: int | None = None,
    ):
        self.send = send
        self.session = session if session is not None else Session()
        if max_messages is not None:
            self.session.max_messages = max_messages
        self.generate_id = generate_id or new_message_id
        self._turn: _Turn | None = None
        self._last_status = TurnState.IDLE

    @classmethod
    def from_provider(
        cls,
        provider: ModelProvider,
        *,
        client: httpx.AsyncClient | None = None,
        parser_options: SSEParserOptions | None = None,
        **kwargs,
    ) -> "Runner":
        """Build a runner that streams every turn from *provider*."""

        async def send(params: SendParams) -> None:
            request = provider.build_request(
                params.messages, params.user_input, params.model_name,
            )
            await stream_sse(
                request.url,
                provider.create_adapter(),
                params.on_event,
                params.on_complete,
                params.on_error,
                body=request.body,
                headers=request.headers,
                method=request.method,
                cancel_token=params.cancel_token,
                client=client,
                parser_options=parser_options,
                system=provider.name,
            )

        return cls(send, **kwargs)

    @property
    def state(self) -> TurnState:
        return TurnState.SENDING if self._turn is not None else TurnState.IDLE

    @property
    def is_streaming(self) -> bool:
        return self._turn is not None

    @property
    def last_status(self) -> TurnState:
        """Terminal state of the most recent turn (``IDLE`` before any)."""
        return self._last_status

    @property
    def messages(self) -> list[Message]:
        return self.session.transcript

    async def send_message(
        self, user_input: str, model_name: str = "",
    ) -> TurnResult | None:
        """Run one turn. Returns ``None`` for blank input.

        Raises:
            TurnInProgressError: A turn is already streaming.
        """
        if not user_input.strip():
            return None
        if self._turn is not None:
            raise TurnInProgressError("A turn is already streaming")

        snapshot = self.session.snapshot()
        self.session.append(Message(
            id=self.generate_id(), role=MessageRole.USER, content=user_input,
        ))
        placeholder = Message(id=self.generate_id(), role=MessageRole.ASSISTANT)
        self.session.append(placeholder)

        turn = _Turn(message=placeholder, snapshot=snapshot)
        self._turn = turn
        params = SendParams(
            user_input=user_input,
            model_name=model_name,
            messages=snapshot,
            on_event=lambda event: self._on_event(turn, event),
            on_complete=lambda: self._complete(turn),
            on_error=lambda error: self._fail(turn, error),
            cancel_token=turn.token,
        )

        try:
            await self.send(params)
        except asyncio.CancelledError:
            self._cancel(turn)
            raise
        except Exception as e:
            logger.error(f"Send message error: {e}")
            self._fail(turn, e)

        if turn.status is TurnState.SENDING:
            # send returned without reporting an outcome
            self._complete(turn)

        message = turn.message if self._in_transcript(turn.message) else None
        return TurnResult(status=turn.status, message=message, error=turn.error)

    def handle_event(self, event: StreamEvent) -> None:
        """Apply *event* to the in-flight turn; ignored when idle."""
        if self._turn is not None:
            self._on_event(self._turn, event)

    def stop(self) -> bool:
        """Cancel the in-flight turn. Returns False when nothing was streaming."""
        if self._turn is None:
            return False
        self._cancel(self._turn)
        return True

    def clear(self) -> None:
        self.stop()
        self.session.clear()

    # ------------------------------------------------------------------
    # Turn transitions
    # ------------------------------------------------------------------

    def _on_event(self, turn: _Turn, event: StreamEvent) -> None:
        if turn.status is not TurnState.SENDING:
            return
        if isinstance(event, (TextToken, ToolContent)):
            if event.content:
                self._append_text(turn.message, event.content)
        elif isinstance(event, (ToolStart, ToolEnd)):
            # Tool activity has no visible effect on the message
            logger.debug(f"{type(event).__name__} for {event.tool_name}")
        elif isinstance(event, ErrorEvent):
            turn.token.cancel("backend reported an error")
            self._fail(turn, ChatStreamError(event.message))

    @staticmethod
    def _append_text(message: Message, text: str) -> None:
        message.content += text
        if message.segments and isinstance(message.segments[-1], TextSegment):
            message.segments[-1].content += text
        else:
            message.segments.append(TextSegment(content=text))

    def _complete(self, turn: _Turn) -> None:
        if turn.status is not TurnState.SENDING:
            return
        # segments are kept in step with content as tokens arrive
        self._finish(turn, TurnState.COMPLETED)

    def _fail(self, turn: _Turn, error: Exception) -> None:
        if turn.status is not TurnState.SENDING:
            return
        logger.error(f"Chat error: {error}")
        turn.error = error
        if not turn.message.has_visible_content():
            self._remove(turn.message)
        self._finish(turn, TurnState.FAILED)

    def _cancel(self, turn: _Turn) -> None:
        if turn.status is not TurnState.SENDING:
            return
        turn.token.cancel("stopped by caller")
        if not turn.message.has_visible_content():
            # a turn that produced nothing leaves no trace
            self.session.restore(turn.snapshot)
        self._finish(turn, TurnState.CANCELLED)

    def _finish(self, turn: _Turn, status: TurnState) -> None:
        turn.status = status
        self._last_status = status
        if self._turn is turn:
            self._turn = None
        logger.debug(f"Turn {turn.message.id} {status.value}")

    def _remove(self, message: Message) -> None:
        self.session.transcript[:] = [
            m for m in self.session.transcript if m is not message
        ]

    def _in_transcript(self, message: Message) -> bool:
        return any(m is message for m in self.session.transcript)
