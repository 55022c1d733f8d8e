"""Exception types raised by chatstream."""

from __future__ import annotations


class ChatStreamError(RuntimeError):
    """Base class for errors raised by the streaming pipeline."""


class StreamHTTPError(ChatStreamError):
    """The backend answered with a non-success status.

    Args:
        status_code: HTTP status returned by the backend.
        body: Full response body, decoded as text.
    """

    def __init__(self, status_code: int, body: str) -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(f"HTTP {status_code}: {body}")


class EmptyResponseBodyError(ChatStreamError):
    """The backend answered without a response body."""

    def __init__(self, message: str = "Response body is null") -> None:
        super().__init__(message)


class StreamCancelledError(ChatStreamError):
    """Raised by :meth:`CancellationToken.raise_if_cancelled`."""


class TurnInProgressError(ChatStreamError):
    """A new turn was started while another one is still streaming."""
