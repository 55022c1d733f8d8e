"""Cooperative cancellation for streaming calls.

The owner of a :class:`CancellationToken` decides when to cancel; the stream
driver polls it around every read and can also await :meth:`wait` to notice
cancellation while a read is pending.
"""

from __future__ import annotations

import asyncio

from chatstream.errors import StreamCancelledError


class CancellationToken:
    """A cooperative cancellation flag with cascading children.

    Use it from the event loop thread that runs the stream.
    """

    def __init__(self, *, parent: CancellationToken | None = None) -> None:
        self._cancelled = False
        self._reason: str | None = None
        self._event: asyncio.Event | None = None
        self._children: list[CancellationToken] = []
        if parent is not None:
            parent.link_child(self)

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def reason(self) -> str | None:
        return self._reason

    def cancel(self, reason: str | None = None) -> None:
        """Request cancellation and cascade to children. Idempotent."""
        if self._cancelled:
            return
        self._cancelled = True
        self._reason = reason
        if self._event is not None:
            self._event.set()
        for child in list(self._children):
            child.cancel(reason)

    def link_child(self, token: CancellationToken) -> CancellationToken:
        self._children.append(token)
        if self._cancelled:
            token.cancel(self._reason)
        return token

    def child(self) -> CancellationToken:
        return CancellationToken(parent=self)

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise StreamCancelledError(self._reason or "operation cancelled")

    async def wait(self) -> None:
        """Block until the token is cancelled."""
        if self._cancelled:
            return
        if self._event is None:
            self._event = asyncio.Event()
        await self._event.wait()

    def __repr__(self) -> str:
        return (
            f"CancellationToken(cancelled={self._cancelled}, "
            f"reason={self._reason!r}, children={len(self._children)})"
        )
