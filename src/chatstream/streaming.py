"""Accumulation state for tool calls streamed in fragments.

A provider announces a tool call in one frame and dribbles its arguments
in over many later frames. :class:`ToolCallAccumulator` keeps those
fragments per slot index until the call is known to be finished. Each
adapter instance owns its own accumulator.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass
class ToolCallSlot:
    """A tool call whose arguments are still arriving."""

    id: str = ""
    name: str = ""
    partial_arguments: str = ""


class ToolCallAccumulator:
    """Assembles tool calls from streaming fragments, keyed by slot index."""

    def __init__(self) -> None:
        self._pending: dict[int, ToolCallSlot] = {}

    def start(self, index: int, call_id: str, name: str, arguments: str = "") -> ToolCallSlot:
        """Record a new call in *index*, replacing anything already there."""
        slot = ToolCallSlot(id=call_id, name=name, partial_arguments=arguments)
        self._pending[index] = slot
        return slot

    def append(self, index: int, fragment: str) -> bool:
        """Append an argument fragment; False if the slot was never started."""
        slot = self._pending.get(index)
        if slot is None:
            return False
        slot.partial_arguments += fragment
        return True

    def get(self, index: int) -> ToolCallSlot | None:
        return self._pending.get(index)

    def pop(self, index: int) -> ToolCallSlot | None:
        return self._pending.pop(index, None)

    def drain(self) -> list[ToolCallSlot]:
        """Return all pending calls in index order and forget them."""
        slots = [self._pending[i] for i in sorted(self._pending)]
        self._pending.clear()
        return slots

    def __len__(self) -> int:
        return len(self._pending)

    def __contains__(self, index: object) -> bool:
        return index in self._pending
