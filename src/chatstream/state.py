from enum import Enum


class TurnState(Enum):
    """Lifecycle of one conversational turn.

    A runner is ``IDLE`` or ``SENDING``; every turn ends in one of the
    terminal states and the runner returns to ``IDLE``.
    """

    IDLE = "idle"
    SENDING = "sending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (TurnState.COMPLETED, TurnState.CANCELLED, TurnState.FAILED)
