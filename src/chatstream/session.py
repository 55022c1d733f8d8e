from pydantic import BaseModel, Field

from chatstream.message import Message, new_message_id


class Session(BaseModel):
    """Ordered conversation history.

    Append-only, except that once ``max_messages`` is exceeded the oldest
    entries are dropped. ``max_messages=0`` keeps everything. Persistence is
    left to the caller: dump and validate the model.
    """

    session_id: str = Field(default_factory=new_message_id)
    transcript: list[Message] = Field(default_factory=list)
    max_messages: int = Field(default=0, ge=0)

    def append(self, message: Message) -> None:
        self.transcript.append(message)
        self.trim()

    def trim(self) -> None:
        if self.max_messages > 0 and len(self.transcript) > self.max_messages:
            del self.transcript[:-self.max_messages]

    def snapshot(self) -> list[Message]:
        return list(self.transcript)

    def restore(self, snapshot: list[Message]) -> None:
        self.transcript[:] = snapshot

    def clear(self) -> None:
        self.transcript.clear()
