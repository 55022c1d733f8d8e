import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, field_serializer


class MessageRole(Enum):
    SYSTEM = "system"
    ASSISTANT = "assistant"
    USER = "user"


class TextSegment(BaseModel):
    type: Literal["text"] = "text"
    content: str = ""


class ToolSegment(BaseModel):
    """Placeholder for a tool's place in the content order (not populated yet)."""

    type: Literal["tool"] = "tool"
    tool_index: int


ContentSegment = Annotated[
    Union[TextSegment, ToolSegment], Field(discriminator="type")
]


def _now() -> datetime:
    return datetime.now(timezone.utc)


def new_message_id() -> str:
    return str(uuid.uuid4())


class Message(BaseModel):
    """One chat message.

    ``content`` is the concatenated text and always matches the text
    segments; ``segments`` keeps the order content arrived in.
    """

    id: str = Field(default_factory=new_message_id)
    role: MessageRole
    content: str = ""
    segments: list[ContentSegment] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=_now)

    @field_serializer('role')
    def serialize_role(self, role: MessageRole, _info) -> str:
        return role.value

    def has_visible_content(self) -> bool:
        return bool(self.content.strip())

    def to_api(self) -> dict[str, str]:
        """The ``{"role", "content"}`` pair chat APIs expect."""
        return {"role": self.role.value, "content": self.content}
