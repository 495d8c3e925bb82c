import time
import uuid
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from src.gemchat.models.message import Message, Role

NEW_SESSION_TITLE = "New Conversation"
TITLE_MAX_CHARS = 30
TITLE_ELLIPSIS = "..."


def now_millis() -> int:
    return int(time.time() * 1000)


def derive_title(content: str) -> str:
    """Return the session title for a first user message: 30 chars, '...' when cut."""
    if len(content) > TITLE_MAX_CHARS:
        return content[:TITLE_MAX_CHARS] + TITLE_ELLIPSIS
    return content


class ChatSession(BaseModel):
    """
    One conversation.

    Attributes:
        id: Unique session identifier.
        title: Human label; NEW_SESSION_TITLE until the first user message.
        messages: Ordered, append-only list of turns.
        created_at: Creation instant in epoch milliseconds. Never changes.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    title: str = NEW_SESSION_TITLE
    messages: List[Message] = Field(default_factory=list)
    created_at: int = Field(default_factory=now_millis, alias="createdAt")

    @property
    def has_sentinel_title(self) -> bool:
        return self.title == NEW_SESSION_TITLE

    def first_user_message(self) -> Optional[Message]:
        for message in self.messages:
            if message.role == Role.USER:
                return message
        return None

    def streaming_message(self) -> Optional[Message]:
        for message in self.messages:
            if message.is_streaming:
                return message
        return None

    def find_message(self, message_id: str) -> Optional[Message]:
        for message in self.messages:
            if message.id == message_id:
                return message
        return None
