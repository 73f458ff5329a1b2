"""Data models for conversations and their messages.

These models are independent of the storage backend used.
"""

from collections.abc import Iterable
from datetime import datetime, timezone
from enum import Enum
from uuid import uuid4

from pydantic import BaseModel, Field


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


class AuthorType(str, Enum):
    """Who wrote a message."""

    USER = "user"
    ASSISTANT = "assistant"
    ERROR = "error"

    @property
    def label(self) -> str:
        """Label used when the message is rendered into a prompt."""
        return self.value.capitalize()

    @classmethod
    def from_label(cls, label: str) -> "AuthorType":
        """Inverse of ``label``; accepts values as well."""
        return cls(label.strip().lower())


class Message(BaseModel):
    """A single message in a conversation.

    ``conversation_id`` is a lookup key for the owning conversation, not a
    reference to it. The store sets it on append.
    """

    id: str = Field(default_factory=lambda: str(uuid4()))
    content: str = Field(description="Text body of the message")
    author_type: AuthorType = Field(default=AuthorType.USER)
    timestamp: datetime = Field(default_factory=utc_now)
    conversation_id: str | None = Field(default=None)


class Conversation(BaseModel):
    """A named conversation. Its messages live in the message store."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    name: str = Field(description="Display label")
    system_prompt: str | None = Field(default=None, description="Instructions sent before every request")
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)


def sort_messages(messages: Iterable[Message]) -> list[Message]:
    """Sort messages oldest first.

    The sort is stable, so messages with equal timestamps keep the order they
    were given in (insertion order when coming from a store).
    """
    return sorted(messages, key=lambda m: m.timestamp)
