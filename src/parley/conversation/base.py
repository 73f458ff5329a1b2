"""Abstract base class for message store backends.

The abstraction hides:
- Storage format and persistence mechanism (in-memory, SQLite)
- Connection management
- How atomic appends are guaranteed
"""

from abc import ABC, abstractmethod
from typing import Any

from .models import Conversation, Message


class MessageStore(ABC):
    """Abstract store of conversations and their messages.

    The store is the single source of truth for conversation content. Every
    read returns snapshots, so callers never observe a half-written message.

    Supports async context manager protocol:
        async with store:
            conversation = await store.create_conversation("Ideas")
    """

    @abstractmethod
    async def connect(self) -> None:
        """Initialize the store."""

    @abstractmethod
    async def disconnect(self) -> None:
        """Close the store gracefully."""

    @abstractmethod
    async def create_conversation(self, name: str, system_prompt: str | None = None) -> Conversation:
        """Create and persist a new conversation."""

    @abstractmethod
    async def get_conversation(self, conversation_id: str) -> Conversation:
        """Get a conversation.

        Raises:
            ConversationNotFoundError: If no such conversation exists
        """

    @abstractmethod
    async def list_conversations(self) -> list[Conversation]:
        """List conversations, most recently updated first."""

    @abstractmethod
    async def rename_conversation(self, conversation_id: str, name: str) -> Conversation:
        """Change a conversation's display name."""

    @abstractmethod
    async def update_system_prompt(self, conversation_id: str, system_prompt: str | None) -> Conversation:
        """Set or clear a conversation's system prompt."""

    @abstractmethod
    async def delete_conversation(self, conversation_id: str) -> None:
        """Delete a conversation and all of its messages."""

    @abstractmethod
    async def list_messages(self, conversation_id: str) -> list[Message]:
        """List a conversation's messages ordered by timestamp.

        Messages with equal timestamps are returned in insertion order.
        """

    @abstractmethod
    async def append_message(self, conversation_id: str, message: Message) -> Message:
        """Append a message to a conversation.

        Returns:
            The stored message, with ``conversation_id`` set
        """

    @abstractmethod
    async def update_message_content(self, conversation_id: str, message_id: str, content: str) -> Message:
        """Replace the content of an existing message."""

    @property
    @abstractmethod
    def backend_type(self) -> str:
        """Get the backend type identifier."""

    async def __aenter__(self) -> "MessageStore":
        await self.connect()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.disconnect()
