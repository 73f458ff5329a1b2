"""In-memory message store.

Simple dict-based storage. Data is lost when the application exits.
"""

import asyncio

from ..exceptions import ConversationNotFoundError, MessageNotFoundError
from .base import MessageStore
from .models import Conversation, Message, sort_messages, utc_now


class InMemoryMessageStore(MessageStore):
    """In-memory message store (session-only).

    Suitable for single-session use or testing. All mutations happen under
    one lock and stored objects are never handed out directly.
    """

    def __init__(self) -> None:
        self._conversations: dict[str, Conversation] = {}
        self._messages: dict[str, list[Message]] = {}
        self._lock = asyncio.Lock()

    async def connect(self) -> None:
        """Initialize store (no-op for in-memory)."""

    async def disconnect(self) -> None:
        """Close store (no-op for in-memory)."""

    def _require(self, conversation_id: str) -> Conversation:
        try:
            return self._conversations[conversation_id]
        except KeyError:
            raise ConversationNotFoundError(conversation_id) from None

    async def create_conversation(self, name: str, system_prompt: str | None = None) -> Conversation:
        conversation = Conversation(name=name, system_prompt=system_prompt)
        async with self._lock:
            self._conversations[conversation.id] = conversation
            self._messages[conversation.id] = []
        return conversation.model_copy()

    async def get_conversation(self, conversation_id: str) -> Conversation:
        return self._require(conversation_id).model_copy()

    async def list_conversations(self) -> list[Conversation]:
        conversations = sorted(self._conversations.values(), key=lambda c: c.updated_at, reverse=True)
        return [c.model_copy() for c in conversations]

    async def rename_conversation(self, conversation_id: str, name: str) -> Conversation:
        async with self._lock:
            conversation = self._require(conversation_id).model_copy(update={"name": name, "updated_at": utc_now()})
            self._conversations[conversation_id] = conversation
        return conversation.model_copy()

    async def update_system_prompt(self, conversation_id: str, system_prompt: str | None) -> Conversation:
        async with self._lock:
            conversation = self._require(conversation_id).model_copy(
                update={"system_prompt": system_prompt, "updated_at": utc_now()}
            )
            self._conversations[conversation_id] = conversation
        return conversation.model_copy()

    async def delete_conversation(self, conversation_id: str) -> None:
        async with self._lock:
            self._require(conversation_id)
            del self._conversations[conversation_id]
            self._messages.pop(conversation_id, None)

    async def list_messages(self, conversation_id: str) -> list[Message]:
        self._require(conversation_id)
        return [m.model_copy() for m in sort_messages(self._messages[conversation_id])]

    async def append_message(self, conversation_id: str, message: Message) -> Message:
        stored = message.model_copy(update={"conversation_id": conversation_id})
        async with self._lock:
            conversation = self._require(conversation_id)
            self._messages[conversation_id].append(stored)
            self._conversations[conversation_id] = conversation.model_copy(update={"updated_at": utc_now()})
        return stored.model_copy()

    async def update_message_content(self, conversation_id: str, message_id: str, content: str) -> Message:
        async with self._lock:
            self._require(conversation_id)
            messages = self._messages[conversation_id]
            for index, existing in enumerate(messages):
                if existing.id == message_id:
                    updated = existing.model_copy(update={"content": content})
                    messages[index] = updated
                    return updated.model_copy()
        raise MessageNotFoundError(message_id)

    @property
    def backend_type(self) -> str:
        return "memory"
