"""Conversation storage for parley.

Conversations own their messages; the store is the only shared mutable
state the chat core touches.
"""

from .base import MessageStore
from .factory import create_message_store
from .in_memory import InMemoryMessageStore
from .models import AuthorType, Conversation, Message, sort_messages

__all__ = [
    "AuthorType",
    "Conversation",
    "InMemoryMessageStore",
    "Message",
    "MessageStore",
    "create_message_store",
    "sort_messages",
]
