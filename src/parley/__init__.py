"""
Parley: a chat client core for OpenAI-compatible chat completion APIs.

Each part hides one design decision: how conversations are stored, how the
history window is assembled, how requests are built, how streamed replies
are decoded, and how a send is sequenced.
"""

__version__ = "0.1.0"

from .chat import ConversationOrchestrator, SendEvent, SendResult, SendState
from .config import ChatSettings
from .context import HistoryWindow, build_history_window, format_message, parse_message_block
from .conversation import AuthorType, Conversation, Message, MessageStore, create_message_store
from .credentials import CredentialStore, create_credential_store
from .exceptions import (
    ChatError,
    ConversationBusyError,
    ConversationNotFoundError,
    DecodeError,
    MissingCredentialError,
    ParleyError,
    ProviderError,
    TransportError,
)
from .llm import (
    CancellationToken,
    ChatProvider,
    StreamDecoder,
    StreamDelta,
    build_chat_request,
    create_llm_provider,
)

__all__ = [
    "AuthorType",
    "CancellationToken",
    "ChatError",
    "ChatProvider",
    "ChatSettings",
    "Conversation",
    "ConversationBusyError",
    "ConversationNotFoundError",
    "ConversationOrchestrator",
    "CredentialStore",
    "DecodeError",
    "HistoryWindow",
    "Message",
    "MessageStore",
    "MissingCredentialError",
    "ParleyError",
    "ProviderError",
    "SendEvent",
    "SendResult",
    "SendState",
    "StreamDecoder",
    "StreamDelta",
    "TransportError",
    "build_chat_request",
    "build_history_window",
    "create_credential_store",
    "create_llm_provider",
    "create_message_store",
    "format_message",
    "parse_message_block",
]
