"""Render messages into the text blocks sent to the model.

A block looks like::

    ### Message ID: 3f2a9c0b1d4e5f60

    *Timestamp:* 2024-07-20T09:15:02.120000+00:00
    *Author:* User
    *Conversation ID:* 8c1d2e3f4a5b6c7d
    *Message:*

    Q: What is a banksia?

    --- END Message ID: 3f2a9c0b1d4e5f60 ---

Formatting only reads the message's own fields, so the same message always
renders to the same text. ``parse_message_block`` reverses it.
"""

import hashlib
import re
from datetime import datetime

from pydantic import BaseModel

from ..conversation.models import AuthorType, Message
from ..exceptions import MessageFormatError

NO_CONVERSATION_ID = "No Conversation ID"

_HEADER_RE = re.compile(
    r"### Message ID: (?P<message_hash>\S+)\n"
    r"\n"
    r"\*Timestamp:\* (?P<timestamp>[^\n]+)\n"
    r"\*Author:\* (?P<author>[^\n]+)\n"
    r"\*Conversation ID:\* (?P<conversation>[^\n]+)\n"
    r"\*Message:\*\n"
    r"\n"
)


def identity_hash(identifier: str) -> str:
    """Short, process-independent digest of an identifier."""
    return hashlib.blake2b(identifier.encode("utf-8"), digest_size=8).hexdigest()


def _end_marker(message_hash: str) -> str:
    return f"--- END Message ID: {message_hash} ---"


def format_message(message: Message) -> str:
    """Format one message as a prompt block."""
    message_hash = identity_hash(message.id)
    conversation = identity_hash(message.conversation_id) if message.conversation_id else NO_CONVERSATION_ID

    return (
        f"### Message ID: {message_hash}\n"
        "\n"
        f"*Timestamp:* {message.timestamp.isoformat()}\n"
        f"*Author:* {message.author_type.label}\n"
        f"*Conversation ID:* {conversation}\n"
        "*Message:*\n"
        "\n"
        f"{message.content}\n"
        "\n"
        f"{_end_marker(message_hash)}"
    )


class ParsedMessage(BaseModel):
    """Fields recovered from a formatted message block."""

    message_hash: str
    timestamp: datetime
    author_type: AuthorType
    conversation_hash: str | None
    content: str


def parse_message_block(text: str) -> ParsedMessage:
    """Parse a block produced by ``format_message``.

    Args:
        text: Text containing one message block (surrounding text is ignored)

    Returns:
        ParsedMessage with the recovered fields

    Raises:
        MessageFormatError: If no well-formed block is found
    """
    match = _HEADER_RE.search(text)
    if match is None:
        raise MessageFormatError("No message block header found")

    message_hash = match.group("message_hash")
    end = text.rfind("\n\n" + _end_marker(message_hash), match.end())
    if end == -1:
        raise MessageFormatError(f"Missing end marker for message {message_hash}")

    try:
        timestamp = datetime.fromisoformat(match.group("timestamp").strip())
        author_type = AuthorType.from_label(match.group("author"))
    except ValueError as e:
        raise MessageFormatError(str(e)) from e

    conversation = match.group("conversation").strip()
    content = text[match.end():end]

    return ParsedMessage(
        message_hash=message_hash,
        timestamp=timestamp,
        author_type=author_type,
        conversation_hash=None if conversation == NO_CONVERSATION_ID else conversation,
        content=content,
    )
