"""Assemble the bounded conversation history sent with each request."""

import logging
from collections.abc import Sequence

from pydantic import BaseModel, ConfigDict, Field

from ..conversation.models import Message, sort_messages
from .formatting import format_message, identity_hash

logger = logging.getLogger(__name__)

HISTORY_WINDOW_SIZE = 8
HISTORY_HEADING = "## Conversation History"


class HistoryWindow(BaseModel):
    """Context assembled for one outgoing request. Never persisted."""

    model_config = ConfigDict(frozen=True)

    formatted_text: str = Field(default="", description="Text sent to the model")
    entries: list[Message] = Field(
        default_factory=list,
        description="Historical messages included, most recent first",
    )
    query_id: str | None = Field(default=None, description="Hash of the outgoing message's id")

    @property
    def is_empty(self) -> bool:
        return not self.formatted_text


def build_history_window(
    messages: Sequence[Message],
    latest: Message,
    window_size: int = HISTORY_WINDOW_SIZE,
) -> HistoryWindow:
    """Build the context for a new outgoing message.

    The newest ``window_size`` messages are taken, and the newest of those is
    dropped because the outgoing message takes its place at the top. The
    remaining history is listed most recent first.

    Args:
        messages: The conversation's messages, in any order
        latest: The outgoing message
        window_size: Maximum number of messages considered

    Returns:
        HistoryWindow; empty when the conversation has no messages
    """
    if window_size < 1:
        raise ValueError(f"window_size must be at least 1, got {window_size}")

    if not messages:
        logger.debug("No messages in conversation, history is empty")
        return HistoryWindow()

    working_set = sort_messages(messages)[-window_size:]
    historical = list(reversed(working_set[:-1]))

    query_id = identity_hash(latest.id)
    history_text = "\n\n".join(format_message(m) for m in historical)

    formatted_text = (
        f"{format_message(latest)}\n"
        "\n"
        f"{HISTORY_HEADING}\n"
        "\n"
        f"{history_text}\n"
        "\n"
        f"--- END Query #{query_id} ---\n"
    )
    logger.debug("Built history window with %d entries for query %s", len(historical), query_id)

    return HistoryWindow(formatted_text=formatted_text, entries=historical, query_id=query_id)
