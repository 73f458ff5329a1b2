"""Send orchestration: user message in, streamed reply out."""

from .orchestrator import (
    CANCELLED_MARKER,
    USER_PREFIX,
    ConversationOrchestrator,
    SendCallback,
    SendEvent,
    SendResult,
    SendState,
)

__all__ = [
    "CANCELLED_MARKER",
    "USER_PREFIX",
    "ConversationOrchestrator",
    "SendCallback",
    "SendEvent",
    "SendResult",
    "SendState",
]
