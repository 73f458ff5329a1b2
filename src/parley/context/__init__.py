"""Prompt context assembly: message blocks and the history window."""

from .formatting import NO_CONVERSATION_ID, ParsedMessage, format_message, identity_hash, parse_message_block
from .history import HISTORY_HEADING, HISTORY_WINDOW_SIZE, HistoryWindow, build_history_window

__all__ = [
    "HISTORY_HEADING",
    "HISTORY_WINDOW_SIZE",
    "HistoryWindow",
    "NO_CONVERSATION_ID",
    "ParsedMessage",
    "build_history_window",
    "format_message",
    "identity_hash",
    "parse_message_block",
]
