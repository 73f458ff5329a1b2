"""Error types raised by parley.

``ChatError`` groups the failures that end a send and are shown to the user
as an error message in the conversation. ``DecodeError`` is only raised
internally for a single bad stream record, which is skipped.
"""


class ParleyError(Exception):
    """Base class for parley errors."""


class ChatError(ParleyError):
    """A terminal failure of one send operation."""


class MissingCredentialError(ChatError):
    """No API key is available for the request."""

    def __init__(self, name: str | None = None, message: str | None = None):
        self.name = name
        if message is None:
            message = (
                f"Missing credential: {name}" if name else "Missing credential: no API key provided"
            )
        super().__init__(message)


class TransportError(ChatError):
    """Connection failure, timeout, or a non-2xx response without a provider error body."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class ProviderError(ChatError):
    """Well-formed error payload returned by the model provider."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        error_type: str | None = None,
        code: str | None = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.error_type = error_type
        self.code = code


class DecodeError(ParleyError):
    """A single stream record could not be decoded."""


class ConversationNotFoundError(ParleyError, LookupError):
    """The requested conversation does not exist."""

    def __init__(self, conversation_id: str):
        super().__init__(f"Conversation not found: {conversation_id}")
        self.conversation_id = conversation_id


class MessageNotFoundError(ParleyError, LookupError):
    """The requested message does not exist in the conversation."""

    def __init__(self, message_id: str):
        super().__init__(f"Message not found: {message_id}")
        self.message_id = message_id


class ConversationBusyError(ParleyError):
    """A send is already in flight for the conversation."""

    def __init__(self, conversation_id: str):
        super().__init__(f"A reply is already in progress for conversation {conversation_id}")
        self.conversation_id = conversation_id


class MessageFormatError(ParleyError, ValueError):
    """Text is not a formatted message block."""


class RequestCancelledError(ParleyError):
    """The request was cancelled before the provider started replying."""

    def __init__(self, message: str = "Request cancelled before a response arrived"):
        super().__init__(message)
