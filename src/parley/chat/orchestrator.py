"""Conversation orchestrator.

Runs one send operation per conversation at a time. A send goes
idle -> sending -> streaming -> completed. Credential, transport and provider
errors end it in failed; a cancel token, ``cancel()`` or task cancellation
ends it in cancelled. Any other exception is recorded as a failure and then
re-raised.

The user message is stored before any network activity, and each finished
send adds exactly one more message (the reply, the error, or the partial
reply) to the conversation.
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from ..config import ChatSettings
from ..context.formatting import format_message
from ..context.history import build_history_window
from ..conversation.base import MessageStore
from ..conversation.models import AuthorType, Conversation, Message
from ..exceptions import ChatError, ConversationBusyError, RequestCancelledError
from ..llm.base import ChatProvider
from ..llm.cancellation import CancellationToken
from ..llm.models import ChatMessage, Usage

logger = logging.getLogger(__name__)

USER_PREFIX = "Q: "
CANCELLED_MARKER = "[Response cancelled]"


class SendState(str, Enum):
    """State of the latest send operation for a conversation."""

    IDLE = "idle"
    SENDING = "sending"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_active(self) -> bool:
        return self in (SendState.SENDING, SendState.STREAMING)


@dataclass(frozen=True)
class SendEvent:
    """Published on every state transition and every received text fragment."""

    conversation_id: str
    state: SendState
    text: str | None = None
    message: Message | None = None
    error: Exception | None = None
    usage: Usage | None = None


@dataclass
class SendResult:
    """Outcome of one send operation."""

    state: SendState
    user_message: Message
    reply: Message | None = None
    usage: Usage | None = None
    error: Exception | None = None


SendCallback = Callable[[SendEvent], None]


class ConversationOrchestrator:
    """Sends user messages and records the model's replies.

    Conversations are independent: sends to different conversations may run
    concurrently, but a second send to a conversation that is still sending
    or streaming is rejected with ConversationBusyError.
    """

    def __init__(
        self,
        store: MessageStore,
        provider: ChatProvider,
        settings: ChatSettings | None = None,
    ) -> None:
        self._store = store
        self._provider = provider
        self._settings = settings or ChatSettings(model=provider.model)
        self._states: dict[str, SendState] = {}
        self._in_flight: dict[str, CancellationToken] = {}
        self._subscribers: list[SendCallback] = []

    def subscribe(self, callback: SendCallback) -> Callable[[], None]:
        """Register a callback for send events.

        Returns:
            Function that removes the callback again
        """
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def state(self, conversation_id: str) -> SendState:
        return self._states.get(conversation_id, SendState.IDLE)

    def is_busy(self, conversation_id: str) -> bool:
        return conversation_id in self._in_flight

    def cancel(self, conversation_id: str) -> bool:
        """Cancel the in-flight send for a conversation.

        Returns:
            True if a send was in flight
        """
        token = self._in_flight.get(conversation_id)
        if token is None:
            return False
        token.cancel()
        return True

    def _emit(self, event: SendEvent) -> None:
        for callback in list(self._subscribers):
            callback(event)

    def _transition(self, conversation_id: str, state: SendState, **details) -> None:
        self._states[conversation_id] = state
        logger.debug("Conversation %s -> %s", conversation_id, state.value)
        self._emit(SendEvent(conversation_id=conversation_id, state=state, **details))

    async def send(
        self,
        conversation_id: str,
        text: str,
        cancel_token: CancellationToken | None = None,
    ) -> SendResult | None:
        """Send a user message and stream the reply into the conversation.

        Args:
            conversation_id: Conversation to send to
            text: Message text; whitespace-only text is ignored
            cancel_token: Optional token to cancel the send

        Returns:
            SendResult, or None when the text was empty

        Raises:
            ConversationBusyError: If a send is already in flight for the conversation
            ConversationNotFoundError: If the conversation does not exist
            Exception: Unexpected errors propagate after being recorded as a failure
        """
        text = text.strip()
        if not text:
            logger.debug("Ignoring empty message for conversation %s", conversation_id)
            return None

        if self.is_busy(conversation_id):
            raise ConversationBusyError(conversation_id)

        token = cancel_token or CancellationToken()
        self._in_flight[conversation_id] = token
        try:
            conversation = await self._store.get_conversation(conversation_id)
            return await self._run(conversation, text, token)
        finally:
            del self._in_flight[conversation_id]

    def _compose(self, conversation: Conversation, context: str) -> list[ChatMessage]:
        messages = []
        if conversation.system_prompt:
            messages.append(ChatMessage(role="system", content=conversation.system_prompt))
        messages.append(ChatMessage(role="user", content=context))
        return messages

    async def _run(self, conversation: Conversation, text: str, token: CancellationToken) -> SendResult:
        conversation_id = conversation.id
        user_message = await self._store.append_message(
            conversation_id,
            Message(content=USER_PREFIX + text, author_type=AuthorType.USER),
        )
        self._transition(conversation_id, SendState.SENDING, message=user_message)

        fragments: list[str] = []
        stream = None
        try:
            history = await self._store.list_messages(conversation_id)
            window = build_history_window(history, user_message, self._settings.history_window)
            context = window.formatted_text or format_message(user_message)

            stream = await self._provider.chat_completion_stream(
                self._compose(conversation, context),
                model=self._settings.model,
                temperature=self._settings.temperature,
                cancel_token=token,
            )
            self._transition(conversation_id, SendState.STREAMING)

            async for delta in stream:
                if delta.text:
                    fragments.append(delta.text)
                    self._emit(SendEvent(conversation_id, SendState.STREAMING, text=delta.text))
        except RequestCancelledError:
            reply = await self._record_cancelled(conversation_id, fragments, None)
            return SendResult(SendState.CANCELLED, user_message, reply)
        except ChatError as e:
            logger.error("Send failed for conversation %s: %s", conversation_id, e)
            error_message = await self._record_failed(conversation_id, str(e), e)
            return SendResult(SendState.FAILED, user_message, error_message, error=e)
        except asyncio.CancelledError:
            await self._record_cancelled(conversation_id, fragments, None)
            raise
        except Exception as e:
            logger.exception("Unexpected error while sending to conversation %s", conversation_id)
            await self._record_failed(conversation_id, f"Unexpected error: {e}", e)
            raise
        finally:
            if stream is not None:
                await stream.aclose()

        usage = stream.usage
        if token.cancelled:
            reply = await self._record_cancelled(conversation_id, fragments, usage)
            return SendResult(SendState.CANCELLED, user_message, reply, usage=usage)

        reply = await self._store.append_message(
            conversation_id,
            Message(content="".join(fragments), author_type=AuthorType.ASSISTANT),
        )
        self._transition(conversation_id, SendState.COMPLETED, message=reply, usage=usage)
        return SendResult(SendState.COMPLETED, user_message, reply, usage=usage)

    async def _record_failed(self, conversation_id: str, text: str, error: Exception) -> Message:
        error_message = await self._store.append_message(
            conversation_id,
            Message(content=text, author_type=AuthorType.ERROR),
        )
        self._transition(conversation_id, SendState.FAILED, message=error_message, error=error)
        return error_message

    async def _record_cancelled(
        self,
        conversation_id: str,
        fragments: list[str],
        usage: Usage | None,
    ) -> Message:
        partial = "".join(fragments)
        content = f"{partial}\n\n{CANCELLED_MARKER}" if partial else CANCELLED_MARKER
        reply = await self._store.append_message(
            conversation_id,
            Message(content=content, author_type=AuthorType.ASSISTANT),
        )
        self._transition(conversation_id, SendState.CANCELLED, message=reply, usage=usage)
        return reply
