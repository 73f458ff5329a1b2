from collections.abc import AsyncIterator
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field

if TYPE_CHECKING:
    from .cancellation import CancellationToken
    from .streaming import StreamDecoder


class ChatMessage(BaseModel):
    """Represents a chat message in a request payload."""

    model_config = ConfigDict(frozen=True)

    role: str = Field(description="Role of the message sender: 'user', 'assistant', or 'system'")
    content: str = Field(description="Content of the message")


class Usage(BaseModel):
    """Token counts reported by the provider."""

    model_config = ConfigDict(frozen=True)

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0


class StreamDelta(BaseModel):
    """One decoded record of a streamed response."""

    model_config = ConfigDict(frozen=True)

    text: str | None = Field(default=None, description="Incremental text, may be absent mid-stream")
    role: str | None = None
    finish_reason: str | None = None
    usage: Usage | None = Field(default=None, description="Present on the terminal record for some providers")


class LLMResponse(BaseModel):
    """Response from a non-streaming chat completion."""

    model_config = ConfigDict(frozen=True)

    content: str = Field(description="Generated text content")
    model: str = Field(description="Model that generated the response")
    usage: Usage | None = Field(default=None, description="Token usage information")


# Wire shapes of a streamed chat completion record

class ChoiceDelta(BaseModel):
    role: str | None = None
    content: str | None = None


class ChunkChoice(BaseModel):
    index: int = 0
    delta: ChoiceDelta = Field(default_factory=ChoiceDelta)
    finish_reason: str | None = None


class CompletionChunk(BaseModel):
    id: str = ""
    object: str = ""
    created: int = 0
    model: str = ""
    choices: list[ChunkChoice]
    usage: Usage | None = None


class StreamingResponse:
    """Wrapper for streaming responses that captures usage info.

    Acts as an async iterator of StreamDelta values while storing token usage
    that becomes available at the end of the stream. The sequence is lazy,
    finite and can only be consumed once.

    Usage:
        stream = await provider.chat_completion_stream(messages)
        async for delta in stream:
            print(delta.text or "", end="")
        # After iteration, usage is available
        print(stream.usage)
    """

    def __init__(
        self,
        async_iter: AsyncIterator[StreamDelta],
        decoder: "StreamDecoder | None" = None,
        cancel_token: "CancellationToken | None" = None,
    ):
        """Initialize with an async iterator of deltas.

        Args:
            async_iter: Async iterator yielding decoded deltas
            decoder: Decoder feeding the iterator, used to report completion
            cancel_token: Token that stops the stream when cancelled
        """
        self._iter = async_iter
        self._decoder = decoder
        self._cancel_token = cancel_token
        self._usage: Usage | None = None

    @property
    def usage(self) -> Usage | None:
        """Get token usage info (available after iteration completes)."""
        return self._usage

    @property
    def completed(self) -> bool:
        """Whether the provider signalled the end of the response."""
        if self._decoder is None:
            return False
        return self._decoder.finished or self._decoder.finish_reason is not None

    @property
    def cancelled(self) -> bool:
        return self._cancel_token is not None and self._cancel_token.cancelled

    def __aiter__(self) -> "StreamingResponse":
        """Return self as async iterator."""
        return self

    async def __anext__(self) -> StreamDelta:
        """Get next delta from the underlying iterator."""
        delta = await self._iter.__anext__()
        if delta.usage is not None:
            self._usage = delta.usage
        return delta

    async def aclose(self) -> None:
        """Stop the stream and release the underlying connection."""
        aclose = getattr(self._iter, "aclose", None)
        if aclose is not None:
            await aclose()
