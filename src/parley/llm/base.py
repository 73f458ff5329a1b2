from abc import ABC, abstractmethod
from collections.abc import Sequence
from typing import Any

from .cancellation import CancellationToken
from .models import ChatMessage, LLMResponse, StreamingResponse


class ChatProvider(ABC):
    """Abstract base class for chat completion providers.

    This module hides the design decision of which provider to use.
    Implementations must handle provider-specific details like:
    - Credential lookup and authentication headers
    - Request/response format conversion
    - Mapping transport and provider failures to parley errors

    Supports async context manager protocol for proper resource cleanup:
        async with provider:
            response = await provider.chat_completion(messages)
        # Automatically cleaned up
    """

    @property
    @abstractmethod
    def model(self) -> str:
        """Get the default model name."""

    @abstractmethod
    async def chat_completion(
        self,
        messages: Sequence[ChatMessage],
        model: str | None = None,
        temperature: float = 0.5,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        """Generate a chat completion in a single response.

        Args:
            messages: Messages to send, in order
            model: Model to use (None uses provider's default)
            temperature: Sampling temperature (0.0 to 2.0)
            max_tokens: Maximum tokens to generate

        Returns:
            LLMResponse containing generated content and metadata

        Raises:
            MissingCredentialError: If no API key is available
            TransportError: On connection failures and unexpected HTTP errors
            ProviderError: If the provider returns an error payload
        """

    @abstractmethod
    async def chat_completion_stream(
        self,
        messages: Sequence[ChatMessage],
        model: str | None = None,
        temperature: float = 0.5,
        max_tokens: int | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> StreamingResponse:
        """Start a streaming chat completion.

        Returns once the response headers have been received.

        Args:
            messages: Messages to send, in order
            model: Model to use (None uses provider's default)
            temperature: Sampling temperature (0.0 to 2.0)
            max_tokens: Maximum tokens to generate
            cancel_token: Token that stops the stream when cancelled

        Returns:
            StreamingResponse that yields deltas and captures usage info.
            After iteration, access usage via stream_response.usage

        Raises:
            MissingCredentialError: If no API key is available
            TransportError: On connection failures and unexpected HTTP errors
            ProviderError: If the provider returns an error payload
            RequestCancelledError: If ``cancel_token`` fires before the reply starts
        """

    @abstractmethod
    async def list_models(self) -> list[str]:
        """List model identifiers available to the configured credential."""

    @abstractmethod
    async def close(self) -> None:
        """Close any open connections or resources."""

    async def __aenter__(self) -> "ChatProvider":
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit with automatic cleanup.

        Note: Suppresses "Event loop is closed" errors during cleanup.
        This is a known harmless race condition in httpx/anyio cleanup:
        https://github.com/encode/httpx/issues/914
        """
        try:
            await self.close()
        except RuntimeError as e:
            if "Event loop is closed" not in str(e):
                raise
