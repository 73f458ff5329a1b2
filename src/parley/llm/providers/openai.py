import json
import logging
from collections.abc import AsyncIterator, Sequence
from contextlib import aclosing

import httpx
import openai
from openai import AsyncOpenAI

from ...credentials import CredentialStore
from ...exceptions import ProviderError, RequestCancelledError, TransportError
from ..base import ChatProvider
from ..cancellation import CancellationToken
from ..catalog import DEFAULT_MODEL
from ..models import ChatMessage, LLMResponse, StreamDelta, StreamingResponse, Usage
from ..request import DEFAULT_BASE_URL, ChatRequest, build_chat_request
from ..streaming import StreamDecoder, iter_stream_deltas, provider_error_from_payload

logger = logging.getLogger(__name__)

DEFAULT_CREDENTIAL_NAME = "OPENAI_API_KEY"

# InvalidURL and StreamError are not HTTPError subclasses
_HTTPX_ERRORS = (httpx.HTTPError, httpx.InvalidURL, httpx.StreamError)


def error_from_response(status_code: int, body: bytes) -> ProviderError | TransportError:
    """Map a non-2xx response body to a parley error."""
    try:
        payload = json.loads(body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        payload = None

    error = provider_error_from_payload(payload, status_code=status_code)
    if error is not None:
        return error

    text = body.decode("utf-8", errors="replace").strip()
    detail = f": {text[:200]}" if text else ""
    return TransportError(f"HTTP {status_code}{detail}", status_code=status_code)


class OpenAIProvider(ChatProvider):
    """Provider for OpenAI-compatible chat completion endpoints.

    Hidden design decisions:
    - HTTP client setup (httpx) and request construction
    - Credential lookup, once per request
    - Server-sent event decoding of streamed responses
    - Mapping of HTTP and payload errors to parley errors
    """

    def __init__(
        self,
        credentials: CredentialStore,
        credential_name: str = DEFAULT_CREDENTIAL_NAME,
        model: str = DEFAULT_MODEL,
        base_url: str | None = None,
        organization: str | None = None,
        project: str | None = None,
        timeout: float = 60.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        """Initialize the provider.

        Args:
            credentials: Store the API key is read from
            credential_name: Name of the API key in the store
            model: Default model to use
            base_url: API base URL (default: https://api.openai.com/v1)
            organization: Optional organization ID
            project: Optional project ID
            timeout: Request timeout in seconds
            http_client: Optional client to use instead of creating one
        """
        self._credentials = credentials
        self._credential_name = credential_name
        self._model = model
        self._base_url = base_url or DEFAULT_BASE_URL
        self._organization = organization
        self._project = project
        self._timeout = timeout
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(timeout=timeout)

    @property
    def model(self) -> str:
        """Get the default model name."""
        return self._model

    @property
    def base_url(self) -> str:
        return self._base_url

    def build_request(
        self,
        messages: Sequence[ChatMessage],
        model: str | None = None,
        temperature: float = 0.5,
        max_tokens: int | None = None,
        stream: bool = True,
    ) -> ChatRequest:
        """Build the request description, reading the API key from the store."""
        return build_chat_request(
            api_key=self._credentials.get(self._credential_name),
            model=model or self._model,
            messages=messages,
            temperature=temperature,
            organization=self._organization,
            project=self._project,
            stream=stream,
            base_url=self._base_url,
            max_tokens=max_tokens,
        )

    async def _send(self, request: ChatRequest, stream: bool) -> httpx.Response:
        try:
            http_request = self._client.build_request(
                request.method,
                request.url,
                headers=request.headers,
                json=request.body,
            )
            response = await self._client.send(http_request, stream=stream)
        except _HTTPX_ERRORS as e:
            logger.error("Request to %s failed: %s", request.url, e)
            raise TransportError(f"Request failed: {e}") from e

        if response.is_error:
            try:
                body = await response.aread()
            finally:
                await response.aclose()
            error = error_from_response(response.status_code, body)
            logger.error("Provider returned HTTP %d: %s", response.status_code, error)
            raise error

        return response

    async def chat_completion(
        self,
        messages: Sequence[ChatMessage],
        model: str | None = None,
        temperature: float = 0.5,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        """Generate a chat completion in a single JSON response."""
        request = self.build_request(messages, model, temperature, max_tokens, stream=False)
        response = await self._send(request, stream=False)

        try:
            payload = response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise TransportError(f"Invalid JSON response: {e}", status_code=response.status_code) from e

        error = provider_error_from_payload(payload, status_code=response.status_code)
        if error is not None:
            raise error

        try:
            choice = payload["choices"][0]
            content = choice["message"].get("content") or ""
        except (KeyError, IndexError, TypeError, AttributeError) as e:
            raise TransportError(f"Unexpected response shape: {e}", status_code=response.status_code) from e

        usage = None
        if isinstance(payload.get("usage"), dict):
            usage = Usage.model_validate(payload["usage"])

        return LLMResponse(
            content=content,
            model=payload.get("model") or request.body["model"],
            usage=usage,
        )

    async def chat_completion_stream(
        self,
        messages: Sequence[ChatMessage],
        model: str | None = None,
        temperature: float = 0.5,
        max_tokens: int | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> StreamingResponse:
        """Start a streaming chat completion.

        The API key is checked before any connection is made. This returns
        once the response headers have arrived; the body is read lazily while
        the returned StreamingResponse is iterated.

        Raises:
            RequestCancelledError: If ``cancel_token`` fires before the headers arrive
        """
        request = self.build_request(messages, model, temperature, max_tokens, stream=True)
        if cancel_token is None:
            response = await self._send(request, stream=True)
        else:
            response = await cancel_token.guard(self._send(request, stream=True))
            if cancel_token.cancelled:
                await response.aclose()
                raise RequestCancelledError()

        decoder = StreamDecoder()
        return StreamingResponse(
            self._stream_generator(response, decoder, cancel_token),
            decoder=decoder,
            cancel_token=cancel_token,
        )

    async def _stream_generator(
        self,
        response: httpx.Response,
        decoder: StreamDecoder,
        cancel_token: CancellationToken | None,
    ) -> AsyncIterator[StreamDelta]:
        """Internal generator yielding deltas and closing the response when done."""
        deltas = iter_stream_deltas(response.aiter_lines(), cancel_token, decoder)
        try:
            async with aclosing(deltas):
                async for delta in deltas:
                    yield delta
        except _HTTPX_ERRORS as e:
            logger.error("Stream interrupted: %s", e)
            raise TransportError(f"Stream interrupted: {e}") from e
        finally:
            await response.aclose()

        cancelled = cancel_token is not None and cancel_token.cancelled
        if not cancelled and not decoder.finished and decoder.finish_reason is None:
            raise TransportError("Stream ended before the response was complete")

    async def list_models(self) -> list[str]:
        """List model ids through the OpenAI SDK.

        Also serves as a credential check: an invalid key surfaces as a
        ProviderError with status 401.
        """
        client = AsyncOpenAI(
            api_key=self._credentials.get(self._credential_name),
            base_url=self._base_url,
            organization=self._organization,
            project=self._project,
            timeout=self._timeout,
        )
        try:
            page = await client.models.list()
            return sorted(model.id for model in page.data)
        except openai.APIConnectionError as e:
            raise TransportError(f"Request failed: {e}") from e
        except openai.APIStatusError as e:
            raise ProviderError(e.message, status_code=e.status_code) from e
        finally:
            await client.close()

    async def close(self) -> None:
        """Close the HTTP client if this provider created it."""
        if self._owns_client:
            await self._client.aclose()
