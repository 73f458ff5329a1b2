"""Unit tests for chat providers."""
import asyncio
import json

import httpx
import pytest
from hypothesis import given
from hypothesis import strategies as st

from conftest import BlockingByteStream, make_openai_provider, sse_body, sse_record
from parley.credentials import InMemoryCredentialStore
from parley.exceptions import (
    MissingCredentialError,
    ProviderError,
    RequestCancelledError,
    TransportError,
)
from parley.llm import (
    CancellationToken,
    ChatMessage,
    ChatProvider,
    DeepSeekProvider,
    OpenAIProvider,
    create_llm_provider,
)

MESSAGES = [ChatMessage(role="user", content="Hello")]
SSE_HEADERS = {"content-type": "text/event-stream"}


class TestChatProviderInterface:
    """Tests for the abstract ChatProvider interface."""

    def test_provider_is_abstract(self):
        """Test that ChatProvider cannot be instantiated directly."""
        with pytest.raises(TypeError):
            ChatProvider()  # type: ignore


class TestOpenAIProviderStreaming:
    """Tests for OpenAIProvider.chat_completion_stream."""

    async def test_stream_deltas_and_usage(self):
        """Test a complete streamed reply."""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["authorization"]
            seen["body"] = json.loads(request.content)
            usage = {"prompt_tokens": 10, "completion_tokens": 2, "total_tokens": 12}
            return httpx.Response(200, content=sse_body("Hel", "lo", usage=usage), headers=SSE_HEADERS)

        provider = make_openai_provider(handler, model="gpt-4o")
        async with provider:
            stream = await provider.chat_completion_stream(MESSAGES, temperature=0.3)
            text = "".join([d.text or "" async for d in stream])

        assert text == "Hello"
        assert stream.usage.total_tokens == 12
        assert stream.completed
        assert seen["url"] == "https://api.openai.com/v1/chat/completions"
        assert seen["auth"] == "Bearer sk-test"
        assert seen["body"]["model"] == "gpt-4o"
        assert seen["body"]["temperature"] == 0.3
        assert seen["body"]["stream"] is True

    async def test_missing_key_makes_no_request(self):
        """Test that a missing credential fails before any network call."""
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            return httpx.Response(200)

        provider = make_openai_provider(handler, api_key=None)
        with pytest.raises(MissingCredentialError):
            await provider.chat_completion_stream(MESSAGES)
        assert calls == []

    async def test_empty_key_makes_no_request(self):
        """Test that an empty credential is treated as missing."""
        calls = []
        provider = make_openai_provider(lambda r: calls.append(r) or httpx.Response(200), api_key="")
        with pytest.raises(MissingCredentialError):
            await provider.chat_completion_stream(MESSAGES)
        assert calls == []

    async def test_provider_error_response(self):
        """Test that an error payload becomes a ProviderError."""
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(401, json={
                "error": {"message": "Incorrect API key provided", "type": "invalid_request_error", "code": "invalid_api_key"}
            })

        provider = make_openai_provider(handler)
        with pytest.raises(ProviderError, match="Incorrect API key") as exc_info:
            await provider.chat_completion_stream(MESSAGES)

        assert exc_info.value.status_code == 401
        assert exc_info.value.code == "invalid_api_key"

    async def test_non_json_error_response(self):
        """Test that a non-2xx response without an error payload is a TransportError."""
        provider = make_openai_provider(lambda r: httpx.Response(502, text="Bad gateway"))
        with pytest.raises(TransportError, match="HTTP 502") as exc_info:
            await provider.chat_completion_stream(MESSAGES)
        assert exc_info.value.status_code == 502

    async def test_connection_failure(self):
        """Test that connection errors become TransportError."""
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("Connection refused", request=request)

        provider = make_openai_provider(handler)
        with pytest.raises(TransportError, match="Connection refused"):
            await provider.chat_completion_stream(MESSAGES)

    async def test_invalid_base_url(self):
        """Test that a malformed base URL becomes TransportError without a request."""
        calls = []
        provider = make_openai_provider(lambda r: calls.append(r) or httpx.Response(200), base_url="http://[::1")

        with pytest.raises(TransportError, match="Request failed"):
            await provider.chat_completion_stream(MESSAGES)
        assert calls == []

    async def test_stream_cut_short(self):
        """Test that a stream ending without completion raises TransportError."""
        body = (sse_record(content="partial")).encode()
        provider = make_openai_provider(lambda r: httpx.Response(200, content=body, headers=SSE_HEADERS))
        stream = await provider.chat_completion_stream(MESSAGES)

        received = []
        with pytest.raises(TransportError, match="before the response was complete"):
            async for delta in stream:
                received.append(delta.text)
        assert received == ["partial"]

    async def test_finish_reason_without_sentinel_completes(self):
        """Test that a finish reason is enough to treat the stream as complete."""
        body = (sse_record(content="done") + sse_record(finish_reason="stop")).encode()
        provider = make_openai_provider(lambda r: httpx.Response(200, content=body, headers=SSE_HEADERS))
        stream = await provider.chat_completion_stream(MESSAGES)

        assert [d.text async for d in stream] == ["done", None]
        assert stream.completed

    async def test_error_record_mid_stream(self):
        """Test that an error object inside the stream raises ProviderError."""
        body = (sse_record(content="a") + 'data: {"error": {"message": "overloaded"}}\n\n').encode()
        provider = make_openai_provider(lambda r: httpx.Response(200, content=body, headers=SSE_HEADERS))
        stream = await provider.chat_completion_stream(MESSAGES)

        with pytest.raises(ProviderError, match="overloaded"):
            async for _ in stream:
                pass

    async def test_organization_and_project_headers(self):
        """Test optional headers are sent when configured."""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen.update(request.headers)
            return httpx.Response(200, content=sse_body("x"), headers=SSE_HEADERS)

        provider = make_openai_provider(handler, organization="org-1", project="proj-1")
        stream = await provider.chat_completion_stream(MESSAGES)
        await stream.aclose()

        assert seen["openai-organization"] == "org-1"
        assert seen["openai-project"] == "proj-1"


class TestOpenAIProviderCancellation:
    """Tests for cancelling a streamed request through httpx."""

    async def test_cancel_while_waiting_for_headers(self):
        """Test that a cancel during the header wait ends the request promptly."""
        started = asyncio.Event()
        finished = []

        async def handler(request: httpx.Request) -> httpx.Response:
            started.set()
            await asyncio.sleep(10)
            finished.append(request)
            return httpx.Response(200, content=sse_body("late"), headers=SSE_HEADERS)

        provider = make_openai_provider(handler)
        token = CancellationToken()
        request = asyncio.create_task(provider.chat_completion_stream(MESSAGES, cancel_token=token))
        await asyncio.wait_for(started.wait(), timeout=1)
        token.cancel()

        with pytest.raises(RequestCancelledError):
            await asyncio.wait_for(request, timeout=1)
        assert finished == []

    async def test_cancelled_token_makes_no_request(self):
        """Test that an already cancelled token stops the request before it is sent."""
        calls = []
        provider = make_openai_provider(lambda r: calls.append(r) or httpx.Response(200))
        token = CancellationToken()
        token.cancel()

        with pytest.raises(RequestCancelledError):
            await provider.chat_completion_stream(MESSAGES, cancel_token=token)
        assert calls == []

    async def test_cancel_mid_stream_releases_connection(self):
        """Test that cancelling a stalled stream ends iteration and closes the response."""
        body = BlockingByteStream(
            sse_record(role="assistant", content="").encode(),
            sse_record(content="Hel").encode(),
            tail=(sse_record(content="never") + "data: [DONE]\n\n").encode(),
        )
        responses = []

        def handler(request: httpx.Request) -> httpx.Response:
            response = httpx.Response(200, stream=body, headers=SSE_HEADERS)
            responses.append(response)
            return response

        provider = make_openai_provider(handler)
        token = CancellationToken()
        stream = await provider.chat_completion_stream(MESSAGES, cancel_token=token)

        received = []

        async def consume():
            async for delta in stream:
                received.append(delta.text)
                if delta.text == "Hel":
                    asyncio.get_running_loop().call_later(0.05, token.cancel)

        await asyncio.wait_for(consume(), timeout=2)
        body.release.set()

        assert received == ["", "Hel"]
        assert stream.cancelled
        assert body.closed
        assert responses[0].is_closed
        with pytest.raises(StopAsyncIteration):
            await stream.__anext__()


class TestOpenAIProviderCompletion:
    """Tests for OpenAIProvider.chat_completion."""

    async def test_single_response(self):
        """Test a non-streaming completion."""
        def handler(request: httpx.Request) -> httpx.Response:
            assert json.loads(request.content)["stream"] is False
            return httpx.Response(200, json={
                "id": "chatcmpl-1",
                "object": "chat.completion",
                "model": "gpt-4o-mini-2024-07-18",
                "choices": [{"index": 0, "message": {"role": "assistant", "content": "Hi there"}, "finish_reason": "stop"}],
                "usage": {"prompt_tokens": 5, "completion_tokens": 2, "total_tokens": 7},
            })

        provider = make_openai_provider(handler)
        response = await provider.chat_completion(MESSAGES)

        assert response.content == "Hi there"
        assert response.model == "gpt-4o-mini-2024-07-18"
        assert response.usage.completion_tokens == 2

    async def test_unexpected_shape(self):
        """Test that a response without choices is a TransportError."""
        provider = make_openai_provider(lambda r: httpx.Response(200, json={"object": "chat.completion"}))
        with pytest.raises(TransportError, match="Unexpected response shape"):
            await provider.chat_completion(MESSAGES)


class TestProviderLifecycle:
    """Tests for provider resource handling."""

    async def test_owned_client_is_closed(self):
        """Test that a provider closes the client it created."""
        provider = OpenAIProvider(credentials=InMemoryCredentialStore({"OPENAI_API_KEY": "sk"}))
        await provider.close()
        assert provider._client.is_closed

    async def test_injected_client_is_left_open(self):
        """Test that an injected client is not closed by the provider."""
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200)))
        provider = OpenAIProvider(credentials=InMemoryCredentialStore(), http_client=client)
        await provider.close()
        assert not client.is_closed
        await client.aclose()

    @pytest.mark.asyncio
    @pytest.mark.integration
    async def test_list_models_real_api(self, api_keys):
        """Integration test: list models with a real key."""
        if not api_keys["openai"]:
            pytest.skip("OPENAI_API_KEY not set")

        provider = create_llm_provider("openai", api_key=api_keys["openai"])
        try:
            models = await provider.list_models()
            assert models
        finally:
            await provider.close()


class TestProviderFactory:
    """Tests for create_llm_provider."""

    def test_create_openai_provider(self):
        """Test creating OpenAI provider via factory."""
        provider = create_llm_provider("openai", api_key="test-key", model="gpt-4o")
        assert isinstance(provider, OpenAIProvider)
        assert provider.model == "gpt-4o"

    def test_create_deepseek_provider(self):
        """Test DeepSeek defaults."""
        provider = create_llm_provider("deepseek", api_key="test-key")
        assert isinstance(provider, DeepSeekProvider)
        assert provider.model == "deepseek-chat"
        assert provider.base_url == "https://api.deepseek.com"

    def test_create_with_credential_store(self):
        """Test passing a credential store instead of a key."""
        store = InMemoryCredentialStore({"MY_KEY": "sk"})
        provider = create_llm_provider("openai", credentials=store, credential_name="MY_KEY")
        assert provider.build_request(MESSAGES).headers["Authorization"] == "Bearer sk"

    def test_create_provider_unknown_type(self):
        """Test that unknown provider type raises ValueError."""
        with pytest.raises(ValueError, match="Unsupported provider"):
            create_llm_provider("unknown", api_key="test-key")

    def test_create_provider_missing_api_key(self):
        """Test that missing key and store raises TypeError."""
        with pytest.raises(TypeError, match="requires 'api_key'"):
            create_llm_provider("openai")

    @given(st.text(min_size=1))
    def test_factory_with_random_provider_names(self, provider_name: str):
        """Property test: Factory should only accept known providers."""
        if provider_name.lower() in ("openai", "deepseek"):
            provider = create_llm_provider(provider_name, api_key="fake")
            assert isinstance(provider, OpenAIProvider)
        else:
            with pytest.raises(ValueError):
                create_llm_provider(provider_name, api_key="fake")
