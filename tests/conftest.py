"""Pytest configuration and shared fixtures."""
import asyncio
import json
import os
from collections.abc import Awaitable, Callable, Sequence
from datetime import datetime, timedelta, timezone
from typing import Any

import httpx
import pytest

from parley.conversation import AuthorType, InMemoryMessageStore, Message
from parley.credentials import InMemoryCredentialStore
from parley.llm import ChatProvider, LLMResponse, OpenAIProvider, StreamDelta, StreamingResponse
from parley.llm.cancellation import CancellationToken
from parley.llm.models import ChatMessage

BASE_TIME = datetime(2024, 7, 20, 9, 0, 0, tzinfo=timezone.utc)


def make_messages(count: int, conversation_id: str | None = "conv-1") -> list[Message]:
    """Messages one minute apart, alternating user and assistant."""
    return [
        Message(
            content=f"message {i}",
            author_type=AuthorType.USER if i % 2 == 0 else AuthorType.ASSISTANT,
            timestamp=BASE_TIME + timedelta(minutes=i),
            conversation_id=conversation_id,
        )
        for i in range(count)
    ]


def sse_record(
    content: str | None = None,
    finish_reason: str | None = None,
    usage: dict[str, int] | None = None,
    role: str | None = None,
    include_choice: bool = True,
) -> str:
    """One ``data:`` line of a streamed chat completion."""
    delta: dict[str, Any] = {}
    if role is not None:
        delta["role"] = role
    if content is not None:
        delta["content"] = content
    record: dict[str, Any] = {
        "id": "chatcmpl-123",
        "object": "chat.completion.chunk",
        "created": 1721466000,
        "model": "gpt-4o-mini",
        "choices": [{"index": 0, "delta": delta, "finish_reason": finish_reason}] if include_choice else [],
    }
    if usage is not None:
        record["usage"] = usage
    return "data: " + json.dumps(record) + "\n\n"


def sse_body(*fragments: str, usage: dict[str, int] | None = None) -> bytes:
    """A complete streamed response producing the given text fragments."""
    lines = [sse_record(role="assistant", content="")]
    lines.extend(sse_record(content=fragment) for fragment in fragments)
    lines.append(sse_record(finish_reason="stop"))
    if usage is not None:
        lines.append(sse_record(usage=usage, include_choice=False))
    lines.append("data: [DONE]\n\n")
    return "".join(lines).encode("utf-8")


async def chunks_from(items: Sequence[str | bytes]):
    """Async generator over fixed chunks."""
    for item in items:
        yield item


class BlockingByteStream(httpx.AsyncByteStream):
    """Response body that sends its chunks, then waits until released.

    ``closed`` records whether the client closed the body.
    """

    def __init__(self, *chunks: bytes, tail: bytes = b""):
        self.chunks = chunks
        self.tail = tail
        self.release = asyncio.Event()
        self.closed = False

    async def __aiter__(self):
        for chunk in self.chunks:
            yield chunk
        await self.release.wait()
        if self.tail:
            yield self.tail

    async def aclose(self) -> None:
        self.closed = True


class FakeProvider(ChatProvider):
    """Provider that replays scripted deltas.

    Items in ``deltas`` that are exceptions are raised mid-stream. When
    ``gate`` is set, every delta waits for it first.
    """

    def __init__(
        self,
        deltas: Sequence[StreamDelta | Exception] = (),
        error: Exception | None = None,
        gate: Any = None,
        on_request: Callable[[], Awaitable[None]] | None = None,
        model: str = "test-model",
    ):
        self.deltas = list(deltas)
        self.error = error
        self.gate = gate
        self.on_request = on_request
        self._model = model
        self.requests: list[dict[str, Any]] = []
        self.closed = False

    @property
    def model(self) -> str:
        return self._model

    async def chat_completion(self, messages, model=None, temperature=0.5, max_tokens=None) -> LLMResponse:
        text = "".join(d.text or "" for d in self.deltas if isinstance(d, StreamDelta))
        return LLMResponse(content=text, model=model or self._model)

    async def chat_completion_stream(
        self,
        messages: Sequence[ChatMessage],
        model: str | None = None,
        temperature: float = 0.5,
        max_tokens: int | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> StreamingResponse:
        self.requests.append({"messages": list(messages), "model": model, "temperature": temperature})
        if self.on_request is not None:
            await self.on_request()
        if self.error is not None:
            raise self.error
        return StreamingResponse(self._generate(cancel_token), cancel_token=cancel_token)

    async def _generate(self, cancel_token: CancellationToken | None):
        for item in self.deltas:
            if self.gate is not None:
                await self.gate.wait()
            if cancel_token is not None and cancel_token.cancelled:
                return
            if isinstance(item, Exception):
                raise item
            yield item

    async def list_models(self) -> list[str]:
        return [self._model]

    async def close(self) -> None:
        self.closed = True


def make_openai_provider(
    handler: Callable[[httpx.Request], httpx.Response],
    api_key: str | None = "sk-test",
    **kwargs: Any,
) -> OpenAIProvider:
    """OpenAIProvider whose HTTP traffic goes to ``handler``."""
    credentials = InMemoryCredentialStore({"OPENAI_API_KEY": api_key} if api_key is not None else {})
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return OpenAIProvider(credentials=credentials, http_client=client, **kwargs)


@pytest.fixture
async def store():
    """Connected in-memory message store."""
    memory_store = InMemoryMessageStore()
    await memory_store.connect()
    yield memory_store
    await memory_store.disconnect()


@pytest.fixture
async def conversation(store):
    """A conversation in the in-memory store."""
    return await store.create_conversation("Test conversation")


@pytest.fixture(scope="session")
def api_keys():
    """Return API keys from environment."""
    return {
        "openai": os.getenv("OPENAI_API_KEY"),
    }
