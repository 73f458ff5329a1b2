from .base import ChatProvider
from .cancellation import CancellationToken
from .catalog import DEFAULT_MODEL, KNOWN_MODELS
from .factory import create_llm_provider
from .models import ChatMessage, LLMResponse, StreamDelta, StreamingResponse, Usage
from .providers import DeepSeekProvider, OpenAIProvider
from .request import ChatRequest, build_chat_request, build_headers
from .streaming import DONE_SENTINEL, StreamDecoder, iter_stream_deltas

__all__ = [
    "CancellationToken",
    "ChatMessage",
    "ChatProvider",
    "ChatRequest",
    "DEFAULT_MODEL",
    "DONE_SENTINEL",
    "DeepSeekProvider",
    "KNOWN_MODELS",
    "LLMResponse",
    "OpenAIProvider",
    "StreamDecoder",
    "StreamDelta",
    "StreamingResponse",
    "Usage",
    "build_chat_request",
    "build_headers",
    "create_llm_provider",
    "iter_stream_deltas",
]
