"""Build chat completion HTTP requests.

Only a request description is produced here; sending it is up to the
provider's HTTP client.
"""

from collections.abc import Sequence
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from ..exceptions import MissingCredentialError
from .models import ChatMessage

DEFAULT_BASE_URL = "https://api.openai.com/v1"
CHAT_COMPLETIONS_PATH = "/chat/completions"

CONTENT_TYPE_HEADER = "Content-Type"
CONTENT_TYPE_JSON = "application/json"
AUTH_HEADER = "Authorization"
ORGANIZATION_HEADER = "OpenAI-Organization"
PROJECT_HEADER = "OpenAI-Project"

MIN_TEMPERATURE = 0.0
MAX_TEMPERATURE = 2.0


class ChatRequest(BaseModel):
    """Immutable description of one chat completion call."""

    model_config = ConfigDict(frozen=True)

    method: str = "POST"
    url: str
    headers: dict[str, str] = Field(default_factory=dict)
    body: dict[str, Any] = Field(default_factory=dict)

    @property
    def stream(self) -> bool:
        return bool(self.body.get("stream"))


def require_api_key(api_key: str | None) -> str:
    """Return the key, or raise if it is missing or blank."""
    if api_key is None or not api_key.strip():
        raise MissingCredentialError()
    return api_key


def build_headers(
    api_key: str | None,
    organization: str | None = None,
    project: str | None = None,
) -> dict[str, str]:
    """Build request headers.

    Organization and project headers are only added when given.

    Raises:
        MissingCredentialError: If the API key is missing or empty
    """
    key = require_api_key(api_key)

    headers = {
        CONTENT_TYPE_HEADER: CONTENT_TYPE_JSON,
        AUTH_HEADER: "Bearer " + key,
    }
    if organization:
        headers[ORGANIZATION_HEADER] = organization
    if project:
        headers[PROJECT_HEADER] = project
    return headers


def chat_completions_url(base_url: str | None = None) -> str:
    return (base_url or DEFAULT_BASE_URL).rstrip("/") + CHAT_COMPLETIONS_PATH


def build_chat_request(
    api_key: str | None,
    model: str,
    messages: Sequence[ChatMessage],
    temperature: float = 0.5,
    organization: str | None = None,
    project: str | None = None,
    stream: bool = True,
    base_url: str | None = None,
    max_tokens: int | None = None,
) -> ChatRequest:
    """Build the request for one chat completion call.

    The credential is checked before anything else so a missing key fails
    without any network activity.

    Args:
        api_key: Provider API key
        model: Model identifier
        messages: Messages to send, in order
        temperature: Sampling temperature (0.0 to 2.0)
        organization: Optional organization identifier
        project: Optional project identifier
        stream: Request a streamed response
        base_url: API base URL (default: OpenAI)
        max_tokens: Maximum tokens to generate

    Returns:
        ChatRequest ready to be sent

    Raises:
        MissingCredentialError: If the API key is missing or empty
        ValueError: If the model is empty or the temperature is out of range
    """
    headers = build_headers(api_key, organization=organization, project=project)

    if not model or not model.strip():
        raise ValueError("A model identifier is required")
    if not MIN_TEMPERATURE <= temperature <= MAX_TEMPERATURE:
        raise ValueError(
            f"Temperature must be between {MIN_TEMPERATURE} and {MAX_TEMPERATURE}, got {temperature}"
        )

    body: dict[str, Any] = {
        "model": model,
        "messages": [{"role": msg.role, "content": msg.content} for msg in messages],
        "temperature": temperature,
        "stream": stream,
    }
    if stream:
        body["stream_options"] = {"include_usage": True}
    if max_tokens is not None:
        body["max_tokens"] = max_tokens

    return ChatRequest(url=chat_completions_url(base_url), headers=headers, body=body)
