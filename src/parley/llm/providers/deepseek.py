import httpx

from ...credentials import CredentialStore
from ..catalog import DEEPSEEK_CREDENTIAL_NAME, DEEPSEEK_DEFAULT_MODEL
from .openai import OpenAIProvider

DEEPSEEK_BASE_URL = "https://api.deepseek.com"


class DeepSeekProvider(OpenAIProvider):
    """DeepSeek provider using its OpenAI-compatible API."""

    def __init__(
        self,
        credentials: CredentialStore,
        credential_name: str = DEEPSEEK_CREDENTIAL_NAME,
        model: str = DEEPSEEK_DEFAULT_MODEL,
        base_url: str | None = DEEPSEEK_BASE_URL,
        timeout: float = 60.0,
        http_client: httpx.AsyncClient | None = None,
    ):
        """Initialize DeepSeek provider.

        Args:
            credentials: Store the API key is read from
            credential_name: Name of the API key in the store
            model: Default model to use ('deepseek-chat' or 'deepseek-reasoner')
            base_url: DeepSeek API base URL (default: https://api.deepseek.com)
            timeout: Request timeout in seconds
            http_client: Optional client to use instead of creating one
        """
        super().__init__(
            credentials=credentials,
            credential_name=credential_name,
            model=model,
            base_url=base_url or DEEPSEEK_BASE_URL,
            timeout=timeout,
            http_client=http_client,
        )
