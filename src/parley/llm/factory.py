from typing import Any

from ..credentials import InMemoryCredentialStore
from .base import ChatProvider
from .catalog import DEEPSEEK_CREDENTIAL_NAME
from .providers import DeepSeekProvider, OpenAIProvider


def create_llm_provider(provider: str, **config: Any) -> ChatProvider:
    """Create a chat provider instance.

    This factory function hides the instantiation logic for different providers.

    Args:
        provider: Provider type ('openai', 'deepseek')
        **config: Provider configuration
            Either:
                - credentials: CredentialStore holding the API key
                - credential_name: str (name of the key in the store)
            Or:
                - api_key: str (held in an in-memory credential store)
            For OpenAI:
                - model: str (default: 'gpt-4o-mini')
                - base_url: str | None
                - organization: str | None
                - project: str | None
            For DeepSeek:
                - model: str (default: 'deepseek-chat')
                - base_url: str (default: 'https://api.deepseek.com')

    Returns:
        Initialized provider instance

    Raises:
        ValueError: If provider type is not supported
        TypeError: If neither 'api_key' nor 'credentials' is given

    Examples:
        >>> provider = create_llm_provider(
        ...     "openai",
        ...     api_key="sk-...",
        ...     model="gpt-4o"
        ... )
    """
    provider_lower = provider.lower()

    if provider_lower == "openai":
        provider_class: type[OpenAIProvider] = OpenAIProvider
        default_name = "OPENAI_API_KEY"
    elif provider_lower == "deepseek":
        provider_class = DeepSeekProvider
        default_name = DEEPSEEK_CREDENTIAL_NAME
    else:
        raise ValueError(
            f"Unsupported provider: {provider}. "
            f"Supported providers: 'openai', 'deepseek'"
        )

    if "credentials" not in config:
        if "api_key" not in config:
            raise TypeError(f"{provider} provider requires 'api_key' or 'credentials' in config")
        api_key = config.pop("api_key")
        name = config.setdefault("credential_name", default_name)
        config["credentials"] = InMemoryCredentialStore({name: api_key} if api_key is not None else {})
    else:
        config.pop("api_key", None)

    return provider_class(**config)
