"""Factory for creating credential stores."""

from typing import Any

from .base import CredentialStore


def create_credential_store(backend: str = "env", **kwargs: Any) -> CredentialStore:
    """Create a credential store.

    Args:
        backend: Store type ("env", "dotenv" or "memory")
        **kwargs: Backend-specific configuration
            For dotenv:
                - path: str | Path (default: '.env')
            For memory:
                - initial: Mapping[str, str]

    Returns:
        CredentialStore instance

    Raises:
        ValueError: If backend type is not supported
    """
    from .stores import DotenvCredentialStore, EnvCredentialStore, InMemoryCredentialStore

    if backend == "env":
        return EnvCredentialStore(**kwargs)
    if backend == "dotenv":
        return DotenvCredentialStore(**kwargs)
    if backend == "memory":
        return InMemoryCredentialStore(**kwargs)

    raise ValueError(
        f"Unsupported credential backend: {backend}. "
        f"Supported backends: env, dotenv, memory"
    )
