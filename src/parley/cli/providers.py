"""Service construction for the CLI.

Builds the credential store, message store, provider and orchestrator once
from settings and hands them to commands. Hides configuration details from
command implementations.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass

from rich.console import Console

from ..chat import ConversationOrchestrator
from ..config import ChatSettings
from ..conversation import MessageStore, create_message_store
from ..credentials import CredentialStore, create_credential_store
from ..llm import ChatProvider, create_llm_provider

# Default console for output
_console = Console()


@dataclass
class Services:
    """Everything a command needs, constructed once per invocation."""

    settings: ChatSettings
    credentials: CredentialStore
    store: MessageStore
    provider: ChatProvider
    orchestrator: ConversationOrchestrator


def get_credentials(settings: ChatSettings) -> CredentialStore:
    """Create the configured credential store."""
    if settings.credential_backend == "dotenv":
        return create_credential_store("dotenv", path=settings.credential_path)
    return create_credential_store(settings.credential_backend)


def get_store(settings: ChatSettings) -> MessageStore:
    """Create the configured message store (not yet connected)."""
    if settings.store_backend == "sqlite":
        return create_message_store("sqlite", path=settings.store_path)
    return create_message_store(settings.store_backend)


def get_provider(settings: ChatSettings, credentials: CredentialStore) -> ChatProvider:
    """Create the chat provider.

    The API key is not read here; it is looked up on every request, so a
    missing key is reported when a message is sent.
    """
    config = {
        "credentials": credentials,
        "credential_name": settings.credential_name,
        "model": settings.model,
        "base_url": settings.base_url,
        "timeout": settings.request_timeout,
    }
    if settings.provider.lower() == "openai":
        config["organization"] = settings.organization
        config["project"] = settings.project
    return create_llm_provider(settings.provider, **config)


@asynccontextmanager
async def open_services(settings: ChatSettings) -> AsyncIterator[Services]:
    """Build services, connect the store, and clean everything up afterwards."""
    credentials = get_credentials(settings)
    store = get_store(settings)
    provider = get_provider(settings, credentials)

    await store.connect()
    try:
        async with provider:
            yield Services(
                settings=settings,
                credentials=credentials,
                store=store,
                provider=provider,
                orchestrator=ConversationOrchestrator(store, provider, settings),
            )
    finally:
        await store.disconnect()


def warn_if_missing_key(services: Services, console: Console | None = None) -> bool:
    """Print a warning when the API key is not configured.

    Returns:
        True if the key is available
    """
    con = console or _console
    name = services.settings.credential_name
    if services.credentials.has(name):
        return True
    con.print(f"[yellow]Warning: {name} is not set, replies will fail until it is[/yellow]")
    con.print("[dim]Set it with: parley key set[/dim]")
    return False
