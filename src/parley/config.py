"""Runtime settings.

Settings are read once at start-up and handed to the services that need
them; nothing looks them up globally.
"""

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, field_validator

from .context.history import HISTORY_WINDOW_SIZE
from .llm.catalog import DEEPSEEK_CREDENTIAL_NAME, DEEPSEEK_DEFAULT_MODEL, DEFAULT_MODEL

ENV_PREFIX = "PARLEY_"

_ENV_FIELDS = {
    "provider": "PROVIDER",
    "base_url": "BASE_URL",
    "model": "MODEL",
    "temperature": "TEMPERATURE",
    "organization": "ORGANIZATION",
    "project": "PROJECT",
    "credential_name": "CREDENTIAL_NAME",
    "credential_backend": "CREDENTIAL_BACKEND",
    "credential_path": "CREDENTIAL_PATH",
    "history_window": "HISTORY_WINDOW",
    "request_timeout": "REQUEST_TIMEOUT",
    "store_backend": "STORE",
    "store_path": "STORE_PATH",
    "log_level": "LOG_LEVEL",
}


def _default_store_path() -> Path:
    return Path.home() / ".parley" / "parley.db"


class ChatSettings(BaseModel):
    """Settings shared by the provider, the store and the orchestrator."""

    provider: str = Field(default="openai", description="Provider name: 'openai' or 'deepseek'")
    base_url: str | None = Field(default=None, description="Override the provider's API base URL")
    model: str = Field(default=DEFAULT_MODEL)
    temperature: float = Field(default=0.5, ge=0.0, le=2.0)
    organization: str | None = None
    project: str | None = None
    credential_name: str = Field(default="OPENAI_API_KEY", description="Name of the API key credential")
    credential_backend: str = Field(default="env", description="'env', 'dotenv' or 'memory'")
    credential_path: Path = Field(default=Path(".env"), description="File used by the dotenv backend")
    history_window: int = Field(default=HISTORY_WINDOW_SIZE, ge=1)
    request_timeout: float = Field(default=60.0, gt=0)
    store_backend: str = Field(default="sqlite", description="'sqlite' or 'memory'")
    store_path: Path = Field(default_factory=_default_store_path)
    log_level: str = Field(default="WARNING")

    @field_validator("organization", "project", "base_url", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("store_path", "credential_path")
    @classmethod
    def _expand_user(cls, value: Path) -> Path:
        return value.expanduser()

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None, **overrides: Any) -> "ChatSettings":
        """Build settings from ``PARLEY_*`` environment variables.

        Args:
            environ: Mapping to read instead of ``os.environ``
            **overrides: Values that take precedence over the environment

        Environment variables:
            PARLEY_PROVIDER, PARLEY_BASE_URL, PARLEY_MODEL, PARLEY_TEMPERATURE,
            PARLEY_ORGANIZATION, PARLEY_PROJECT, PARLEY_CREDENTIAL_NAME,
            PARLEY_CREDENTIAL_BACKEND, PARLEY_CREDENTIAL_PATH,
            PARLEY_HISTORY_WINDOW, PARLEY_REQUEST_TIMEOUT, PARLEY_STORE,
            PARLEY_STORE_PATH, PARLEY_LOG_LEVEL
        """
        env = os.environ if environ is None else environ
        values: dict[str, Any] = {}
        for field_name, suffix in _ENV_FIELDS.items():
            raw = env.get(ENV_PREFIX + suffix)
            if raw is not None and raw != "":
                values[field_name] = raw

        values.update({k: v for k, v in overrides.items() if v is not None})

        if str(values.get("provider", "")).lower() == "deepseek":
            values.setdefault("credential_name", DEEPSEEK_CREDENTIAL_NAME)
            values.setdefault("model", DEEPSEEK_DEFAULT_MODEL)
        return cls(**values)
