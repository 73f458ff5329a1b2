"""Credential store backends."""

import logging
import os
from collections.abc import Mapping, MutableMapping
from pathlib import Path

from dotenv import get_key, set_key, unset_key

from .base import CredentialStore

logger = logging.getLogger(__name__)


class InMemoryCredentialStore(CredentialStore):
    """Credentials held in a dict. Useful for tests and explicit keys."""

    def __init__(self, initial: Mapping[str, str] | None = None):
        self._values: dict[str, str] = dict(initial or {})

    def read(self, name: str) -> str | None:
        return self._values.get(name)

    def set(self, name: str, value: str) -> None:
        self._values[name] = value

    def delete(self, name: str) -> None:
        self._values.pop(name, None)


class EnvCredentialStore(CredentialStore):
    """Credentials read from (and written to) the process environment."""

    def __init__(self, environ: MutableMapping[str, str] | None = None):
        self._environ = os.environ if environ is None else environ

    def read(self, name: str) -> str | None:
        return self._environ.get(name)

    def set(self, name: str, value: str) -> None:
        self._environ[name] = value

    def delete(self, name: str) -> None:
        self._environ.pop(name, None)


class DotenvCredentialStore(CredentialStore):
    """Credentials kept in a ``.env`` file, managed with python-dotenv."""

    def __init__(self, path: str | Path = ".env"):
        self._path = Path(path).expanduser()

    @property
    def path(self) -> Path:
        return self._path

    def read(self, name: str) -> str | None:
        if not self._path.exists():
            return None
        return get_key(self._path, name)

    def set(self, name: str, value: str) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.touch(exist_ok=True)
        set_key(self._path, name, value)
        logger.debug("Stored credential %s in %s", name, self._path)

    def delete(self, name: str) -> None:
        if self._path.exists() and get_key(self._path, name) is not None:
            unset_key(self._path, name)
