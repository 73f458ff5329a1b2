"""Abstract credential store.

Credentials are opaque secrets addressed by name. The chat core only reads
and writes them through this interface.
"""

from abc import ABC, abstractmethod

from ..exceptions import MissingCredentialError


class CredentialStore(ABC):
    """Named secret storage."""

    @abstractmethod
    def read(self, name: str) -> str | None:
        """Return the raw stored value, or None if absent."""

    @abstractmethod
    def set(self, name: str, value: str) -> None:
        """Store a credential."""

    @abstractmethod
    def delete(self, name: str) -> None:
        """Remove a credential if present."""

    def get(self, name: str) -> str:
        """Read a credential.

        Raises:
            MissingCredentialError: If the credential is absent or blank
        """
        value = self.read(name)
        if value is None or not value.strip():
            raise MissingCredentialError(name)
        return value

    def has(self, name: str) -> bool:
        value = self.read(name)
        return value is not None and bool(value.strip())
