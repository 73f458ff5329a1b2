from .base import CredentialStore
from .factory import create_credential_store
from .stores import DotenvCredentialStore, EnvCredentialStore, InMemoryCredentialStore

__all__ = [
    "CredentialStore",
    "DotenvCredentialStore",
    "EnvCredentialStore",
    "InMemoryCredentialStore",
    "create_credential_store",
]
