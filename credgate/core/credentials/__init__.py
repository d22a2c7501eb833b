"""Credential records of the OAuth-session providers."""

from credgate.core.credentials.formats import OAUTH_PROVIDERS, CredentialFormat, get_format
from credgate.core.credentials.masking import is_secret_key, mask_secret
from credgate.core.credentials.models import Credential, EnvVariable, FileSignature
from credgate.core.credentials.store import CredentialStore
from credgate.core.credentials.watcher import CredentialWatcher

__all__ = [
    "OAUTH_PROVIDERS",
    "Credential",
    "CredentialFormat",
    "CredentialStore",
    "CredentialWatcher",
    "EnvVariable",
    "FileSignature",
    "get_format",
    "is_secret_key",
    "mask_secret",
]
