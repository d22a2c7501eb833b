"""Credential data types."""

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from types import MappingProxyType
from typing import Any, NamedTuple


class FileSignature(NamedTuple):
    """Modification signature of a credential file."""

    mtime_ns: int
    size: int


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Credential:
    """Authentication material of one OAuth provider.

    Records are immutable; the store swaps whole records on reload or
    refresh. `valid` is computed on every read so it can never disagree with
    the token fields.
    """

    provider_id: str
    source_path: str
    access_token: str | None = None
    refresh_token: str | None = None
    expires_at: datetime | None = None
    loaded: bool = False
    invalidated: bool = False
    extra: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    signature: FileSignature | None = None
    error: str | None = None

    @classmethod
    def not_loaded(
        cls, provider_id: str, source_path: str, error: str | None = None
    ) -> "Credential":
        return cls(provider_id=provider_id, source_path=source_path, error=error)

    @property
    def expired(self) -> bool:
        return self.expires_at is not None and self.expires_at <= utcnow()

    @property
    def valid(self) -> bool:
        return bool(self.loaded and self.access_token and not self.invalidated and not self.expired)

    def expires_within(self, seconds: float) -> bool:
        """Whether the token expires in the next `seconds` (False if no expiry is known)."""
        if self.expires_at is None:
            return False
        return self.expires_at - utcnow() <= timedelta(seconds=seconds)

    @property
    def has_access_token(self) -> bool:
        return bool(self.access_token)

    @property
    def has_refresh_token(self) -> bool:
        return bool(self.refresh_token)

    def invalidate(self) -> "Credential":
        return replace(self, invalidated=True)

    def summary(self) -> dict[str, Any]:
        """Status-query view without any secret values."""
        return {
            "provider": self.provider_id,
            "creds_path": self.source_path,
            "loaded": self.loaded,
            "is_valid": self.valid,
            "has_access_token": self.has_access_token,
            "has_refresh_token": self.has_refresh_token,
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "invalidated": self.invalidated,
            "error": self.error,
        }


@dataclass(frozen=True)
class EnvVariable:
    """One environment/credential row shown to the settings UI."""

    key: str
    value: str
    masked: bool

    def to_dict(self) -> dict[str, Any]:
        return {"key": self.key, "value": self.value, "masked": self.masked}
