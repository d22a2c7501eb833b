"""On-disk credential file formats of the OAuth providers.

Each external login tool writes its own JSON shape. A CredentialFormat maps
that shape to the normalized token fields of a Credential and back, so the
store can read the file and write refreshed tokens into it without
disturbing keys it does not understand.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any


@dataclass(frozen=True)
class TokenFields:
    """Normalized token values extracted from (or written to) a credential file."""

    access_token: str | None
    refresh_token: str | None
    expires_at: datetime | None
    extra: dict[str, str]


def _parse_iso(value: Any) -> datetime | None:
    if not isinstance(value, str) or not value:
        return None
    # fromisoformat does not accept a trailing "Z" before Python 3.11
    text = value[:-1] + "+00:00" if value.endswith("Z") else value
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _format_iso(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _parse_epoch_ms(value: Any) -> datetime | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = float(value)
    if not isinstance(value, int | float):
        raise ValueError(f"expected epoch milliseconds, got {type(value).__name__}")
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


def _format_epoch_ms(value: datetime) -> int:
    return int(value.timestamp() * 1000)


def _stringify(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


@dataclass(frozen=True)
class CredentialFormat:
    """Key layout of one provider's credential JSON.

    Attributes:
        provider_id: Provider the format belongs to
        default_path: Where the provider's login tool stores the file
        access_key: JSON key of the access token
        refresh_key: JSON key of the refresh token
        expiry_key: JSON key of the expiry timestamp
        expiry_style: "iso" (ISO-8601 string) or "epoch_ms"
        extra_aliases: Native key -> normalized extra key (e.g. authMethod -> auth_method)
    """

    provider_id: str
    default_path: str
    access_key: str
    refresh_key: str
    expiry_key: str
    expiry_style: str
    extra_aliases: Mapping[str, str]

    def parse(self, data: Mapping[str, Any]) -> TokenFields:
        """Extract token fields; raises ValueError on malformed values."""
        access = data.get(self.access_key)
        refresh = data.get(self.refresh_key)
        if access is not None and not isinstance(access, str):
            raise ValueError(f"'{self.access_key}' must be a string")
        if refresh is not None and not isinstance(refresh, str):
            raise ValueError(f"'{self.refresh_key}' must be a string")

        raw_expiry = data.get(self.expiry_key)
        if self.expiry_style == "iso":
            expires_at = _parse_iso(raw_expiry)
        else:
            expires_at = _parse_epoch_ms(raw_expiry)

        token_keys = {self.access_key, self.refresh_key, self.expiry_key}
        extra = {
            self.extra_aliases.get(key, key): _stringify(value)
            for key, value in data.items()
            if key not in token_keys and value is not None and not isinstance(value, dict | list)
        }
        return TokenFields(
            access_token=access or None,
            refresh_token=refresh or None,
            expires_at=expires_at,
            extra=extra,
        )

    def render(
        self,
        access_token: str,
        refresh_token: str | None,
        expires_at: datetime | None,
    ) -> dict[str, Any]:
        """Native JSON fields for refreshed tokens, ready to merge into the file."""
        fields: dict[str, Any] = {self.access_key: access_token}
        if refresh_token:
            fields[self.refresh_key] = refresh_token
        if expires_at is not None:
            fields[self.expiry_key] = (
                _format_iso(expires_at) if self.expiry_style == "iso" else _format_epoch_ms(expires_at)
            )
        return fields

    def resolve_path(self, env: Mapping[str, str]) -> Path:
        """Path from `<PROVIDER>_CREDS_FILE`, falling back to the default location."""
        override = env.get(f"{self.provider_id.upper()}_CREDS_FILE")
        return Path(override or self.default_path).expanduser()


KIRO_FORMAT = CredentialFormat(
    provider_id="kiro",
    default_path="~/.aws/sso/cache/kiro-auth-token.json",
    access_key="accessToken",
    refresh_key="refreshToken",
    expiry_key="expiresAt",
    expiry_style="iso",
    extra_aliases={
        "authMethod": "auth_method",
        "region": "region",
        "profileArn": "profile_arn",
        "clientId": "client_id",
        "clientSecret": "client_secret",
        "provider": "login_provider",
    },
)

GEMINI_FORMAT = CredentialFormat(
    provider_id="gemini",
    default_path="~/.gemini/oauth_creds.json",
    access_key="access_token",
    refresh_key="refresh_token",
    expiry_key="expiry_date",
    expiry_style="epoch_ms",
    extra_aliases={},
)

QWEN_FORMAT = CredentialFormat(
    provider_id="qwen",
    default_path="~/.qwen/oauth_creds.json",
    access_key="access_token",
    refresh_key="refresh_token",
    expiry_key="expiry_date",
    expiry_style="epoch_ms",
    extra_aliases={},
)

CREDENTIAL_FORMATS: dict[str, CredentialFormat] = {
    fmt.provider_id: fmt for fmt in (KIRO_FORMAT, GEMINI_FORMAT, QWEN_FORMAT)
}

OAUTH_PROVIDERS: tuple[str, ...] = tuple(CREDENTIAL_FORMATS)


def get_format(provider_id: str) -> CredentialFormat:
    try:
        return CREDENTIAL_FORMATS[provider_id]
    except KeyError:
        raise KeyError(f"No credential format for provider '{provider_id}'") from None
