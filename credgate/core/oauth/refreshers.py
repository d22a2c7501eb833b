"""Per-provider refresh-token exchanges.

Each refresher knows one provider's token endpoint contract: where to POST,
in which encoding, and how to read the new tokens from the response. They do
not touch the credential store; the TokenRefreshEngine persists the result.
"""

import abc
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from credgate.core.credentials.models import Credential

from .constants import GeminiOAuth, KiroEndpoints, OAuthProtocol, QwenOAuth
from .http_client import HttpClient
from .jwt import get_token_expiry

_logger = logging.getLogger(__name__)


class TokenResponseError(ValueError):
    """The token endpoint answered 2xx but without a usable access token."""


@dataclass(frozen=True)
class RefreshedTokens:
    """Result of a successful exchange.

    Attributes:
        access_token: New access token
        refresh_token: Rotated refresh token (None keeps the stored one)
        expires_at: New expiry, from expires_in or the JWT exp claim
        native_updates: Extra fields to merge into the credential file as-is
    """

    access_token: str
    refresh_token: str | None
    expires_at: datetime | None
    native_updates: dict[str, Any] = field(default_factory=dict)


def _expiry_from(data: Mapping[str, Any], access_token: str, *keys: str) -> datetime | None:
    for key in keys:
        value = data.get(key)
        if isinstance(value, int | float) and not isinstance(value, bool) and value > 0:
            return datetime.now(timezone.utc) + timedelta(seconds=value)
    return get_token_expiry(access_token)


def _require_token(data: Mapping[str, Any], key: str) -> str:
    token = data.get(key)
    if not isinstance(token, str) or not token:
        raise TokenResponseError(f"token response has no '{key}'")
    return token


class TokenRefresher(abc.ABC):
    """Token exchange contract of one provider."""

    provider_id: str

    def __init__(self, env: Mapping[str, str]) -> None:
        self.env = env

    @abc.abstractmethod
    async def exchange(self, credential: Credential, http: HttpClient) -> RefreshedTokens:
        """Exchange the stored refresh token for new tokens.

        Raises:
            HttpError: If the endpoint cannot be reached or answers non-2xx
            TokenResponseError: If the response carries no access token
        """


class KiroRefresher(TokenRefresher):
    """Kiro social (desktop auth service) and IdC (AWS SSO OIDC) refresh."""

    provider_id = "kiro"

    async def exchange(self, credential: Credential, http: HttpClient) -> RefreshedTokens:
        region = credential.extra.get("region") or KiroEndpoints.DEFAULT_REGION
        auth_method = (credential.extra.get("auth_method") or KiroEndpoints.DEFAULT_AUTH_METHOD).lower()
        refresh_token = credential.refresh_token or ""

        if auth_method == "idc":
            url = KiroEndpoints.IDC_REFRESH_URL.format(region=region)
            payload = {
                "clientId": credential.extra.get("client_id", ""),
                "clientSecret": credential.extra.get("client_secret", ""),
                "grantType": "refresh_token",
                "refreshToken": refresh_token,
            }
        else:
            url = KiroEndpoints.SOCIAL_REFRESH_URL.format(region=region)
            payload = {"refreshToken": refresh_token}

        _logger.debug(f"Refreshing kiro token ({auth_method}, region={region})")
        data = await http.post_json(url, payload)
        access_token = _require_token(data, "accessToken")

        updates: dict[str, Any] = {}
        if isinstance(data.get("profileArn"), str):
            updates["profileArn"] = data["profileArn"]
        return RefreshedTokens(
            access_token=access_token,
            refresh_token=data.get("refreshToken") or None,
            expires_at=_expiry_from(data, access_token, "expiresIn", "expires_in"),
            native_updates=updates,
        )


class GeminiRefresher(TokenRefresher):
    """Google OAuth refresh for the Gemini CLI login."""

    provider_id = "gemini"

    async def exchange(self, credential: Credential, http: HttpClient) -> RefreshedTokens:
        client_id = self.env.get(GeminiOAuth.CLIENT_ID_ENV)
        client_secret = self.env.get(GeminiOAuth.CLIENT_SECRET_ENV)
        if not client_id or not client_secret:
            raise TokenResponseError(
                f"{GeminiOAuth.CLIENT_ID_ENV} and {GeminiOAuth.CLIENT_SECRET_ENV} must be set"
            )

        data = await http.post_form(
            GeminiOAuth.TOKEN_URL,
            {
                "grant_type": OAuthProtocol.GRANT_TYPE_REFRESH,
                "refresh_token": credential.refresh_token or "",
                "client_id": client_id,
                "client_secret": client_secret,
            },
        )
        access_token = _require_token(data, "access_token")

        updates: dict[str, Any] = {}
        for key in ("token_type", "scope", "id_token"):
            if isinstance(data.get(key), str):
                updates[key] = data[key]
        return RefreshedTokens(
            access_token=access_token,
            refresh_token=data.get("refresh_token") or None,
            expires_at=_expiry_from(data, access_token, "expires_in"),
            native_updates=updates,
        )


class QwenRefresher(TokenRefresher):
    """Qwen OAuth refresh (public client)."""

    provider_id = "qwen"

    async def exchange(self, credential: Credential, http: HttpClient) -> RefreshedTokens:
        client_id = self.env.get(QwenOAuth.CLIENT_ID_ENV) or QwenOAuth.DEFAULT_CLIENT_ID
        data = await http.post_form(
            QwenOAuth.TOKEN_URL,
            {
                "grant_type": OAuthProtocol.GRANT_TYPE_REFRESH,
                "refresh_token": credential.refresh_token or "",
                "client_id": client_id,
            },
        )
        access_token = _require_token(data, "access_token")

        updates: dict[str, Any] = {}
        for key in ("token_type", "resource_url"):
            if isinstance(data.get(key), str):
                updates[key] = data[key]
        return RefreshedTokens(
            access_token=access_token,
            refresh_token=data.get("refresh_token") or None,
            expires_at=_expiry_from(data, access_token, "expires_in"),
            native_updates=updates,
        )


REFRESHERS: dict[str, type[TokenRefresher]] = {
    cls.provider_id: cls for cls in (KiroRefresher, GeminiRefresher, QwenRefresher)
}
