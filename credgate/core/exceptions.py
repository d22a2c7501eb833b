"""
Exception hierarchy for credgate.

Every error the gateway can surface to an HTTP caller derives from
GatewayError and carries the HTTP status and the machine-readable
ErrorType that the error response builder renders.

Example:
    >>> try:
    ...     registry.set_default("nope")
    ... except GatewayError as e:
    ...     print(e.status_code, e.error_type.value)
    404 unknown_provider
"""

from __future__ import annotations

from credgate.core.error_types import ErrorType


class GatewayError(Exception):
    """Base exception for all gateway errors.

    Attributes:
        message: Human-readable explanation
        status_code: HTTP status the error maps to
        error_type: Machine-readable error code
    """

    status_code: int = 500
    error_type: ErrorType = ErrorType.UNEXPECTED_ERROR

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class CredentialError(GatewayError):
    """Base class for credential problems of a single provider."""

    status_code = 503

    def __init__(self, provider_id: str, message: str) -> None:
        self.provider_id = provider_id
        super().__init__(message)


class CredentialNotFound(CredentialError):
    """Raised when the provider's credential file does not exist."""

    error_type = ErrorType.CREDENTIAL_NOT_FOUND

    def __init__(self, provider_id: str, path: str) -> None:
        self.path = path
        super().__init__(provider_id, f"Credential file for '{provider_id}' not found: {path}")


class CredentialCorrupt(CredentialError):
    """Raised when the credential file exists but cannot be parsed."""

    error_type = ErrorType.CREDENTIAL_CORRUPT

    def __init__(self, provider_id: str, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(provider_id, f"Invalid credential data in {path}: {reason}")


class NoRefreshToken(CredentialError):
    """Raised when a refresh is requested but no refresh token is stored."""

    error_type = ErrorType.NO_REFRESH_TOKEN

    def __init__(self, provider_id: str) -> None:
        super().__init__(provider_id, f"Cannot refresh '{provider_id}': no refresh_token available")


class RefreshFailed(CredentialError):
    """Raised when the OAuth token exchange fails (network, revoked token, bad response)."""

    error_type = ErrorType.REFRESH_FAILED

    def __init__(self, provider_id: str, reason: str) -> None:
        self.reason = reason
        super().__init__(provider_id, f"Token refresh failed for '{provider_id}': {reason}")


class UnknownProvider(GatewayError):
    """Raised when a provider key is not among the configured providers."""

    status_code = 404
    error_type = ErrorType.UNKNOWN_PROVIDER

    def __init__(self, key: str, available: list[str] | None = None) -> None:
        self.key = key
        self.available = available or []
        super().__init__(
            f"Provider '{key}' not configured. Available providers: {self.available}"
        )


class NoProviderAvailable(GatewayError):
    """Raised when every provider is suspended or unusable."""

    status_code = 503
    error_type = ErrorType.NO_PROVIDER_AVAILABLE

    def __init__(self, message: str = "No provider is currently available") -> None:
        super().__init__(message)


class UpstreamError(GatewayError):
    """Wraps a failure reported by an upstream provider.

    Attributes:
        provider: Provider key that failed
        upstream_status: HTTP status returned upstream (0 for network errors)
        body: Raw response body (truncated in the message)
    """

    error_type = ErrorType.UPSTREAM_ERROR

    def __init__(
        self,
        provider: str,
        upstream_status: int,
        body: str,
        *,
        timeout: bool = False,
    ) -> None:
        self.provider = provider
        self.upstream_status = upstream_status
        self.body = body
        self.timeout = timeout

        if timeout:
            self.status_code = 504
            self.error_type = ErrorType.UPSTREAM_TIMEOUT
        elif upstream_status == 429:
            self.status_code = 429
            self.error_type = ErrorType.RATE_LIMIT
        elif upstream_status in (401, 403):
            self.status_code = upstream_status
            self.error_type = ErrorType.AUTH_ERROR
        elif 400 <= upstream_status < 500:
            self.status_code = upstream_status
        else:
            self.status_code = 502

        body_preview = body[:200] if body else "(empty)"
        if len(body) > 200:
            body_preview += "..."
        if timeout:
            summary = f"Upstream '{provider}' timed out"
        elif upstream_status == 0:
            summary = f"Upstream '{provider}' unreachable: {body_preview}"
        else:
            summary = f"Upstream '{provider}' returned HTTP {upstream_status}: {body_preview}"
        super().__init__(summary)

    @property
    def retryable(self) -> bool:
        """Network errors and 5xx are retried for non-streaming calls."""
        return not self.timeout and (self.upstream_status == 0 or self.upstream_status >= 500)


class MalformedRequest(GatewayError):
    """Raised when an inbound body is not a valid wire request."""

    status_code = 400
    error_type = ErrorType.MALFORMED_REQUEST


class Unauthorized(GatewayError):
    """Raised when the caller's API key does not match the server key."""

    status_code = 401
    error_type = ErrorType.UNAUTHORIZED

    def __init__(self, message: str = "Invalid API key") -> None:
        super().__init__(message)


class ServerStartError(GatewayError):
    """Raised when the HTTP listener cannot be started."""

    error_type = ErrorType.UNEXPECTED_ERROR


__all__ = [
    "GatewayError",
    "CredentialError",
    "CredentialNotFound",
    "CredentialCorrupt",
    "NoRefreshToken",
    "RefreshFailed",
    "UnknownProvider",
    "NoProviderAvailable",
    "UpstreamError",
    "MalformedRequest",
    "Unauthorized",
    "ServerStartError",
]
