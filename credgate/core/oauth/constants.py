"""
Centralized constants for the token refresh engine.

Constants are grouped by:
- Configurable defaults: Values users may want to override
- Provider endpoints: Fixed by each provider's OAuth contract
- Protocol constants: Fixed by OAuth/JWT specifications
"""

from __future__ import annotations

# =============================================================================
# CONFIGURABLE DEFAULTS
# =============================================================================


class TokenRefreshDefaults:
    """Default values for token refresh behavior.

    - 300s threshold: refresh a token that expires within 5 minutes
    - 30s HTTP timeout: token endpoints answer quickly or not at all
    """

    REFRESH_THRESHOLD_SECONDS = 300
    HTTP_REQUEST_TIMEOUT = 30.0


# =============================================================================
# PROVIDER ENDPOINTS
# =============================================================================


class KiroEndpoints:
    """Kiro token endpoints.

    Social logins refresh against the Kiro desktop auth service; IAM Identity
    Center (IdC) logins refresh against the regional AWS SSO OIDC service.
    """

    DEFAULT_REGION = "us-east-1"
    DEFAULT_AUTH_METHOD = "social"
    SOCIAL_REFRESH_URL = "https://prod.{region}.auth.desktop.kiro.dev/refreshToken"
    IDC_REFRESH_URL = "https://oidc.{region}.amazonaws.com/token"


class GeminiOAuth:
    """Google OAuth token endpoint used by the Gemini CLI login.

    Client credentials are read from GEMINI_OAUTH_CLIENT_ID and
    GEMINI_OAUTH_CLIENT_SECRET.
    """

    TOKEN_URL = "https://oauth2.googleapis.com/token"
    CLIENT_ID_ENV = "GEMINI_OAUTH_CLIENT_ID"
    CLIENT_SECRET_ENV = "GEMINI_OAUTH_CLIENT_SECRET"


class QwenOAuth:
    """Qwen OAuth token endpoint (public client, no secret)."""

    TOKEN_URL = "https://chat.qwen.ai/api/v1/oauth2/token"
    CLIENT_ID_ENV = "QWEN_OAUTH_CLIENT_ID"
    DEFAULT_CLIENT_ID = "f0304373b74a44d2b584a3fb70ca9e56"


# =============================================================================
# PROTOCOL CONSTANTS
# =============================================================================


class OAuthProtocol:
    """OAuth 2.0 protocol constants (RFC 6749)."""

    GRANT_TYPE_REFRESH = "refresh_token"
    CONTENT_TYPE_FORM = "application/x-www-form-urlencoded"
    CONTENT_TYPE_JSON = "application/json"


class JwtProtocol:
    """JWT format constants (RFC 7519)."""

    # A JWT has 3 parts separated by 2 dots: header.payload.signature
    JWT_PART_COUNT = 2

    # Base64url encoding pads to multiples of 4
    BASE64_PADDING_LENGTH = 4


__all__ = [
    "TokenRefreshDefaults",
    "KiroEndpoints",
    "GeminiOAuth",
    "QwenOAuth",
    "OAuthProtocol",
    "JwtProtocol",
]
