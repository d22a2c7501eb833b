"""Error type enumeration for credgate.

Provides type-safe error categorization for error responses and logs.
"""

from enum import Enum


class ErrorType(str, Enum):
    """Machine-readable error codes returned in error bodies.

    These error types are used throughout the codebase for:
    - the `type`/`code` field of structured JSON error bodies
    - SSE error events emitted when a stream fails after it started
    - log lines on the conversation logger

    When adding new error types:
    1. Add the enum value here
    2. Map the exception that carries it in core/exceptions.py
    """

    # Request lifecycle errors
    CANCELLED = "cancelled"  # Request cancelled by client or server
    CLIENT_DISCONNECT = "client_disconnect"  # Client disconnected mid-stream

    # Caller errors
    UNAUTHORIZED = "unauthorized"  # Missing or wrong server API key
    MALFORMED_REQUEST = "malformed_request"  # Body is not a valid wire request
    UNKNOWN_PROVIDER = "unknown_provider"  # Provider key not configured

    # Credential errors
    CREDENTIAL_NOT_FOUND = "credential_not_found"  # Credential file missing
    CREDENTIAL_CORRUPT = "credential_corrupt"  # Credential file unparseable
    NO_REFRESH_TOKEN = "no_refresh_token"  # Credential cannot be refreshed
    REFRESH_FAILED = "refresh_failed"  # Token exchange failed

    # Routing errors
    NO_PROVIDER_AVAILABLE = "no_provider_available"  # Every provider exhausted

    # Upstream errors
    UPSTREAM_ERROR = "upstream_error"  # Generic upstream error
    UPSTREAM_TIMEOUT = "upstream_timeout"  # Upstream provider timeout
    RATE_LIMIT = "rate_limit"  # Upstream quota or rate limit exceeded
    AUTH_ERROR = "auth_error"  # Upstream rejected our credential

    # Streaming errors
    STREAMING_ERROR = "streaming_error"  # Upstream stream broke after it started

    # Catch-all
    UNEXPECTED_ERROR = "unexpected_error"  # Unhandled/unexpected error
