"""
Token refresh for the OAuth-session providers.

Public API:
    TokenRefreshEngine: refresh with per-provider coalescing
    HttpClient, HttpxHttpClient, MockHttpClient: token endpoint transport
    parse_jwt_claims, get_token_expiry: expiry recovery from JWT access tokens
"""

from .engine import TokenRefreshEngine
from .http_client import HttpClient, HttpError, HttpxHttpClient, MockHttpClient
from .jwt import get_token_expiry, parse_jwt_claims
from .refreshers import REFRESHERS, RefreshedTokens, TokenRefresher, TokenResponseError

__all__ = [
    "TokenRefreshEngine",
    "HttpClient",
    "HttpError",
    "HttpxHttpClient",
    "MockHttpClient",
    "REFRESHERS",
    "RefreshedTokens",
    "TokenRefresher",
    "TokenResponseError",
    "get_token_expiry",
    "parse_jwt_claims",
]
