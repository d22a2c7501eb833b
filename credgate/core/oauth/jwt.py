"""
JWT parsing utilities for provider access tokens.

Used to recover a token's expiry when the token endpoint does not return
`expires_in`. These functions do NOT verify JWT signatures: the tokens come
straight from the provider's token endpoint and only their `exp` claim is read.
"""

import base64
import binascii
import json
from datetime import datetime, timezone
from typing import Any

from .constants import JwtProtocol


def parse_jwt_claims(token: str) -> dict[str, Any]:
    """Parse JWT payload without signature verification.

    Args:
        token: JWT token string (format: header.payload.signature)

    Returns:
        Parsed claims dictionary

    Raises:
        ValueError: If token is malformed or not a valid JWT
    """
    if not token:
        raise ValueError("Token is empty")

    if token.count(".") != JwtProtocol.JWT_PART_COUNT:
        raise ValueError(f"Invalid JWT format: expected 2 dots, got {token.count('.')}")

    try:
        _, payload, _ = token.split(".")

        # Add padding if needed (base64url may omit trailing =)
        padded = payload + "=" * (-len(payload) % JwtProtocol.BASE64_PADDING_LENGTH)
        data = base64.urlsafe_b64decode(padded.encode())
        claims = json.loads(data.decode())
    except (ValueError, binascii.Error) as e:
        raise ValueError(f"Failed to decode JWT payload: {e}") from e

    if not isinstance(claims, dict):
        raise ValueError("JWT payload is not a JSON object")
    return claims


def get_token_expiry(token: str) -> datetime | None:
    """Expiry of a JWT access token, or None if it is not a JWT or has no `exp`."""
    try:
        claims = parse_jwt_claims(token)
    except ValueError:
        return None

    exp = claims.get("exp")
    if not isinstance(exp, int | float) or isinstance(exp, bool):
        return None
    return datetime.fromtimestamp(exp, tz=timezone.utc)
