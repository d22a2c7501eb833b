"""Secret masking for status queries."""

import re

MASK_PREFIX_LENGTH = 5
MASK_SUFFIX_LENGTH = 4
# Shorter values are fully starred; at this length six middle characters stay hidden
MASK_MIN_LENGTH = 15

_SECRET_KEY_PATTERN = re.compile(r"(TOKEN|SECRET|KEY|PASSWORD|CREDENTIAL)", re.IGNORECASE)


def mask_secret(value: str) -> str:
    """Keep a short prefix and suffix of a secret; fully star short values.

    >>> mask_secret("sk-ABCD1234WXYZ")
    'sk-AB...WXYZ'
    >>> mask_secret("abcdefghij")
    '**********'
    """
    if len(value) < MASK_MIN_LENGTH:
        return "*" * len(value)
    return f"{value[:MASK_PREFIX_LENGTH]}...{value[-MASK_SUFFIX_LENGTH:]}"


def is_secret_key(key: str) -> bool:
    """Whether a variable or field name holds secret material."""
    return bool(_SECRET_KEY_PATTERN.search(key))
