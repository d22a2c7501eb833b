"""Conversion between the OpenAI and Anthropic wire formats (text only)."""

from credgate.conversion.canonical import CanonicalMessage, PendingRequest, WireFormat
from credgate.conversion.request_converter import to_native_request
from credgate.conversion.response_converter import convert_response

__all__ = [
    "CanonicalMessage",
    "PendingRequest",
    "WireFormat",
    "convert_response",
    "to_native_request",
]
