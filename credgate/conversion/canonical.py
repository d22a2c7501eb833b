"""Canonical request shape shared by both public wire formats.

Both `/v1/chat/completions` and `/v1/messages` bodies are parsed into a
PendingRequest; the request converter renders it in the upstream's native
format, and `wire` remembers which shape the caller expects back.
"""

from dataclasses import dataclass
from enum import Enum


class WireFormat(str, Enum):
    CHAT = "chat"  # OpenAI chat-completion shape
    MESSAGES = "messages"  # Anthropic message shape

    @property
    def api_format(self) -> str:
        return "openai" if self is WireFormat.CHAT else "anthropic"


@dataclass(frozen=True)
class CanonicalMessage:
    role: str  # "user" or "assistant"
    content: str


@dataclass(frozen=True)
class PendingRequest:
    """One inbound request, independent of the wire format it arrived in."""

    wire: WireFormat
    model: str
    messages: tuple[CanonicalMessage, ...]
    max_tokens: int
    stream: bool = False
    system: str | None = None
    temperature: float | None = None
    top_p: float | None = None
    stop_sequences: tuple[str, ...] = ()
