"""Anthropic API client.

Talks to Anthropic-compatible Messages APIs (`/v1/messages`). Requests are
already in Anthropic format when they reach this client; conversion from the
chat-completion shape happens in credgate.conversion.
"""

from credgate.core.upstream_client import UpstreamClient

ANTHROPIC_VERSION = "2023-06-01"


class AnthropicClient(UpstreamClient):
    """Client for Anthropic-format upstreams.

    API-key providers authenticate with `x-api-key`; OAuth providers (kiro)
    send their access token as a bearer token.
    """

    chat_path = "/v1/messages"
    models_path = "/v1/models"

    def build_headers(self, token: str | None) -> dict[str, str]:
        headers = {
            "content-type": "application/json",
            "anthropic-version": ANTHROPIC_VERSION,
        }
        if token:
            if self.provider.uses_oauth:
                headers["Authorization"] = f"Bearer {token}"
            else:
                headers["x-api-key"] = token
        return headers
