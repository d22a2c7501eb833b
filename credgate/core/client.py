"""Client for OpenAI-compatible chat completion APIs."""

from credgate.core.upstream_client import UpstreamClient


class OpenAIClient(UpstreamClient):
    """Client for OpenAI-format upstreams (`/chat/completions`, `/models`).

    Both OAuth tokens and API keys go in the Authorization header.
    """

    chat_path = "/chat/completions"
    models_path = "/models"

    def build_headers(self, token: str | None) -> dict[str, str]:
        headers = {"content-type": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers
