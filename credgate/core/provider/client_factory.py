"""Client factory for creating and caching API client instances."""

from credgate.core.anthropic_client import AnthropicClient
from credgate.core.client import OpenAIClient
from credgate.core.credentials.models import Credential
from credgate.core.provider_config import Provider
from credgate.core.upstream_client import UpstreamClient


def resolve_base_url(provider: Provider, credential: Credential | None = None) -> str:
    """Base URL for a request, honouring a credential-supplied `resource_url`.

    Qwen logins record the API host in the credential file; it wins over the
    configured default.
    """
    if credential is not None and provider.uses_oauth:
        resource_url = credential.extra.get("resource_url")
        if resource_url:
            host = resource_url.split("://", 1)[-1].rstrip("/")
            return f"https://{host}/v1"
    return provider.base_url


class ClientFactory:
    """Creates and caches API client instances per provider.

    Responsibilities:
    - Create OpenAI/Anthropic clients based on api_format
    - Cache clients per provider and base URL

    Clients are cached to avoid creating new HTTP connections for each request.
    """

    def __init__(
        self,
        retry_backoff_seconds: float = 0.5,
        streaming_connect_timeout: float = 30.0,
    ) -> None:
        self.retry_backoff_seconds = retry_backoff_seconds
        self.streaming_connect_timeout = streaming_connect_timeout
        self._clients: dict[tuple[str, str], UpstreamClient] = {}

    def get_or_create_client(
        self, provider: Provider, credential: Credential | None = None
    ) -> UpstreamClient:
        base_url = resolve_base_url(provider, credential)
        cache_key = (provider.key, base_url)

        if cache_key not in self._clients:
            client_cls = AnthropicClient if provider.is_anthropic_format else OpenAIClient
            self._clients[cache_key] = client_cls(
                provider,
                base_url=base_url,
                retry_backoff_seconds=self.retry_backoff_seconds,
                streaming_connect_timeout=self.streaming_connect_timeout,
            )
        return self._clients[cache_key]

    async def aclose(self) -> None:
        clients, self._clients = list(self._clients.values()), {}
        for client in clients:
            await client.aclose()
