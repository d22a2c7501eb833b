import logging
import os
from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any

from rich.console import Console
from rich.table import Table

from credgate.core.credentials.models import Credential
from credgate.core.credentials.store import CredentialStore
from credgate.core.credentials.watcher import CredentialWatcher
from credgate.core.exceptions import CredentialError, MalformedRequest, NoProviderAvailable
from credgate.core.oauth.engine import TokenRefreshEngine
from credgate.core.oauth.http_client import HttpClient
from credgate.core.provider.client_factory import ClientFactory
from credgate.core.provider.default_selector import DefaultProviderSelector
from credgate.core.provider.failover import FailoverController
from credgate.core.provider.provider_config_loader import ProviderConfigLoader, ProviderLoadResult
from credgate.core.provider.provider_registry import ProviderRegistry
from credgate.core.provider_config import Provider
from credgate.core.upstream_client import UpstreamClient

if TYPE_CHECKING:
    from credgate.core.config.config import Config

_logger = logging.getLogger(__name__)

DEFAULT_PRIORITY = ("kiro", "gemini", "qwen", "openai", "claude")


class ProviderManager:
    """Wires the credential store, refresh engine, registry and failover together.

    One instance per process (created lazily by the config singleton);
    tests build their own with `ProviderManager.build(env=...)`.
    """

    def __init__(
        self,
        store: CredentialStore,
        engine: TokenRefreshEngine,
        loader: ProviderConfigLoader,
        default_provider: str = "kiro",
        default_source: str = "system",
        priority: Sequence[str] = DEFAULT_PRIORITY,
        failover_threshold: int = 3,
        failover_window_seconds: float = 300.0,
        watch_interval: float = 5.0,
        retry_backoff_seconds: float = 0.5,
        streaming_connect_timeout: float = 30.0,
    ) -> None:
        self.store = store
        self.engine = engine
        self.loader = loader
        self.default_provider = default_provider
        self.default_source = default_source
        self.clients = ClientFactory(
            retry_backoff_seconds=retry_backoff_seconds,
            streaming_connect_timeout=streaming_connect_timeout,
        )
        self.registry = ProviderRegistry(
            store,
            loader.load_all(),
            priority=priority,
            model_fetcher=self.fetch_models,
        )
        self.failover = FailoverController(
            self.registry,
            store,
            threshold=failover_threshold,
            window_seconds=failover_window_seconds,
        )
        self.watcher = CredentialWatcher(store, interval=watch_interval)
        self._started = False

    @classmethod
    def build(
        cls,
        env: Mapping[str, str] | None = None,
        http_client: HttpClient | None = None,
        **kwargs: Any,
    ) -> "ProviderManager":
        """Manager reading provider settings from `env` (defaults to os.environ)."""
        source = os.environ if env is None else env
        timeout = kwargs.pop("timeout", 90)
        max_retries = kwargs.pop("max_retries", 2)
        store = CredentialStore(env=source)
        return cls(
            store=store,
            engine=TokenRefreshEngine(store, http_client=http_client, env=source),
            loader=ProviderConfigLoader(env=source, timeout=timeout, max_retries=max_retries),
            **kwargs,
        )

    @classmethod
    def from_config(cls, config: "Config") -> "ProviderManager":
        return cls.build(
            env=config.environ,
            default_provider=config.default_provider,
            default_source=config.default_provider_source,
            priority=config.provider_priority,
            failover_threshold=config.failover_threshold,
            failover_window_seconds=config.failover_window_seconds,
            watch_interval=config.credential_watch_interval,
            retry_backoff_seconds=config.retry_backoff_seconds,
            streaming_connect_timeout=config.streaming_connect_timeout,
            timeout=config.request_timeout,
            max_retries=config.max_retries,
        )

    # Lifecycle

    async def startup(self, watch: bool = True) -> None:
        """Load credentials, pick the startup default and start the watcher."""
        if not self._started:
            await self.store.load_all()
            self.initialize_default()
            self._started = True
        if watch:
            self.watcher.start()

    async def shutdown(self) -> None:
        await self.watcher.stop()
        await self.clients.aclose()
        await self.engine.aclose()

    def initialize_default(self) -> str | None:
        selector = DefaultProviderSelector(self.default_provider, self.default_source)
        selected = selector.select(self.registry.list_keys()) or self.default_provider
        self.registry.selection.set(selected)
        return selected

    def apply_default_provider(self, key: str, source: str = "file") -> None:
        """Re-apply a configured default after a config reload."""
        self.default_provider = key
        self.default_source = source
        if self.registry.get_default() == key:
            return
        if key in self.registry.list_keys():
            self.registry.set_default(key)
        else:
            _logger.warning(f"Configured default provider '{key}' is not available; keeping current")

    # Credentials

    async def credential_for(self, provider: Provider) -> Credential | None:
        """Usable credential for an OAuth provider (None for API-key providers).

        An invalid credential gets one synchronous refresh; a valid one that is
        about to expire is refreshed opportunistically.

        Raises:
            CredentialError: If the credential cannot be made valid
        """
        if not provider.uses_oauth:
            return None
        credential = self.store.get(provider.key)
        if not credential.valid:
            return await self.engine.refresh(provider.key)
        return await self.engine.refresh_if_expiring(provider.key)

    async def reload_credentials(self) -> dict[str, Credential]:
        """Re-read every credential file; also revalidates API-key providers."""
        results = await self.store.load_all()
        for provider in self.registry.all():
            if not provider.uses_oauth:
                self.failover.revalidate(provider.key)
        if self.registry.get_default() not in self.registry.list_keys():
            self.initialize_default()
        return results

    async def refresh_credentials(self, provider_id: str) -> Credential:
        """Force a token exchange for an OAuth provider.

        Raises:
            UnknownProvider: If the provider is not configured
            MalformedRequest: If the provider authenticates with an API key
            CredentialError: If the refresh fails
        """
        provider = self.registry.get(provider_id)
        if not provider.uses_oauth:
            raise MalformedRequest(f"Provider '{provider_id}' uses an API key; there is no token to refresh")
        return await self.engine.refresh(provider_id)

    # Clients

    def get_client(self, provider: Provider, credential: Credential | None = None) -> UpstreamClient:
        return self.clients.get_or_create_client(provider, credential)

    def token_for(self, provider: Provider, credential: Credential | None) -> str | None:
        if provider.uses_oauth:
            return credential.access_token if credential else None
        return provider.api_key

    async def fetch_models(self, provider: Provider) -> list[str]:
        """Model fetcher used by the registry; needs a usable credential."""
        credential = None
        if provider.uses_oauth:
            credential = self.store.get(provider.key)
            if not credential.valid:
                raise CredentialError(provider.key, "credential not valid")
        client = self.get_client(provider, credential)
        return await client.list_models(self.token_for(provider, credential))

    # Routing

    def select_provider(self, model: str, exclude: str | None = None) -> tuple[Provider, str]:
        """Pick the provider for a request model.

        Suspended (or excluded) providers are skipped in favour of the default
        and then the next ACTIVE provider in priority order.

        Raises:
            NoProviderAvailable: If every available provider is suspended
        """
        key, upstream_model = self.registry.find_provider_for_model(model)
        candidates = [key] if key else []
        candidates.append(self.registry.get_default())
        for candidate in candidates:
            if (
                candidate
                and candidate != exclude
                and self.registry.is_available(candidate)
                and not self.failover.is_suspended(candidate)
            ):
                return self.registry.get(candidate), upstream_model

        fallback = self.failover.next_active(exclude=exclude)
        if fallback is None:
            raise NoProviderAvailable()
        return self.registry.get(fallback), upstream_model

    # Reporting

    def get_load_results(self) -> list[ProviderLoadResult]:
        return self.loader.load_results

    def print_provider_summary(self, console: Console | None = None) -> None:
        """Print a summary of loaded providers"""
        console = console or Console()
        default = self.registry.get_default()

        table = Table(title="📊 Providers", show_lines=False)
        table.add_column("Status")
        table.add_column("Name")
        table.add_column("Kind")
        table.add_column("Format")
        table.add_column("Base URL / message")

        ready = 0
        for result in self.get_load_results():
            name = f"[green]{result.name} *[/green]" if result.name == default else result.name
            if result.status != "success":
                table.add_row("⚠️", name, "", "", result.message or "")
                continue
            provider = self.registry.get(result.name)
            available = self.registry.is_available(provider.key)
            ready += int(available)
            status = "✅" if available else "⏳"
            detail = result.base_url or ""
            if provider.uses_oauth and not available:
                detail = f"no credential at {self.store.get(provider.key).source_path}"
            table.add_row(status, name, provider.kind, provider.api_format, detail)

        console.print(table)
        console.print(f"{ready} provider{'s' if ready != 1 else ''} ready for requests  (* = default)")
