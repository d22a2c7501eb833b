"""Provider registry for storing and querying provider configurations."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Iterable, Sequence

from credgate.core.credentials.store import CredentialStore
from credgate.core.exceptions import UnknownProvider
from credgate.core.provider.default_selector import DefaultProviderSelection, DefaultSnapshot
from credgate.core.provider_config import Provider

_logger = logging.getLogger(__name__)

ModelFetcher = Callable[[Provider], Awaitable[list[str]]]


class ProviderRegistry:
    """Central registry of configured providers and their model catalogs.

    Responsibilities:
    - Store provider definitions in priority order
    - Report which providers are available (OAuth credential loaded, or API key set)
    - Hold the process-wide default provider pointer
    - Cache upstream model lists, falling back to the static catalog
    """

    def __init__(
        self,
        store: CredentialStore,
        providers: Iterable[Provider] = (),
        priority: Sequence[str] = (),
        model_fetcher: ModelFetcher | None = None,
        selection: DefaultProviderSelection | None = None,
    ) -> None:
        self._store = store
        self._configs: dict[str, Provider] = {}
        self._priority_hint = tuple(priority)
        self._model_fetcher = model_fetcher
        self.selection = selection or DefaultProviderSelection()
        self._model_cache: dict[str, list[str]] = {}
        self._model_fetches: dict[str, asyncio.Future[list[str]]] = {}
        for provider in providers:
            self.register(provider)

    def register(self, config: Provider) -> None:
        self._configs[config.key] = config

    def clear(self) -> None:
        """Clear all registered providers (primarily useful for testing)."""
        self._configs.clear()
        self._model_cache.clear()

    # Queries

    def get(self, key: str) -> Provider:
        """Provider definition by key.

        Raises:
            UnknownProvider: If no provider with that key is configured
        """
        try:
            return self._configs[key]
        except KeyError:
            raise UnknownProvider(key, self.list_keys()) from None

    def exists(self, key: str) -> bool:
        return key in self._configs

    @property
    def priority(self) -> list[str]:
        """Configured priority order, with any other registered provider appended."""
        ordered = [key for key in self._priority_hint if key in self._configs]
        ordered.extend(key for key in self._configs if key not in ordered)
        return ordered

    def is_available(self, key: str) -> bool:
        provider = self._configs.get(key)
        if provider is None:
            return False
        if provider.uses_oauth:
            return self._store.get(key).loaded
        return bool(provider.api_key)

    def list(self) -> list[Provider]:
        """Providers that can be selected right now, in priority order."""
        return [self._configs[key] for key in self.priority if self.is_available(key)]

    def list_keys(self) -> list[str]:
        return [provider.key for provider in self.list()]

    def all(self) -> list[Provider]:
        """Every registered provider in priority order, available or not."""
        return [self._configs[key] for key in self.priority]

    # Default provider

    def get_default(self) -> str | None:
        return self.selection.get()

    def default_snapshot(self) -> DefaultSnapshot:
        return self.selection.snapshot()

    def set_default(self, key: str) -> DefaultSnapshot:
        """Make `key` the default provider.

        Raises:
            UnknownProvider: If `key` is not an available provider; the
                current selection is left untouched
        """
        key = key.lower()
        available = self.list_keys()
        if key not in available:
            raise UnknownProvider(key, available)
        previous = self.selection.get()
        snapshot = self.selection.set(key)
        if previous != key:
            _logger.info(f"Default provider changed: {previous} -> {key}")
        return snapshot

    # Model catalogs

    def catalog(self, key: str) -> list[str]:
        """Cached upstream models, or the static catalog (never does I/O)."""
        cached = self._model_cache.get(key)
        if cached is not None:
            return list(cached)
        return list(self.get(key).models)

    async def models_of(self, key: str) -> list[str]:
        """Upstream model list, fetched once per provider and cached.

        Concurrent calls for the same provider share one fetch. Any fetch
        error falls back to the static catalog, which is not cached so the
        next call tries again.
        """
        provider = self.get(key)
        cached = self._model_cache.get(key)
        if cached is not None:
            return list(cached)
        if self._model_fetcher is None:
            return list(provider.models)

        pending = self._model_fetches.get(key)
        if pending is None:
            pending = asyncio.ensure_future(self._fetch_models(provider))
            self._model_fetches[key] = pending

            def _forget(done: "asyncio.Future[list[str]]") -> None:
                if self._model_fetches.get(key) is done:
                    del self._model_fetches[key]

            pending.add_done_callback(_forget)
        return list(await asyncio.shield(pending))

    async def _fetch_models(self, provider: Provider) -> list[str]:
        assert self._model_fetcher is not None
        try:
            models = await self._model_fetcher(provider)
        except Exception as e:
            _logger.warning(f"Model list fetch for '{provider.key}' failed, using static catalog: {e}")
            return list(provider.models)
        if not models:
            return list(provider.models)
        self._model_cache[provider.key] = list(models)
        return list(models)

    def refresh_models(self, key: str | None = None) -> None:
        """Invalidate the cached model list of one provider (or all)."""
        if key is None:
            self._model_cache.clear()
        else:
            self.get(key)
            self._model_cache.pop(key, None)

    def find_provider_for_model(self, model: str) -> tuple[str | None, str]:
        """Route a requested model name to a provider.

        Returns `(provider_key, upstream_model)`. A `provider:model` prefix
        naming a registered provider pins that provider. Otherwise the first
        available provider whose catalog lists the model wins, preferring the
        default provider. `(None, model)` means "use the default".
        """
        if ":" in model:
            prefix, rest = model.split(":", 1)
            if prefix.lower() in self._configs and rest:
                return prefix.lower(), rest

        candidates = [provider.key for provider in self.list() if model in self.catalog(provider.key)]
        if not candidates:
            return None, model
        default = self.get_default()
        if default in candidates:
            return default, model
        return candidates[0], model
