"""Status and query interface for the settings UI layer.

Everything the external configuration UI needs goes through here: listener
status, the default provider, credential reloads and refreshes, and the
(masked) environment of a provider. The admin HTTP routes and the CLI are
thin wrappers over this class.
"""

import os
from collections.abc import Mapping
from typing import Any

from credgate.core.credentials.masking import is_secret_key, mask_secret
from credgate.core.credentials.models import EnvVariable
from credgate.core.provider_manager import ProviderManager
from credgate.core.server import GatewayServer


class StatusService:
    def __init__(
        self,
        server: GatewayServer,
        manager: ProviderManager,
        env: Mapping[str, str] | None = None,
    ) -> None:
        self.server = server
        self.manager = manager
        self._env = os.environ if env is None else env

    def get_status(self) -> dict[str, Any]:
        status = self.server.status().to_dict()
        status["default_provider"] = self.manager.registry.get_default()
        status["providers"] = self.manager.registry.list_keys()
        status["failover"] = self.manager.failover.snapshot()
        return status

    def get_default_provider(self) -> str | None:
        return self.manager.registry.get_default()

    def set_default_provider(self, key: str) -> str:
        """Raises UnknownProvider (selection untouched) if `key` is not available."""
        return self.manager.registry.set_default(key).key or key

    def list_providers(self) -> list[dict[str, Any]]:
        registry = self.manager.registry
        default = registry.get_default()
        rows = []
        for provider in registry.all():
            row: dict[str, Any] = {
                "key": provider.key,
                "label": provider.label,
                "kind": provider.kind,
                "api_format": provider.api_format,
                "base_url": provider.base_url,
                "available": registry.is_available(provider.key),
                "default": provider.key == default,
                "state": self.manager.failover.state(provider.key).value,
                "models": registry.catalog(provider.key),
            }
            if provider.uses_oauth:
                row["credential"] = self.manager.store.get(provider.key).summary()
            rows.append(row)
        return rows

    async def reload_credentials(self) -> dict[str, dict[str, Any]]:
        results = await self.manager.reload_credentials()
        return {provider_id: credential.summary() for provider_id, credential in results.items()}

    async def refresh_credentials(self, provider: str) -> dict[str, Any]:
        """Force a token refresh; raises CredentialError subclasses on failure."""
        credential = await self.manager.refresh_credentials(provider)
        return credential.summary()

    def list_env_variables(self, provider: str, reveal: bool = False) -> list[EnvVariable]:
        """Environment and credential values of one provider, secrets masked.

        Raises:
            UnknownProvider: If the provider is not configured
        """
        definition = self.manager.registry.get(provider)
        prefix = f"{provider.upper()}_"
        rows = [
            self._row(key, value, reveal)
            for key, value in sorted(self._env.items())
            if key.startswith(prefix) and value
        ]

        if definition.uses_oauth:
            credential = self.manager.store.get(provider)
            rows.append(EnvVariable("creds_path", credential.source_path, False))
            if credential.access_token:
                rows.append(self._row("access_token", credential.access_token, reveal))
            if credential.refresh_token:
                rows.append(self._row("refresh_token", credential.refresh_token, reveal))
            if credential.expires_at:
                rows.append(EnvVariable("expires_at", credential.expires_at.isoformat(), False))
            for key, value in sorted(credential.extra.items()):
                rows.append(self._row(key, value, reveal))
        return rows

    @staticmethod
    def _row(key: str, value: str, reveal: bool) -> EnvVariable:
        if reveal or not is_secret_key(key):
            return EnvVariable(key, value, False)
        return EnvVariable(key, mask_secret(value), True)

