"""Provider configuration loading from environment variables."""

import hashlib
import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass

from credgate.core.provider_config import API_FORMATS, Provider


@dataclass
class ProviderLoadResult:
    """Result of loading a provider configuration."""

    name: str
    status: str  # "success", "partial"
    message: str | None = None
    api_key_hash: str | None = None
    base_url: str | None = None


@dataclass(frozen=True)
class BuiltinProvider:
    """Defaults of a provider credgate knows out of the box."""

    key: str
    kind: str
    label: str
    api_format: str
    base_url: str | None
    models: tuple[str, ...]


BUILTIN_PROVIDERS: dict[str, BuiltinProvider] = {
    builtin.key: builtin
    for builtin in (
        BuiltinProvider(
            key="kiro",
            kind="oauth",
            label="Kiro",
            api_format="anthropic",
            base_url=None,  # must come from KIRO_BASE_URL
            models=("claude-sonnet-4-5", "claude-sonnet-4", "claude-haiku-4-5", "claude-3-7-sonnet"),
        ),
        BuiltinProvider(
            key="gemini",
            kind="oauth",
            label="Gemini",
            api_format="openai",
            base_url="https://generativelanguage.googleapis.com/v1beta/openai",
            models=("gemini-2.5-pro", "gemini-2.5-flash"),
        ),
        BuiltinProvider(
            key="qwen",
            kind="oauth",
            label="Qwen",
            api_format="openai",
            base_url="https://dashscope.aliyuncs.com/compatible-mode/v1",
            models=("qwen3-coder-plus", "qwen3-coder-flash"),
        ),
        BuiltinProvider(
            key="openai",
            kind="api_key",
            label="OpenAI",
            api_format="openai",
            base_url="https://api.openai.com/v1",
            models=("gpt-4o", "gpt-4o-mini"),
        ),
        BuiltinProvider(
            key="claude",
            kind="api_key",
            label="Claude",
            api_format="anthropic",
            base_url="https://api.anthropic.com",
            models=("claude-sonnet-4-5", "claude-opus-4-1"),
        ),
    )
}

# Prefixes of *_API_KEY variables that never name an upstream provider
_RESERVED_KEY_PREFIXES = ("CREDGATE_", "CUSTOM_")


def get_api_key_hash(api_key: str) -> str:
    """Return first 8 chars of sha256 hash"""
    return hashlib.sha256(api_key.encode()).hexdigest()[:8]


class ProviderConfigLoader:
    """Loads provider configurations from environment variables.

    Responsibilities:
    - Define the built-in OAuth and API-key providers
    - Scan environment for custom {PROVIDER}_API_KEY patterns
    - Apply {PROVIDER}_BASE_URL / _API_FORMAT / _MODELS overrides
    - Parse provider-specific headers
    """

    def __init__(
        self,
        env: Mapping[str, str] | None = None,
        timeout: int = 90,
        max_retries: int = 2,
    ) -> None:
        self._env = os.environ if env is None else env
        self._timeout = timeout
        self._max_retries = max_retries
        self._logger = logging.getLogger(__name__)
        self._load_results: list[ProviderLoadResult] = []

    @property
    def load_results(self) -> list[ProviderLoadResult]:
        return list(self._load_results)

    def scan_custom_providers(self) -> list[str]:
        """Names (lowercase) of custom providers that have an API key set."""
        providers = []
        for env_key, env_value in self._env.items():
            if not env_key.endswith("_API_KEY") or not env_value:
                continue
            if env_key.startswith(_RESERVED_KEY_PREFIXES):
                continue
            provider_name = env_key[:-8].lower()  # Remove "_API_KEY" suffix
            if provider_name and provider_name not in BUILTIN_PROVIDERS:
                providers.append(provider_name)
        return sorted(providers)

    def get_custom_headers(self, provider_prefix: str) -> dict[str, str]:
        """Extract provider-specific custom headers from environment.

        `OPENAI_CUSTOM_HEADER_X_TEAM=abc` becomes the header `X-TEAM: abc`.
        """
        custom_headers = {}
        prefix = f"{provider_prefix.upper()}_CUSTOM_HEADER_"
        for env_key, env_value in self._env.items():
            if env_key.startswith(prefix):
                header_name = env_key[len(prefix) :]
                if header_name:
                    custom_headers[header_name.replace("_", "-")] = env_value
        return custom_headers

    def get_models(self, provider_name: str, default: tuple[str, ...] = ()) -> tuple[str, ...]:
        raw = self._env.get(f"{provider_name.upper()}_MODELS")
        if not raw:
            return default
        return tuple(model.strip() for model in raw.split(",") if model.strip())

    def _api_format(self, provider_name: str, default: str) -> str:
        api_format = self._env.get(f"{provider_name.upper()}_API_FORMAT", default).lower()
        if api_format not in API_FORMATS:
            self._logger.warning(
                f"Invalid {provider_name.upper()}_API_FORMAT '{api_format}', using '{default}'"
            )
            return default
        return api_format

    def load_provider(self, provider_name: str) -> Provider | None:
        """Load a single provider; returns None (with a load result) if unusable."""
        provider_upper = provider_name.upper()
        builtin = BUILTIN_PROVIDERS.get(provider_name)
        kind = builtin.kind if builtin else "api_key"

        api_key = None
        if kind == "api_key":
            api_key = self._env.get(f"{provider_upper}_API_KEY") or None
            if not api_key:
                # Skip entirely if no API key - don't even track it
                return None

        base_url = self._env.get(f"{provider_upper}_BASE_URL") or (builtin.base_url if builtin else None)
        if not base_url:
            self._load_results.append(
                ProviderLoadResult(
                    name=provider_name,
                    status="partial",
                    message=f"Missing {provider_upper}_BASE_URL",
                    api_key_hash=get_api_key_hash(api_key) if api_key else None,
                )
            )
            return None

        provider = Provider(
            key=provider_name,
            kind=kind,
            label=builtin.label if builtin else provider_name,
            base_url=base_url,
            api_format=self._api_format(provider_name, builtin.api_format if builtin else "openai"),
            api_key=api_key,
            models=self.get_models(provider_name, builtin.models if builtin else ()),
            timeout=self._timeout,
            max_retries=self._max_retries,
            custom_headers=self.get_custom_headers(provider_upper),
        )
        self._load_results.append(
            ProviderLoadResult(
                name=provider_name,
                status="success",
                api_key_hash=get_api_key_hash(api_key) if api_key else None,
                base_url=provider.base_url,
            )
        )
        return provider

    def load_all(self) -> list[Provider]:
        """Load built-in providers followed by custom ones."""
        self._load_results = []
        providers = []
        for provider_name in [*BUILTIN_PROVIDERS, *self.scan_custom_providers()]:
            provider = self.load_provider(provider_name)
            if provider is not None:
                providers.append(provider)
        self._logger.debug(f"Loaded providers: {[p.key for p in providers]}")
        return providers
