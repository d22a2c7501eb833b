"""Provider management components.

This package contains focused components that the ProviderManager wires
together:
- ProviderConfigLoader: built-in and custom provider definitions from the environment
- ProviderRegistry: available providers, model catalogs and the default pointer
- DefaultProviderSelection / DefaultProviderSelector: the default provider
- FailoverController: quota/auth-triggered provider suspension and default swap
- ClientFactory: upstream client instances
"""

from credgate.core.provider.client_factory import ClientFactory, resolve_base_url
from credgate.core.provider.default_selector import (
    DefaultProviderSelection,
    DefaultProviderSelector,
    DefaultSnapshot,
)
from credgate.core.provider.failover import FailoverController, ProviderState, classify_failure
from credgate.core.provider.provider_config_loader import (
    BUILTIN_PROVIDERS,
    ProviderConfigLoader,
    ProviderLoadResult,
)
from credgate.core.provider.provider_registry import ProviderRegistry

__all__ = [
    "BUILTIN_PROVIDERS",
    "ClientFactory",
    "DefaultProviderSelection",
    "DefaultProviderSelector",
    "DefaultSnapshot",
    "FailoverController",
    "ProviderConfigLoader",
    "ProviderLoadResult",
    "ProviderRegistry",
    "ProviderState",
    "classify_failure",
    "resolve_base_url",
]
