"""Lazy initialization for the provider manager.

The manager is initialized on first access to avoid circular imports
between the config singleton and the modules that read it.
"""

import threading
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from credgate.core.config.config import Config
    from credgate.core.provider_manager import ProviderManager


class LazyManagers:
    """Lazy initialization for manager singletons.

    Thread-safety is ensured via threading.Lock; the double-check pattern
    is used to minimize lock contention.
    """

    def __init__(self, config: "Config") -> None:
        self._config = config
        self._provider_manager: ProviderManager | None = None
        self._provider_manager_lock = threading.Lock()

    @property
    def provider_manager(self) -> "ProviderManager":
        """Get or create the provider manager.

        Thread-safe: Uses double-check locking pattern to ensure only one
        instance is created even under concurrent access.
        """
        if self._provider_manager is None:
            with self._provider_manager_lock:
                # Double-check: another thread may have initialized while we waited
                if self._provider_manager is None:
                    from credgate.core.provider_manager import ProviderManager

                    self._provider_manager = ProviderManager.from_config(self._config)

        return self._provider_manager
