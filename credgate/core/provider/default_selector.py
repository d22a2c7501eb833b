"""Default provider selection with intelligent fallback."""

import logging
import threading
from collections.abc import Sequence
from typing import NamedTuple


class DefaultSnapshot(NamedTuple):
    """The default provider pointer together with its version."""

    version: int
    key: str | None


class DefaultProviderSelection:
    """Process-wide default provider pointer.

    Readers get the `(version, key)` pair as one object, so they never see a
    key from one write and a version from another. Writers bump the version;
    `compare_and_set` only writes if nobody else wrote since the caller read.
    """

    def __init__(self, key: str | None = None) -> None:
        self._lock = threading.Lock()
        self._current = DefaultSnapshot(0, key)

    def get(self) -> str | None:
        return self._current.key

    def snapshot(self) -> DefaultSnapshot:
        return self._current

    def set(self, key: str) -> DefaultSnapshot:
        with self._lock:
            self._current = DefaultSnapshot(self._current.version + 1, key)
            return self._current

    def compare_and_set(self, expected_version: int, key: str) -> bool:
        """Swap to `key` only if the version is still `expected_version`."""
        with self._lock:
            if self._current.version != expected_version:
                return False
            self._current = DefaultSnapshot(expected_version + 1, key)
            return True


class DefaultProviderSelector:
    """Selects the startup default provider with intelligent fallback.

    Responsibilities:
    - Validate configured default provider
    - Fall back to first available provider if default unavailable
    - Return None (with a warning) if no providers are available yet, since
      OAuth credentials may appear later through the credential watcher
    """

    def __init__(self, default_provider: str, source: str = "system") -> None:
        """Initialize the default provider selector.

        Args:
            default_provider: The configured default provider name.
            source: Where the configured name came from ("system", "env", "file").
        """
        self._default = default_provider
        self._source = source
        self._actual_default: str | None = None

    def select(self, available_providers: Sequence[str]) -> str | None:
        """Select default provider from available providers (in priority order)."""
        logger = logging.getLogger(__name__)

        # If original default is available, use it
        if self._default in available_providers:
            self._actual_default = self._default
            return self._default

        if available_providers:
            selected = available_providers[0]
            self._actual_default = selected

            if self._source != "system":
                # User configured a default but it's not available
                logger.info(
                    f"Using '{selected}' as default provider "
                    f"(configured '{self._default}' not available)"
                )
            else:
                logger.info(f"Using '{selected}' as default provider (first available provider)")
            return selected

        logger.warning(
            "No providers available. Log in with a provider's CLI or set a provider API key "
            f"(e.g., {self._default.upper()}_API_KEY)."
        )
        return None

    @property
    def actual_default(self) -> str | None:
        """Get the actual default provider after selection."""
        return self._actual_default
