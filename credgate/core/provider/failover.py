"""Quota- and auth-triggered failover between providers.

Every provider starts ACTIVE. A quota or auth failure reported by the
gateway moves it to DEGRADED; enough consecutive failures inside the rolling
window, or a failed token refresh, move it to SUSPENDED. Time alone never
brings a provider back: it returns to ACTIVE only when the credential store
publishes a fresh valid credential for it (refresh success or manual reload),
or when an API-key provider is explicitly revalidated.

When the suspended provider is the current default, the next ACTIVE
provider in priority order becomes the default through compare-and-set, so
a concurrent manual change of the default is never overwritten.
"""

import logging
import threading
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from credgate.core.credentials.models import Credential
from credgate.core.credentials.store import CredentialStore
from credgate.core.provider.provider_registry import ProviderRegistry

_logger = logging.getLogger(__name__)

_QUOTA_MARKERS = ("quota", "rate limit", "rate_limit", "ratelimit", "too many requests", "resource_exhausted")


class ProviderState(str, Enum):
    ACTIVE = "active"
    DEGRADED = "degraded"
    SUSPENDED = "suspended"


class FailureKind(str, Enum):
    QUOTA = "quota"
    AUTH = "auth"


def classify_failure(status_code: int, body: str = "") -> FailureKind | None:
    """Whether an upstream error counts towards failover.

    429 and 400/403 bodies that talk about quota or rate limits are quota
    failures; other 401/403 are auth failures. Everything else (5xx, network,
    malformed requests) is not the provider's credential's fault.
    """
    lowered = (body or "").lower()
    mentions_quota = any(marker in lowered for marker in _QUOTA_MARKERS)
    if status_code == 429:
        return FailureKind.QUOTA
    if status_code in (400, 403) and mentions_quota:
        return FailureKind.QUOTA
    if status_code in (401, 403):
        return FailureKind.AUTH
    return None


@dataclass
class ProviderHealth:
    state: ProviderState = ProviderState.ACTIVE
    failures: deque[float] = field(default_factory=deque)
    last_error: str | None = None
    changed_at: float = field(default_factory=time.time)

    def to_dict(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "consecutive_failures": len(self.failures),
            "last_error": self.last_error,
            "changed_at": self.changed_at,
        }


class FailoverController:
    """Tracks provider health and moves the default provider off exhausted ones."""

    def __init__(
        self,
        registry: ProviderRegistry,
        store: CredentialStore | None = None,
        threshold: int = 3,
        window_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.registry = registry
        self.threshold = threshold
        self.window_seconds = window_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._health: dict[str, ProviderHealth] = {}
        if store is not None:
            store.add_listener(self.on_credential_replaced)

    def _entry(self, key: str) -> ProviderHealth:
        entry = self._health.get(key)
        if entry is None:
            entry = self._health[key] = ProviderHealth()
        return entry

    def state(self, key: str) -> ProviderState:
        with self._lock:
            entry = self._health.get(key)
            return entry.state if entry else ProviderState.ACTIVE

    def is_active(self, key: str) -> bool:
        return self.state(key) is ProviderState.ACTIVE

    def is_suspended(self, key: str) -> bool:
        return self.state(key) is ProviderState.SUSPENDED

    def snapshot(self) -> dict[str, dict[str, Any]]:
        with self._lock:
            health = {key: entry.to_dict() for key, entry in self._health.items()}
        return {
            provider.key: health.get(provider.key, ProviderHealth().to_dict())
            for provider in self.registry.all()
        }

    # Outcome reports

    def record_success(self, key: str) -> None:
        """A success resets the consecutive count; it does not restore ACTIVE."""
        with self._lock:
            entry = self._health.get(key)
            if entry is not None:
                entry.failures.clear()

    def record_failure(self, key: str, status_code: int, body: str = "") -> ProviderState:
        """Report an upstream error; returns the provider's resulting state."""
        kind = classify_failure(status_code, body)
        if kind is None:
            return self.state(key)

        now = self._clock()
        with self._lock:
            entry = self._entry(key)
            while entry.failures and now - entry.failures[0] > self.window_seconds:
                entry.failures.popleft()
            entry.failures.append(now)
            entry.last_error = f"{kind.value} failure (HTTP {status_code})"
            count = len(entry.failures)
            if entry.state is ProviderState.ACTIVE:
                self._transition(key, entry, ProviderState.DEGRADED)
            suspend = entry.state is not ProviderState.SUSPENDED and count >= self.threshold

        _logger.warning(
            f"⚠️ Provider '{key}' {kind.value} failure (HTTP {status_code}), "
            f"{count}/{self.threshold} in window"
        )
        if suspend:
            self.suspend(key, f"{count} consecutive {kind.value} failures")
        return self.state(key)

    def record_refresh_failure(self, key: str, reason: str = "token refresh failed") -> None:
        """A refresh failure means the credential is unusable: suspend at once."""
        self.suspend(key, reason)

    def suspend(self, key: str, reason: str) -> None:
        with self._lock:
            entry = self._entry(key)
            entry.last_error = reason
            if entry.state is ProviderState.SUSPENDED:
                return
            self._transition(key, entry, ProviderState.SUSPENDED)
        _logger.error(f"⛔ Provider '{key}' suspended: {reason}")
        self._move_default_off(key)

    def revalidate(self, key: str) -> None:
        """Return a provider to ACTIVE and forget its failures."""
        with self._lock:
            entry = self._health.get(key)
            if entry is None or entry.state is ProviderState.ACTIVE:
                if entry is not None:
                    entry.failures.clear()
                return
            entry.failures.clear()
            entry.last_error = None
            self._transition(key, entry, ProviderState.ACTIVE)
        _logger.info(f"♻️ Provider '{key}' revalidated and active again")

    def on_credential_replaced(self, credential: Credential) -> None:
        """Credential store listener."""
        if credential.valid:
            self.revalidate(credential.provider_id)
        elif credential.invalidated:
            self.suspend(credential.provider_id, credential.error or "credential invalidated")

    # Default handling

    def next_active(self, exclude: str | None = None) -> str | None:
        """First ACTIVE available provider in priority order."""
        for provider in self.registry.list():
            if provider.key != exclude and self.is_active(provider.key):
                return provider.key
        return None

    def _move_default_off(self, key: str) -> None:
        snapshot = self.registry.default_snapshot()
        if snapshot.key != key:
            return
        replacement = self.next_active(exclude=key)
        if replacement is None:
            _logger.error(f"No ACTIVE provider to replace suspended default '{key}'")
            return
        if self.registry.selection.compare_and_set(snapshot.version, replacement):
            _logger.warning(f"🔀 Failover: default provider '{key}' -> '{replacement}'")
        else:
            _logger.info(f"Default provider changed concurrently; not replacing '{key}'")

    @staticmethod
    def _transition(key: str, entry: ProviderHealth, new_state: ProviderState) -> None:
        _logger.debug(f"Provider '{key}' {entry.state.value} -> {new_state.value}")
        entry.state = new_state
        entry.changed_at = time.time()
