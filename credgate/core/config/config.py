"""Configuration singleton for credgate.

This module provides a simple singleton that gives direct access to
configuration values without unnecessary abstraction.

Values come from three layers, lowest precedence first:
- ConfigSchema defaults
- the server configuration record file (port, api_key, default_provider)
- environment variables that are explicitly set
"""

import hashlib
import hmac
import logging
import os
import threading
from collections.abc import Mapping
from pathlib import Path
from typing import TYPE_CHECKING, Any

from credgate.core.config.lazy_managers import LazyManagers
from credgate.core.config.server_record import ServerConfigRecord
from credgate.core.config.validation import ConfigError, load_all_specs

if TYPE_CHECKING:
    from credgate.core.provider_manager import ProviderManager

_logger = logging.getLogger(__name__)


class Config:
    """Configuration singleton with direct access to all settings.

    All configuration values are loaded at initialization time from the
    environment using schema-based validation. `reload()` re-reads both the
    environment and the server configuration record.

    The provider manager is lazily initialized to avoid circular imports.
    """

    def __init__(self, env: Mapping[str, str] | None = None) -> None:
        self._env = env
        self._lock = threading.Lock()
        self._values: dict[str, Any] = {}
        self._record: ServerConfigRecord | None = None
        self._load()
        self._managers = LazyManagers(self)

    def _load(self) -> None:
        source = os.environ if self._env is None else self._env
        values = load_all_specs(source)
        errors = [value for value in values.values() if isinstance(value, ConfigError)]
        if errors:
            for error in errors[1:]:
                _logger.error(f"Configuration error: {error}")
            raise errors[0]

        record_path = Path(values["CREDGATE_CONFIG_FILE"]).expanduser()
        try:
            record = ServerConfigRecord.load(record_path)
        except ConfigError as e:
            _logger.warning(f"Ignoring server config record: {e}")
            record = None

        # Explicitly set environment variables beat the record file
        if record is not None:
            if record.port is not None and not source.get("PORT"):
                values["PORT"] = record.port
            if record.api_key and not source.get("CREDGATE_API_KEY"):
                values["CREDGATE_API_KEY"] = record.api_key
            if record.default_provider and not source.get("CREDGATE_DEFAULT_PROVIDER"):
                values["CREDGATE_DEFAULT_PROVIDER"] = record.default_provider

        if source.get("CREDGATE_DEFAULT_PROVIDER"):
            default_source = "env"
        elif record is not None and record.default_provider:
            default_source = "file"
        else:
            default_source = "system"
        values["_DEFAULT_PROVIDER_SOURCE"] = default_source

        with self._lock:
            self._values = values
            self._record = record

    def reload(self) -> ServerConfigRecord:
        """Re-read environment and record file; returns the effective record."""
        self._load()
        return self.effective_record

    @property
    def effective_record(self) -> ServerConfigRecord:
        return ServerConfigRecord(
            port=self.port,
            api_key=self.api_key,
            default_provider=self.default_provider,
        )

    def save_record(self, record: ServerConfigRecord) -> None:
        """Persist a record on behalf of the settings UI and reload."""
        record.save(self.config_file)
        self._load()

    # Server settings
    @property
    def host(self) -> str:
        return self._values["HOST"]

    @property
    def port(self) -> int:
        return self._values["PORT"]

    @property
    def log_level(self) -> str:
        return self._values["LOG_LEVEL"]

    @property
    def config_file(self) -> Path:
        return Path(self._values["CREDGATE_CONFIG_FILE"]).expanduser()

    @property
    def shutdown_grace_seconds(self) -> float:
        return self._values["SHUTDOWN_GRACE_SECONDS"]

    # Security settings
    @property
    def api_key(self) -> str | None:
        return self._values["CREDGATE_API_KEY"] or None

    def validate_client_api_key(self, client_api_key: str | None) -> bool:
        """Constant-time comparison of the caller key with the server key."""
        if not self.api_key:
            return True
        if not client_api_key:
            return False
        return hmac.compare_digest(client_api_key.encode(), self.api_key.encode())

    @property
    def api_key_hash(self) -> str:
        return (
            "<not-set>"
            if not self.api_key
            else "sha256:" + hashlib.sha256(self.api_key.encode()).hexdigest()[:16] + "..."
        )

    # Provider settings
    @property
    def default_provider(self) -> str:
        return self._values["CREDGATE_DEFAULT_PROVIDER"].lower()

    @property
    def default_provider_source(self) -> str:
        return self._values["_DEFAULT_PROVIDER_SOURCE"]

    @property
    def provider_priority(self) -> tuple[str, ...]:
        return tuple(self._values["CREDGATE_PROVIDER_PRIORITY"])

    @property
    def credential_watch_interval(self) -> float:
        return self._values["CREDENTIAL_WATCH_INTERVAL"]

    # Failover policy
    @property
    def failover_threshold(self) -> int:
        return self._values["FAILOVER_THRESHOLD"]

    @property
    def failover_window_seconds(self) -> float:
        return self._values["FAILOVER_WINDOW_SECONDS"]

    # Timeout settings
    @property
    def request_timeout(self) -> int:
        return self._values["REQUEST_TIMEOUT"]

    @property
    def streaming_connect_timeout(self) -> float:
        return self._values["STREAMING_CONNECT_TIMEOUT_SECONDS"]

    @property
    def max_retries(self) -> int:
        return self._values["MAX_RETRIES"]

    @property
    def retry_backoff_seconds(self) -> float:
        return self._values["RETRY_BACKOFF_SECONDS"]

    # Request defaults
    @property
    def default_max_tokens(self) -> int:
        return self._values["DEFAULT_MAX_TOKENS"]

    # Raw environment access for open-ended provider variables
    @property
    def environ(self) -> Mapping[str, str]:
        return os.environ if self._env is None else self._env

    # Lazy manager properties
    @property
    def provider_manager(self) -> "ProviderManager":
        return self._managers.provider_manager


# Module-level singleton
config = Config()
