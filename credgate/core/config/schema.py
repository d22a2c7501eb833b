"""Declarative schema for environment variable configuration.

This module provides a single source of truth for all environment variables,
including automatic type coercion, validation, and documentation generation.

Provider-specific variables (`<PROVIDER>_API_KEY`, `<PROVIDER>_BASE_URL`,
`<PROVIDER>_CREDS_FILE`, ...) are open-ended and are read by
ProviderConfigLoader instead of being listed here.
"""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class EnvVarSpec:
    """Specification for a single environment variable.

    Attributes:
        name: Environment variable name (e.g., "PORT", "LOG_LEVEL")
        default: Default value if env var not set
        type_hint: Type for validation (int, str, float, bool, tuple)
        description: Human-readable description for docs
        validator: Optional custom validation function
        coerce: Optional function to convert string to target type
    """

    name: str
    default: Any
    type_hint: type
    description: str
    validator: Callable[[Any], bool] | None = None
    coerce: Callable[[str], Any] | None = None


class ConfigSchema:
    """Registry of all configuration environment variables."""

    # === Server Settings ===

    HOST = EnvVarSpec(
        name="HOST",
        default="127.0.0.1",
        type_hint=str,
        description="Server host address to bind to",
    )

    PORT = EnvVarSpec(
        name="PORT",
        default=3001,
        type_hint=int,
        description="Server port number (overrides the config file record)",
        validator=lambda x: 0 <= x <= 65535,
    )

    LOG_LEVEL = EnvVarSpec(
        name="LOG_LEVEL",
        default="INFO",
        type_hint=str,
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
        validator=lambda x: x.split()[0].upper() in ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
    )

    CREDGATE_CONFIG_FILE = EnvVarSpec(
        name="CREDGATE_CONFIG_FILE",
        default="~/.credgate/config.json",
        type_hint=str,
        description="Path of the server configuration record {port, api_key, default_provider}",
    )

    SHUTDOWN_GRACE_SECONDS = EnvVarSpec(
        name="SHUTDOWN_GRACE_SECONDS",
        default=10.0,
        type_hint=float,
        description="Maximum time stop() waits for in-flight requests to drain",
        validator=lambda x: x >= 0,
    )

    # === Security ===

    CREDGATE_API_KEY = EnvVarSpec(
        name="CREDGATE_API_KEY",
        default=None,
        type_hint=str,
        description="API key clients must present (Bearer or x-api-key); empty disables auth",
    )

    # === Provider Settings ===

    CREDGATE_DEFAULT_PROVIDER = EnvVarSpec(
        name="CREDGATE_DEFAULT_PROVIDER",
        default="kiro",
        type_hint=str,
        description="Provider used when a request does not pin a provider or model",
    )

    CREDGATE_PROVIDER_PRIORITY = EnvVarSpec(
        name="CREDGATE_PROVIDER_PRIORITY",
        default=("kiro", "gemini", "qwen", "openai", "claude"),
        type_hint=tuple,
        description="Comma-separated failover priority order of provider keys",
    )

    CREDENTIAL_WATCH_INTERVAL = EnvVarSpec(
        name="CREDENTIAL_WATCH_INTERVAL",
        default=5.0,
        type_hint=float,
        description="Seconds between credential file change checks",
        validator=lambda x: x > 0,
    )

    # === Failover Policy ===

    FAILOVER_THRESHOLD = EnvVarSpec(
        name="FAILOVER_THRESHOLD",
        default=3,
        type_hint=int,
        description="Consecutive quota/auth failures that suspend a provider",
        validator=lambda x: x >= 1,
    )

    FAILOVER_WINDOW_SECONDS = EnvVarSpec(
        name="FAILOVER_WINDOW_SECONDS",
        default=300.0,
        type_hint=float,
        description="Rolling window in which consecutive failures are counted",
        validator=lambda x: x > 0,
    )

    # === Timeout Settings ===

    REQUEST_TIMEOUT = EnvVarSpec(
        name="REQUEST_TIMEOUT",
        default=90,
        type_hint=int,
        description="Request timeout in seconds for upstream calls",
        validator=lambda x: x > 0,
    )

    STREAMING_CONNECT_TIMEOUT_SECONDS = EnvVarSpec(
        name="STREAMING_CONNECT_TIMEOUT_SECONDS",
        default=30.0,
        type_hint=float,
        description="Connect timeout for streaming requests",
        validator=lambda x: x > 0,
    )

    MAX_RETRIES = EnvVarSpec(
        name="MAX_RETRIES",
        default=2,
        type_hint=int,
        description="Retry attempts for failed non-streaming upstream requests",
        validator=lambda x: x >= 0,
    )

    RETRY_BACKOFF_SECONDS = EnvVarSpec(
        name="RETRY_BACKOFF_SECONDS",
        default=0.5,
        type_hint=float,
        description="Initial backoff between retries (doubled on each attempt)",
        validator=lambda x: x >= 0,
    )

    # === Request Defaults ===

    DEFAULT_MAX_TOKENS = EnvVarSpec(
        name="DEFAULT_MAX_TOKENS",
        default=4096,
        type_hint=int,
        description="max_tokens used when a request does not set one",
        validator=lambda x: x > 0,
    )

    @classmethod
    def all_specs(cls) -> dict[str, EnvVarSpec]:
        """Get all environment variable specifications.

        Returns:
            Dictionary mapping spec names to EnvVarSpec objects
        """
        return {
            name: getattr(cls, name)
            for name in dir(cls)
            if isinstance(getattr(cls, name), EnvVarSpec)
        }
