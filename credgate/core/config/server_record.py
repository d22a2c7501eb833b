"""Server configuration record persisted by the settings UI.

The record is a small JSON document `{port, api_key, default_provider}`.
An external collaborator saves it; the gateway only reads the current
effective values and re-reads them through Config.reload().
"""

import json
import logging
import os
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

from credgate.core.config.validation import ConfigError

_logger = logging.getLogger(__name__)

_RECORD_FIELDS = {"port", "api_key", "default_provider"}


@dataclass(frozen=True)
class ServerConfigRecord:
    """Effective server configuration record."""

    port: int | None = None
    api_key: str | None = None
    default_provider: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ServerConfigRecord":
        unknown = set(data) - _RECORD_FIELDS
        if unknown:
            _logger.debug("Ignoring unknown config record fields: %s", sorted(unknown))

        port = data.get("port")
        if port is not None and (not isinstance(port, int) or isinstance(port, bool)):
            raise ConfigError("port", repr(port), "must be an integer")
        if port is not None and not 0 <= port <= 65535:
            raise ConfigError("port", repr(port), "must be between 0 and 65535")

        api_key = data.get("api_key")
        if api_key is not None and not isinstance(api_key, str):
            raise ConfigError("api_key", repr(api_key), "must be a string")

        default_provider = data.get("default_provider")
        if default_provider is not None and not isinstance(default_provider, str):
            raise ConfigError("default_provider", repr(default_provider), "must be a string")

        return cls(
            port=port,
            api_key=api_key or None,
            default_provider=default_provider.lower() if default_provider else None,
        )

    def to_dict(self) -> dict[str, Any]:
        return {key: value for key, value in asdict(self).items() if value is not None}

    @classmethod
    def load(cls, path: str | Path) -> "ServerConfigRecord | None":
        """Read the record, returning None when the file does not exist.

        Raises:
            ConfigError: If the file exists but is not a valid record
        """
        record_path = Path(path).expanduser()
        try:
            with open(record_path, encoding="utf-8") as f:
                data = json.load(f)
        except FileNotFoundError:
            return None
        except json.JSONDecodeError as e:
            raise ConfigError(str(record_path), "<file>", f"invalid JSON: {e}") from e
        except OSError as e:
            raise ConfigError(str(record_path), "<file>", f"cannot read: {e}") from e

        if not isinstance(data, dict):
            raise ConfigError(str(record_path), "<file>", "expected a JSON object")
        return cls.from_dict(data)

    def save(self, path: str | Path) -> None:
        """Write the record atomically with owner-only permissions."""
        record_path = Path(path).expanduser()
        record_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = record_path.with_name(f".{record_path.name}.tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            if hasattr(os, "fchmod"):
                os.fchmod(f.fileno(), 0o600)
            json.dump(self.to_dict(), f, indent=2)
        os.replace(tmp_path, record_path)
