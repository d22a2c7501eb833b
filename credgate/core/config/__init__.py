"""Configuration package.

Importing `config` gives the process-wide Config singleton.
"""

from credgate.core.config.config import Config, config
from credgate.core.config.server_record import ServerConfigRecord
from credgate.core.config.validation import ConfigError

__all__ = ["Config", "ConfigError", "ServerConfigRecord", "config"]
