"""
Configuration subsystem.

- ``Config``: static settings from environment variables (.env supported).
- ``ConfigManager``: dot-notation access to YAML tuning values under
  ``config/`` with in-memory overrides.

>>> from questline.core.config import Config, ConfigManager
>>> Config.DATABASE_URL
>>> ConfigManager.get("quest_engine.grade_thresholds.challenging", 8.5)
"""

from questline.core.config.config import Config, Environment
from questline.core.config.manager import (
    ConfigManager,
    ConfigManagerError,
    ConfigMetrics,
    ConfigWriteError,
    ConfigurationError,
)

__all__ = [
    "Config",
    "Environment",
    "ConfigManager",
    "ConfigManagerError",
    "ConfigMetrics",
    "ConfigWriteError",
    "ConfigurationError",
]
