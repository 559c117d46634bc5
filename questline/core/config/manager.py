"""
ConfigManager: dot-notation access to quest engine tuning values.

Purpose
-------
- Provide hierarchical, dot-notation access to tunable engine configuration
  (grade thresholds, mastery level, excluded subjects, XP per skill level).
- Back configuration with YAML files from ``Config.CONFIG_DIR``.
- Allow in-memory overrides at runtime, validated by registered validators.

Responsibilities
----------------
- Load and deep-merge every ``*.yaml`` / ``*.yml`` file under the config dir.
- Serve reads from an in-memory cache, falling back to YAML defaults and
  then to the caller-supplied default.
- Apply runtime overrides through ``set()`` with per-key validators.
- Track read/write metrics for observability.

Key Design Decisions
--------------------
- YAML is the single source for defaults; ``set()`` overrides live in memory
  only and are dropped by ``reset()``.
- Reads never raise: a missing or malformed path yields the default.
- Access before ``initialize()`` bootstraps lazily from YAML so pure
  calculators can read tuning values in unit tests without setup.

Dependencies
------------
- PyYAML for parsing config files.
- ``questline.core.config.config.Config`` for the config directory.
- ``questline.core.logging.logger.get_logger`` for structured logging.
"""

from __future__ import annotations

import asyncio
import copy
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Callable, Dict, List, MutableMapping, Optional

import yaml

from questline.core.config.config import Config
from questline.core.logging.logger import get_logger

logger = get_logger(__name__)


# ============================================================================
# Exceptions
# ============================================================================


class ConfigManagerError(RuntimeError):
    """Base error type for ConfigManager-related failures."""


class ConfigWriteError(ConfigManagerError):
    """Raised when a configuration write fails validation."""


class ConfigurationError(ConfigManagerError):
    """Raised when a required configuration key is missing."""

    def __init__(self, key: str, message: str) -> None:
        self.key = key
        super().__init__(message)


__all__ = [
    "ConfigManager",
    "ConfigManagerError",
    "ConfigMetrics",
    "ConfigWriteError",
    "ConfigurationError",
]


# ============================================================================
# Metrics
# ============================================================================


@dataclass(slots=True)
class ConfigMetrics:
    """Counters for ConfigManager reads and writes."""

    gets: int = 0
    sets: int = 0
    cache_hits: int = 0
    cache_misses: int = 0
    fallback_to_defaults: int = 0
    errors: int = 0
    yaml_files_loaded: int = 0
    total_get_time_ms: float = 0.0

    def snapshot(self) -> Dict[str, Any]:
        data = asdict(self)
        data["cache_hit_rate"] = (
            round(self.cache_hits / self.gets * 100, 2) if self.gets else 0.0
        )
        data["avg_get_time_ms"] = (
            round(self.total_get_time_ms / self.gets, 4) if self.gets else 0.0
        )
        return data


# ============================================================================
# ConfigManager
# ============================================================================


class ConfigManager:
    """
    Engine configuration management over YAML files with runtime overrides.

    Examples
    --------
    >>> await ConfigManager.initialize()
    >>> ConfigManager.get("quest_engine.grade_thresholds.challenging", 8.5)
    8.5
    >>> await ConfigManager.set("quest_engine.proficiency.mastery_level", 3)
    """

    # Fully materialized configuration (defaults + overrides).
    _cache: Dict[str, Any] = {}

    # YAML-loaded defaults.
    _defaults: Dict[str, Any] = {}

    # Optional validators: full dot key -> callable(value) -> value
    _validators: Dict[str, Callable[[Any], Any]] = {}

    _initialized: bool = False
    _init_lock: asyncio.Lock = asyncio.Lock()
    _config_dir: Optional[Path] = None
    _metrics: ConfigMetrics = ConfigMetrics()

    # =========================================================================
    # YAML LOADING & DEFAULTS
    # =========================================================================

    @staticmethod
    def _deep_merge_dict(
        target: MutableMapping[str, Any],
        source: MutableMapping[str, Any],
    ) -> None:
        """Recursively merge `source` into `target` (in-place)."""
        for key, value in source.items():
            if isinstance(value, dict) and isinstance(target.get(key), dict):
                ConfigManager._deep_merge_dict(target[key], value)
            else:
                target[key] = copy.deepcopy(value)

    @classmethod
    def _load_yaml_configs(cls, config_dir: Optional[Path] = None) -> None:
        """
        Recursively load all YAML config files into `_defaults`.

        Files are merged in sorted path order so later files win on
        conflicting keys. A broken file is logged and skipped.
        """
        config_dir = Path(config_dir or cls._config_dir or Config.CONFIG_DIR)
        cls._defaults = {}

        if not config_dir.exists():
            logger.warning(
                "Config directory not found; using built-in defaults only",
                extra={"config_dir": str(config_dir)},
            )
            cls._cache = {}
            return

        yaml_files = sorted(
            list(config_dir.rglob("*.yaml")) + list(config_dir.rglob("*.yml"))
        )
        loaded_count = 0

        for yaml_file in yaml_files:
            relative = str(yaml_file.relative_to(config_dir))
            try:
                with yaml_file.open("r", encoding="utf-8") as handle:
                    data = yaml.safe_load(handle)
            except (OSError, yaml.YAMLError) as exc:
                cls._metrics.errors += 1
                logger.warning(
                    "Failed to load YAML config",
                    extra={
                        "file": relative,
                        "error": str(exc),
                        "error_type": type(exc).__name__,
                    },
                )
                continue

            if isinstance(data, dict):
                cls._deep_merge_dict(cls._defaults, data)
                loaded_count += 1
                logger.debug("Loaded YAML config", extra={"file": relative})
            elif data is not None:
                logger.warning(
                    "Ignoring non-dict YAML root object",
                    extra={"file": relative, "root_type": type(data).__name__},
                )

        cls._metrics.yaml_files_loaded = loaded_count
        cls._cache = copy.deepcopy(cls._defaults)

        logger.info(
            "YAML configs loaded",
            extra={
                "config_dir": str(config_dir),
                "yaml_file_count": loaded_count,
                "total_cache_keys": len(cls._cache),
            },
        )

    # =========================================================================
    # INITIALIZATION
    # =========================================================================

    @classmethod
    async def initialize(cls, config_dir: Optional[Path] = None) -> None:
        """
        Load YAML configuration (idempotent).

        Parameters
        ----------
        config_dir:
            Directory to scan instead of ``Config.CONFIG_DIR``.
        """
        if cls._initialized:
            return

        async with cls._init_lock:
            if cls._initialized:
                return

            start = time.perf_counter()
            if config_dir is not None:
                cls._config_dir = Path(config_dir)
            cls._load_yaml_configs()
            cls._initialized = True

            logger.info(
                "ConfigManager initialization completed",
                extra={"latency_ms": round((time.perf_counter() - start) * 1000, 2)},
            )

    @classmethod
    def reset(cls) -> None:
        """Drop overrides, validators and metrics; next read reloads YAML."""
        cls._cache = {}
        cls._defaults = {}
        cls._validators = {}
        cls._config_dir = None
        cls._initialized = False
        cls._metrics = ConfigMetrics()

    # =========================================================================
    # VALIDATION HOOKS
    # =========================================================================

    @classmethod
    def register_validator(cls, key: str, validator: Callable[[Any], Any]) -> None:
        """
        Register a validator for an exact dot-notation key.

        Validators run on ``set()`` and must return the value to store or
        raise to block the write.
        """
        cls._validators[key] = validator
        logger.debug(
            "ConfigManager validator registered",
            extra={
                "config_key": key,
                "validator": getattr(validator, "__name__", "anonymous"),
            },
        )

    @classmethod
    def _apply_validator(cls, key: str, value: Any) -> Any:
        validator = cls._validators.get(key)
        if not validator:
            return value

        try:
            return validator(value)
        except Exception as exc:
            cls._metrics.errors += 1
            logger.error(
                "Config validation failed",
                extra={
                    "config_key": key,
                    "error": str(exc),
                    "error_type": type(exc).__name__,
                },
            )
            raise ConfigWriteError(f"Validation failed for config key '{key}'") from exc

    # =========================================================================
    # READ API
    # =========================================================================

    @staticmethod
    def _traverse(tree: Dict[str, Any], key: str) -> Any:
        value: Any = tree
        for part in key.split("."):
            if not isinstance(value, dict):
                return None
            value = value.get(part)
            if value is None:
                return None
        return value

    @classmethod
    def _ensure_loaded(cls) -> None:
        if cls._initialized:
            return
        logger.debug("ConfigManager accessed before initialization; loading YAML")
        cls._load_yaml_configs()
        cls._initialized = True

    @classmethod
    def get(cls, key: str, default: Any = None) -> Any:
        """
        Retrieve a configuration value by dot-notation path.

        Examples
        --------
        >>> ConfigManager.get("quest_line.excluded_subject_codes", [])
        ['VOV114', ...]
        """
        start_time = time.perf_counter()
        cls._metrics.gets += 1
        cls._ensure_loaded()

        try:
            value = cls._traverse(cls._cache, key)
            if value is not None:
                cls._metrics.cache_hits += 1
                return value

            cls._metrics.cache_misses += 1
            fallback = cls._traverse(cls._defaults, key)
            if fallback is not None:
                cls._metrics.fallback_to_defaults += 1
                return fallback
            return default
        finally:
            cls._metrics.total_get_time_ms += (time.perf_counter() - start_time) * 1000

    @classmethod
    def get_all_keys(cls) -> List[str]:
        cls._ensure_loaded()
        return list(cls._cache.keys())

    # =========================================================================
    # WRITE API
    # =========================================================================

    @classmethod
    async def set(cls, key: str, value: Any, modified_by: str = "system") -> None:
        """
        Override a configuration value in memory.

        Raises
        ------
        ConfigWriteError
            If a registered validator rejects the value or the path
            crosses a non-mapping value.
        """
        cls._ensure_loaded()
        final_value = cls._apply_validator(key, value)

        parts = key.split(".")
        node: Dict[str, Any] = cls._cache
        for part in parts[:-1]:
            child = node.setdefault(part, {})
            if not isinstance(child, dict):
                cls._metrics.errors += 1
                raise ConfigWriteError(
                    f"Cannot set '{key}': '{part}' is not a mapping"
                )
            node = child

        old_value = node.get(parts[-1])
        node[parts[-1]] = final_value
        cls._metrics.sets += 1

        logger.info(
            "Configuration value updated",
            extra={
                "config_key": key,
                "old_value": old_value,
                "new_value": final_value,
                "modified_by": modified_by,
            },
        )

    # =========================================================================
    # METRICS
    # =========================================================================

    @classmethod
    def get_metrics(cls) -> Dict[str, Any]:
        return cls._metrics.snapshot()

    @classmethod
    def health_snapshot(cls) -> Dict[str, Any]:
        return {
            "initialized": cls._initialized,
            "config_keys": len(cls._cache),
            "yaml_files_loaded": cls._metrics.yaml_files_loaded,
            "errors": cls._metrics.errors,
            "status": "healthy" if cls._metrics.errors == 0 else "degraded",
        }
