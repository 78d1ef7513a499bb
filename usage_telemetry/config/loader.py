"""
Configuration management and loading.

Handles engine settings: secret detection thresholds, status bar
layout, rate window, fingerprint cache size, storage and logging.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Set

import yaml

from usage_telemetry.core.fingerprint import FingerprintCache
from usage_telemetry.core.identity import SourceIdentityNormalizer
from usage_telemetry.core.logging import LOG_FORMATS, LOG_LEVELS
from usage_telemetry.core.rates import DEFAULT_RATE_WINDOW_MINUTES
from usage_telemetry.core.secrets import SecretThresholds
from usage_telemetry.core.status import StatusWindow
from usage_telemetry.storage.db import DEFAULT_DB_PATH


@dataclass(frozen=True)
class LoggingConfig:
    """Log level and renderer."""
    level: str = "INFO"
    format: str = "console"

    def __post_init__(self):
        """Validate level and format names."""
        if self.level.upper() not in LOG_LEVELS:
            raise ValueError(f"logging.level must be one of: {list(LOG_LEVELS)}")
        if self.format not in LOG_FORMATS:
            raise ValueError(f"logging.format must be one of: {list(LOG_FORMATS)}")


@dataclass(frozen=True)
class EngineConfig:
    """Complete engine configuration."""
    secret_detection: SecretThresholds = field(default_factory=SecretThresholds)
    status_window: StatusWindow = field(default_factory=StatusWindow)
    rate_window_minutes: float = DEFAULT_RATE_WINDOW_MINUTES
    fingerprint_cache_size: Optional[int] = None
    price_store_path: str = DEFAULT_DB_PATH
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    def __post_init__(self):
        """Validate scalar settings."""
        if self.rate_window_minutes <= 0:
            raise ValueError("rates.window_minutes must be > 0")
        if self.fingerprint_cache_size is not None and self.fingerprint_cache_size <= 0:
            raise ValueError("fingerprint_cache.max_entries must be > 0")
        if not self.price_store_path:
            raise ValueError("storage.price_store_path cannot be empty")

    def build_normalizer(self) -> SourceIdentityNormalizer:
        """Create a normalizer with its own cache sized from this config."""
        return SourceIdentityNormalizer(
            cache=FingerprintCache(max_entries=self.fingerprint_cache_size),
            thresholds=self.secret_detection,
        )


def load_engine_config(path: str) -> EngineConfig:
    """Load and validate engine configuration from a YAML file.

    Every section is optional; omitted values keep their defaults. Unknown
    keys are rejected so typos never silently fall back to defaults.

    Args:
        path: Path to YAML configuration file

    Returns:
        Validated EngineConfig object

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
        ValueError: If configuration is invalid
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Engine config file not found: {path}")

    with open(config_path, 'r', encoding='utf-8') as f:
        try:
            raw_config = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML in config file {path}: {e}")

    if raw_config is None:
        return EngineConfig()
    if not isinstance(raw_config, dict):
        raise ValueError("Configuration must be a dictionary")

    allowed_top_keys = {'secret_detection', 'status_bar', 'rates', 'fingerprint_cache', 'storage', 'logging'}
    unknown_keys = set(raw_config.keys()) - allowed_top_keys
    if unknown_keys:
        raise ValueError(f"Unknown configuration keys: {unknown_keys}")

    secret_data = _section(raw_config, 'secret_detection',
                           {'short_min_length', 'long_min_length', 'long_max_length'})
    defaults = SecretThresholds()
    secret_detection = SecretThresholds(
        short_min_length=_int(secret_data, 'short_min_length', defaults.short_min_length, 'secret_detection'),
        long_min_length=_int(secret_data, 'long_min_length', defaults.long_min_length, 'secret_detection'),
        long_max_length=_int(secret_data, 'long_max_length', defaults.long_max_length, 'secret_detection'),
    )

    status_data = _section(raw_config, 'status_bar', {'bucket_count', 'bucket_minutes'})
    status_window = StatusWindow(
        bucket_count=_int(status_data, 'bucket_count', 20, 'status_bar'),
        bucket_minutes=_int(status_data, 'bucket_minutes', 10, 'status_bar'),
    )

    rates_data = _section(raw_config, 'rates', {'window_minutes'})
    window_minutes = rates_data.get('window_minutes', DEFAULT_RATE_WINDOW_MINUTES)
    if isinstance(window_minutes, bool) or not isinstance(window_minutes, (int, float)):
        raise ValueError("'window_minutes' in rates must be a number")

    cache_data = _section(raw_config, 'fingerprint_cache', {'max_entries'})
    max_entries = cache_data.get('max_entries')
    if max_entries is not None:
        max_entries = _int(cache_data, 'max_entries', 0, 'fingerprint_cache')

    storage_data = _section(raw_config, 'storage', {'price_store_path'})
    price_store_path = storage_data.get('price_store_path', DEFAULT_DB_PATH)
    if not isinstance(price_store_path, str):
        raise ValueError("'price_store_path' in storage must be a string")

    logging_data = _section(raw_config, 'logging', {'level', 'format'})
    level = logging_data.get('level', 'INFO')
    fmt = logging_data.get('format', 'console')
    if not isinstance(level, str) or not isinstance(fmt, str):
        raise ValueError("'level' and 'format' in logging must be strings")

    return EngineConfig(
        secret_detection=secret_detection,
        status_window=status_window,
        rate_window_minutes=float(window_minutes),
        fingerprint_cache_size=max_entries,
        price_store_path=price_store_path,
        logging=LoggingConfig(level=level.upper(), format=fmt),
    )


def _section(raw_config: Dict, name: str, allowed_keys: Set[str]) -> Dict[str, Any]:
    """Get an optional section and reject unknown keys.

    Raises:
        ValueError: If the section is not a dictionary or has unknown keys
    """
    data = raw_config.get(name)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"'{name}' must be a dictionary")

    unknown_keys = set(data.keys()) - allowed_keys
    if unknown_keys:
        raise ValueError(f"Unknown keys in {name}: {unknown_keys}")
    return data


def _int(data: Dict[str, Any], key: str, default: int, path: str) -> int:
    value = data.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"'{key}' in {path} must be an integer")
    return value
