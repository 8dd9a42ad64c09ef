"""
Runtime Configuration
---------------------
Bridge runtime settings: cache, default rate limits, audit and logging.

Precedence (highest first):
1. BRIDGE_* environment variables
2. YAML file passed to load_config()
3. Dataclass defaults
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Union
import logging
import os

import yaml


_logger = logging.getLogger("bridge.infra.config")

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass
class BridgeConfig:
    """Settings consumed by ToolRegistry.from_config() and main.py."""
    cache_enabled: bool = True
    cache_ttl: float = 300.0
    cache_max_entries: Optional[int] = None
    rate_limit_max_requests: int = 60
    rate_limit_window: float = 60.0
    audit_enabled: bool = False
    audit_db: str = "bridge_audit.db"
    log_level: str = "INFO"
    log_dir: Optional[str] = None


# field -> environment variable
ENV_VARS: Dict[str, str] = {
    "cache_enabled": "BRIDGE_CACHE_ENABLED",
    "cache_ttl": "BRIDGE_CACHE_TTL",
    "cache_max_entries": "BRIDGE_CACHE_MAX_ENTRIES",
    "rate_limit_max_requests": "BRIDGE_RATE_LIMIT_MAX_REQUESTS",
    "rate_limit_window": "BRIDGE_RATE_LIMIT_WINDOW",
    "audit_enabled": "BRIDGE_AUDIT_ENABLED",
    "audit_db": "BRIDGE_AUDIT_DB",
    "log_level": "BRIDGE_LOG_LEVEL",
    "log_dir": "BRIDGE_LOG_DIR",
}

# YAML section.key -> field
FILE_KEYS: Dict[str, str] = {
    "cache.enabled": "cache_enabled",
    "cache.ttl": "cache_ttl",
    "cache.max_entries": "cache_max_entries",
    "rate_limit.max_requests": "rate_limit_max_requests",
    "rate_limit.window": "rate_limit_window",
    "audit.enabled": "audit_enabled",
    "audit.db": "audit_db",
    "logging.level": "log_level",
    "logging.dir": "log_dir",
}


class ConfigError(ValueError):
    """Raised when a setting cannot be parsed."""


def load_config(path: Optional[Union[str, Path]] = None) -> BridgeConfig:
    """
    Build a BridgeConfig from defaults, an optional YAML file and the
    environment.
    """
    values: Dict[str, Any] = {}

    if path is not None:
        values.update(_read_file(Path(path)))

    for name, env_var in ENV_VARS.items():
        raw = os.getenv(env_var)
        if raw is not None:
            values[name] = raw

    config = BridgeConfig()
    for name, raw in values.items():
        setattr(config, name, _coerce(name, raw))

    return config


def _read_file(path: Path) -> Dict[str, Any]:
    if not path.exists():
        _logger.warning(f"Config file not found: {path}")
        return {}

    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")

    values: Dict[str, Any] = {}
    for dotted, name in FILE_KEYS.items():
        section, key = dotted.split(".")
        block = data.get(section)
        if isinstance(block, dict) and key in block:
            values[name] = block[key]

    _logger.info(f"Loaded config from {path}")
    return values


def _parse_bool(raw: Any) -> bool:
    if isinstance(raw, bool):
        return raw
    text = str(raw).strip().lower()
    if text in _TRUE_VALUES:
        return True
    if text in _FALSE_VALUES:
        return False
    raise ValueError(f"not a boolean: {raw!r}")


def _parse_optional_int(raw: Any) -> Optional[int]:
    if raw is None or (isinstance(raw, str) and raw.strip() == ""):
        return None
    return int(raw)


def _parse_optional_str(raw: Any) -> Optional[str]:
    if raw is None or (isinstance(raw, str) and raw.strip() == ""):
        return None
    return str(raw)


_PARSERS = {
    "cache_enabled": _parse_bool,
    "cache_ttl": float,
    "cache_max_entries": _parse_optional_int,
    "rate_limit_max_requests": int,
    "rate_limit_window": float,
    "audit_enabled": _parse_bool,
    "audit_db": str,
    "log_level": lambda raw: str(raw).upper(),
    "log_dir": _parse_optional_str,
}


def _coerce(name: str, raw: Any) -> Any:
    try:
        return _PARSERS[name](raw)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid value for {name}: {e}") from e
