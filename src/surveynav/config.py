"""
Engine configuration.

Limits and timings used by the history and version managers. Values come
from (in increasing priority) the dataclass defaults, a YAML file or dict,
and SURVEYNAV_* environment variables:

    max_history_length: 50          # SURVEYNAV_MAX_HISTORY_LENGTH
    back_guard_reset_delay: 0.1     # SURVEYNAV_BACK_GUARD_RESET_DELAY
    builder_max_history: 50         # SURVEYNAV_BUILDER_MAX_HISTORY
    position_debounce_delay: 0.5    # SURVEYNAV_POSITION_DEBOUNCE_DELAY
    default_mode: null              # SURVEYNAV_DEFAULT_MODE (paged | pageless)
"""

import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

import yaml

from surveynav.model import SurveyMode


ENV_PREFIX = "SURVEYNAV_"


class ConfigError(Exception):
    """Raised for unreadable files, unknown keys or invalid values."""
    pass


@dataclass(frozen=True)
class EngineConfig:
    max_history_length: int = 50
    back_guard_reset_delay: float = 0.1
    builder_max_history: int = 50
    position_debounce_delay: float = 0.5
    default_mode: Optional[SurveyMode] = None

    def __post_init__(self):
        if self.max_history_length < 1:
            raise ConfigError("max_history_length must be at least 1")
        if self.builder_max_history < 1:
            raise ConfigError("builder_max_history must be at least 1")
        if self.back_guard_reset_delay < 0 or self.position_debounce_delay < 0:
            raise ConfigError("delays must not be negative")


def _convert(name: str, value: Any) -> Any:
    if name == "default_mode":
        if value is None or value == "":
            return None
        if isinstance(value, SurveyMode):
            return value
        try:
            return SurveyMode(str(value).lower())
        except ValueError:
            raise ConfigError(f"default_mode must be 'paged' or 'pageless', got {value!r}")

    if isinstance(value, bool):
        raise ConfigError(f"{name} must be a number, got {value!r}")
    try:
        if name in ("max_history_length", "builder_max_history"):
            return int(value)
        return float(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be a number, got {value!r}")


def config_from_dict(data: Optional[Mapping[str, Any]], base: Optional[EngineConfig] = None) -> EngineConfig:
    """Build a config from a mapping, rejecting unknown keys."""
    base = base or EngineConfig()
    if not data:
        return base
    if not isinstance(data, Mapping):
        raise ConfigError(f"Configuration must be a mapping, got {type(data).__name__}")

    known = {f.name for f in fields(EngineConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(f"Unknown configuration keys: {', '.join(unknown)}")

    return replace(base, **{key: _convert(key, value) for key, value in data.items()})


def config_from_env(base: Optional[EngineConfig] = None, environ: Optional[Mapping[str, str]] = None) -> EngineConfig:
    """Apply SURVEYNAV_* environment overrides on top of base."""
    environ = os.environ if environ is None else environ
    overrides: Dict[str, Any] = {}
    for f in fields(EngineConfig):
        key = ENV_PREFIX + f.name.upper()
        if key in environ:
            overrides[f.name] = environ[key]
    return config_from_dict(overrides, base)


def load_config(
    path: Union[str, Path, None] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> EngineConfig:
    """
    Load configuration from an optional YAML file plus environment overrides.

    Args:
        path: YAML file; when None only defaults and environment apply
        environ: Environment mapping (os.environ by default)

    Raises:
        ConfigError: If the file cannot be read or holds invalid values
    """
    config = EngineConfig()
    if path is not None:
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except OSError as e:
            raise ConfigError(f"Cannot read configuration file {path}: {e}")
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}")
        config = config_from_dict(data, config)
    return config_from_env(config, environ)


__all__ = ["ConfigError", "EngineConfig", "config_from_dict", "config_from_env", "load_config"]
