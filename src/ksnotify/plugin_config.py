# src/ksnotify/plugin_config.py
import logging
import os
from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Optional

import yaml

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

# Default values for optional parameters
DEFAULT_CI = "local"
DEFAULT_HTTP_TIMEOUT = 30
DEFAULT_LOG_LEVEL = "INFO"

CI_KINDS = ("gitlab", "github", "local")
VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _env_flag(name: str) -> bool:
    # set means enabled, whatever the value
    return os.getenv(name) is not None


def _split_list(value: Optional[str]) -> List[str]:
    return [p.strip() for p in (value or "").split(",") if p.strip()]


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        raise ConfigurationError(f"{name} is not a number", name, value) from None


BOOL_FIELDS = ("suppress_skaffold", "patch")
TRUE_WORDS = ("true", "yes", "on", "1")
FALSE_WORDS = ("false", "no", "off", "0")


def _coerce_file_value(key: str, value: Any) -> Any:
    """
    Converts a YAML value to the type of the PluginConfig field it sets.

    Raises:
        ConfigurationError: if the value does not fit the field type.
    """
    if key in BOOL_FIELDS:
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in TRUE_WORDS:
            return True
        if isinstance(value, str) and value.strip().lower() in FALSE_WORDS:
            return False
        raise ConfigurationError(f"{key} must be true or false", key, str(value))

    if key == "http_timeout":
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return float(value)
        if isinstance(value, str):
            try:
                return float(value)
            except ValueError:
                pass
        raise ConfigurationError(f"{key} is not a number", key, str(value))

    if key == "ignore_tag_images":
        if isinstance(value, str):
            return _split_list(value)
        if isinstance(value, list) and all(isinstance(v, str) for v in value):
            return value
        raise ConfigurationError(f"{key} must be a list of strings", key, str(value))

    # remaining fields are plain strings
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    raise ConfigurationError(f"{key} must be a string", key, str(value))


@dataclass
class PluginConfig:
    """
    Holds all configuration for ksnotify, primarily sourced from KSNOTIFY_
    prefixed environment variables. A YAML file and command line flags can
    override individual fields (see `load_plugin_config`).
    """

    # --- Where we run and where we post ---
    ci: str = field(
        default_factory=lambda: os.getenv("KSNOTIFY_CI", DEFAULT_CI).lower()
    )
    notifier: Optional[str] = field(
        default_factory=lambda: (os.getenv("KSNOTIFY_NOTIFIER") or "").lower() or None
    ) # Defaults to the CI kind

    # --- Report behavior ---
    suppress_skaffold: bool = field(
        default_factory=lambda: _env_flag("KSNOTIFY_SUPPRESS_SKAFFOLD")
    )
    # Accepted for compatibility, not applied to the diff.
    ignore_tag_images: List[str] = field(
        default_factory=lambda: _split_list(os.getenv("KSNOTIFY_IGNORE_TAG_IMAGES"))
    )
    patch: bool = field(
        default_factory=lambda: _env_flag("KSNOTIFY_PATCH")
    )
    target: Optional[str] = field(
        default_factory=lambda: os.getenv("KSNOTIFY_TARGET") or None
    )

    # --- SCM Settings ---
    gitlab_token: Optional[str] = field(
        default_factory=lambda: os.getenv("KSNOTIFY_GITLAB_TOKEN")
    ) # Handled as a secret by CI
    github_token: Optional[str] = field(
        default_factory=lambda: os.getenv("GITHUB_TOKEN")
    ) # Provided by GitHub Actions
    api_url: Optional[str] = field(
        default_factory=lambda: os.getenv("KSNOTIFY_API_URL")
    ) # For self-hosted instances
    http_timeout: float = field(
        default_factory=lambda: _env_float("KSNOTIFY_HTTP_TIMEOUT", DEFAULT_HTTP_TIMEOUT)
    )

    log_level: str = field(
        default_factory=lambda: os.getenv("KSNOTIFY_LOG_LEVEL", DEFAULT_LOG_LEVEL).upper()
    )

    def __post_init__(self):
        if self.log_level not in VALID_LOG_LEVELS:
            logger.warning(f"Invalid KSNOTIFY_LOG_LEVEL '{self.log_level}'. Defaulting to '{DEFAULT_LOG_LEVEL}'.")
            self.log_level = DEFAULT_LOG_LEVEL

    @property
    def notifier_kind(self) -> str:
        return self.notifier or self.ci

    def validate(self) -> None:
        """
        Raises:
            ConfigurationError: for an unknown CI or notifier kind.
        """
        if self.ci not in CI_KINDS:
            raise ConfigurationError(f"Unknown CI kind, expected one of {list(CI_KINDS)}", "ci", self.ci)
        if self.notifier_kind not in CI_KINDS:
            raise ConfigurationError(
                f"Unknown notifier kind, expected one of {list(CI_KINDS)}", "notifier", self.notifier_kind
            )
        if self.http_timeout <= 0:
            raise ConfigurationError("HTTP timeout must be positive", "http_timeout", str(self.http_timeout))


def read_config_file(path: str) -> Dict[str, Any]:
    """
    Reads a YAML configuration file whose keys are PluginConfig field names.
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except OSError as e:
        raise ConfigurationError(f"Cannot read configuration file: {e}", "config", path) from e
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in configuration file: {e}", "config", path) from e

    if not isinstance(data, dict):
        raise ConfigurationError("Configuration file must contain a mapping", "config", path)

    known = {f.name for f in fields(PluginConfig)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigurationError(f"Unknown configuration keys: {unknown}", "config", path)
    return data


def load_plugin_config(config_path: Optional[str] = None, overrides: Optional[Dict[str, Any]] = None) -> PluginConfig:
    """
    Factory function to create and return a validated PluginConfig instance.

    Precedence: `overrides` (command line) > YAML file > environment.
    `None` values in `overrides` mean "not given" and are ignored.
    """
    config = PluginConfig()

    if config_path:
        logger.info(f"Loading configuration file {config_path}")
        for key, value in read_config_file(config_path).items():
            setattr(config, key, _coerce_file_value(key, value))

    for key, value in (overrides or {}).items():
        if value is not None:
            setattr(config, key, value)

    config.ci = str(config.ci).lower()
    if config.notifier:
        config.notifier = str(config.notifier).lower()
    config.log_level = str(config.log_level).upper()
    config.__post_init__()
    config.validate()
    return config
