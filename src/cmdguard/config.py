"""Validation configuration and config file loading.

Configuration layers (later overrides earlier):
1. Defaults: SecurityConfig()
2. User config: platform config dir, e.g. ~/.config/cmdguard/config.yaml
3. Project config: .cmdguard/config.yaml in the working directory

An explicit path passed to load_config() replaces layers 2 and 3.

YAML Structure:
    ```yaml
    strict_validation: true
    command_logging: true
    source: popup
    rate_limit:
      enabled: true
      max_per_minute: 30
      fail_open: true
      scope: default
    allowed_commands: [click, type, navigate]
    blocked_commands: [password]
    custom_rules:
      - name: Eval Call
        description: Detects eval usage
        pattern: '\\beval\\s*\\('
        risk_level: high
        action: block
    ```
"""

import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Optional, Union

import yaml
from platformdirs import user_config_dir

from cmdguard.core.rules import ValidationRule, rule_from_dict
from cmdguard.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

PROJECT_CONFIG_PATH = Path(".cmdguard/config.yaml")


def get_user_config_path() -> Path:
    """Platform-specific user config file."""
    return Path(user_config_dir("cmdguard", appauthor=False)) / "config.yaml"


@dataclass(frozen=True)
class SecurityConfig:
    """Per-call validation settings.

    Attributes:
        enable_strict_validation: Run length/character/repetition heuristics
        enable_command_logging: Append an audit entry per validation
        enable_rate_limit: Enforce max_commands_per_minute per scope
        max_commands_per_minute: Submissions allowed per scope per minute
        allowed_commands: If non-empty, commands must contain one of these
        blocked_commands: Terms that are never allowed (case-insensitive)
        custom_rules: Extra rules evaluated after the registry's rules
        fail_open: Allow submissions when rate-limit state is unavailable
        source: Recorded as the audit entry source
        rate_limit_scope: Rate-limit window key for this caller
    """

    enable_strict_validation: bool = True
    enable_command_logging: bool = True
    enable_rate_limit: bool = True
    max_commands_per_minute: int = 30
    allowed_commands: tuple[str, ...] = ()
    blocked_commands: tuple[str, ...] = ()
    custom_rules: tuple[ValidationRule, ...] = field(default=(), compare=False)
    fail_open: bool = True
    source: str = "user"
    rate_limit_scope: str = "default"

    def __post_init__(self):
        if self.max_commands_per_minute <= 0:
            raise ConfigurationError(f"max_commands_per_minute must be positive, got {self.max_commands_per_minute}")
        # Accept lists from callers, store tuples so the config stays hashable
        object.__setattr__(self, "allowed_commands", tuple(self.allowed_commands))
        object.__setattr__(self, "blocked_commands", tuple(self.blocked_commands))
        object.__setattr__(self, "custom_rules", tuple(self.custom_rules))

    def with_overrides(self, **overrides: Any) -> "SecurityConfig":
        """Return a copy with the given fields replaced."""
        return replace(self, **overrides)


def _expect(value: Any, expected: type, key: str, file_path: str) -> Any:
    if not isinstance(value, expected):
        raise ConfigurationError(
            f"'{key}' must be of type {expected.__name__}, got {type(value).__name__}",
            file_path=file_path,
        )
    return value


def _string_list(value: Any, key: str, file_path: str) -> tuple[str, ...]:
    items = _expect(value, list, key, file_path)
    if not all(isinstance(item, str) for item in items):
        raise ConfigurationError(f"'{key}' must be a list of strings", file_path=file_path)
    return tuple(items)


def config_overrides_from_dict(data: dict[str, Any], file_path: str = "<config>") -> dict[str, Any]:
    """Translate a config mapping into SecurityConfig field overrides.

    Raises:
        ConfigurationError: If a value has the wrong type or a rule is malformed
    """
    overrides: dict[str, Any] = {}

    if "strict_validation" in data:
        overrides["enable_strict_validation"] = _expect(data["strict_validation"], bool, "strict_validation", file_path)
    if "command_logging" in data:
        overrides["enable_command_logging"] = _expect(data["command_logging"], bool, "command_logging", file_path)
    if "source" in data:
        overrides["source"] = _expect(data["source"], str, "source", file_path)

    rate_limit = data.get("rate_limit")
    if rate_limit is not None:
        _expect(rate_limit, dict, "rate_limit", file_path)
        if "enabled" in rate_limit:
            overrides["enable_rate_limit"] = _expect(rate_limit["enabled"], bool, "rate_limit.enabled", file_path)
        if "max_per_minute" in rate_limit:
            overrides["max_commands_per_minute"] = _expect(
                rate_limit["max_per_minute"], int, "rate_limit.max_per_minute", file_path
            )
        if "fail_open" in rate_limit:
            overrides["fail_open"] = _expect(rate_limit["fail_open"], bool, "rate_limit.fail_open", file_path)
        if "scope" in rate_limit:
            overrides["rate_limit_scope"] = _expect(rate_limit["scope"], str, "rate_limit.scope", file_path)

    if "allowed_commands" in data:
        overrides["allowed_commands"] = _string_list(data["allowed_commands"], "allowed_commands", file_path)
    if "blocked_commands" in data:
        overrides["blocked_commands"] = _string_list(data["blocked_commands"], "blocked_commands", file_path)
    if "custom_rules" in data:
        rules_data = _expect(data["custom_rules"], list, "custom_rules", file_path)
        overrides["custom_rules"] = tuple(rule_from_dict(item, file_path=file_path) for item in rules_data)

    return overrides


def _read_config_file(path: Path) -> dict[str, Any]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML syntax: {e}", file_path=str(path))
    except OSError as e:
        raise ConfigurationError(f"Failed to read config file: {e}", file_path=str(path))

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigurationError("YAML root must be a dictionary", file_path=str(path))
    return data


def load_config(config_path: Optional[Union[str, Path]] = None) -> SecurityConfig:
    """Load layered configuration.

    Args:
        config_path: Optional explicit config file (replaces user/project layers)

    Returns:
        SecurityConfig with all layers applied

    Raises:
        ConfigurationError: If an explicit path is missing or any file is invalid
    """
    if config_path is not None:
        path = Path(config_path)
        if not path.exists():
            raise ConfigurationError(f"Config file not found: {path}", file_path=str(path))
        layers = [path]
    else:
        layers = [p for p in (get_user_config_path(), Path.cwd() / PROJECT_CONFIG_PATH) if p.exists()]

    overrides: dict[str, Any] = {}
    for path in layers:
        overrides.update(config_overrides_from_dict(_read_config_file(path), file_path=str(path)))
        logger.info(f"Loaded configuration from {path}")

    return SecurityConfig(**overrides)
