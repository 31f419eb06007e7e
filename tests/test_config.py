"""Tests for configuration loading."""

import pytest

from cmdguard.config import PROJECT_CONFIG_PATH, SecurityConfig, config_overrides_from_dict, load_config
from cmdguard.core.rules import RuleAction
from cmdguard.exceptions import ConfigurationError


class TestSecurityConfig:
    def test_defaults(self):
        config = SecurityConfig()
        assert config.enable_strict_validation is True
        assert config.enable_command_logging is True
        assert config.enable_rate_limit is True
        assert config.max_commands_per_minute == 30
        assert config.allowed_commands == ()
        assert config.blocked_commands == ()
        assert config.fail_open is True
        assert config.source == "user"

    def test_lists_stored_as_tuples(self):
        config = SecurityConfig(allowed_commands=["click"], blocked_commands=["password"])
        assert config.allowed_commands == ("click",)
        assert config.blocked_commands == ("password",)

    def test_with_overrides(self):
        config = SecurityConfig().with_overrides(source="popup")
        assert config.source == "popup"
        assert config.max_commands_per_minute == 30

    def test_invalid_rate_limit(self):
        with pytest.raises(ConfigurationError):
            SecurityConfig(max_commands_per_minute=0)


class TestOverridesFromDict:
    def test_all_keys(self):
        overrides = config_overrides_from_dict(
            {
                "strict_validation": False,
                "command_logging": False,
                "source": "popup",
                "rate_limit": {"enabled": False, "max_per_minute": 10, "fail_open": False, "scope": "tab-1"},
                "allowed_commands": ["click"],
                "blocked_commands": ["password"],
            }
        )
        assert overrides == {
            "enable_strict_validation": False,
            "enable_command_logging": False,
            "source": "popup",
            "enable_rate_limit": False,
            "max_commands_per_minute": 10,
            "fail_open": False,
            "rate_limit_scope": "tab-1",
            "allowed_commands": ("click",),
            "blocked_commands": ("password",),
        }

    def test_custom_rules(self):
        overrides = config_overrides_from_dict(
            {
                "custom_rules": [
                    {
                        "name": "Eval Call",
                        "description": "Detects eval usage",
                        "pattern": r"\beval\s*\(",
                        "risk_level": "high",
                        "action": "block",
                    }
                ]
            }
        )
        (rule,) = overrides["custom_rules"]
        assert rule.name == "Eval Call"
        assert rule.action is RuleAction.BLOCK

    @pytest.mark.parametrize(
        "data,error_substring",
        [
            ({"strict_validation": "yes"}, "'strict_validation' must be of type bool"),
            ({"rate_limit": []}, "'rate_limit' must be of type dict"),
            ({"rate_limit": {"max_per_minute": "30"}}, "'rate_limit.max_per_minute' must be of type int"),
            ({"allowed_commands": "click"}, "'allowed_commands' must be of type list"),
            ({"blocked_commands": [1, 2]}, "must be a list of strings"),
            ({"custom_rules": [{"name": "x"}]}, "Invalid rule structure"),
        ],
    )
    def test_invalid_values(self, data, error_substring):
        with pytest.raises(ConfigurationError) as exc:
            config_overrides_from_dict(data)
        assert error_substring in str(exc.value)


class TestLoadConfig:
    def test_no_files_gives_defaults(self, isolated_config):
        assert load_config() == SecurityConfig()

    def test_explicit_path(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("source: popup\nrate_limit:\n  max_per_minute: 5\n")
        config = load_config(path)
        assert config.source == "popup"
        assert config.max_commands_per_minute == 5

    def test_explicit_empty_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("")
        assert load_config(path) == SecurityConfig()

    def test_explicit_path_missing(self, tmp_path):
        with pytest.raises(ConfigurationError, match="Config file not found"):
            load_config(tmp_path / "missing.yaml")

    def test_project_overrides_user(self, isolated_config):
        user_path = isolated_config / "user" / "config.yaml"
        user_path.parent.mkdir()
        user_path.write_text("source: user-file\nblocked_commands: [password]\n")

        project_path = isolated_config / PROJECT_CONFIG_PATH
        project_path.parent.mkdir()
        project_path.write_text("source: project-file\n")

        config = load_config()
        assert config.source == "project-file"
        assert config.blocked_commands == ("password",)

    @pytest.mark.parametrize(
        "content,error_substring",
        [
            ("source: [unclosed", "Invalid YAML"),
            ("- a\n- b\n", "root must be a dictionary"),
        ],
    )
    def test_invalid_file(self, tmp_path, content, error_substring):
        path = tmp_path / "config.yaml"
        path.write_text(content)
        with pytest.raises(ConfigurationError) as exc:
            load_config(path)
        assert error_substring in str(exc.value)
        assert str(path) in str(exc.value)
