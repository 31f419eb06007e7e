"""
cmdguard - security validation for untrusted automation commands.

Package structure:
- cmdguard.core: Validation engine (rules, scoring, sanitizer, rate limiter, validator)
- cmdguard.integrations: Storage, audit log and security reports
- cmdguard.config: Layered YAML configuration
- cmdguard.cli: Command-line host channel

Public API:
- validate_command(): Main validation function
- CommandValidator: Validator with injected rules, store and config
- ValidationResult: Validation outcome dataclass
- SecurityConfig: Per-call validation settings
"""

from cmdguard.core.rules import RuleAction, RuleSet, Severity, ValidationRule
from cmdguard.core.scoring import RiskLevel
from cmdguard.core.validator import (
    CommandValidator,
    RiskAssessment,
    ValidationResult,
    Violation,
    add_custom_rule,
    assess_command_risk,
    clear_command_audit,
    create_custom_rule,
    generate_security_report,
    get_command_audit,
    get_security_rules,
    is_command_safe,
    remove_rule,
    reset_rate_limit,
    validate_command,
    validate_commands,
)
from cmdguard.config import SecurityConfig, load_config
from cmdguard.exceptions import ConfigurationError, StoreError

__version__ = "0.1.0"

__all__ = [
    "validate_command",
    "validate_commands",
    "is_command_safe",
    "assess_command_risk",
    "get_command_audit",
    "clear_command_audit",
    "generate_security_report",
    "create_custom_rule",
    "add_custom_rule",
    "remove_rule",
    "get_security_rules",
    "reset_rate_limit",
    "CommandValidator",
    "ValidationResult",
    "Violation",
    "RiskAssessment",
    "RiskLevel",
    "RuleAction",
    "RuleSet",
    "Severity",
    "ValidationRule",
    "SecurityConfig",
    "load_config",
    "ConfigurationError",
    "StoreError",
]
