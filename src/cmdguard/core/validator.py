"""Command validation pipeline.

This module orchestrates the validation flow, integrating the rule registry,
risk scorer, sanitizer, rate limiter and audit log. It provides the
CommandValidator class and the module-level API backed by a lazily created
default validator.

Validation flow (per call, terminal on the first blocking rule):
1. Rate-limit check (advisory violation, never terminal)
2. Blocked-term check
3. Allowed-term check
4. Rule evaluation in registry order, then per-call custom rules
   - block: stop immediately, return the violations so far
   - sanitize: rewrite the working text, keep scanning later rules
5. Strict-mode heuristics
6. Audit logging (failures never fail the validation)
7. Result
"""

import logging
import threading
import time
from collections.abc import Iterable
from dataclasses import dataclass, field
from re import Pattern
from typing import Any, Callable, Optional, Union

from cmdguard.config import SecurityConfig, load_config
from cmdguard.integrations.audit import AuditEntry, AuditLog
from cmdguard.integrations.report import SecurityReport, generate_report
from cmdguard.integrations.store import JsonFileStore, KeyValueStore, MemoryStore

from .ratelimit import RateLimiter
from .rules import RuleAction, RuleSet, Severity, ValidationRule
from .sanitizer import Sanitizer
from .scoring import (
    ALLOW_LIST_WEIGHT,
    BLOCKED_TERM_WEIGHT,
    HIGH_RISK_THRESHOLD,
    RATE_LIMIT_WEIGHT,
    STRICT_FLAG_WEIGHT,
    RiskLevel,
    risk_level_for_score,
    severity_weight,
)

logger = logging.getLogger(__name__)

BLOCKED_WARNING = "Command blocked due to security violations"

# Strict-mode heuristics
MAX_COMMAND_LENGTH = 1000
MAX_SPECIAL_CHAR_RATIO = 0.5
MIN_REPEAT_LENGTH = 10


@dataclass(frozen=True)
class Violation:
    """One rule or heuristic match recorded during validation."""

    rule: str
    severity: Severity
    matched_text: str
    description: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "rule": self.rule,
            "severity": self.severity.value,
            "matched_text": self.matched_text,
            "description": self.description,
        }


@dataclass(frozen=True)
class ValidationResult:
    """Result of command validation.

    Immutable result containing the validation outcome. Only a redacted
    projection of it is ever persisted (see AuditLog.record).

    Attributes:
        is_valid: False iff at least one violation was recorded
        original_command: The command as submitted
        violations: Violations in the order they were recorded
        sanitized_command: Command after every sanitize rewrite; None when a
            blocking rule stopped evaluation
        risk_score: Cumulative, unbounded risk score
        warnings: Human-readable notes (sanitizations, block notice)

    Example:
        >>> result = validator.validate("<script>alert(1)</script>")
        >>> result.is_valid
        False
        >>> result.violations[0].rule
        'Script Injection'
    """

    is_valid: bool
    original_command: str
    violations: list[Violation] = field(default_factory=list)
    sanitized_command: Optional[str] = None
    risk_score: int = 0
    warnings: list[str] = field(default_factory=list)

    @property
    def blocked(self) -> bool:
        """Whether a blocking rule terminated evaluation."""
        return self.sanitized_command is None

    @property
    def risk_level(self) -> RiskLevel:
        return risk_level_for_score(self.risk_score)

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "original_command": self.original_command,
            "violations": [v.to_dict() for v in self.violations],
            "sanitized_command": self.sanitized_command,
            "risk_score": self.risk_score,
            "risk_level": self.risk_level.label,
            "warnings": list(self.warnings),
        }


@dataclass(frozen=True)
class RiskAssessment:
    """Coarse risk label, score and contributing factors for a command."""

    risk_level: RiskLevel
    risk_score: int
    factors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "risk_level": self.risk_level.label,
            "risk_score": self.risk_score,
            "factors": list(self.factors),
        }


def find_repeated_substring(text: str, min_length: int = MIN_REPEAT_LENGTH) -> Optional[str]:
    """Find a substring of at least ``min_length`` chars that occurs twice.

    Occurrences must not overlap, so a run of one repeated character only
    counts once it is twice ``min_length`` long. Any longer repeat contains
    a repeated ``min_length`` window, so checking windows of exactly that
    length is sufficient and keeps this linear in ``len(text)``.

    Returns:
        The first repeated window found, or None
    """
    first_seen: dict[str, int] = {}
    for start in range(len(text) - min_length + 1):
        window = text[start : start + min_length]
        previous = first_seen.get(window)
        if previous is None:
            first_seen[window] = start
        elif start - previous >= min_length:
            return window
    return None


def strict_violations(command: str) -> list[Violation]:
    """Heuristic checks not tied to named rules."""
    violations = []

    if len(command) > MAX_COMMAND_LENGTH:
        violations.append(
            Violation(
                rule="Command Length",
                severity=Severity.MEDIUM,
                matched_text=command,
                description="Command is unusually long",
            )
        )

    special_count = sum(1 for ch in command if not (ch.isascii() and ch.isalnum()) and not ch.isspace())
    if special_count > len(command) * MAX_SPECIAL_CHAR_RATIO:
        violations.append(
            Violation(
                rule="Special Characters",
                severity=Severity.MEDIUM,
                matched_text=command,
                description="Command contains excessive special characters",
            )
        )

    repeated = find_repeated_substring(command)
    if repeated is not None:
        violations.append(
            Violation(
                rule="Repeated Patterns",
                severity=Severity.LOW,
                matched_text=repeated,
                description="Command contains suspicious repeated patterns",
            )
        )

    return violations


def create_custom_rule(
    name: str,
    description: str,
    pattern: Union[str, Pattern],
    risk_level: Union[Severity, str],
    action: Union[RuleAction, str],
    replacement: Optional[str] = None,
) -> ValidationRule:
    """Create a validation rule.

    Raises:
        ConfigurationError: If the pattern does not compile or a field is invalid
    """
    return ValidationRule(
        name=name,
        description=description,
        pattern=pattern,
        risk_level=risk_level,
        action=action,
        replacement=replacement,
    )


class CommandValidator:
    """Validate untrusted automation commands.

    All collaborators are injected. Anything not supplied gets a private
    default, so two validators never share rule or rate-limit state unless
    the caller shares it explicitly.

    Args:
        rules: Rule registry (defaults to the built-in rules)
        store: Key-value store for rate limiting and audit (defaults to memory)
        config: Default SecurityConfig for calls that pass none
        rate_limiter: Overrides the limiter built over ``store``
        audit_log: Overrides the audit log built over ``store``
        sanitizer: Overrides the default Sanitizer
        clock: Time source for the default limiter and audit log

    Example:
        >>> validator = CommandValidator(store=MemoryStore())
        >>> validator.validate("../../etc/passwd").sanitized_command
        'etc/passwd'
    """

    def __init__(
        self,
        rules: Optional[RuleSet] = None,
        store: Optional[KeyValueStore] = None,
        config: Optional[SecurityConfig] = None,
        rate_limiter: Optional[RateLimiter] = None,
        audit_log: Optional[AuditLog] = None,
        sanitizer: Optional[Sanitizer] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.rules = rules if rules is not None else RuleSet.default()
        self.store = store if store is not None else MemoryStore()
        self.config = config if config is not None else SecurityConfig()
        # Explicit None checks: AuditLog defines __len__, so an empty log is falsy
        if rate_limiter is None:
            rate_limiter = RateLimiter(
                self.store,
                max_per_minute=self.config.max_commands_per_minute,
                fail_open=self.config.fail_open,
                clock=clock,
            )
        self.rate_limiter = rate_limiter
        self.audit_log = audit_log if audit_log is not None else AuditLog(self.store, clock=clock)
        self.sanitizer = sanitizer if sanitizer is not None else Sanitizer()

    def validate(self, command: str, config: Optional[SecurityConfig] = None) -> ValidationResult:  # noqa: PLR0912 - Pipeline stages
        """Validate a command for safety.

        Never raises for string input. Policy failures are reported through
        ``violations``; store failures degrade per ``config.fail_open``.

        Args:
            command: Command text to validate
            config: Per-call settings (defaults to the validator's config)

        Returns:
            ValidationResult

        Raises:
            TypeError: If command is not a string
        """
        if not isinstance(command, str):
            raise TypeError(f"command must be a str, got {type(command).__name__}")

        cfg = config or self.config
        violations: list[Violation] = []
        warnings: list[str] = []
        risk_score = 0
        working = command

        # Step 1: Rate limiting (advisory)
        if cfg.enable_rate_limit and not self.rate_limiter.check_and_record(
            cfg.rate_limit_scope,
            max_per_minute=cfg.max_commands_per_minute,
            fail_open=cfg.fail_open,
        ):
            violations.append(
                Violation(
                    rule="Rate Limit",
                    severity=Severity.MEDIUM,
                    matched_text=command,
                    description="Command rate limit exceeded",
                )
            )
            risk_score += RATE_LIMIT_WEIGHT

        # Step 2: Blocked terms
        lowered = command.lower()
        for term in cfg.blocked_commands:
            if term and term.lower() in lowered:
                violations.append(
                    Violation(
                        rule="Blocked Command",
                        severity=Severity.HIGH,
                        matched_text=command,
                        description=f"Command contains blocked term: {term}",
                    )
                )
                risk_score += BLOCKED_TERM_WEIGHT

        # Step 3: Allowed terms
        allowed_terms = [term for term in cfg.allowed_commands if term]
        if allowed_terms and not any(term.lower() in lowered for term in allowed_terms):
            violations.append(
                Violation(
                    rule="Allowed Command",
                    severity=Severity.MEDIUM,
                    matched_text=command,
                    description="Command not in allowed list",
                )
            )
            risk_score += ALLOW_LIST_WEIGHT

        # Step 4: Rules, against the progressively sanitized text
        for rule in [*self.rules.list_rules(), *cfg.custom_rules]:
            matched_text = rule.search(working)
            if matched_text is None:
                continue

            logger.debug(f"Rule {rule.name!r} matched {matched_text[:50]!r} (action: {rule.action.value})")
            violations.append(
                Violation(
                    rule=rule.name,
                    severity=rule.risk_level,
                    matched_text=matched_text,
                    description=rule.description,
                )
            )
            risk_score += severity_weight(rule.risk_level)

            if rule.action is RuleAction.BLOCK:
                warnings.append(BLOCKED_WARNING)
                result = ValidationResult(
                    is_valid=False,
                    original_command=command,
                    violations=violations,
                    sanitized_command=None,
                    risk_score=risk_score,
                    warnings=warnings,
                )
                self._log(result, cfg)
                return result

            if rule.action is RuleAction.SANITIZE:
                working = self.sanitizer.sanitize(working, rule)
                warnings.append(f"Command sanitized due to {rule.name}")

        # Step 5: Strict heuristics
        if cfg.enable_strict_validation:
            heuristics = strict_violations(command)
            violations.extend(heuristics)
            risk_score += len(heuristics) * STRICT_FLAG_WEIGHT

        result = ValidationResult(
            is_valid=not violations,
            original_command=command,
            violations=violations,
            sanitized_command=working,
            risk_score=risk_score,
            warnings=warnings,
        )

        # Step 6: Audit
        self._log(result, cfg)
        return result

    def _log(self, result: ValidationResult, cfg: SecurityConfig) -> None:
        if not cfg.enable_command_logging:
            return
        try:
            self.audit_log.record(result, source=cfg.source)
        except Exception:
            # Audit is a side effect; the validation result stands regardless
            logger.warning("Unexpected error writing audit entry", exc_info=True)

    def validate_many(self, commands: Iterable[str], config: Optional[SecurityConfig] = None) -> list[ValidationResult]:
        """Validate each command independently, preserving order."""
        return [self.validate(command, config) for command in commands]

    def is_safe(self, command: str, config: Optional[SecurityConfig] = None) -> bool:
        """True iff the command is valid and scores below the high-risk threshold."""
        result = self.validate(command, config)
        return result.is_valid and result.risk_score < HIGH_RISK_THRESHOLD

    def assess_risk(self, command: str, config: Optional[SecurityConfig] = None) -> RiskAssessment:
        """Validate and summarize the command's risk."""
        result = self.validate(command, config)
        return RiskAssessment(
            risk_level=result.risk_level,
            risk_score=result.risk_score,
            factors=[v.description for v in result.violations],
        )

    def get_audit(self, limit: int = 100) -> list[AuditEntry]:
        """Most recent audit entries, newest first."""
        return self.audit_log.query(limit)

    def clear_audit(self) -> None:
        self.audit_log.clear()

    def generate_report(self, days: int = 7) -> SecurityReport:
        return generate_report(self.audit_log, days=days)

    def add_custom_rule(self, rule: ValidationRule) -> None:
        self.rules.add(rule)

    def remove_rule(self, name: str) -> bool:
        return self.rules.remove(name)

    def get_rules(self) -> list[ValidationRule]:
        return self.rules.list_rules()

    def reset_rate_limit(self) -> None:
        self.rate_limiter.reset()


# Module-level default validator (lazy-loaded with thread-safe initialization)
_default_validator: Optional[CommandValidator] = None
_default_validator_lock = threading.Lock()


def get_default_validator() -> CommandValidator:
    """Get or create the validator behind the module-level API.

    Uses the built-in rules, layered config files (see cmdguard.config) and
    the persistent JSON store. Thread-safe via double-check locking.
    """
    global _default_validator  # noqa: PLW0603 - Singleton for the module API

    if _default_validator is None:
        with _default_validator_lock:
            if _default_validator is None:
                _default_validator = CommandValidator(store=JsonFileStore(), config=load_config())
    return _default_validator


def set_default_validator(validator: Optional[CommandValidator]) -> None:
    """Replace the module-level validator (None resets to lazy creation)."""
    global _default_validator  # noqa: PLW0603 - Singleton for the module API
    with _default_validator_lock:
        _default_validator = validator


def validate_command(command: str, config: Optional[SecurityConfig] = None) -> ValidationResult:
    """Validate a command with the default validator.

    Example:
        >>> result = validate_command("../../etc/passwd")
        >>> result.sanitized_command
        'etc/passwd'
    """
    return get_default_validator().validate(command, config)


def validate_commands(commands: Iterable[str], config: Optional[SecurityConfig] = None) -> list[ValidationResult]:
    return get_default_validator().validate_many(commands, config)


def is_command_safe(command: str, config: Optional[SecurityConfig] = None) -> bool:
    return get_default_validator().is_safe(command, config)


def assess_command_risk(command: str, config: Optional[SecurityConfig] = None) -> RiskAssessment:
    return get_default_validator().assess_risk(command, config)


def get_command_audit(limit: int = 100) -> list[AuditEntry]:
    return get_default_validator().get_audit(limit)


def clear_command_audit() -> None:
    get_default_validator().clear_audit()


def generate_security_report(days: int = 7) -> SecurityReport:
    return get_default_validator().generate_report(days)


def add_custom_rule(rule: ValidationRule) -> None:
    get_default_validator().add_custom_rule(rule)


def remove_rule(name: str) -> bool:
    return get_default_validator().remove_rule(name)


def get_security_rules() -> list[ValidationRule]:
    return get_default_validator().get_rules()


def reset_rate_limit() -> None:
    get_default_validator().reset_rate_limit()
