"""Security rule registry and rule matching.

This module defines the rule severity vocabulary, the rule data structures,
and the ordered, mutable rule registry used by the validation pipeline.
"""

import logging
import re
import threading
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from re import Pattern
from typing import Any, Optional, Union

import yaml

from cmdguard.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

# Path: core/rules.py -> core -> cmdguard -> data
DEFAULT_RULES_PATH = Path(__file__).parent.parent / "data" / "default_rules.yaml"

# Compiled-pattern flags that can be written inline as (?...) in the source
_INLINE_FLAGS = (
    (re.ASCII, "a"),
    (re.IGNORECASE, "i"),
    (re.MULTILINE, "m"),
    (re.DOTALL, "s"),
    (re.VERBOSE, "x"),
)
_LEADING_FLAGS_RE = re.compile(r"^(?:\(\?[aimsux]+\))+")


def _pattern_source(compiled: Pattern) -> str:
    """Regex source for ``compiled`` with its flags written inline.

    Leading global flag groups are folded into one, so a pattern compiled
    as ``re.compile("(?i)x", re.M)`` serializes as ``(?im)x``.
    """
    letters = "".join(letter for flag, letter in _INLINE_FLAGS if compiled.flags & flag)
    source = _LEADING_FLAGS_RE.sub("", compiled.pattern)
    return f"(?{letters}){source}" if letters else source


class Severity(Enum):
    """Risk level declared by a rule, and severity of a violation.

    Levels:
        LOW: Suspicious but usually harmless (e.g., repeated text)
        MEDIUM: Needs attention, usually sanitized (e.g., path traversal)
        HIGH: Dangerous, usually blocked (e.g., script injection)

    Example:
        >>> Severity.HIGH > Severity.MEDIUM
        True
        >>> Severity("low")
        <Severity.LOW: 'low'>
    """

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        """Numeric rank used for ordering."""
        return _SEVERITY_RANKS[self]

    def __lt__(self, other):
        """Enable comparison for severity prioritization."""
        if self.__class__ is other.__class__:
            return self.rank < other.rank
        return NotImplemented

    def __le__(self, other):
        """Enable comparison for severity prioritization."""
        if self.__class__ is other.__class__:
            return self.rank <= other.rank
        return NotImplemented

    def __gt__(self, other):
        """Enable comparison for severity prioritization."""
        if self.__class__ is other.__class__:
            return self.rank > other.rank
        return NotImplemented

    def __ge__(self, other):
        """Enable comparison for severity prioritization."""
        if self.__class__ is other.__class__:
            return self.rank >= other.rank
        return NotImplemented


_SEVERITY_RANKS = {Severity.LOW: 1, Severity.MEDIUM: 2, Severity.HIGH: 3}


class RuleAction(Enum):
    """Remediation applied when a rule matches."""

    ALLOW = "allow"
    BLOCK = "block"
    SANITIZE = "sanitize"


def _coerce_enum(enum_cls, value, rule_name: Optional[str] = None):
    """Accept enum members or their (case-insensitive) string values."""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).lower())
    except ValueError:
        choices = ", ".join(member.value for member in enum_cls)
        raise ConfigurationError(
            f"Invalid {enum_cls.__name__} {value!r}. Must be one of: {choices}",
            rule_name=rule_name,
        )


@dataclass(frozen=True)
class ValidationRule:
    r"""Security rule definition for command validation.

    Rules are immutable to prevent accidental modification once registered.
    The pattern is compiled at construction, so a malformed rule is rejected
    when it is created rather than when a command is evaluated.

    Attributes:
        name: Unique rule identifier (e.g., "Path Traversal")
        description: Human-readable explanation, copied into violations
        pattern: Regex source the rule matches against command text. A
            compiled pattern is accepted and stored with its flags inline.
        risk_level: Severity of a match
        action: What the pipeline does on a match
        replacement: Sanitization rewrite for matches ("" strips them).
            None means the sanitizer's generic placeholder is used.
        matcher: Compiled pattern (derived from ``pattern``)

    Example:
        >>> rule = ValidationRule(
        ...     name="Eval Call",
        ...     description="Detects eval usage",
        ...     pattern=r"\beval\s*\(",
        ...     risk_level=Severity.HIGH,
        ...     action=RuleAction.BLOCK,
        ... )
    """

    name: str
    description: str
    pattern: Union[str, Pattern]
    risk_level: Severity
    action: RuleAction
    replacement: Optional[str] = None
    matcher: Pattern = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        """Validate rule structure and compile the matcher."""
        if not self.name:
            raise ConfigurationError("Rule name cannot be empty")
        if not self.description:
            raise ConfigurationError("Rule description cannot be empty", rule_name=self.name)
        object.__setattr__(self, "risk_level", _coerce_enum(Severity, self.risk_level, self.name))
        object.__setattr__(self, "action", _coerce_enum(RuleAction, self.action, self.name))

        if isinstance(self.pattern, Pattern):
            if not isinstance(self.pattern.pattern, str):
                raise ConfigurationError("Rule pattern must be a text (str) regex", rule_name=self.name)
            compiled = self.pattern
            object.__setattr__(self, "pattern", _pattern_source(compiled))
        elif isinstance(self.pattern, str) and self.pattern:
            try:
                compiled = re.compile(self.pattern)
            except re.error as e:
                raise ConfigurationError(
                    f"Invalid regex pattern: {self.pattern!r} - {e}",
                    rule_name=self.name,
                )
        else:
            raise ConfigurationError("Rule pattern must be a non-empty string or compiled regex", rule_name=self.name)
        object.__setattr__(self, "matcher", compiled)

    def search(self, text: str) -> Optional[str]:
        """Return the first matched substring, or None if the rule does not match."""
        match = self.matcher.search(text)
        return match.group(0) if match else None

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the same mapping shape accepted by rule YAML."""
        data: dict[str, Any] = {
            "name": self.name,
            "description": self.description,
            "pattern": self.pattern,
            "risk_level": self.risk_level.value,
            "action": self.action.value,
        }
        if self.replacement is not None:
            data["replacement"] = self.replacement
        return data


@dataclass(frozen=True)
class RuleMatch:
    """A rule that matched, with the substring it matched."""

    rule: ValidationRule
    matched_text: str


def rule_from_dict(rule_data: Any, file_path: Optional[str] = None) -> ValidationRule:
    """Build a ValidationRule from a YAML/JSON mapping.

    Args:
        rule_data: Mapping with name, description, pattern, risk_level,
            action and optional replacement
        file_path: Source file (for error messages)

    Raises:
        ConfigurationError: If the mapping is malformed or the pattern is invalid
    """
    if not isinstance(rule_data, dict):
        raise ConfigurationError("Rule entry must be a dictionary", file_path=file_path)

    known = {"name", "description", "pattern", "risk_level", "action", "replacement"}
    unknown = set(rule_data) - known
    if unknown:
        raise ConfigurationError(
            f"Unknown rule fields: {', '.join(sorted(unknown))}",
            file_path=file_path,
            rule_name=rule_data.get("name"),
        )

    try:
        return ValidationRule(**rule_data)
    except TypeError as e:
        raise ConfigurationError(
            f"Invalid rule structure: {e}",
            file_path=file_path,
            rule_name=rule_data.get("name"),
        )
    except ConfigurationError as e:
        if file_path and not e.file_path:
            raise ConfigurationError(e.message, file_path=file_path, rule_name=e.rule_name) from e
        raise


def _load_rules_file(path: Path) -> list[ValidationRule]:
    """Load rules from a single YAML file."""
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML syntax: {e}", file_path=str(path))
    except OSError as e:
        raise ConfigurationError(f"Failed to read rules file: {e}", file_path=str(path))

    if not data:
        return []
    if not isinstance(data, dict):
        raise ConfigurationError("YAML root must be a dictionary", file_path=str(path))

    rules_data = data.get("rules", [])
    if not isinstance(rules_data, list):
        raise ConfigurationError("'rules' must be a list", file_path=str(path))
    if not rules_data:
        logger.warning(f"No rules found in {path}")

    return [rule_from_dict(rule_data, file_path=str(path)) for rule_data in rules_data]


def load_rules(rules_path: Union[str, Path]) -> list[ValidationRule]:
    """Load rules from a YAML file or a directory of YAML files.

    Directory files are loaded in sorted (alphabetical) order, which respects
    an NN_ numbering convention for deterministic rule ordering.

    Args:
        rules_path: Path to a rules YAML file or a directory of them

    Returns:
        Rules in file order

    Raises:
        ConfigurationError: If the path is missing, YAML is invalid,
                            or any rule is malformed
    """
    path = Path(rules_path)
    if not path.exists():
        raise ConfigurationError(f"Rules path not found: {path}", file_path=str(path))

    if path.is_dir():
        yaml_files = sorted(path.glob("*.yaml"))
        if not yaml_files:
            raise ConfigurationError(f"No YAML files found in rules directory: {path}", file_path=str(path))
        rules: list[ValidationRule] = []
        for yaml_file in yaml_files:
            rules.extend(_load_rules_file(yaml_file))
        logger.info(f"Loaded {len(rules)} rules from {len(yaml_files)} files in {path}")
        return rules

    rules = _load_rules_file(path)
    logger.debug(f"Loaded {len(rules)} rules from {path}")
    return rules


class RuleSet:
    """Ordered, mutable registry of validation rules.

    Evaluation order is registration order. Built-in rules come first when
    the set is created with ``RuleSet.default()``; rules added later are
    appended. Adding a rule whose name is already registered replaces the
    older definition (last write wins) and moves it to the end.

    Thread-safe: all reads take a snapshot under the registry lock, so a
    concurrent add/remove never tears an in-flight evaluation.

    Example:
        >>> rules = RuleSet.default()
        >>> [m.rule.name for m in rules.evaluate("../etc")]
        ['Path Traversal']
    """

    def __init__(self, rules: Optional[Iterable[ValidationRule]] = None):
        self._rules: list[ValidationRule] = []
        self._lock = threading.RLock()
        for rule in rules or ():
            self.add(rule)

    @classmethod
    def default(cls) -> "RuleSet":
        """Create a registry holding the built-in rules."""
        return cls(load_rules(DEFAULT_RULES_PATH))

    @classmethod
    def from_yaml(cls, rules_path: Union[str, Path]) -> "RuleSet":
        """Create a registry from a rules YAML file or directory."""
        return cls(load_rules(rules_path))

    def add(self, rule: ValidationRule) -> None:
        """Register a rule, replacing any rule with the same name."""
        if not isinstance(rule, ValidationRule):
            raise TypeError(f"rule must be a ValidationRule, got {type(rule).__name__}")
        with self._lock:
            replaced = self._remove_locked(rule.name)
            self._rules.append(rule)
        if replaced:
            logger.debug(f"Replaced rule {rule.name!r}")

    def remove(self, name: str) -> bool:
        """Remove a rule by name.

        Returns:
            True if a rule was removed, False if no rule had that name
        """
        with self._lock:
            return self._remove_locked(name)

    def _remove_locked(self, name: str) -> bool:
        for index, existing in enumerate(self._rules):
            if existing.name == name:
                del self._rules[index]
                return True
        return False

    def get(self, name: str) -> Optional[ValidationRule]:
        """Look up a rule by name."""
        with self._lock:
            return next((rule for rule in self._rules if rule.name == name), None)

    def list_rules(self) -> list[ValidationRule]:
        """Return a copy of the registered rules in evaluation order."""
        with self._lock:
            return list(self._rules)

    def evaluate(self, text: str) -> list[RuleMatch]:
        """Test every rule against ``text`` in registration order.

        This is a full scan with no sanitization and no short-circuit. The
        validation pipeline implements block/sanitize semantics on top of
        the same ordering.
        """
        matches = []
        for rule in self.list_rules():
            matched_text = rule.search(text)
            if matched_text is not None:
                matches.append(RuleMatch(rule=rule, matched_text=matched_text))
        return matches

    def __iter__(self) -> Iterator[ValidationRule]:
        return iter(self.list_rules())

    def __len__(self) -> int:
        with self._lock:
            return len(self._rules)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.get(name) is not None
