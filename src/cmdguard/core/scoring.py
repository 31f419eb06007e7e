"""Risk scoring.

Pure functions mapping matched rules and heuristic flags to a cumulative
risk score, and bucketing that score into a coarse risk level.

The risk score is unbounded: ten high-severity matches score 250. It is a
different metric from any 0-100 compliance score a consumer derives from
the audit log, and the two must not be mixed.
"""

from collections.abc import Iterable
from enum import Enum
from typing import Union

from .rules import RuleMatch, Severity, ValidationRule

SEVERITY_WEIGHTS = {
    Severity.HIGH: 25,
    Severity.MEDIUM: 15,
    Severity.LOW: 5,
}

# Fixed weights for checks that are not severity-weighted
STRICT_FLAG_WEIGHT = 10
RATE_LIMIT_WEIGHT = 20
BLOCKED_TERM_WEIGHT = 30
ALLOW_LIST_WEIGHT = 15

# Scores at or above this are "high risk" for is_command_safe() and reports
HIGH_RISK_THRESHOLD = 50


class RiskLevel(Enum):
    """Coarse risk label derived from a risk score.

    Levels:
        LOW: score < 25
        MEDIUM: 25 <= score < 50
        HIGH: 50 <= score < 75
        CRITICAL: score >= 75
    """

    LOW = 0
    MEDIUM = 1
    HIGH = 2
    CRITICAL = 3

    @property
    def label(self) -> str:
        """Lowercase name used in serialized output."""
        return self.name.lower()

    def __lt__(self, other):
        """Enable comparison for risk prioritization."""
        if self.__class__ is other.__class__:
            return self.value < other.value
        return NotImplemented

    def __le__(self, other):
        """Enable comparison for risk prioritization."""
        if self.__class__ is other.__class__:
            return self.value <= other.value
        return NotImplemented

    def __gt__(self, other):
        """Enable comparison for risk prioritization."""
        if self.__class__ is other.__class__:
            return self.value > other.value
        return NotImplemented

    def __ge__(self, other):
        """Enable comparison for risk prioritization."""
        if self.__class__ is other.__class__:
            return self.value >= other.value
        return NotImplemented


def severity_weight(severity: Severity) -> int:
    """Score contribution of one match at ``severity``."""
    return SEVERITY_WEIGHTS[severity]


def _severity_of(item: Union[RuleMatch, ValidationRule, Severity]) -> Severity:
    if isinstance(item, RuleMatch):
        return item.rule.risk_level
    if isinstance(item, ValidationRule):
        return item.risk_level
    return item


def compute_risk_score(
    matches: Iterable[Union[RuleMatch, ValidationRule, Severity]],
    strict_flags: int = 0,
) -> int:
    """Compute the cumulative risk score.

    Args:
        matches: Matched rules (as RuleMatch, ValidationRule or bare Severity)
        strict_flags: Number of strict-mode heuristics that fired

    Returns:
        Sum of severity weights plus STRICT_FLAG_WEIGHT per strict flag

    Example:
        >>> compute_risk_score([Severity.HIGH, Severity.LOW], strict_flags=1)
        40
    """
    if strict_flags < 0:
        raise ValueError(f"strict_flags must be non-negative, got {strict_flags}")
    score = sum(severity_weight(_severity_of(item)) for item in matches)
    return score + strict_flags * STRICT_FLAG_WEIGHT


def risk_level_for_score(score: int) -> RiskLevel:
    """Bucket a raw risk score into a RiskLevel."""
    if score >= 75:
        return RiskLevel.CRITICAL
    if score >= 50:
        return RiskLevel.HIGH
    if score >= 25:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW
