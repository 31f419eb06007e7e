"""Core validation engine.

This module contains the essential components for command validation:
- rules: Rule registry and built-in rules
- scoring: Risk score and risk level computation
- sanitizer: Rule-driven text rewriting
- ratelimit: Sliding-window rate limiter
- validator: Main validation pipeline
"""

from cmdguard.core.rules import RuleAction, RuleMatch, RuleSet, Severity, ValidationRule
from cmdguard.core.scoring import RiskLevel, compute_risk_score, risk_level_for_score
from cmdguard.core.sanitizer import Sanitizer
from cmdguard.core.ratelimit import RateLimiter
from cmdguard.core.validator import CommandValidator, ValidationResult, Violation, validate_command

__all__ = [
    # Rules
    "RuleAction",
    "RuleMatch",
    "RuleSet",
    "Severity",
    "ValidationRule",
    # Scoring
    "RiskLevel",
    "compute_risk_score",
    "risk_level_for_score",
    # Sanitizer
    "Sanitizer",
    # Rate limiting
    "RateLimiter",
    # Validator
    "CommandValidator",
    "ValidationResult",
    "Violation",
    "validate_command",
]
