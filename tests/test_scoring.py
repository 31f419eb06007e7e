"""Tests for risk scoring."""

import pytest

from cmdguard.core.rules import RuleMatch, Severity
from cmdguard.core.scoring import (
    HIGH_RISK_THRESHOLD,
    RiskLevel,
    compute_risk_score,
    risk_level_for_score,
    severity_weight,
)


class TestComputeRiskScore:
    """Cumulative, unbounded scoring."""

    @pytest.mark.parametrize(
        "severity,weight",
        [(Severity.HIGH, 25), (Severity.MEDIUM, 15), (Severity.LOW, 5)],
    )
    def test_severity_weights(self, severity, weight):
        assert severity_weight(severity) == weight
        assert compute_risk_score([severity]) == weight

    def test_empty_is_zero(self):
        assert compute_risk_score([]) == 0

    def test_sums_matches_and_strict_flags(self):
        assert compute_risk_score([Severity.HIGH, Severity.MEDIUM, Severity.LOW]) == 45
        assert compute_risk_score([Severity.HIGH, Severity.MEDIUM, Severity.LOW], strict_flags=2) == 65

    def test_score_is_unbounded(self):
        """Ten high-severity matches score 250, not 100."""
        assert compute_risk_score([Severity.HIGH] * 10) == 250

    def test_accepts_rules_and_matches(self, rules):
        script = rules.get("Script Injection")
        traversal = rules.get("Path Traversal")
        items = [script, RuleMatch(rule=traversal, matched_text="../")]
        assert compute_risk_score(items) == 40

    def test_negative_strict_flags_rejected(self):
        with pytest.raises(ValueError):
            compute_risk_score([], strict_flags=-1)


class TestRiskLevel:
    @pytest.mark.parametrize(
        "score,level",
        [
            (0, RiskLevel.LOW),
            (24, RiskLevel.LOW),
            (25, RiskLevel.MEDIUM),
            (49, RiskLevel.MEDIUM),
            (50, RiskLevel.HIGH),
            (74, RiskLevel.HIGH),
            (75, RiskLevel.CRITICAL),
            (500, RiskLevel.CRITICAL),
        ],
    )
    def test_bucket_boundaries(self, score, level):
        assert risk_level_for_score(score) is level

    def test_high_risk_threshold_starts_high_bucket(self):
        assert risk_level_for_score(HIGH_RISK_THRESHOLD) is RiskLevel.HIGH

    def test_ordering_and_label(self):
        assert RiskLevel.LOW < RiskLevel.MEDIUM < RiskLevel.HIGH < RiskLevel.CRITICAL
        assert RiskLevel.CRITICAL.label == "critical"
