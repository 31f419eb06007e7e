"""Tests for security report generation."""

import json
from datetime import date, timedelta, timezone

import pytest

from cmdguard.integrations.audit import AuditEntry, AuditLog
from cmdguard.integrations.report import TimelinePoint, ViolationCount, generate_report


@pytest.fixture
def audit_log(store, clock):
    return AuditLog(store, clock=clock)


@pytest.fixture
def add_entry(audit_log, clock):
    """Append an entry timestamped relative to the fake clock."""

    def _add(risk_score=0, violations=None, is_valid=None, ago=timedelta(0)):
        audit_log.append(
            AuditEntry(
                timestamp=clock.datetime() - ago,
                command="cmd",
                is_valid=not violations if is_valid is None else is_valid,
                risk_score=risk_score,
                violations=violations or [],
            )
        )

    return _add


class TestSummary:
    def test_empty_log(self, audit_log, clock):
        report = generate_report(audit_log)
        assert report.summary.total_commands == 0
        assert report.summary.average_risk_score == 0
        assert report.top_violations == []
        assert report.timeline == []
        assert report.recommendations == []
        assert report.generated_at == clock.datetime()
        assert report.days == 7

    def test_example_counts(self, audit_log, add_entry):
        add_entry(risk_score=80, violations=["Detects script injection attempts"], ago=timedelta(days=1))
        add_entry(risk_score=0, ago=timedelta(days=2))

        summary = generate_report(audit_log, days=7).summary
        assert summary.total_commands == 2
        assert summary.valid_commands == 1
        assert summary.blocked_commands == 1
        assert summary.high_risk_commands == 1
        assert summary.average_risk_score == 40

    def test_window_excludes_old_and_future_entries(self, audit_log, add_entry):
        add_entry(risk_score=10, ago=timedelta(days=8))
        add_entry(risk_score=20, ago=timedelta(days=3))
        add_entry(risk_score=30, ago=-timedelta(hours=1))
        report = generate_report(audit_log, days=7)
        assert report.summary.total_commands == 1
        assert report.summary.average_risk_score == 20

    def test_zero_day_window(self, audit_log, add_entry):
        add_entry(risk_score=5)
        add_entry(risk_score=5, ago=timedelta(seconds=1))
        assert generate_report(audit_log, days=0).summary.total_commands == 1

    def test_negative_days_rejected(self, audit_log):
        with pytest.raises(ValueError):
            generate_report(audit_log, days=-1)

    def test_naive_now_taken_as_utc(self, audit_log, add_entry, clock):
        add_entry(risk_score=10, ago=timedelta(hours=2))
        report = generate_report(audit_log, now=clock.datetime().replace(tzinfo=None))
        assert report.summary.total_commands == 1
        assert report.generated_at == clock.datetime()
        assert report.generated_at.tzinfo is timezone.utc


class TestTopViolations:
    def test_counts_ties_in_first_seen_order(self, audit_log, add_entry):
        add_entry(risk_score=10, violations=["A", "B"])
        add_entry(risk_score=60, violations=["B"])
        add_entry(risk_score=60, violations=["C", "A"])

        report = generate_report(audit_log)
        assert report.top_violations == [
            ViolationCount(rule="A", count=2, severity="medium"),
            ViolationCount(rule="B", count=2, severity="medium"),
            ViolationCount(rule="C", count=1, severity="high"),
        ]

    def test_limited_to_ten(self, audit_log, add_entry):
        add_entry(risk_score=15, violations=[f"violation-{i}" for i in range(12)])
        assert len(generate_report(audit_log).top_violations) == 10


class TestTimeline:
    def test_grouped_by_day(self, audit_log, add_entry):
        add_entry(risk_score=10, ago=timedelta(days=1))
        add_entry(risk_score=30, ago=timedelta(days=1, hours=1))
        add_entry(risk_score=50, ago=timedelta(hours=2))

        assert generate_report(audit_log).timeline == [
            TimelinePoint(date=date(2025, 10, 8), count=2, average_risk_score=20),
            TimelinePoint(date=date(2025, 10, 9), count=1, average_risk_score=50),
        ]


class TestRecommendations:
    def test_all_thresholds(self, audit_log, add_entry):
        add_entry(risk_score=80, violations=["x"], ago=timedelta(days=1))
        add_entry(risk_score=0, ago=timedelta(days=2))

        assert generate_report(audit_log).recommendations == [
            "High rate of blocked commands detected - review command patterns",
            "1 high-risk commands detected - implement stricter validation",
            "Average command risk score is elevated - enhance security measures",
        ]

    def test_quiet_log_has_none(self, audit_log, add_entry):
        for _ in range(10):
            add_entry(risk_score=0)
        assert generate_report(audit_log).recommendations == []

    def test_blocked_ratio_only(self, audit_log, add_entry):
        """Two invalid out of ten is above the ratio, scores stay low."""
        for _ in range(8):
            add_entry(risk_score=0)
        add_entry(risk_score=15, violations=["Detects path traversal attempts"])
        add_entry(risk_score=15, violations=["Detects path traversal attempts"])

        assert generate_report(audit_log).recommendations == [
            "High rate of blocked commands detected - review command patterns",
        ]


class TestSerialization:
    def test_to_dict_is_json_compatible(self, audit_log, add_entry):
        add_entry(risk_score=25, violations=["Detects script injection attempts"])
        data = json.loads(json.dumps(generate_report(audit_log).to_dict()))
        assert data["summary"]["total_commands"] == 1
        assert data["top_violations"][0] == {
            "rule": "Detects script injection attempts",
            "count": 1,
            "severity": "medium",
        }
        assert data["timeline"][0]["date"] == "2025-10-09"
        assert data["days"] == 7
