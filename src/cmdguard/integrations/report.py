"""Security report generation over the audit log.

Aggregates audit entries from the last N days into summary counts, the most
frequent violations, a per-day timeline and threshold-based recommendations.
"""

from collections import Counter, defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional

from cmdguard.core.scoring import HIGH_RISK_THRESHOLD

from .audit import AuditEntry, AuditLog

TOP_VIOLATIONS_LIMIT = 10
BLOCKED_RATIO_THRESHOLD = 0.1
AVERAGE_SCORE_THRESHOLD = 30


@dataclass(frozen=True)
class ReportSummary:
    """Headline counts for the analysed window."""

    total_commands: int = 0
    valid_commands: int = 0
    blocked_commands: int = 0
    high_risk_commands: int = 0
    average_risk_score: float = 0.0


@dataclass(frozen=True)
class ViolationCount:
    """How often a violation description appeared."""

    rule: str
    count: int
    severity: str


@dataclass(frozen=True)
class TimelinePoint:
    """Entries and mean risk score for one UTC calendar day."""

    date: date
    count: int
    average_risk_score: float


@dataclass(frozen=True)
class SecurityReport:
    """Aggregated view of recent validations."""

    summary: ReportSummary
    top_violations: list[ViolationCount] = field(default_factory=list)
    timeline: list[TimelinePoint] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)
    generated_at: Optional[datetime] = None
    days: int = 7

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible mapping."""
        return {
            "summary": {
                "total_commands": self.summary.total_commands,
                "valid_commands": self.summary.valid_commands,
                "blocked_commands": self.summary.blocked_commands,
                "high_risk_commands": self.summary.high_risk_commands,
                "average_risk_score": self.summary.average_risk_score,
            },
            "top_violations": [{"rule": v.rule, "count": v.count, "severity": v.severity} for v in self.top_violations],
            "timeline": [
                {"date": p.date.isoformat(), "count": p.count, "average_risk_score": p.average_risk_score}
                for p in self.timeline
            ],
            "recommendations": list(self.recommendations),
            "generated_at": self.generated_at.isoformat() if self.generated_at else None,
            "days": self.days,
        }


def _summarize(entries: list[AuditEntry]) -> ReportSummary:
    if not entries:
        return ReportSummary()
    total_score = sum(e.risk_score for e in entries)
    return ReportSummary(
        total_commands=len(entries),
        valid_commands=sum(1 for e in entries if e.is_valid),
        blocked_commands=sum(1 for e in entries if not e.is_valid),
        high_risk_commands=sum(1 for e in entries if e.risk_score >= HIGH_RISK_THRESHOLD),
        average_risk_score=total_score / len(entries),
    )


def _top_violations(entries: list[AuditEntry]) -> list[ViolationCount]:
    """Most frequent violation descriptions, ties in first-seen order.

    Severity is taken from the first entry carrying the description: "high"
    if that entry was high-risk, otherwise "medium".
    """
    counts: Counter[str] = Counter()
    severities: dict[str, str] = {}
    for entry in entries:
        for violation in entry.violations:
            counts[violation] += 1
            if violation not in severities:
                severities[violation] = "high" if entry.risk_score >= HIGH_RISK_THRESHOLD else "medium"

    # most_common() keeps insertion order for equal counts
    return [
        ViolationCount(rule=rule, count=count, severity=severities[rule])
        for rule, count in counts.most_common(TOP_VIOLATIONS_LIMIT)
    ]


def _timeline(entries: list[AuditEntry]) -> list[TimelinePoint]:
    buckets: dict[date, list[int]] = defaultdict(list)
    for entry in entries:
        buckets[entry.timestamp.date()].append(entry.risk_score)
    return [
        TimelinePoint(date=day, count=len(scores), average_risk_score=sum(scores) / len(scores))
        for day, scores in sorted(buckets.items())
    ]


def _recommendations(summary: ReportSummary) -> list[str]:
    recommendations = []
    if summary.blocked_commands > summary.total_commands * BLOCKED_RATIO_THRESHOLD:
        recommendations.append("High rate of blocked commands detected - review command patterns")
    if summary.high_risk_commands > 0:
        recommendations.append(
            f"{summary.high_risk_commands} high-risk commands detected - implement stricter validation"
        )
    if summary.average_risk_score > AVERAGE_SCORE_THRESHOLD:
        recommendations.append("Average command risk score is elevated - enhance security measures")
    return recommendations


def generate_report(audit_log: AuditLog, days: int = 7, now: Optional[datetime] = None) -> SecurityReport:
    """Aggregate audit entries from ``[now - days, now]``.

    Args:
        audit_log: Log to read
        days: Size of the window in days
        now: End of the window (defaults to the log's clock). A naive
            datetime is taken to be UTC.

    Returns:
        SecurityReport; an empty log gives zero counts and empty lists

    Raises:
        ValueError: If days is negative
        StoreError: If the audit log cannot be read
    """
    if days < 0:
        raise ValueError(f"days must be non-negative, got {days}")

    end = now or audit_log.now()
    if end.tzinfo is None:
        end = end.replace(tzinfo=timezone.utc)
    start = end - timedelta(days=days)
    relevant = [e for e in audit_log.entries() if start <= e.timestamp <= end]

    summary = _summarize(relevant)
    return SecurityReport(
        summary=summary,
        top_violations=_top_violations(relevant),
        timeline=_timeline(relevant),
        recommendations=_recommendations(summary),
        generated_at=end,
        days=days,
    )
