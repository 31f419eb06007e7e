"""Collaborators around the validation engine.

This module contains the pieces that touch persistent state:
- store: Key-value store backends (memory, JSON file)
- audit: Bounded audit log of validation outcomes
- report: Security reports aggregated from the audit log
"""

from cmdguard.integrations.audit import AuditEntry, AuditLog, scrub_secrets
from cmdguard.integrations.report import SecurityReport, generate_report
from cmdguard.integrations.store import JsonFileStore, KeyValueStore, MemoryStore

__all__ = [
    # Audit
    "AuditEntry",
    "AuditLog",
    "scrub_secrets",
    # Report
    "SecurityReport",
    "generate_report",
    # Store
    "JsonFileStore",
    "KeyValueStore",
    "MemoryStore",
]
