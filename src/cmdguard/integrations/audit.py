"""Audit logging for command validations.

This module keeps a bounded forensic trail of validation outcomes in the
key-value store. The log is a JSON array stored under a single key, oldest
entry first, capped at the most recent 1000 entries (FIFO eviction).

Entry Format (JSON):
    - timestamp: ISO 8601 UTC timestamp
    - command: The validated command (secrets redacted, max 500 chars)
    - is_valid: Whether validation passed
    - risk_score: Cumulative risk score
    - violations: Violation descriptions
    - source: Who submitted the command (e.g., "user")

Security:
    Secrets (passwords, tokens, API keys) are redacted before logging.
    Patterns like password=secret, --token VALUE, Authorization: Bearer TOKEN
    are scrubbed.

Failure Handling:
    Appends never raise: a store failure is logged and the entry is dropped.
    Audit logging must not fail a validation.
"""

import logging
import re
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Callable, Optional

from cmdguard.exceptions import StoreError

if TYPE_CHECKING:
    from cmdguard.core.validator import ValidationResult

logger = logging.getLogger(__name__)

MAX_ENTRIES = 1000
MAX_COMMAND_LENGTH = 500
DEFAULT_SOURCE = "user"

# Secret patterns to redact (compiled once for performance)
SECRET_PATTERNS = [
    # password=VALUE, token=VALUE, api-key=VALUE, secret=VALUE
    (re.compile(r"(password|passwd|pwd|token|secret|api[-_]?key)=\S+", re.I), r"\1=***REDACTED***"),
    # Authorization: Bearer TOKEN
    (re.compile(r"(Authorization:\s*Bearer\s+)\S+", re.I), r"\1***REDACTED***"),
    # --password VALUE, --token VALUE, --api-key VALUE
    (re.compile(r"(--(password|passwd|token|secret|api[-_]?key)\s+)\S+", re.I), r"\1***REDACTED***"),
    # OpenAI/OpenRouter style keys pasted into free text
    (re.compile(r"\bsk-[A-Za-z0-9_-]{16,}"), "***REDACTED***"),
]


def scrub_secrets(command: str) -> str:
    """Redact secrets from command before logging.

    Example:
        >>> scrub_secrets("login with password=hunter2")
        'login with password=***REDACTED***'
    """
    scrubbed = command
    for pattern, replacement in SECRET_PATTERNS:
        scrubbed = pattern.sub(replacement, scrubbed)
    return scrubbed


@dataclass(frozen=True)
class AuditEntry:
    """One persisted validation outcome."""

    timestamp: datetime
    command: str
    is_valid: bool
    risk_score: int
    violations: list[str] = field(default_factory=list)
    source: str = DEFAULT_SOURCE

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible mapping."""
        return {
            "timestamp": self.timestamp.isoformat(),
            "command": self.command,
            "is_valid": self.is_valid,
            "risk_score": self.risk_score,
            "violations": list(self.violations),
            "source": self.source,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AuditEntry":
        """Parse a stored mapping.

        Raises:
            KeyError, ValueError, TypeError: If the mapping is malformed
        """
        timestamp = datetime.fromisoformat(str(data["timestamp"]).replace("Z", "+00:00"))
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)
        return cls(
            timestamp=timestamp,
            command=str(data.get("command", "")),
            is_valid=bool(data["is_valid"]),
            risk_score=int(data.get("risk_score", 0)),
            violations=[str(v) for v in data.get("violations", [])],
            source=str(data.get("source", DEFAULT_SOURCE)),
        )


class AuditLog:
    """Bounded, append-only audit log over a key-value store.

    Args:
        store: KeyValueStore holding the log
        max_entries: Retention bound (oldest entries evicted first)
        clock: Returns the current time in seconds (injectable for tests)

    Example:
        >>> log = AuditLog(MemoryStore())
        >>> log.record(result, source="popup")
        >>> log.query(limit=10)[0].source
        'popup'
    """

    # TODO: stored entries carry no schema version; add one before changing
    # AuditEntry.to_dict() so existing logs can be migrated.
    STORAGE_KEY = "commandSecurityLog"

    def __init__(
        self,
        store,
        max_entries: int = MAX_ENTRIES,
        clock: Callable[[], float] = time.time,
    ):
        if max_entries <= 0:
            raise ValueError(f"max_entries must be positive, got {max_entries}")
        self.store = store
        self.max_entries = max_entries
        self._clock = clock

    def now(self) -> datetime:
        """Current time as an aware UTC datetime."""
        return datetime.fromtimestamp(self._clock(), tz=timezone.utc)

    def _load_raw(self) -> list[Any]:
        data = self.store.get(self.STORAGE_KEY, [])
        if not isinstance(data, list):
            logger.warning(f"Discarding malformed audit log under {self.STORAGE_KEY!r}")
            return []
        return data

    def append(self, entry: AuditEntry) -> bool:
        """Append an entry, evicting the oldest beyond ``max_entries``.

        Returns:
            True if the entry was persisted, False if the store failed
        """
        with self.store.key_lock(self.STORAGE_KEY):
            try:
                raw = self._load_raw()
                raw.append(entry.to_dict())
                if len(raw) > self.max_entries:
                    del raw[: len(raw) - self.max_entries]
                self.store.set(self.STORAGE_KEY, raw)
                return True
            except StoreError as e:
                logger.warning(f"Failed to write audit entry: {e}")
                return False

    def record(self, result: "ValidationResult", source: str = DEFAULT_SOURCE) -> bool:
        """Build an entry from a validation result and append it.

        The command is scrubbed of secrets and truncated before storage.
        """
        entry = AuditEntry(
            timestamp=self.now(),
            command=scrub_secrets(result.original_command)[:MAX_COMMAND_LENGTH],
            is_valid=result.is_valid,
            risk_score=result.risk_score,
            violations=[v.description for v in result.violations],
            source=source,
        )
        return self.append(entry)

    def entries(self) -> list[AuditEntry]:
        """All entries, oldest first. Malformed stored entries are skipped.

        Raises:
            StoreError: If the store cannot be read
        """
        with self.store.key_lock(self.STORAGE_KEY):
            raw = self._load_raw()

        entries = []
        for item in raw:
            try:
                entries.append(AuditEntry.from_dict(item))
            except (KeyError, ValueError, TypeError, AttributeError) as e:
                logger.debug(f"Skipping malformed audit entry: {e}")
        return entries

    def query(self, limit: int = 100) -> list[AuditEntry]:
        """Most recent ``limit`` entries, newest first.

        Returns an empty list if the store cannot be read.
        """
        if limit <= 0:
            return []
        try:
            entries = self.entries()
        except StoreError as e:
            logger.error(f"Failed to read audit log: {e}")
            return []
        return list(reversed(entries[-limit:]))

    def clear(self) -> None:
        """Remove every entry.

        Raises:
            StoreError: If the store cannot be updated
        """
        with self.store.key_lock(self.STORAGE_KEY):
            self.store.remove(self.STORAGE_KEY)

    def __len__(self) -> int:
        with self.store.key_lock(self.STORAGE_KEY):
            return len(self._load_raw())
