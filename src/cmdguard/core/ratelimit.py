"""Sliding-window rate limiting for command submission.

Each rate-limit scope (a caller, tab, session...) keeps the timestamps of its
submissions inside the trailing window. Window state for all scopes is
stored under a single store key as ``{scope: [timestamp, ...]}``.

The read-modify-write holds the store's key lock, so concurrent callers
sharing a scope cannot race past the limit, even through separate
RateLimiter instances over the same store.
"""

import logging
import time
from typing import Any, Callable, Optional

from cmdguard.exceptions import StoreError

logger = logging.getLogger(__name__)

DEFAULT_MAX_PER_MINUTE = 30
DEFAULT_WINDOW_SECONDS = 60.0
DEFAULT_SCOPE = "default"


class RateLimiter:
    """Per-scope sliding-window limiter over a key-value store.

    Args:
        store: KeyValueStore holding window state
        max_per_minute: Submissions allowed per scope within the window
        window_seconds: Window length (60 seconds unless overridden)
        fail_open: Whether store failures allow the submission
        clock: Returns the current time in seconds (injectable for tests)

    Example:
        >>> limiter = RateLimiter(MemoryStore(), max_per_minute=2)
        >>> [limiter.check_and_record("tab-1") for _ in range(3)]
        [True, True, False]
    """

    STORAGE_KEY = "commandRateLimit"

    def __init__(
        self,
        store,
        max_per_minute: int = DEFAULT_MAX_PER_MINUTE,
        window_seconds: float = DEFAULT_WINDOW_SECONDS,
        fail_open: bool = True,
        clock: Callable[[], float] = time.time,
    ):
        if max_per_minute <= 0:
            raise ValueError(f"max_per_minute must be positive, got {max_per_minute}")
        if window_seconds <= 0:
            raise ValueError(f"window_seconds must be positive, got {window_seconds}")

        self.store = store
        self.max_per_minute = max_per_minute
        self.window_seconds = window_seconds
        self.fail_open = fail_open
        self._clock = clock

    def _load_windows(self) -> dict[str, list[float]]:
        data: Any = self.store.get(self.STORAGE_KEY, {})
        if not isinstance(data, dict):
            logger.warning(f"Discarding malformed rate-limit state under {self.STORAGE_KEY!r}")
            return {}
        return data

    def _prune(self, windows: dict[str, list[float]], now: float) -> dict[str, list[float]]:
        """Drop timestamps outside the window, and scopes left empty."""
        cutoff = now - self.window_seconds
        pruned = {}
        for scope, timestamps in windows.items():
            if not isinstance(timestamps, list):
                continue
            recent = [ts for ts in timestamps if isinstance(ts, (int, float)) and ts > cutoff]
            if recent:
                pruned[scope] = recent
        return pruned

    def check_and_record(
        self,
        scope: str = DEFAULT_SCOPE,
        max_per_minute: Optional[int] = None,
        fail_open: Optional[bool] = None,
    ) -> bool:
        """Check the scope's window and record this submission if allowed.

        Args:
            scope: Rate-limit scope key
            max_per_minute: Per-call limit override
            fail_open: Per-call override of the store-failure policy

        Returns:
            True if the submission is within the limit (and was recorded),
            False if the limit is reached (nothing is recorded).
        """
        limit = self.max_per_minute if max_per_minute is None else max_per_minute
        allow_on_error = self.fail_open if fail_open is None else fail_open

        with self.store.key_lock(self.STORAGE_KEY):
            try:
                now = self._clock()
                windows = self._prune(self._load_windows(), now)
                recent = windows.get(scope, [])

                if len(recent) >= limit:
                    logger.warning(f"Rate limit exceeded for scope {scope!r} ({len(recent)}/{limit} per window)")
                    self.store.set(self.STORAGE_KEY, windows)
                    return False

                windows[scope] = [*recent, now]
                self.store.set(self.STORAGE_KEY, windows)
                return True
            except StoreError as e:
                decision = "allowing" if allow_on_error else "denying"
                logger.warning(f"Rate limit check failed, {decision} submission: {e}")
                return allow_on_error

    def recent_count(self, scope: str = DEFAULT_SCOPE) -> int:
        """Number of submissions recorded for ``scope`` inside the window."""
        with self.store.key_lock(self.STORAGE_KEY):
            windows = self._prune(self._load_windows(), self._clock())
            return len(windows.get(scope, []))

    def reset(self, scope: Optional[str] = None) -> None:
        """Clear window state for one scope, or for every scope.

        Raises:
            StoreError: If the store cannot be updated
        """
        with self.store.key_lock(self.STORAGE_KEY):
            if scope is None:
                self.store.remove(self.STORAGE_KEY)
                return
            windows = self._load_windows()
            if windows.pop(scope, None) is not None:
                self.store.set(self.STORAGE_KEY, windows)
