"""Key-value storage backends.

The validation engine persists two values: the audit log and the rate-limit
window. Both live behind the small get/set/remove interface defined here so
that the backing store can be swapped (in-memory for tests and embedded use,
a JSON file for the CLI, or a host-provided store).

Store Location (JsonFileStore default):
    CMDGUARD_STORE environment variable if set, otherwise
    Unix/Linux/macOS: ~/.local/share/cmdguard/store.json
    Windows: %LOCALAPPDATA%/cmdguard/store.json

Thread Safety:
    Each store serializes its own reads and writes. A read-modify-write
    sequence must hold the store's key_lock(key) for its whole duration.
    The lock belongs to the store instance, so every RateLimiter and
    AuditLog built over the same store shares it.
"""

import copy
import json
import os
import threading
from contextlib import suppress
from pathlib import Path
from typing import Any, Optional, Union

from platformdirs import user_data_dir

from cmdguard.exceptions import StoreError

APP_NAME = "cmdguard"

# Guards lazy creation of per-store key locks
_key_locks_guard = threading.Lock()


class KeyValueStore:
    """Interface for the persistent store used by the engine.

    Values are JSON-compatible (dicts, lists, strings, numbers, booleans).
    Implementations raise StoreError on I/O or decode failures.
    """

    def key_lock(self, key: str):
        """Lock serializing read-modify-write sequences on ``key``.

        Returns the same lock for the same store instance and key.

        Example:
            >>> with store.key_lock("commandRateLimit"):
            ...     windows = store.get("commandRateLimit", {})
            ...     store.set("commandRateLimit", windows)
        """
        with _key_locks_guard:
            locks = getattr(self, "_key_locks", None)
            if locks is None:
                locks = {}
                self._key_locks = locks
            return locks.setdefault(key, threading.RLock())

    def get(self, key: str, default: Any = None) -> Any:
        raise NotImplementedError

    def set(self, key: str, value: Any) -> None:
        raise NotImplementedError

    def remove(self, key: str) -> None:
        raise NotImplementedError


class MemoryStore(KeyValueStore):
    """In-process store. Values are deep-copied in and out."""

    def __init__(self, initial: Optional[dict[str, Any]] = None):
        self._data: dict[str, Any] = copy.deepcopy(initial) if initial else {}
        self._lock = threading.Lock()

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            if key not in self._data:
                return default
            return copy.deepcopy(self._data[key])

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._data[key] = copy.deepcopy(value)

    def remove(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._data)


def get_default_store_path() -> Path:
    """Get default store path.

    Logic:
    - If CMDGUARD_STORE is set and ends in .json: use as-is
    - If CMDGUARD_STORE is set otherwise: treat as directory, append store.json
    - Otherwise: platform-specific data dir
    """
    env_path = os.environ.get("CMDGUARD_STORE")
    if env_path:
        path = Path(env_path).expanduser()
        if path.suffix == ".json":
            return path
        return path / "store.json"
    return Path(user_data_dir(APP_NAME, appauthor=False)) / "store.json"


class JsonFileStore(KeyValueStore):
    """Store backed by a single JSON document on disk.

    Every set/remove rewrites the whole document through a temp file and an
    atomic rename, so a crash never leaves a half-written store.

    Example:
        >>> store = JsonFileStore(Path("/tmp/cmdguard.json"))
        >>> store.set("commandSecurityLog", [])
        >>> store.get("commandSecurityLog")
        []
    """

    def __init__(self, path: Optional[Union[str, Path]] = None):
        self.path = Path(path) if path is not None else get_default_store_path()
        self._lock = threading.Lock()

    def _read(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            text = self.path.read_text(encoding="utf-8")
        except OSError as e:
            raise StoreError(f"Failed to read store {self.path}", original_error=e)
        if not text.strip():
            return {}
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise StoreError(f"Corrupt store file {self.path}", original_error=e)
        if not isinstance(data, dict):
            raise StoreError(f"Store root must be an object in {self.path}")
        return data

    def _write(self, data: dict[str, Any]) -> None:
        temp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with temp_path.open("w", encoding="utf-8") as f:
                json.dump(data, f)
            temp_path.replace(self.path)
        except (OSError, TypeError, ValueError) as e:
            with suppress(OSError):
                if temp_path.exists():
                    temp_path.unlink()
            raise StoreError(f"Failed to write store {self.path}", original_error=e)

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._read().get(key, default)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            data = self._read()
            data[key] = value
            self._write(data)

    def remove(self, key: str) -> None:
        with self._lock:
            data = self._read()
            if key in data:
                del data[key]
                self._write(data)
