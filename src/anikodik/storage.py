"""Local key/value persistence.

Everything the catalog keeps between runs (detail cache, collections, watch
history, comments, ratings) goes through a tiny key -> string store. Two
implementations are provided:

- ``MemoryStore``: a dict, used by tests and one-shot commands.
- ``JsonFileStore``: a single JSON file, ``anikodik.store.json`` next to the
  config file or executable.

File structure:
    {
        "_meta": {
            "version": 1,
            "created_at": "2025-01-25T10:00:00Z"
        },
        "entries": {
            "anime_cache_serial-123": "{\\"cached_at\\": ..., \\"data\\": {...}}",
            "user_42_collection": "[\\"serial-123\\", \\"movie-9\\"]"
        }
    }
"""

from __future__ import annotations

import json
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Protocol

STORE_FILE_NAME = "anikodik.store.json"

# Store file version for future migrations
STORE_VERSION = 1


class PersistenceError(Exception):
    """Local store is unavailable or could not be read/written."""

    pass


class KeyValueStore(Protocol):
    """Synchronous key -> string store."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> bool: ...

    def keys(self) -> list[str]: ...


def get_store_file_path() -> Path:
    """Get the path to the store file.

    The store lives next to the config file for portability.
    Falls back to exe directory if no config is loaded.

    Returns:
        Path to the store file (anikodik.store.json).
    """
    from anikodik.config import get_config, get_config_path, get_exe_directory

    configured = get_config().storage.path
    if configured:
        return Path(configured)

    config_path = get_config_path()
    if config_path is not None:
        return config_path.parent / STORE_FILE_NAME

    return get_exe_directory() / STORE_FILE_NAME


class MemoryStore:
    """In-memory store (nothing survives the process)."""

    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    def keys(self) -> list[str]:
        return list(self._data)


class JsonFileStore:
    """Single-file JSON store.

    The file is loaded lazily on first access. Writes are batched:

    - Changes are accumulated in memory
    - Auto-save triggers every `auto_save_threshold` changes
    - Call `flush()` at the end of operations to ensure all changes are saved
    """

    def __init__(self, path: Path | None = None, auto_save_threshold: int = 1) -> None:
        """Initialize the store.

        Args:
            path: Store file path. Defaults to get_store_file_path().
            auto_save_threshold: Number of changes before auto-saving to disk.
                Set to 0 to disable auto-save (manual flush only). Default is 1,
                so every change is written immediately.
        """
        self.path = path if path is not None else get_store_file_path()
        self.auto_save_threshold = auto_save_threshold
        self._data: dict[str, Any] | None = None
        self._dirty_count: int = 0

    def _load(self) -> dict[str, Any]:
        """Load store data from disk (lazy loading)."""
        if self._data is not None:
            return self._data

        if not self.path.exists():
            self._data = self._empty_store()
            return self._data

        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError:
            # Corrupted file - start fresh
            self._data = self._empty_store()
            return self._data
        except OSError as e:
            raise PersistenceError(f"Cannot read store file {self.path}: {e}") from e

        if not isinstance(data, dict) or not isinstance(data.get("entries"), dict):
            data = self._empty_store()
        self._data = data
        return self._data

    def _empty_store(self) -> dict[str, Any]:
        """Create an empty store structure."""
        return {
            "_meta": {
                "version": STORE_VERSION,
                "created_at": datetime.now(UTC).isoformat(),
            },
            "entries": {},
        }

    def _save(self) -> None:
        """Save store data to disk (unconditionally)."""
        if self._data is None:
            return

        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "w", encoding="utf-8") as f:
                json.dump(self._data, f, indent=2, ensure_ascii=False)
        except OSError as e:
            raise PersistenceError(f"Cannot write store file {self.path}: {e}") from e

        self._dirty_count = 0

    def _mark_dirty(self) -> None:
        """Mark the store as having unsaved changes and maybe auto-save."""
        self._dirty_count += 1
        if self.auto_save_threshold > 0 and self._dirty_count >= self.auto_save_threshold:
            self._save()

    def flush(self) -> None:
        """Flush any pending changes to disk."""
        if self._dirty_count > 0:
            self._save()

    @property
    def pending_changes(self) -> int:
        """Number of changes pending save."""
        return self._dirty_count

    def get(self, key: str) -> str | None:
        value = self._load()["entries"].get(key)
        return value if isinstance(value, str) else None

    def set(self, key: str, value: str) -> None:
        self._load()["entries"][key] = value
        self._mark_dirty()

    def delete(self, key: str) -> bool:
        entries = self._load()["entries"]
        if key in entries:
            del entries[key]
            self._mark_dirty()
            return True
        return False

    def keys(self) -> list[str]:
        return list(self._load()["entries"])
