"""
Client-resident key-value stores for the offline cache.

A LocalStore is a synchronous string-to-string map with the contract of
browser local storage: writes may fail on quota or I/O, reads never
interpret values. The offline cache owns all serialization.
"""

import json
import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path

from carddex.models.failure import StorageUnavailableError, StorageWriteError

logger = logging.getLogger(__name__)

_PROBE_KEY = "__carddex_storage_test__"


def utf16_size(text: str) -> int:
    """Bytes a string occupies when stored as UTF-16."""
    return len(text.encode("utf-16-le", "surrogatepass"))


class LocalStore(ABC):
    """Synchronous string key-value store."""

    @abstractmethod
    def get_item(self, key: str) -> str | None:
        """Return the stored value, or None if the key is absent."""

    @abstractmethod
    def set_item(self, key: str, value: str) -> None:
        """
        Store a value.

        Raises:
            StorageWriteError: If the value cannot be written
        """

    @abstractmethod
    def remove_item(self, key: str) -> None:
        """Remove a key. Removing an absent key is a no-op."""

    @abstractmethod
    def keys(self) -> list[str]:
        """All keys currently stored."""


def is_store_available(store: LocalStore | None) -> bool:
    """
    Feature-detect a store by writing and removing a probe key.

    Any failure means the store is unusable and callers should run in
    server-only mode.
    """
    if store is None:
        return False
    try:
        store.set_item(_PROBE_KEY, "test")
        store.remove_item(_PROBE_KEY)
    except (StorageWriteError, StorageUnavailableError, OSError) as e:
        logger.warning("Local storage is not available: %s", e)
        return False
    return True


class MemoryLocalStore(LocalStore):
    """
    In-process store with an optional quota.

    The quota counts the UTF-16 size of keys and values, like browser
    storage does.
    """

    def __init__(self, quota_bytes: int | None = None) -> None:
        self._items: dict[str, str] = {}
        self.quota_bytes = quota_bytes

    def _used_bytes(self) -> int:
        return sum(utf16_size(k) + utf16_size(v) for k, v in self._items.items())

    def get_item(self, key: str) -> str | None:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        if self.quota_bytes is not None:
            previous = self._items.get(key)
            used = self._used_bytes()
            if previous is not None:
                used -= utf16_size(key) + utf16_size(previous)
            if used + utf16_size(key) + utf16_size(value) > self.quota_bytes:
                raise StorageWriteError(key, "quota exceeded")
        self._items[key] = value

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._items)

    def __len__(self) -> int:
        return len(self._items)


class JsonFileLocalStore(LocalStore):
    """
    Store persisted as a single JSON object on disk.

    Every write rewrites the file through a temporary file and an atomic
    rename, so a crash mid-write leaves the previous version intact. A file
    that does not parse is treated as empty and overwritten by the next
    successful write.
    """

    def __init__(self, path: Path) -> None:
        self.path = path
        self._items = self._read()

    def _read(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            logger.warning("Local store file %s is corrupt, starting empty: %s", self.path, e)
            return {}
        except OSError as e:
            raise StorageUnavailableError(f"cannot read {self.path}: {e}") from e

        if not isinstance(data, dict):
            logger.warning("Local store file %s is not a JSON object, starting empty", self.path)
            return {}
        return {str(k): v for k, v in data.items() if isinstance(v, str)}

    def _write(self, items: dict[str, str], key: str) -> None:
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(items, f)
            os.replace(tmp_path, self.path)
        except OSError as e:
            raise StorageWriteError(key, str(e)) from e

    def get_item(self, key: str) -> str | None:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        updated = {**self._items, key: value}
        self._write(updated, key)
        self._items = updated

    def remove_item(self, key: str) -> None:
        if key not in self._items:
            return
        updated = {k: v for k, v in self._items.items() if k != key}
        self._write(updated, key)
        self._items = updated

    def keys(self) -> list[str]:
        return list(self._items)
