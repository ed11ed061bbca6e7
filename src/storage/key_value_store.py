# src/storage/key_value_store.py

"""Opaque key-value storage for cart tokens, local carts and wishlists."""

import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from src.config.settings import Settings
from src.storage.disk_cache import atomic_write_json, read_json

logger = logging.getLogger("storefront.storage")


class KeyValueStore(ABC):
    """Minimal string-keyed store holding JSON-compatible values."""

    @abstractmethod
    def get(self, key: str) -> Any:
        """Return the stored value, or ``None`` if absent."""
        ...

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        ...

    @abstractmethod
    def remove(self, key: str) -> None:
        ...

    @abstractmethod
    def keys(self) -> list[str]:
        ...


class MemoryKeyValueStore(KeyValueStore):
    """Process-local store, used by tests and throwaway sessions."""

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = dict(initial or {})

    def get(self, key: str) -> Any:
        return self._data.get(key)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._data)


class JsonFileKeyValueStore(KeyValueStore):
    """All keys in one JSON object file, rewritten atomically on change.

    A missing or corrupt file reads as an empty store.
    """

    def __init__(self, path: Path = Settings.STATE_FILE) -> None:
        self.path = Path(path)
        raw = read_json(self.path)
        if raw is not None and not isinstance(raw, dict):
            logger.warning("State file %s is not an object, ignoring", path)
        self._data: dict[str, Any] = raw if isinstance(raw, dict) else {}

    def _flush(self) -> None:
        atomic_write_json(self.path, self._data)

    def get(self, key: str) -> Any:
        return self._data.get(key)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value
        self._flush()

    def remove(self, key: str) -> None:
        if key in self._data:
            del self._data[key]
            self._flush()

    def keys(self) -> list[str]:
        return list(self._data)
