"""
Key-value stores backing the suggestion history.

Values are JSON strings, the same way a browser keeps them in localStorage.
InMemoryStore is the default and the test double; JsonFileStore keeps
everything in one JSON file.
"""

import json
import logging
import os
import time
from typing import Dict, Optional, Tuple

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """Raised when a backend cannot read or write."""


class KeyValueStore:
    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError


class InMemoryStore(KeyValueStore):
    def __init__(self):
        self._store: Dict[str, Tuple[str, Optional[float]]] = {}   # key -> (value, expire_at)

    def _is_expired(self, expire_at: Optional[float]) -> bool:
        return expire_at is not None and time.time() > expire_at

    def get(self, key: str) -> Optional[str]:
        entry = self._store.get(key)
        if entry and not self._is_expired(entry[1]):
            return entry[0]
        return None

    def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        expire_at = time.time() + ttl_seconds if ttl_seconds else None
        self._store[key] = (value, expire_at)

    def delete(self, key: str) -> None:
        self._store.pop(key, None)

    def keys(self):
        return [k for k, (_, exp) in self._store.items() if not self._is_expired(exp)]


class JsonFileStore(KeyValueStore):
    """Whole-file JSON map; every write rewrites the file through a temp file."""

    def __init__(self, path: str):
        self.path = path

    def _read(self) -> Dict[str, str]:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise StoreError(f"Cannot read {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise StoreError(f"{self.path} does not hold a JSON object")
        return data

    def _write(self, data: Dict[str, str]) -> None:
        tmp = f"{self.path}.tmp"
        try:
            directory = os.path.dirname(self.path)
            if directory:
                os.makedirs(directory, exist_ok=True)
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(data, f)
            os.replace(tmp, self.path)
        except OSError as e:
            raise StoreError(f"Cannot write {self.path}: {e}") from e

    def get(self, key: str) -> Optional[str]:
        return self._read().get(key)

    def set(self, key: str, value: str, ttl_seconds: Optional[int] = None) -> None:
        if ttl_seconds:
            logger.debug("JsonFileStore ignores ttl for %s", key)
        data = self._read()
        data[key] = value
        self._write(data)

    def delete(self, key: str) -> None:
        data = self._read()
        if data.pop(key, None) is not None:
            self._write(data)


def build_store(backend: str = "memory", path: Optional[str] = None) -> KeyValueStore:
    if backend == "file":
        return JsonFileStore(path or "tutor_assist_store.json")
    if backend != "memory":
        logger.warning("Unknown store backend %r, using memory", backend)
    return InMemoryStore()
