"""Per-user local persistence used when the record store is unreachable."""
from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from threading import Lock
from typing import Any, Dict, List, Protocol, Union
from urllib.parse import quote

logger = logging.getLogger(__name__)


class LocalCacheError(RuntimeError):
    """Raised when a cache entry cannot be serialized or stored."""


class LocalCache(Protocol):
    """Synchronous key/value store holding JSON arrays of records."""

    def read(self, key: str) -> List[Dict[str, Any]]:
        ...

    def write(self, key: str, records: List[Dict[str, Any]]) -> bool:
        ...

    def delete(self, key: str) -> None:
        ...


def _decode(key: str, raw: str) -> List[Dict[str, Any]]:
    try:
        payload = json.loads(raw)
    except (json.JSONDecodeError, TypeError) as exc:
        raise LocalCacheError(f"Malformed cache entry for {key}") from exc
    if not isinstance(payload, list):
        raise LocalCacheError(f"Cache entry for {key} is not a list")
    return [item for item in payload if isinstance(item, dict)]


def _encode(key: str, records: List[Dict[str, Any]]) -> str:
    try:
        return json.dumps(list(records), ensure_ascii=False)
    except (TypeError, ValueError) as exc:
        raise LocalCacheError(f"Cannot serialize records for {key}") from exc


class InMemoryLocalCache:
    """Cache keeping serialized entries in a dictionary. Suitable for tests."""

    def __init__(self) -> None:
        self._entries: Dict[str, str] = {}

    def read(self, key: str) -> List[Dict[str, Any]]:
        raw = self._entries.get(key)
        if raw is None:
            return []
        try:
            return _decode(key, raw)
        except LocalCacheError:
            logger.warning("Discarding unreadable local cache entry", extra={"cache_key": key})
            return []

    def write(self, key: str, records: List[Dict[str, Any]]) -> bool:
        try:
            self._entries[key] = _encode(key, records)
        except LocalCacheError:
            logger.exception("Failed to write local cache entry", extra={"cache_key": key})
            return False
        return True

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)


class JsonFileLocalCache:
    """Cache storing each key as a JSON document inside a directory."""

    def __init__(self, directory: Union[str, os.PathLike]) -> None:
        self._directory = Path(directory)
        self._lock = Lock()

    def _path_for(self, key: str) -> Path:
        return self._directory / f"{quote(key, safe='')}.json"

    def read(self, key: str) -> List[Dict[str, Any]]:
        path = self._path_for(key)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return []
        except OSError:
            logger.exception("Failed to read local cache entry", extra={"cache_key": key})
            return []
        try:
            return _decode(key, raw)
        except LocalCacheError:
            logger.warning("Discarding unreadable local cache entry", extra={"cache_key": key})
            return []

    def write(self, key: str, records: List[Dict[str, Any]]) -> bool:
        path = self._path_for(key)
        try:
            payload = _encode(key, records)
            with self._lock:
                self._directory.mkdir(parents=True, exist_ok=True)
                with open(path, "w", encoding="utf-8") as handle:
                    handle.write(payload)
        except (LocalCacheError, OSError):
            logger.exception("Failed to write local cache entry", extra={"cache_key": key})
            return False
        return True

    def delete(self, key: str) -> None:
        with self._lock:
            try:
                self._path_for(key).unlink()
            except FileNotFoundError:
                return
            except OSError:
                logger.exception("Failed to delete local cache entry", extra={"cache_key": key})


__all__ = ["InMemoryLocalCache", "JsonFileLocalCache", "LocalCache", "LocalCacheError"]
