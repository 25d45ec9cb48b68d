"""JSON file persistence backing the bundled record store server."""
from __future__ import annotations

import json
import logging
import os
from contextlib import contextmanager
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from threading import RLock
from typing import Any, Callable, Dict, Iterator, List, Optional, Union
from uuid import uuid4

logger = logging.getLogger(__name__)


class RecordCollection(str, Enum):
    """Top-level JSON documents, each mapping a user id to its data."""

    USERS = "users"
    SUBSCRIPTIONS = "subscriptions"
    PAYMENTS = "payments"
    BILLING = "billing"


class RecordFileError(RuntimeError):
    """Raised when a collection document cannot be written."""


class RecordNotFound(LookupError):
    """Raised when a user collection or a record inside it does not exist."""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RecordFileStore:
    """Stores every collection as one JSON document inside ``directory``.

    Reads of a missing or unreadable document yield an empty mapping so a
    fresh data directory behaves like an empty store. Each mutation reloads
    the document, applies the change and rewrites it under a process-wide
    lock.
    """

    def __init__(
        self,
        directory: Union[str, os.PathLike],
        *,
        clock: Optional[Callable[[], datetime]] = None,
        id_factory: Optional[Callable[[], str]] = None,
    ) -> None:
        self._directory = Path(directory)
        self._clock = clock or _utcnow
        self._id_factory = id_factory or (lambda: str(uuid4()))
        self._lock = RLock()

    @property
    def directory(self) -> Path:
        return self._directory

    def _path_for(self, collection: RecordCollection) -> Path:
        return self._directory / f"{collection.value}.json"

    def _timestamp(self) -> str:
        return self._clock().isoformat()

    def initialize(self) -> None:
        """Create the data directory and an empty document per collection."""

        with self._lock:
            self._directory.mkdir(parents=True, exist_ok=True)
            for collection in RecordCollection:
                if not self._path_for(collection).exists():
                    self.save(collection, {})

    def load(self, collection: RecordCollection) -> Dict[str, Any]:
        path = self._path_for(collection)
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except (OSError, json.JSONDecodeError, UnicodeDecodeError):
            logger.exception("Failed to read record file", extra={"collection": collection.value})
            return {}
        if not isinstance(payload, dict):
            logger.warning("Ignoring record file without an object root", extra={"collection": collection.value})
            return {}
        return payload

    def save(self, collection: RecordCollection, data: Dict[str, Any]) -> None:
        path = self._path_for(collection)
        try:
            payload = json.dumps(data, indent=2, ensure_ascii=False)
            with self._lock:
                self._directory.mkdir(parents=True, exist_ok=True)
                with open(path, "w", encoding="utf-8") as handle:
                    handle.write(payload)
        except (OSError, TypeError, ValueError) as exc:
            logger.exception("Failed to write record file", extra={"collection": collection.value})
            raise RecordFileError(f"Failed to save {collection.value}") from exc

    @contextmanager
    def edit(self, collection: RecordCollection) -> Iterator[Dict[str, Any]]:
        """Yield the collection document and persist it when the block exits cleanly."""

        with self._lock:
            data = self.load(collection)
            yield data
            self.save(collection, data)

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    def get_user(self, user_id: str) -> Dict[str, Any]:
        user = self.load(RecordCollection.USERS).get(user_id)
        if not isinstance(user, dict):
            raise RecordNotFound("User not found")
        return user

    def save_user(self, user_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        with self.edit(RecordCollection.USERS) as users:
            existing = users.get(user_id) if isinstance(users.get(user_id), dict) else {}
            users[user_id] = {**existing, **data, "updatedAt": self._timestamp()}
            return users[user_id]

    # ------------------------------------------------------------------
    # Per-user record lists
    # ------------------------------------------------------------------

    def list_records(self, collection: RecordCollection, user_id: str) -> List[Dict[str, Any]]:
        records = self.load(collection).get(user_id)
        return list(records) if isinstance(records, list) else []

    def add_record(
        self,
        collection: RecordCollection,
        user_id: str,
        data: Dict[str, Any],
        *,
        prepend: bool = False,
        track_updates: bool = False,
    ) -> Dict[str, Any]:
        """Append (or prepend) a record, keeping a caller-supplied ``id``."""

        now = self._timestamp()
        record: Dict[str, Any] = {"id": self._id_factory(), **data, "createdAt": now}
        if track_updates:
            record["updatedAt"] = now
        with self.edit(collection) as documents:
            records = documents.get(user_id)
            if not isinstance(records, list):
                records = []
                documents[user_id] = records
            if prepend:
                records.insert(0, record)
            else:
                records.append(record)
        return record

    def update_record(
        self,
        collection: RecordCollection,
        user_id: str,
        record_id: str,
        patch: Dict[str, Any],
    ) -> Dict[str, Any]:
        with self.edit(collection) as documents:
            records = documents.get(user_id)
            if not isinstance(records, list):
                raise RecordNotFound(f"User {collection.value} not found")
            for index, record in enumerate(records):
                if isinstance(record, dict) and record.get("id") == record_id:
                    records[index] = {**record, **patch, "updatedAt": self._timestamp()}
                    return records[index]
            raise RecordNotFound("Record not found")

    def remove_record(self, collection: RecordCollection, user_id: str, record_id: str) -> None:
        """Drop ``record_id``; removing an unknown id from an existing user is a no-op."""

        with self.edit(collection) as documents:
            records = documents.get(user_id)
            if not isinstance(records, list):
                raise RecordNotFound(f"User {collection.value} not found")
            documents[user_id] = [
                record for record in records if not (isinstance(record, dict) and record.get("id") == record_id)
            ]


__all__ = ["RecordCollection", "RecordFileError", "RecordFileStore", "RecordNotFound"]
