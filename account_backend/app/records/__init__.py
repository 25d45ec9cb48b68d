"""File-backed storage for the bundled record store server."""

from .store import RecordCollection, RecordFileError, RecordFileStore, RecordNotFound

__all__ = ["RecordCollection", "RecordFileError", "RecordFileStore", "RecordNotFound"]
