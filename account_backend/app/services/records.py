"""Wiring for the bundled record store server."""
from __future__ import annotations

import logging
from functools import lru_cache

from ...config import load_service_config
from ..records import RecordFileStore


logger = logging.getLogger("records")


@lru_cache(maxsize=1)
def get_record_file_store() -> RecordFileStore:
    config = load_service_config()
    store = RecordFileStore(config.record_store_data_dir)
    store.initialize()
    logger.info("Record store data directory ready: %s", store.directory)
    return store


__all__ = ["get_record_file_store"]
