"""Runtime configuration for the subscription data service."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional
import os


@dataclass(frozen=True)
class ServiceConfig:
    """Configuration for the record store client, cache and connectivity checks."""

    record_store_url: str
    record_store_timeout: float
    probe_timeout: float
    check_interval: float
    local_cache_dir: str
    history_max_records: int
    pending_probability: float
    default_currency: str
    record_store_data_dir: str


def _to_int(name: str, value: Optional[str], *, default: int) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{name} must be an integer, got {value!r}") from exc


def _to_float(name: str, value: Optional[str], *, default: float) -> float:
    if value is None or value == "":
        return default
    try:
        return float(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{name} must be a number, got {value!r}") from exc


def load_service_config(env: Optional[Mapping[str, str]] = None) -> ServiceConfig:
    """Load :class:`ServiceConfig` from environment variables."""

    env_mapping = os.environ if env is None else env

    record_store_url = (env_mapping.get("RECORD_STORE_URL") or "http://localhost:3001/api").rstrip("/")
    record_store_timeout = max(
        0.1, _to_float("RECORD_STORE_TIMEOUT", env_mapping.get("RECORD_STORE_TIMEOUT"), default=5.0)
    )
    probe_timeout = max(
        0.1, _to_float("CONNECTIVITY_PROBE_TIMEOUT", env_mapping.get("CONNECTIVITY_PROBE_TIMEOUT"), default=3.0)
    )
    check_interval = max(
        1.0, _to_float("CONNECTIVITY_CHECK_INTERVAL", env_mapping.get("CONNECTIVITY_CHECK_INTERVAL"), default=30.0)
    )
    local_cache_dir = env_mapping.get("LOCAL_CACHE_DIR") or ".account_cache"

    history_max_records = max(
        0, _to_int("BILLING_HISTORY_MAX_RECORDS", env_mapping.get("BILLING_HISTORY_MAX_RECORDS"), default=6)
    )
    pending_probability = _to_float(
        "BILLING_PENDING_PROBABILITY", env_mapping.get("BILLING_PENDING_PROBABILITY"), default=0.1
    )
    pending_probability = min(1.0, max(0.0, pending_probability))

    default_currency = env_mapping.get("DEFAULT_CURRENCY") or "₹"
    record_store_data_dir = env_mapping.get("RECORD_STORE_DATA_DIR") or "data"

    return ServiceConfig(
        record_store_url=record_store_url,
        record_store_timeout=record_store_timeout,
        probe_timeout=probe_timeout,
        check_interval=check_interval,
        local_cache_dir=local_cache_dir,
        history_max_records=history_max_records,
        pending_probability=pending_probability,
        default_currency=default_currency,
        record_store_data_dir=record_store_data_dir,
    )


__all__ = ["ServiceConfig", "load_service_config"]
