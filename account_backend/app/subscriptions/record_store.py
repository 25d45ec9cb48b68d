"""HTTP client for the remote record store."""
from __future__ import annotations

import json
import logging
from http import client as http_client
from typing import Any, Callable, Dict, List, Optional, Type, TypeVar
from urllib import error as urllib_error, request as urllib_request
from urllib.parse import quote

from pydantic import BaseModel, ValidationError

from .models import BillingRecord, PaymentMethod, Subscription

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class RecordStoreUnavailable(RuntimeError):
    """Uniform failure raised for timeouts, non-2xx responses and malformed payloads."""

    def __init__(self, message: str, *, endpoint: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.endpoint = endpoint
        self.status = status


def _segment(value: str) -> str:
    return quote(str(value), safe="")


def _unwrap(payload: Any, field: str) -> Any:
    if isinstance(payload, dict) and isinstance(payload.get(field), dict):
        return payload[field]
    return payload


class HttpRecordStoreClient:
    """Performs typed record store operations over JSON/HTTP.

    Every method either returns the resulting entity or collection, or raises
    :class:`RecordStoreUnavailable`. Callers never need to know why a request
    failed.
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 5.0,
        probe_timeout: float = 3.0,
        opener: Optional[Callable[..., Any]] = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._probe_timeout = probe_timeout
        self._opener = opener or urllib_request.urlopen

    @property
    def base_url(self) -> str:
        return self._base_url

    def _request(
        self,
        method: str,
        endpoint: str,
        payload: Optional[Any] = None,
        *,
        timeout: Optional[float] = None,
    ) -> Any:
        url = f"{self._base_url}{endpoint}"
        data = json.dumps(payload).encode("utf-8") if payload is not None else None
        request = urllib_request.Request(
            url,
            data=data,
            method=method,
            headers={"Content-Type": "application/json", "Accept": "application/json"},
        )
        try:
            with self._opener(request, timeout=timeout or self._timeout) as response:
                status = int(getattr(response, "status", 200))
                body = response.read()
        except urllib_error.HTTPError as exc:
            raise RecordStoreUnavailable(
                f"{method} {endpoint} returned {exc.code}", endpoint=endpoint, status=exc.code
            ) from exc
        except (urllib_error.URLError, http_client.HTTPException, OSError, ValueError) as exc:
            raise RecordStoreUnavailable(f"{method} {endpoint} failed: {exc}", endpoint=endpoint) from exc

        if status < 200 or status >= 300:
            raise RecordStoreUnavailable(f"{method} {endpoint} returned {status}", endpoint=endpoint, status=status)
        if not body:
            return None
        try:
            return json.loads(body.decode("utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise RecordStoreUnavailable(
                f"{method} {endpoint} returned malformed JSON", endpoint=endpoint, status=status
            ) from exc

    def _parse(self, model: Type[ModelT], payload: Any, endpoint: str) -> ModelT:
        if not isinstance(payload, dict):
            raise RecordStoreUnavailable(f"Expected an object from {endpoint}", endpoint=endpoint)
        try:
            return model.model_validate(payload)
        except ValidationError as exc:
            raise RecordStoreUnavailable(f"Malformed {model.__name__} from {endpoint}", endpoint=endpoint) from exc

    def _parse_list(self, model: Type[ModelT], payload: Any, endpoint: str) -> List[ModelT]:
        if payload is None:
            return []
        if not isinstance(payload, list):
            raise RecordStoreUnavailable(f"Expected a list from {endpoint}", endpoint=endpoint)
        records: List[ModelT] = []
        for item in payload:
            try:
                records.append(self._parse(model, item, endpoint))
            except RecordStoreUnavailable:
                logger.warning(
                    "Skipping malformed remote record",
                    extra={"endpoint": endpoint, "record_id": item.get("id") if isinstance(item, dict) else None},
                )
        return records

    def health_check(self) -> Dict[str, str]:
        payload = self._request("GET", "/health", timeout=self._probe_timeout)
        if not isinstance(payload, dict) or "status" not in payload or "message" not in payload:
            raise RecordStoreUnavailable("Unexpected health payload", endpoint="/health")
        return {"status": str(payload["status"]), "message": str(payload["message"])}

    def is_online(self) -> bool:
        """Single liveness probe; any failure means offline."""

        try:
            self.health_check()
        except RecordStoreUnavailable as exc:
            logger.debug("Record store health probe failed", extra={"error": str(exc)})
            return False
        return True

    def get_user(self, user_id: str) -> Dict[str, Any]:
        endpoint = f"/users/{_segment(user_id)}"
        payload = self._request("GET", endpoint)
        if not isinstance(payload, dict):
            raise RecordStoreUnavailable(f"Expected an object from {endpoint}", endpoint=endpoint)
        return payload

    def save_user(self, user_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        endpoint = f"/users/{_segment(user_id)}"
        payload = _unwrap(self._request("POST", endpoint, data), "user")
        return payload if isinstance(payload, dict) else dict(data)

    def get_subscriptions(self, user_id: str) -> List[Subscription]:
        endpoint = f"/subscriptions/{_segment(user_id)}"
        return self._parse_list(Subscription, self._request("GET", endpoint), endpoint)

    def add_subscription(self, user_id: str, subscription: Subscription) -> Subscription:
        endpoint = f"/subscriptions/{_segment(user_id)}"
        payload = self._request("POST", endpoint, subscription.to_payload())
        return self._parse(Subscription, _unwrap(payload, "subscription"), endpoint)

    def update_subscription(self, user_id: str, subscription_id: str, patch: Dict[str, Any]) -> Subscription:
        endpoint = f"/subscriptions/{_segment(user_id)}/{_segment(subscription_id)}"
        payload = self._request("PUT", endpoint, patch)
        return self._parse(Subscription, _unwrap(payload, "subscription"), endpoint)

    def get_payment_methods(self, user_id: str) -> List[PaymentMethod]:
        endpoint = f"/payments/{_segment(user_id)}"
        return self._parse_list(PaymentMethod, self._request("GET", endpoint), endpoint)

    def add_payment_method(self, user_id: str, method: PaymentMethod) -> PaymentMethod:
        endpoint = f"/payments/{_segment(user_id)}"
        payload = self._request("POST", endpoint, method.to_payload())
        return self._parse(PaymentMethod, _unwrap(payload, "payment"), endpoint)

    def update_payment_method(self, user_id: str, method_id: str, patch: Dict[str, Any]) -> PaymentMethod:
        endpoint = f"/payments/{_segment(user_id)}/{_segment(method_id)}"
        payload = self._request("PUT", endpoint, patch)
        return self._parse(PaymentMethod, _unwrap(payload, "payment"), endpoint)

    def remove_payment_method(self, user_id: str, method_id: str) -> None:
        endpoint = f"/payments/{_segment(user_id)}/{_segment(method_id)}"
        self._request("DELETE", endpoint)

    def get_billing_history(self, user_id: str) -> List[BillingRecord]:
        endpoint = f"/billing/{_segment(user_id)}"
        return self._parse_list(BillingRecord, self._request("GET", endpoint), endpoint)

    def add_billing_record(self, user_id: str, record: BillingRecord) -> BillingRecord:
        endpoint = f"/billing/{_segment(user_id)}"
        payload = self._request("POST", endpoint, record.to_payload())
        return self._parse(BillingRecord, _unwrap(payload, "billing"), endpoint)


__all__ = ["HttpRecordStoreClient", "RecordStoreUnavailable"]
