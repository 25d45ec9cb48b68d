from __future__ import annotations

import pathlib
import random
import sys
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence, Type, TypeVar

import pytest

ROOT = pathlib.Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from account_backend.app.subscriptions import (  # noqa: E402
    BillingHistorySynthesizer,
    BillingRecord,
    ConnectivityMonitor,
    InMemoryLocalCache,
    PaymentMethod,
    RecordStoreUnavailable,
    Subscription,
    SubscriptionDataService,
)

FIXED_NOW = datetime(2024, 5, 15, 9, 30, tzinfo=timezone.utc)
USER_ID = "user-1"

ModelT = TypeVar("ModelT", Subscription, PaymentMethod)


class FakeRecordStore:
    """In-memory record store; flip ``online`` to simulate an unreachable server."""

    def __init__(self) -> None:
        self.online = True
        self.users: Dict[str, Dict[str, Any]] = {}
        self.subscriptions: Dict[str, List[Subscription]] = {}
        self.payment_methods: Dict[str, List[PaymentMethod]] = {}
        self.billing: Dict[str, List[BillingRecord]] = {}
        self.calls: List[str] = []

    def is_online(self) -> bool:
        return self.online

    def _call(self, operation: str) -> None:
        self.calls.append(operation)
        if not self.online:
            raise RecordStoreUnavailable(f"{operation} failed", endpoint=f"/{operation}")

    def get_user(self, user_id: str) -> Dict[str, Any]:
        self._call("get_user")
        if user_id not in self.users:
            raise RecordStoreUnavailable("User not found", endpoint=f"/users/{user_id}", status=404)
        return dict(self.users[user_id])

    def save_user(self, user_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        self._call("save_user")
        self.users[user_id] = {**self.users.get(user_id, {}), **data}
        return dict(self.users[user_id])

    def get_subscriptions(self, user_id: str) -> Sequence[Subscription]:
        self._call("get_subscriptions")
        return list(self.subscriptions.get(user_id, []))

    def add_subscription(self, user_id: str, subscription: Subscription) -> Subscription:
        self._call("add_subscription")
        self.subscriptions.setdefault(user_id, []).append(subscription)
        return subscription

    def update_subscription(self, user_id: str, subscription_id: str, patch: Dict[str, Any]) -> Subscription:
        self._call("update_subscription")
        return self._patch(self.subscriptions.get(user_id, []), subscription_id, patch, Subscription)

    def get_payment_methods(self, user_id: str) -> Sequence[PaymentMethod]:
        self._call("get_payment_methods")
        return list(self.payment_methods.get(user_id, []))

    def add_payment_method(self, user_id: str, method: PaymentMethod) -> PaymentMethod:
        self._call("add_payment_method")
        self.payment_methods.setdefault(user_id, []).append(method)
        return method

    def update_payment_method(self, user_id: str, method_id: str, patch: Dict[str, Any]) -> PaymentMethod:
        self._call("update_payment_method")
        return self._patch(self.payment_methods.get(user_id, []), method_id, patch, PaymentMethod)

    def remove_payment_method(self, user_id: str, method_id: str) -> None:
        self._call("remove_payment_method")
        methods = self.payment_methods.get(user_id, [])
        self.payment_methods[user_id] = [method for method in methods if method.id != method_id]

    def get_billing_history(self, user_id: str) -> Sequence[BillingRecord]:
        self._call("get_billing_history")
        return list(self.billing.get(user_id, []))

    def add_billing_record(self, user_id: str, record: BillingRecord) -> BillingRecord:
        self._call("add_billing_record")
        self.billing.setdefault(user_id, []).insert(0, record)
        return record

    @staticmethod
    def _patch(records: List[ModelT], record_id: str, patch: Dict[str, Any], model: Type[ModelT]) -> ModelT:
        for index, record in enumerate(records):
            if record.id == record_id:
                records[index] = model.model_validate({**record.to_payload(), **patch})
                return records[index]
        raise RecordStoreUnavailable("Record not found", endpoint=f"/{record_id}", status=404)


class InspectableLocalCache(InMemoryLocalCache):
    """In-memory cache that exposes its serialized entries."""

    def raw(self, key: str) -> Optional[str]:
        return self._entries.get(key)

    def put_raw(self, key: str, raw: str) -> None:
        self._entries[key] = raw


def go_offline(record_store: FakeRecordStore, service: SubscriptionDataService) -> None:
    record_store.online = False
    assert service.refresh_data() is False


@pytest.fixture
def record_store() -> FakeRecordStore:
    return FakeRecordStore()


@pytest.fixture
def local_cache() -> InspectableLocalCache:
    return InspectableLocalCache()


@pytest.fixture
def unbound_service(record_store, local_cache) -> SubscriptionDataService:
    monitor = ConnectivityMonitor(record_store)
    return SubscriptionDataService(
        record_store,
        local_cache,
        monitor,
        synthesizer=BillingHistorySynthesizer(pending_probability=0.0, rng=random.Random(3)),
        clock=lambda: FIXED_NOW,
    )


@pytest.fixture
def service(unbound_service) -> SubscriptionDataService:
    unbound_service.set_current_user(USER_ID)
    return unbound_service


@pytest.fixture(params=["online", "offline"])
def mode(request, record_store, service) -> str:
    if request.param == "offline":
        go_offline(record_store, service)
    return request.param
