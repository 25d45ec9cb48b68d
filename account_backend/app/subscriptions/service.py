"""Core service routing subscription data between the record store and the local cache."""
from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol, Sequence, Type, TypeVar
from uuid import uuid4

from pydantic import BaseModel, ValidationError
from pydantic_core import to_jsonable_python

from .catalog import PlanKey, get_plan_definition
from .connectivity import ConnectivityMonitor
from .events import ChangeChannel, ChangeEvent, ChangeKind
from .history import BillingHistorySynthesizer, add_months
from .local_cache import LocalCache
from .models import (
    BillingInterval,
    BillingRecord,
    LocalCollection,
    PaymentMethod,
    PaymentSnapshot,
    Subscription,
    UserProfile,
    sort_billing_history,
)
from .record_store import RecordStoreUnavailable

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class RecordStore(Protocol):
    """Remote operations required by the subscription data service."""

    def get_user(self, user_id: str) -> Dict[str, Any]:
        ...

    def save_user(self, user_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        ...

    def get_subscriptions(self, user_id: str) -> Sequence[Subscription]:
        ...

    def add_subscription(self, user_id: str, subscription: Subscription) -> Subscription:
        ...

    def update_subscription(self, user_id: str, subscription_id: str, patch: Dict[str, Any]) -> Subscription:
        ...

    def get_payment_methods(self, user_id: str) -> Sequence[PaymentMethod]:
        ...

    def add_payment_method(self, user_id: str, method: PaymentMethod) -> PaymentMethod:
        ...

    def update_payment_method(self, user_id: str, method_id: str, patch: Dict[str, Any]) -> PaymentMethod:
        ...

    def remove_payment_method(self, user_id: str, method_id: str) -> None:
        ...

    def get_billing_history(self, user_id: str) -> Sequence[BillingRecord]:
        ...

    def add_billing_record(self, user_id: str, record: BillingRecord) -> BillingRecord:
        ...


def _wire_values(model: Type[BaseModel], values: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Map snake_case or camelCase keys onto the model's wire aliases, dropping ``None``."""

    if not values:
        return {}
    normalized: Dict[str, Any] = {}
    for name, field in model.model_fields.items():
        alias = field.alias or name
        for key in (name, alias):
            if key in values and values[key] is not None:
                normalized[alias] = _jsonable(values[key])
    return normalized


def _jsonable(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump(by_alias=True, mode="json", exclude_none=True)
    return to_jsonable_python(value)


def _build_with_defaults(
    model: Type[ModelT],
    defaults: Dict[str, Any],
    values: Dict[str, Any],
    operation: str,
) -> ModelT:
    """Validate ``values`` over ``defaults``, replacing rejected fields with their defaults."""

    try:
        return model.model_validate({**defaults, **values})
    except ValidationError as exc:
        rejected = {str(error["loc"][0]) for error in exc.errors() if error["loc"]}
        logger.warning(
            "Replaced invalid fields with defaults",
            extra={"operation": operation, "fields": sorted(rejected)},
        )
    accepted = {key: value for key, value in values.items() if key not in rejected}
    try:
        return model.model_validate({**defaults, **accepted})
    except ValidationError:
        return model.model_validate(defaults)


class SubscriptionDataService:
    """Exposes subscription, payment method and billing operations for one bound user.

    Each call routes to the record store while the connectivity monitor
    reports it reachable and to the local cache otherwise. Transport failures
    downgrade the call to the local cache; nothing raised by either store
    crosses this class's public methods. Writes made while offline stay in
    the local cache and are not replayed to the record store.
    """

    def __init__(
        self,
        record_store: RecordStore,
        local_cache: LocalCache,
        monitor: ConnectivityMonitor,
        *,
        synthesizer: Optional[BillingHistorySynthesizer] = None,
        channel: Optional[ChangeChannel] = None,
        default_currency: str = "₹",
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._record_store = record_store
        self._local_cache = local_cache
        self._monitor = monitor
        self._synthesizer = synthesizer or BillingHistorySynthesizer()
        self._channel = channel or ChangeChannel()
        self._default_currency = default_currency
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._user_id: Optional[str] = None
        self._monitor.add_listener(self._on_connectivity_change)

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    @property
    def channel(self) -> ChangeChannel:
        return self._channel

    @property
    def current_user_id(self) -> Optional[str]:
        return self._user_id

    @property
    def is_online(self) -> bool:
        return self._monitor.is_online

    def set_current_user(self, user_id: Optional[str]) -> None:
        """Point subsequent operations at ``user_id``'s namespace."""

        resolved = (user_id or "").strip() or None
        if resolved == self._user_id:
            return
        self._user_id = resolved
        logger.info("Bound subscription data to user", extra={"user_id": resolved})
        self._publish(ChangeKind.USER_CHANGED)

    def refresh_data(self) -> bool:
        """Re-run the connectivity probe so later calls route correctly."""

        return self._monitor.check_status()

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def get_subscriptions(self) -> List[Subscription]:
        return self._read(LocalCollection.SUBSCRIPTIONS, Subscription, self._record_store.get_subscriptions)

    def add_subscription(self, partial: Optional[Mapping[str, Any]] = None) -> Subscription:
        """Create a subscription, filling defaults for every omitted field."""

        subscription = self._build_subscription(partial)
        user_id = self._user_id
        if user_id is None:
            self._warn_unbound("add_subscription")
            return subscription

        created = self._remote_or_none(
            "add_subscription", lambda: self._record_store.add_subscription(user_id, subscription)
        )
        if created is None:
            created = subscription
            records = self._read_local(LocalCollection.SUBSCRIPTIONS, Subscription)
            records.append(created)
            self._write_local(LocalCollection.SUBSCRIPTIONS, records)

        if created.is_default:
            self._clear_subscription_defaults(keep_id=created.id)
        self._publish(ChangeKind.SUBSCRIPTIONS_CHANGED)
        return created

    def subscribe_to_plan(
        self,
        plan_key: PlanKey,
        *,
        payment_method: Optional[PaymentSnapshot] = None,
        is_default: bool = False,
    ) -> Subscription:
        """Add a subscription built from a catalog preset."""

        plan = get_plan_definition(plan_key)
        partial: Dict[str, Any] = {
            "planName": plan.display_name,
            "planType": plan.plan_type,
            "price": plan.price,
            "currency": plan.currency,
            "interval": plan.interval,
            "isDefault": is_default,
            "features": list(plan.features),
        }
        if payment_method is not None:
            partial["paymentMethod"] = payment_method
        return self.add_subscription(partial)

    def update_subscription(self, subscription_id: str, patch: Mapping[str, Any]) -> None:
        """Shallow-merge ``patch`` onto the stored subscription."""

        changes = _wire_values(Subscription, patch)
        changes.pop("id", None)
        if not changes:
            return
        if self._user_id is None:
            self._warn_unbound("update_subscription")
            return

        current = next((item for item in self.get_subscriptions() if item.id == subscription_id), None)
        if current is None:
            logger.warning(
                "Ignoring update for unknown subscription",
                extra={"record_id": subscription_id, "user_id": self._user_id},
            )
            return
        try:
            Subscription.model_validate({**_jsonable(current), **changes})
        except ValidationError:
            logger.warning(
                "Rejected invalid subscription patch",
                extra={"record_id": subscription_id, "user_id": self._user_id, "fields": sorted(changes)},
            )
            return

        self._patch_subscription(subscription_id, changes)
        if changes.get("isDefault") is True:
            self._clear_subscription_defaults(keep_id=subscription_id)
        self._publish(ChangeKind.SUBSCRIPTIONS_CHANGED)

    def set_primary_subscription(self, subscription_id: str) -> None:
        """Flag ``subscription_id`` as the only default subscription."""

        if self._user_id is None:
            self._warn_unbound("set_primary_subscription")
            return
        for subscription in self.get_subscriptions():
            desired = subscription.id == subscription_id
            if subscription.is_default != desired:
                self._patch_subscription(subscription.id, {"isDefault": desired})
        self._publish(ChangeKind.SUBSCRIPTIONS_CHANGED)

    def _build_subscription(self, partial: Optional[Mapping[str, Any]]) -> Subscription:
        values = _wire_values(Subscription, partial)
        try:
            interval = BillingInterval(values.get("interval", BillingInterval.MONTH.value))
        except ValueError:
            interval = BillingInterval.MONTH
        today = self._today()
        defaults: Dict[str, Any] = {
            "id": f"sub_{uuid4().hex}",
            "planName": "New Plan",
            "planType": "premium",
            "price": 199,
            "currency": self._default_currency,
            "interval": interval.value,
            "status": "active",
            "nextBilling": add_months(today, interval.months).isoformat(),
            "isDefault": False,
            "features": [],
            "startDate": today.isoformat(),
            "paymentMethod": {"type": "card", "last4": "0000"},
        }
        return _build_with_defaults(Subscription, defaults, values, "add_subscription")

    def _patch_subscription(self, subscription_id: str, changes: Dict[str, Any]) -> None:
        user_id = self._user_id
        updated = self._remote_or_none(
            "update_subscription",
            lambda: self._record_store.update_subscription(user_id, subscription_id, changes),
        )
        if updated is not None:
            return
        records = self._read_local(LocalCollection.SUBSCRIPTIONS, Subscription)
        merged = self._merge_into(records, subscription_id, changes, Subscription)
        if merged is not None:
            self._write_local(LocalCollection.SUBSCRIPTIONS, merged)

    def _clear_subscription_defaults(self, *, keep_id: str) -> None:
        for subscription in self.get_subscriptions():
            if subscription.is_default and subscription.id != keep_id:
                self._patch_subscription(subscription.id, {"isDefault": False})

    # ------------------------------------------------------------------
    # Payment methods
    # ------------------------------------------------------------------

    def get_payment_methods(self) -> List[PaymentMethod]:
        return self._read(LocalCollection.PAYMENT_METHODS, PaymentMethod, self._record_store.get_payment_methods)

    def add_payment_method(self, partial: Optional[Mapping[str, Any]] = None) -> PaymentMethod:
        """Register a payment method; the user's first one becomes the default."""

        values = _wire_values(PaymentMethod, partial)
        user_id = self._user_id
        existing = self.get_payment_methods() if user_id is not None else []
        defaults: Dict[str, Any] = {
            "id": f"pm_{uuid4().hex}",
            "type": "card",
            "created": int(self._clock().timestamp() * 1000),
        }
        values["isDefault"] = bool(values.get("isDefault")) or not existing
        method = _build_with_defaults(PaymentMethod, defaults, values, "add_payment_method")
        if user_id is None:
            self._warn_unbound("add_payment_method")
            return method

        created = self._remote_or_none(
            "add_payment_method", lambda: self._record_store.add_payment_method(user_id, method)
        )
        if created is None:
            created = method
            records = self._read_local(LocalCollection.PAYMENT_METHODS, PaymentMethod)
            records.append(created)
            self._write_local(LocalCollection.PAYMENT_METHODS, records)

        if created.is_default:
            for other in existing:
                if other.is_default and other.id != created.id:
                    self._patch_payment_method(other.id, {"isDefault": False})
        self._publish(ChangeKind.PAYMENT_METHODS_CHANGED)
        return created

    def remove_payment_method(self, method_id: str) -> None:
        """Hard-delete a payment method. Subscription snapshots are left untouched."""

        user_id = self._user_id
        if user_id is None:
            self._warn_unbound("remove_payment_method")
            return

        def _remove_remote() -> bool:
            self._record_store.remove_payment_method(user_id, method_id)
            return True

        if self._remote_or_none("remove_payment_method", _remove_remote) is None:
            records = self._read_local(LocalCollection.PAYMENT_METHODS, PaymentMethod)
            self._write_local(
                LocalCollection.PAYMENT_METHODS,
                [record for record in records if record.id != method_id],
            )
        self._publish(ChangeKind.PAYMENT_METHODS_CHANGED)

    def set_default_payment_method(self, method_id: str) -> None:
        if self._user_id is None:
            self._warn_unbound("set_default_payment_method")
            return
        for method in self.get_payment_methods():
            desired = method.id == method_id
            if method.is_default != desired:
                self._patch_payment_method(method.id, {"isDefault": desired})
        self._publish(ChangeKind.PAYMENT_METHODS_CHANGED)

    def _patch_payment_method(self, method_id: str, changes: Dict[str, Any]) -> None:
        user_id = self._user_id
        updated = self._remote_or_none(
            "update_payment_method",
            lambda: self._record_store.update_payment_method(user_id, method_id, changes),
        )
        if updated is not None:
            return
        records = self._read_local(LocalCollection.PAYMENT_METHODS, PaymentMethod)
        merged = self._merge_into(records, method_id, changes, PaymentMethod)
        if merged is not None:
            self._write_local(LocalCollection.PAYMENT_METHODS, merged)

    # ------------------------------------------------------------------
    # Billing history
    # ------------------------------------------------------------------

    def get_billing_history(self) -> List[BillingRecord]:
        """Return billing records newest first, synthesizing them for an empty history."""

        records = self._read(LocalCollection.BILLING_HISTORY, BillingRecord, self._record_store.get_billing_history)
        if not records and self._user_id is not None:
            synthesized = self._synthesizer.synthesize(self.get_subscriptions(), today=self._today())
            if synthesized:
                logger.info(
                    "Synthesized billing history",
                    extra={"user_id": self._user_id, "records": len(synthesized)},
                )
                records = [self._store_billing_record(record) for record in synthesized]
        return sort_billing_history(records)

    def add_billing_record(self, partial: Optional[Mapping[str, Any]] = None) -> BillingRecord:
        values = _wire_values(BillingRecord, partial)
        defaults: Dict[str, Any] = {
            "id": f"inv_{uuid4().hex}",
            "date": self._today().isoformat(),
            "amount": 0,
            "currency": self._default_currency,
            "status": "pending",
            "plan": "Unknown Plan",
            "paymentMethod": "Unknown Method",
            "transactionId": f"TXN{uuid4().hex[:12].upper()}",
        }
        record = _build_with_defaults(BillingRecord, defaults, values, "add_billing_record")
        if self._user_id is None:
            self._warn_unbound("add_billing_record")
            return record

        stored = self._store_billing_record(record)
        self._publish(ChangeKind.BILLING_HISTORY_CHANGED)
        return stored

    def _store_billing_record(self, record: BillingRecord) -> BillingRecord:
        user_id = self._user_id
        created = self._remote_or_none(
            "add_billing_record", lambda: self._record_store.add_billing_record(user_id, record)
        )
        if created is not None:
            return created
        records = self._read_local(LocalCollection.BILLING_HISTORY, BillingRecord)
        records.insert(0, record)
        self._write_local(LocalCollection.BILLING_HISTORY, records)
        return record

    # ------------------------------------------------------------------
    # Profile and maintenance
    # ------------------------------------------------------------------

    def get_user_profile(self) -> Optional[UserProfile]:
        user_id = self._user_id
        if user_id is None:
            return None
        data = self._remote_or_none("get_user", lambda: self._record_store.get_user(user_id))
        if data is None:
            cached = self._local_cache.read(LocalCollection.PROFILE.key_for(user_id))
            if not cached:
                return None
            data = cached[0]
        return UserProfile(user_id=user_id, data=data)

    def save_user_profile(self, data: Mapping[str, Any]) -> UserProfile:
        user_id = self._user_id
        if user_id is None:
            self._warn_unbound("save_user_profile")
            return UserProfile(user_id="", data=dict(data))

        saved = self._remote_or_none("save_user", lambda: self._record_store.save_user(user_id, dict(data)))
        if saved is None:
            key = LocalCollection.PROFILE.key_for(user_id)
            cached = self._local_cache.read(key)
            saved = {**(cached[0] if cached else {}), **dict(data)}
            self._local_cache.write(key, [saved])
        self._publish(ChangeKind.PROFILE_CHANGED)
        return UserProfile(user_id=user_id, data=saved)

    def reset_data(self) -> None:
        """Drop the bound user's locally cached collections. Remote data is kept."""

        user_id = self._user_id
        if user_id is None:
            return
        for collection in LocalCollection:
            self._local_cache.delete(collection.key_for(user_id))
        logger.info("Cleared local subscription data", extra={"user_id": user_id})
        for kind in (
            ChangeKind.SUBSCRIPTIONS_CHANGED,
            ChangeKind.PAYMENT_METHODS_CHANGED,
            ChangeKind.BILLING_HISTORY_CHANGED,
        ):
            self._publish(kind)

    # ------------------------------------------------------------------
    # Routing helpers
    # ------------------------------------------------------------------

    def _today(self) -> date:
        return self._clock().date()

    def _read(
        self,
        collection: LocalCollection,
        model: Type[ModelT],
        remote_call: Callable[[str], Sequence[ModelT]],
    ) -> List[ModelT]:
        user_id = self._user_id
        if user_id is None:
            return []
        records = self._remote_or_none(f"get_{collection.value}", lambda: list(remote_call(user_id)))
        if records is not None:
            return records
        return self._read_local(collection, model)

    def _remote_or_none(self, operation: str, call: Callable[[], Any]) -> Any:
        """Run ``call`` against the record store when online; ``None`` means use the cache."""

        if not self._monitor.is_online:
            logger.debug("Routing %s to local cache while offline", operation)
            return None
        try:
            return call()
        except RecordStoreUnavailable as exc:
            logger.warning(
                "Record store unavailable; falling back to local cache",
                extra={
                    "operation": operation,
                    "user_id": self._user_id,
                    "endpoint": exc.endpoint,
                    "status": exc.status,
                    "error": str(exc),
                },
            )
            return None

    def _read_local(self, collection: LocalCollection, model: Type[ModelT]) -> List[ModelT]:
        records: List[ModelT] = []
        for item in self._local_cache.read(collection.key_for(self._user_id)):
            try:
                records.append(model.model_validate(item))
            except ValidationError:
                logger.warning(
                    "Skipping malformed cached record",
                    extra={"collection": collection.value, "user_id": self._user_id},
                )
        return records

    def _write_local(self, collection: LocalCollection, records: Sequence[BaseModel]) -> bool:
        payload = [_jsonable(record) for record in records]
        written = self._local_cache.write(collection.key_for(self._user_id), payload)
        if not written:
            logger.error(
                "Local cache write failed; change not persisted",
                extra={"collection": collection.value, "user_id": self._user_id},
            )
        return written

    def _merge_into(
        self,
        records: List[ModelT],
        record_id: str,
        changes: Dict[str, Any],
        model: Type[ModelT],
    ) -> Optional[List[ModelT]]:
        for index, record in enumerate(records):
            if getattr(record, "id", None) != record_id:
                continue
            try:
                records[index] = model.model_validate({**_jsonable(record), **changes})
            except ValidationError:
                logger.warning(
                    "Rejected invalid patch for cached record",
                    extra={"record_id": record_id, "user_id": self._user_id},
                )
                return None
            return records
        return None

    def _warn_unbound(self, operation: str) -> None:
        logger.warning("No user bound; %s was not persisted", operation)

    def _publish(self, kind: ChangeKind) -> None:
        self._channel.publish(ChangeEvent(kind=kind, user_id=self._user_id, online=self._monitor.status))

    def _on_connectivity_change(self, online: bool) -> None:
        self._channel.publish(ChangeEvent(kind=ChangeKind.CONNECTIVITY_CHANGED, user_id=self._user_id, online=online))


__all__ = ["RecordStore", "SubscriptionDataService"]
