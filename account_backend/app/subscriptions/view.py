"""Reactive snapshot of a user's subscription data for the presentation layer."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from threading import Lock
from typing import Callable, List, Optional, Tuple

from .connectivity import PeriodicWorker
from .events import ChangeEvent, ChangeKind
from .models import BillingRecord, PaymentMethod, Subscription
from .service import SubscriptionDataService

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AccountSnapshot:
    """Immutable view of everything the account screens render."""

    user_id: Optional[str] = None
    subscriptions: Tuple[Subscription, ...] = ()
    payment_methods: Tuple[PaymentMethod, ...] = ()
    billing_history: Tuple[BillingRecord, ...] = ()
    is_online: bool = True
    refreshed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def primary_subscription(self) -> Optional[Subscription]:
        return next((sub for sub in self.subscriptions if sub.is_default), None)

    @property
    def default_payment_method(self) -> Optional[PaymentMethod]:
        return next((method for method in self.payment_methods if method.is_default), None)


SnapshotListener = Callable[[AccountSnapshot], None]


class SubscriptionView:
    """Keeps an :class:`AccountSnapshot` in step with the service's change events.

    A user switch or any data change re-pulls all three collections; a
    connectivity flip only republishes the online flag. ``start`` runs a
    connectivity re-check on a fixed interval, independent of refreshes.
    """

    def __init__(self, service: SubscriptionDataService, *, check_interval: float = 30.0) -> None:
        self._service = service
        self._check_interval = max(1.0, check_interval)
        self._snapshot = AccountSnapshot(user_id=service.current_user_id, is_online=service.is_online)
        self._listeners: List[SnapshotListener] = []
        self._lock = Lock()
        self._worker: Optional[PeriodicWorker] = None
        self._unsubscribe = service.channel.subscribe(self._on_change)

    @property
    def snapshot(self) -> AccountSnapshot:
        return self._snapshot

    @property
    def subscriptions(self) -> Tuple[Subscription, ...]:
        return self._snapshot.subscriptions

    @property
    def payment_methods(self) -> Tuple[PaymentMethod, ...]:
        return self._snapshot.payment_methods

    @property
    def billing_history(self) -> Tuple[BillingRecord, ...]:
        return self._snapshot.billing_history

    @property
    def is_online(self) -> bool:
        return self._snapshot.is_online

    def subscribe(self, listener: SnapshotListener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe

    def refresh(self) -> AccountSnapshot:
        """Re-pull all collections from the service and republish them."""

        snapshot = AccountSnapshot(
            user_id=self._service.current_user_id,
            subscriptions=tuple(self._service.get_subscriptions()),
            payment_methods=tuple(self._service.get_payment_methods()),
            billing_history=tuple(self._service.get_billing_history()),
            is_online=self._service.is_online,
        )
        self._publish(snapshot)
        return snapshot

    def start(self) -> None:
        if self._worker is not None and self._worker.is_alive():
            return
        self._worker = PeriodicWorker(self._service.refresh_data, interval=self._check_interval, name="subscription-view")
        self._worker.start()

    def stop(self) -> None:
        worker = self._worker
        self._worker = None
        if worker is not None:
            worker.stop()

    def close(self) -> None:
        self.stop()
        self._unsubscribe()

    def _on_change(self, event: ChangeEvent) -> None:
        if event.kind == ChangeKind.CONNECTIVITY_CHANGED:
            online = event.online if event.online is not None else self._service.is_online
            self._publish(replace(self._snapshot, is_online=online))
            return
        if event.kind == ChangeKind.PROFILE_CHANGED:
            return
        self.refresh()

    def _publish(self, snapshot: AccountSnapshot) -> None:
        self._snapshot = snapshot
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Snapshot listener failed", extra={"user_id": snapshot.user_id})


__all__ = ["AccountSnapshot", "SnapshotListener", "SubscriptionView"]
