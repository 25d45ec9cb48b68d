"""Publish/subscribe channel announcing subscription data changes."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from enum import Enum
from threading import Lock
from typing import Callable, List, Optional

from pydantic import BaseModel, ConfigDict, Field

logger = logging.getLogger(__name__)


class ChangeKind(str, Enum):
    """Points at which the service's observable state changes."""

    USER_CHANGED = "user_changed"
    SUBSCRIPTIONS_CHANGED = "subscriptions_changed"
    PAYMENT_METHODS_CHANGED = "payment_methods_changed"
    BILLING_HISTORY_CHANGED = "billing_history_changed"
    PROFILE_CHANGED = "profile_changed"
    CONNECTIVITY_CHANGED = "connectivity_changed"


class ChangeEvent(BaseModel):
    """A single state change emitted by the service."""

    kind: ChangeKind
    user_id: Optional[str] = None
    online: Optional[bool] = None
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(frozen=True)


ChangeListener = Callable[[ChangeEvent], None]


class ChangeChannel:
    """Synchronous fan-out of :class:`ChangeEvent` objects to listeners."""

    def __init__(self) -> None:
        self._listeners: List[ChangeListener] = []
        self._lock = Lock()

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        """Register ``listener`` and return a callable that removes it."""

        with self._lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe

    def publish(self, event: ChangeEvent) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(event)
            except Exception:
                logger.exception(
                    "Change listener failed",
                    extra={"change_kind": event.kind.value, "user_id": event.user_id},
                )


__all__ = ["ChangeChannel", "ChangeEvent", "ChangeKind", "ChangeListener"]
