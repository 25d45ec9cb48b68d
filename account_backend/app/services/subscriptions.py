"""Application wiring for the subscription data service."""
from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from typing import Any, Callable, Optional

from dotenv import load_dotenv

from ...config import ServiceConfig, load_service_config
from ..subscriptions import (
    BillingHistorySynthesizer,
    ChangeChannel,
    ChangeEvent,
    ConnectivityMonitor,
    HttpRecordStoreClient,
    JsonFileLocalCache,
    SubscriptionDataService,
    SubscriptionView,
)


logger = logging.getLogger("subscriptions")


class LoggingChangeListener:
    """Listener that records every change event to the application logger."""

    def __call__(self, event: ChangeEvent) -> None:
        logger.info(
            "Subscription data event %s user=%s online=%s",
            event.kind.value,
            event.user_id,
            event.online,
        )


@dataclass(frozen=True)
class AccountServices:
    """Objects owned by the composition root and shared with the view layer."""

    config: ServiceConfig
    record_store: HttpRecordStoreClient
    monitor: ConnectivityMonitor
    service: SubscriptionDataService
    view: SubscriptionView

    def start(self) -> None:
        self.view.start()

    def stop(self) -> None:
        self.view.close()


def build_account_services(
    config: Optional[ServiceConfig] = None,
    *,
    opener: Optional[Callable[..., Any]] = None,
    user_id: Optional[str] = None,
) -> AccountServices:
    """Construct an independent, explicitly owned service graph."""

    if config is None:
        load_dotenv()
        config = load_service_config()

    record_store = HttpRecordStoreClient(
        config.record_store_url,
        timeout=config.record_store_timeout,
        probe_timeout=config.probe_timeout,
        opener=opener,
    )
    monitor = ConnectivityMonitor(record_store)
    channel = ChangeChannel()
    channel.subscribe(LoggingChangeListener())
    service = SubscriptionDataService(
        record_store,
        JsonFileLocalCache(config.local_cache_dir),
        monitor,
        synthesizer=BillingHistorySynthesizer(
            max_records=config.history_max_records,
            pending_probability=config.pending_probability,
            rng=random.Random(),
        ),
        channel=channel,
        default_currency=config.default_currency,
    )
    view = SubscriptionView(service, check_interval=config.check_interval)
    if user_id:
        service.set_current_user(user_id)
    return AccountServices(
        config=config,
        record_store=record_store,
        monitor=monitor,
        service=service,
        view=view,
    )


__all__ = ["AccountServices", "LoggingChangeListener", "build_account_services"]
