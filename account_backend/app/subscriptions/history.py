"""Synthesizes display-only billing history from subscription metadata."""
from __future__ import annotations

import calendar
import random
from datetime import date
from typing import List, Optional, Protocol, Sequence

from .models import BillingRecord, BillingStatus, Subscription


class RandomSource(Protocol):
    def random(self) -> float:
        ...


def add_months(value: date, months: int) -> date:
    """Shift ``value`` by whole calendar months, clamping to the month's last day."""

    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


class BillingHistorySynthesizer:
    """Builds plausible past billing records when no authoritative history exists.

    Records step backwards from ``today`` one billing interval at a time, up to
    ``max_records``, and never before the subscription's start date. Each one
    is ``pending`` with probability ``pending_probability`` and ``paid``
    otherwise; pass a seeded ``rng`` for reproducible output.
    """

    def __init__(
        self,
        *,
        max_records: int = 6,
        pending_probability: float = 0.1,
        rng: Optional[RandomSource] = None,
    ) -> None:
        self._max_records = max(0, max_records)
        self._pending_probability = min(1.0, max(0.0, pending_probability))
        self._rng = rng or random.Random()

    def pick_subscription(self, subscriptions: Sequence[Subscription]) -> Optional[Subscription]:
        for subscription in subscriptions:
            if subscription.is_active:
                return subscription
        return subscriptions[0] if subscriptions else None

    def synthesize(self, subscriptions: Sequence[Subscription], *, today: date) -> List[BillingRecord]:
        subscription = self.pick_subscription(subscriptions)
        if subscription is None or not subscription.price:
            return []

        step = subscription.interval.months
        payment_label = subscription.payment_method.display_label()
        records: List[BillingRecord] = []
        for index in range(1, self._max_records + 1):
            billed_on = add_months(today, -step * index)
            if billed_on < subscription.start_date:
                break
            status = BillingStatus.PENDING if self._rng.random() < self._pending_probability else BillingStatus.PAID
            records.append(
                BillingRecord(
                    id=f"inv_{subscription.id}_{index}",
                    billed_on=billed_on,
                    amount=subscription.price,
                    currency=subscription.currency,
                    status=status,
                    plan=subscription.plan_name,
                    payment_method=payment_label,
                    transaction_id=f"TXN{subscription.id}_{index}",
                    invoice_url=f"#invoice_{index}",
                )
            )
        return records


__all__ = ["BillingHistorySynthesizer", "RandomSource", "add_months"]
