"""Behaviour of the subscription data service across online and offline routing."""
from __future__ import annotations

from datetime import date
from typing import List

from account_backend.app.subscriptions import (
    BillingInterval,
    BillingStatus,
    ChangeEvent,
    ChangeKind,
    LocalCollection,
    PaymentMethodType,
    PaymentSnapshot,
    PlanKey,
    PlanType,
    SubscriptionStatus,
)

from conftest import FIXED_NOW, USER_ID, go_offline


def _defaults(subscriptions) -> List[str]:
    return [subscription.id for subscription in subscriptions if subscription.is_default]


def test_unbound_service_reads_empty_and_skips_persistence(unbound_service, record_store, local_cache):
    assert unbound_service.get_subscriptions() == []
    assert unbound_service.get_payment_methods() == []
    assert unbound_service.get_billing_history() == []
    assert unbound_service.get_user_profile() is None

    created = unbound_service.add_subscription({"planName": "Premium"})

    assert created.plan_name == "Premium"
    assert record_store.calls == []
    assert local_cache.raw(LocalCollection.SUBSCRIPTIONS.key_for(USER_ID)) is None


def test_empty_reads_on_both_paths(service, record_store, mode):
    assert service.get_subscriptions() == []
    assert service.get_payment_methods() == []
    assert service.get_billing_history() == []


def test_offline_add_subscription_lands_in_local_cache(service, record_store, local_cache):
    go_offline(record_store, service)

    created = service.add_subscription({"planName": "Premium", "price": 199, "interval": "month"})

    assert created.id.startswith("sub_")
    assert created.next_billing == date(2024, 6, 15)
    assert created.start_date == FIXED_NOW.date()
    assert service.get_subscriptions() == [created]
    assert record_store.subscriptions == {}
    cached = local_cache.read(LocalCollection.SUBSCRIPTIONS.key_for(USER_ID))
    assert cached[0]["id"] == created.id
    assert cached[0]["nextBilling"] == "2024-06-15"


def test_online_add_subscription_returns_remote_record(service, record_store, local_cache):
    created = service.add_subscription({"plan_name": "Family", "price": 299, "plan_type": "family"})

    assert record_store.subscriptions[USER_ID] == [created]
    assert created.plan_type == PlanType.FAMILY
    assert local_cache.raw(LocalCollection.SUBSCRIPTIONS.key_for(USER_ID)) is None


def test_add_subscription_fills_defaults(service):
    created = service.add_subscription()

    assert created.plan_name == "New Plan"
    assert created.price == 199
    assert created.currency == "₹"
    assert created.interval == BillingInterval.MONTH
    assert created.status == SubscriptionStatus.ACTIVE
    assert created.is_default is False
    assert created.features == []
    assert created.payment_method.type == PaymentMethodType.CARD
    assert created.payment_method.last4 == "0000"


def test_yearly_subscription_bills_a_year_ahead(service):
    created = service.add_subscription({"interval": "year", "price": 1990})

    assert created.next_billing == date(2025, 5, 15)


def test_remote_failure_downgrades_to_local_cache(service, record_store):
    # Monitor still reports online; the call itself fails.
    record_store.online = False
    assert service.is_online is True

    created = service.add_subscription({"planName": "Premium"})

    assert service.get_subscriptions() == [created]
    assert "add_subscription" in record_store.calls


def test_primary_switch(service, mode):
    first = service.add_subscription({"planName": "A", "isDefault": True})
    second = service.add_subscription({"planName": "B"})

    service.set_primary_subscription(second.id)

    by_id = {subscription.id: subscription for subscription in service.get_subscriptions()}
    assert by_id[first.id].is_default is False
    assert by_id[second.id].is_default is True


def test_default_subscription_stays_unique(service, mode):
    first = service.add_subscription({"planName": "A", "isDefault": True})
    second = service.add_subscription({"planName": "B", "isDefault": True})
    third = service.add_subscription({"planName": "C", "isDefault": True})
    assert _defaults(service.get_subscriptions()) == [third.id]

    service.update_subscription(first.id, {"isDefault": True})
    assert _defaults(service.get_subscriptions()) == [first.id]

    service.set_primary_subscription(second.id)
    assert _defaults(service.get_subscriptions()) == [second.id]


def test_update_subscription_merges_patch(service, mode):
    created = service.add_subscription({"planName": "Premium", "price": 199})

    service.update_subscription(created.id, {"status": "cancelled", "price": 99})

    (updated,) = service.get_subscriptions()
    assert updated.status == SubscriptionStatus.CANCELLED
    assert updated.price == 99
    assert updated.plan_name == "Premium"
    assert updated.id == created.id


def test_update_unknown_subscription_is_a_no_op(service, mode):
    created = service.add_subscription({"planName": "Premium"})

    service.update_subscription("missing", {"status": "paused"})

    assert service.get_subscriptions() == [created]


def test_subscribe_to_plan_uses_catalog_preset(service):
    snapshot = PaymentSnapshot(type=PaymentMethodType.UPI, upi_id="family@bank")

    created = service.subscribe_to_plan(PlanKey.FAMILY_YEARLY, payment_method=snapshot, is_default=True)

    assert created.plan_name == "Family Yearly"
    assert created.plan_type == PlanType.FAMILY
    assert created.price == 2990
    assert created.interval == BillingInterval.YEAR
    assert created.next_billing == date(2025, 5, 15)
    assert created.is_default is True
    assert len(created.features) == 6
    assert created.payment_method.display_label() == "UPI: family@bank"


def test_first_payment_method_becomes_default(service, mode):
    first = service.add_payment_method({"type": "upi", "upi": {"vpa": "me@bank"}})
    second = service.add_payment_method(
        {"type": "card", "card": {"brand": "visa", "last4": "4242", "exp_month": 12, "exp_year": 2030}}
    )

    assert first.is_default is True
    assert second.is_default is False
    assert first.created == int(FIXED_NOW.timestamp() * 1000)


def test_default_payment_method_stays_unique(service, mode):
    first = service.add_payment_method({"type": "upi", "upi": {"vpa": "one@bank"}})
    second = service.add_payment_method({"type": "upi", "upi": {"vpa": "two@bank"}})
    third = service.add_payment_method({"type": "upi", "upi": {"vpa": "three@bank"}, "isDefault": True})
    assert _defaults(service.get_payment_methods()) == [third.id]

    service.set_default_payment_method(second.id)
    assert _defaults(service.get_payment_methods()) == [second.id]

    service.set_default_payment_method(first.id)
    assert _defaults(service.get_payment_methods()) == [first.id]


def test_remove_payment_method_keeps_subscription_snapshot(service, mode):
    card = service.add_payment_method(
        {"type": "card", "card": {"brand": "visa", "last4": "4242", "exp_month": 1, "exp_year": 2031}}
    )
    other = service.add_payment_method({"type": "bank_transfer", "bank": {"last4": "1234", "ifsc": "HDFC0001"}})
    subscription = service.add_subscription({"paymentMethod": card.to_snapshot()})

    service.remove_payment_method(card.id)

    assert [method.id for method in service.get_payment_methods()] == [other.id]
    (stored,) = service.get_subscriptions()
    assert stored.id == subscription.id
    assert stored.payment_method.display_label() == "Visa ****4242"


def test_billing_history_is_sorted_newest_first(service, mode):
    for billed_on in ("2024-01-10", "2024-03-10", "2024-02-10"):
        service.add_billing_record({"date": billed_on, "amount": 199, "plan": "Premium", "status": "paid"})

    history = service.get_billing_history()

    assert [record.billed_on for record in history] == [
        date(2024, 3, 10),
        date(2024, 2, 10),
        date(2024, 1, 10),
    ]


def test_add_billing_record_fills_defaults(service):
    record = service.add_billing_record({"amount": 199, "plan": "Premium"})

    assert record.billed_on == FIXED_NOW.date()
    assert record.currency == "₹"
    assert record.status == BillingStatus.PENDING
    assert record.payment_method == "Unknown Method"
    assert record.transaction_id.startswith("TXN")
    assert record.id.startswith("inv_")


def test_billing_history_synthesized_once_and_bounded_by_start(service, mode):
    subscription = service.add_subscription(
        {
            "planName": "Premium",
            "price": 199,
            "startDate": "2024-02-15",
            "paymentMethod": {"type": "card", "brand": "Visa", "last4": "4242"},
        }
    )

    history = service.get_billing_history()

    assert [record.billed_on for record in history] == [
        date(2024, 4, 15),
        date(2024, 3, 15),
        date(2024, 2, 15),
    ]
    assert all(record.billed_on >= subscription.start_date for record in history)
    assert all(record.status == BillingStatus.PAID for record in history)
    assert history[0].id == f"inv_{subscription.id}_1"
    assert history[0].payment_method == "Visa ****4242"

    service.update_subscription(subscription.id, {"startDate": "2023-01-15"})

    assert service.get_billing_history() == history


def test_change_events_are_published(unbound_service, record_store):
    events: List[ChangeEvent] = []
    unbound_service.channel.subscribe(events.append)

    unbound_service.set_current_user(USER_ID)
    unbound_service.set_current_user(USER_ID)
    unbound_service.add_subscription({"planName": "Premium"})
    unbound_service.add_payment_method({"type": "upi", "upi": {"vpa": "me@bank"}})
    unbound_service.add_billing_record({"amount": 10, "plan": "Premium"})
    go_offline(record_store, unbound_service)

    assert [event.kind for event in events] == [
        ChangeKind.USER_CHANGED,
        ChangeKind.SUBSCRIPTIONS_CHANGED,
        ChangeKind.PAYMENT_METHODS_CHANGED,
        ChangeKind.BILLING_HISTORY_CHANGED,
        ChangeKind.CONNECTIVITY_CHANGED,
    ]
    assert events[-1].online is False
    assert all(event.user_id == USER_ID for event in events)


def test_user_namespaces_are_isolated(service, record_store):
    go_offline(record_store, service)
    mine = service.add_subscription({"planName": "Mine"})

    service.set_current_user("user-2")
    assert service.get_subscriptions() == []
    theirs = service.add_subscription({"planName": "Theirs"})

    service.set_current_user(USER_ID)
    assert service.get_subscriptions() == [mine]
    assert theirs not in service.get_subscriptions()


def test_malformed_local_entries_are_skipped(service, record_store, local_cache):
    go_offline(record_store, service)
    valid = service.add_subscription({"planName": "Premium"})
    key = LocalCollection.SUBSCRIPTIONS.key_for(USER_ID)
    local_cache.put_raw(key, '[{"id": "broken"}, ' + local_cache.raw(key)[1:])

    assert service.get_subscriptions() == [valid]

    local_cache.put_raw(key, "{not json")
    assert service.get_subscriptions() == []


def test_profile_round_trip(service, record_store, mode):
    saved = service.save_user_profile({"displayName": "Asha"})
    service.save_user_profile({"email": "asha@example.com"})

    profile = service.get_user_profile()

    assert saved.user_id == USER_ID
    assert profile is not None
    assert profile.data == {"displayName": "Asha", "email": "asha@example.com"}
    if mode == "offline":
        assert record_store.users == {}
    else:
        assert record_store.users[USER_ID]["email"] == "asha@example.com"


def test_missing_profile_reads_as_none(service):
    assert service.get_user_profile() is None


def test_reset_data_clears_local_collections(service, record_store):
    go_offline(record_store, service)
    service.add_subscription({"planName": "Premium"})
    service.add_payment_method({"type": "upi", "upi": {"vpa": "me@bank"}})
    events: List[ChangeEvent] = []
    service.channel.subscribe(events.append)

    service.reset_data()

    assert service.get_subscriptions() == []
    assert service.get_payment_methods() == []
    assert {event.kind for event in events} == {
        ChangeKind.SUBSCRIPTIONS_CHANGED,
        ChangeKind.PAYMENT_METHODS_CHANGED,
        ChangeKind.BILLING_HISTORY_CHANGED,
    }


def test_invalid_subscription_fields_fall_back_to_defaults(service, record_store, mode, caplog):
    with caplog.at_level("WARNING"):
        created = service.add_subscription({"price": -5, "interval": "weekly", "planName": "Premium"})

    assert created.price == 199
    assert created.interval == BillingInterval.MONTH
    assert created.plan_name == "Premium"
    assert created.next_billing == date(2024, 6, 15)
    assert service.get_subscriptions() == [created]
    assert "Replaced invalid fields with defaults" in caplog.text


def test_invalid_payment_and_billing_fields_fall_back_to_defaults(service, mode):
    method = service.add_payment_method({"type": "cash"})
    record = service.add_billing_record({"amount": -1, "plan": "Premium"})

    assert method.type == PaymentMethodType.CARD
    assert method.is_default is True
    assert record.amount == 0
    assert record.plan == "Premium"
    assert service.get_payment_methods() == [method]
    assert service.get_billing_history() == [record]


def test_invalid_subscription_patch_is_dropped(service, record_store, mode):
    created = service.add_subscription({"planName": "Premium"})
    events: List[ChangeEvent] = []
    service.channel.subscribe(events.append)
    calls_before = list(record_store.calls)

    service.update_subscription(created.id, {"status": "bogus"})

    assert service.get_subscriptions() == [created]
    assert "update_subscription" not in record_store.calls[len(calls_before):]
    assert events == []
