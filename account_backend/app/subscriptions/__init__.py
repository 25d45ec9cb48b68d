"""Subscription, payment method and billing history data service."""

from .catalog import PLAN_CATALOG, PlanDefinition, PlanKey, get_plan_definition
from .connectivity import ConnectivityMonitor, HealthProbe, PeriodicWorker
from .events import ChangeChannel, ChangeEvent, ChangeKind
from .history import BillingHistorySynthesizer, add_months
from .local_cache import InMemoryLocalCache, JsonFileLocalCache, LocalCache, LocalCacheError
from .models import (
    BankDetails,
    BillingInterval,
    BillingRecord,
    BillingStatus,
    CardDetails,
    LocalCollection,
    PaymentMethod,
    PaymentMethodType,
    PaymentSnapshot,
    PlanType,
    Subscription,
    SubscriptionStatus,
    UpiDetails,
    UserProfile,
    sort_billing_history,
)
from .record_store import HttpRecordStoreClient, RecordStoreUnavailable
from .service import RecordStore, SubscriptionDataService
from .view import AccountSnapshot, SubscriptionView

__all__ = [
    "PLAN_CATALOG",
    "AccountSnapshot",
    "BankDetails",
    "BillingHistorySynthesizer",
    "BillingInterval",
    "BillingRecord",
    "BillingStatus",
    "CardDetails",
    "ChangeChannel",
    "ChangeEvent",
    "ChangeKind",
    "ConnectivityMonitor",
    "HealthProbe",
    "HttpRecordStoreClient",
    "InMemoryLocalCache",
    "JsonFileLocalCache",
    "LocalCache",
    "LocalCacheError",
    "LocalCollection",
    "PaymentMethod",
    "PaymentMethodType",
    "PaymentSnapshot",
    "PeriodicWorker",
    "PlanDefinition",
    "PlanKey",
    "PlanType",
    "RecordStore",
    "RecordStoreUnavailable",
    "Subscription",
    "SubscriptionDataService",
    "SubscriptionStatus",
    "SubscriptionView",
    "UpiDetails",
    "UserProfile",
    "add_months",
    "get_plan_definition",
    "sort_billing_history",
]
