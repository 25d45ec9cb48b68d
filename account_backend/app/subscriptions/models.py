"""Domain models for subscriptions, payment methods and billing history."""
from __future__ import annotations

from datetime import date
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class PlanType(str, Enum):
    """Plan families offered to listeners."""

    PREMIUM = "premium"
    FAMILY = "family"
    STUDENT = "student"


class BillingInterval(str, Enum):
    """Supported billing cadences."""

    MONTH = "month"
    YEAR = "year"

    @property
    def months(self) -> int:
        return 12 if self is BillingInterval.YEAR else 1


class SubscriptionStatus(str, Enum):
    """Lifecycle state of a subscription. Cancellation never removes the record."""

    ACTIVE = "active"
    PAUSED = "paused"
    CANCELLED = "cancelled"


class PaymentMethodType(str, Enum):
    """Payment instruments a listener can register."""

    CARD = "card"
    UPI = "upi"
    BANK_TRANSFER = "bank_transfer"


class BillingStatus(str, Enum):
    """Status of a billing history entry."""

    PAID = "paid"
    PENDING = "pending"
    FAILED = "failed"


class LocalCollection(str, Enum):
    """Logical collections persisted per user in the local cache."""

    SUBSCRIPTIONS = "subscriptions"
    PAYMENT_METHODS = "payment_methods"
    BILLING_HISTORY = "billing_history"
    PROFILE = "profile"

    def key_for(self, user_id: str) -> str:
        """Return the namespaced cache key ``{collection}_{user_id}``."""

        return f"{self.value}_{user_id}"


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    def to_payload(self) -> Dict[str, Any]:
        """Serialize using the camelCase field names shared by both stores."""

        return self.model_dump(by_alias=True, mode="json", exclude_none=True)


class PaymentSnapshot(_WireModel):
    """Denormalized copy of the payment instrument stored on a subscription."""

    type: PaymentMethodType = PaymentMethodType.CARD
    last4: Optional[str] = None
    upi_id: Optional[str] = Field(default=None, alias="upiId")
    brand: Optional[str] = None

    def display_label(self) -> str:
        if self.type == PaymentMethodType.UPI:
            return f"UPI: {self.upi_id or 'Unknown'}"
        if self.type == PaymentMethodType.BANK_TRANSFER:
            return f"Bank ****{self.last4 or '0000'}"
        return f"{self.brand or 'Unknown'} ****{self.last4 or '0000'}"


class Subscription(_WireModel):
    """A listener's plan subscription."""

    id: str
    plan_name: str = Field(alias="planName")
    plan_type: PlanType = Field(default=PlanType.PREMIUM, alias="planType")
    price: float = Field(ge=0)
    currency: str
    interval: BillingInterval = BillingInterval.MONTH
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE
    next_billing: date = Field(alias="nextBilling")
    start_date: date = Field(alias="startDate")
    is_default: bool = Field(default=False, alias="isDefault")
    features: List[str] = Field(default_factory=list)
    payment_method: PaymentSnapshot = Field(default_factory=PaymentSnapshot, alias="paymentMethod")

    @property
    def is_active(self) -> bool:
        return self.status == SubscriptionStatus.ACTIVE


class CardDetails(_WireModel):
    brand: str
    last4: str
    exp_month: int = Field(ge=1, le=12)
    exp_year: int


class UpiDetails(_WireModel):
    vpa: str


class BankDetails(_WireModel):
    last4: str
    ifsc: str


class PaymentMethod(_WireModel):
    """A registered payment instrument; at most one is the default."""

    id: str
    type: PaymentMethodType = PaymentMethodType.CARD
    card: Optional[CardDetails] = None
    upi: Optional[UpiDetails] = None
    bank: Optional[BankDetails] = None
    is_default: bool = Field(default=False, alias="isDefault")
    created: int = Field(description="Creation time in epoch milliseconds")

    def display_label(self) -> str:
        if self.type == PaymentMethodType.UPI and self.upi:
            return f"UPI: {self.upi.vpa}"
        if self.type == PaymentMethodType.BANK_TRANSFER and self.bank:
            return f"Bank ****{self.bank.last4}"
        if self.card:
            return f"{self.card.brand.title()} ****{self.card.last4}"
        return self.type.value

    def to_snapshot(self) -> PaymentSnapshot:
        """Return the denormalized form copied onto subscriptions."""

        if self.type == PaymentMethodType.UPI:
            return PaymentSnapshot(type=self.type, upi_id=self.upi.vpa if self.upi else None)
        if self.type == PaymentMethodType.BANK_TRANSFER:
            return PaymentSnapshot(type=self.type, last4=self.bank.last4 if self.bank else None)
        return PaymentSnapshot(
            type=self.type,
            last4=self.card.last4 if self.card else None,
            brand=self.card.brand.title() if self.card else None,
        )


class BillingRecord(_WireModel):
    """A single billing history entry, recorded or synthesized."""

    id: str
    billed_on: date = Field(alias="date")
    amount: float = Field(ge=0)
    currency: str
    status: BillingStatus = BillingStatus.PENDING
    plan: str
    payment_method: str = Field(alias="paymentMethod")
    transaction_id: str = Field(alias="transactionId")
    invoice_url: Optional[str] = None


class UserProfile(BaseModel):
    """Free-form profile document stored under ``/users/{id}``."""

    user_id: str
    data: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @field_validator("data", mode="before")
    @classmethod
    def _default_data(cls, value: Any) -> Dict[str, Any]:
        return dict(value) if isinstance(value, dict) else {}


def sort_billing_history(records: List[BillingRecord]) -> List[BillingRecord]:
    """Return records ordered newest first by billing date."""

    return sorted(records, key=lambda record: record.billed_on, reverse=True)


__all__ = [
    "BankDetails",
    "BillingInterval",
    "BillingRecord",
    "BillingStatus",
    "CardDetails",
    "LocalCollection",
    "PaymentMethod",
    "PaymentMethodType",
    "PaymentSnapshot",
    "PlanType",
    "Subscription",
    "SubscriptionStatus",
    "UpiDetails",
    "UserProfile",
    "sort_billing_history",
]
