"""Schema definitions for subscription records and the payment API."""

from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from .users import SubscriptionStatus, User


class SubscriptionRecord(BaseModel):
    """The slice of a user document owned by the subscription state machine."""

    user_id: str
    username: str = ""
    email: str = ""
    payment_status: bool = False
    payment_date: Optional[datetime] = None
    subscription_status: SubscriptionStatus = SubscriptionStatus.NONE
    subscription_expiry_date: Optional[datetime] = None
    stripe_customer_id: Optional[str] = None
    processed_payment_refs: List[str] = Field(default_factory=list)

    @classmethod
    def from_user(cls, user: User) -> "SubscriptionRecord":
        return cls(
            user_id=str(user.id),
            username=user.username,
            email=user.email,
            payment_status=user.payment_status,
            payment_date=user.payment_date,
            subscription_status=user.subscription_status,
            subscription_expiry_date=user.subscription_expiry_date,
            stripe_customer_id=user.stripe_customer_id,
            processed_payment_refs=list(user.processed_payment_refs),
        )


class Entitlement(BaseModel):
    """Result of evaluating a record against the clock."""

    has_access: bool
    status: SubscriptionStatus
    expiry_date: Optional[datetime] = None
    expiry_due: bool = False


class PaymentOutcome(BaseModel):
    record: SubscriptionRecord
    applied: bool


class CheckoutRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: Optional[str] = Field(default=None, alias="userId")
    amount: Optional[Decimal] = None
    currency: str = "usd"
    coupon_code: Optional[str] = Field(default=None, alias="couponCode")


class CheckoutQuote(BaseModel):
    """Amounts in minor units (cents)."""

    original_amount: int
    discount_percent: float = 0
    discount_amount: int = 0
    final_amount: int
    coupon_code: Optional[str] = None


class CheckoutSession(BaseModel):
    session_id: str
    url: Optional[str] = None
    quote: CheckoutQuote
    currency: str


class VerifySessionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    session_id: Optional[str] = Field(default=None, alias="sessionId")


class ProviderSession(BaseModel):
    """What we need from a provider checkout session."""

    id: str
    payment_status: Optional[str] = None
    url: Optional[str] = None
    metadata: dict = Field(default_factory=dict)

    @property
    def is_paid(self) -> bool:
        return self.payment_status == "paid"


class PaymentUser(BaseModel):
    id: str
    username: str
    email: str
    payment_status: bool = Field(serialization_alias="paymentStatus")
    payment_date: Optional[datetime] = Field(default=None, serialization_alias="paymentDate")
    subscription_status: SubscriptionStatus = Field(serialization_alias="subscriptionStatus")
    subscription_expiry_date: Optional[datetime] = Field(default=None, serialization_alias="subscriptionExpiryDate")
    has_access: bool = Field(serialization_alias="hasAccess")

    @classmethod
    def build(cls, record: SubscriptionRecord, entitlement: Entitlement) -> "PaymentUser":
        return cls(
            id=record.user_id,
            username=record.username,
            email=record.email,
            payment_status=record.payment_status,
            payment_date=record.payment_date,
            subscription_status=entitlement.status,
            subscription_expiry_date=entitlement.expiry_date,
            has_access=entitlement.has_access,
        )
