"""Sponsorship tiers, checkout, sponsorships, payment methods and plans."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from saga.models.enums import PlanPeriod, SponsorshipType
from saga.schemas.common import UserSummary


# ── Tiers ─────────────────────────────────────────────────────────────────


class TierResponse(BaseModel):
    id: str
    type: str
    slot: int
    label: str
    price: float
    description: Optional[str] = None
    is_available: bool


class TiersResponse(BaseModel):
    one_time: List[TierResponse] = Field(default_factory=list)
    monthly: List[TierResponse] = Field(default_factory=list)


class TierUpdateRequest(BaseModel):
    price: Optional[float] = Field(default=None, gt=0)
    description: Optional[str] = Field(default=None, max_length=500)
    is_available: Optional[bool] = None


# ── Checkout & sponsorships ───────────────────────────────────────────────


class SponsorCheckoutRequest(BaseModel):
    sponsorship_type: SponsorshipType
    creator_username: str = Field(min_length=1, max_length=30)
    payment_method_id: str = Field(min_length=1, max_length=32)
    one_time_amount: Optional[float] = Field(default=None, gt=0, le=100_000)
    tier_id: Optional[str] = Field(default=None, max_length=32)
    message: Optional[str] = Field(default=None, max_length=500)
    email_delivery: bool = True

    @model_validator(mode="after")
    def check_amount_source(self):
        if self.sponsorship_type == SponsorshipType.ONE_TIME_PAYMENT and self.one_time_amount is None:
            raise ValueError("one_time_amount is required for one-time sponsorships")
        if self.sponsorship_type == SponsorshipType.SUBSCRIPTION and not self.tier_id:
            raise ValueError("tier_id is required for monthly sponsorships")
        return self


class CheckoutResponse(BaseModel):
    checkout_id: str
    client_secret: Optional[str] = None


class SponsorshipResponse(BaseModel):
    id: str
    type: str
    status: str
    amount: float
    currency: str
    message: Optional[str] = None
    sponsor: UserSummary
    creator: UserSummary
    email_delivery_enabled: bool
    expiry: Optional[datetime] = None
    created_at: datetime


class SponsorshipListResponse(BaseModel):
    results: List[SponsorshipResponse]


class EmailDeliveryResponse(BaseModel):
    email_delivery_enabled: bool


# ── Payment methods & plans ───────────────────────────────────────────────


class PaymentMethodCreateRequest(BaseModel):
    stripe_payment_method_id: str = Field(min_length=3, max_length=255)


class PaymentMethodResponse(BaseModel):
    id: str
    label: Optional[str] = None
    last4: Optional[str] = None
    is_default: bool = False
    created_at: datetime


class PaymentMethodListResponse(BaseModel):
    results: List[PaymentMethodResponse]


class SetupIntentResponse(BaseModel):
    secret: Optional[str] = None


class PlanResponse(BaseModel):
    period: str
    price: float
    currency: str = "usd"


class PlansResponse(BaseModel):
    plans: List[PlanResponse]
    is_pro: bool
    subscription_status: Optional[str] = None
    subscription_expiry: Optional[datetime] = None


class UpgradeCheckoutRequest(BaseModel):
    period: PlanPeriod
    payment_method_id: str = Field(min_length=1, max_length=32)
