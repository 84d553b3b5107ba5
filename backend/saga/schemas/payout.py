"""Payout method, balance and payout schemas. Amounts in dollars."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class PayoutMethodCreateRequest(BaseModel):
    country: str = Field(default="US", min_length=2, max_length=2)


class PayoutMethodResponse(BaseModel):
    id: str
    platform: str
    business_type: Optional[str] = None
    country: Optional[str] = None
    currency: str
    is_verified: bool
    created_at: datetime


class PayoutMethodListResponse(BaseModel):
    results: List[PayoutMethodResponse]


class AccountLinkRequest(BaseModel):
    payout_method_id: str = Field(min_length=1, max_length=32)


class AccountLinkResponse(BaseModel):
    url: str


class BalanceAmount(BaseModel):
    amount: float
    currency: str
    symbol: str


class BalanceResponse(BaseModel):
    available: BalanceAmount
    pending: BalanceAmount


class PayoutCreateRequest(BaseModel):
    amount: float = Field(gt=0, le=1_000_000, description="Amount in dollars")


class PayoutResponse(BaseModel):
    id: str
    amount: float
    currency: str
    status: str
    arrival_date: Optional[datetime] = None
    created_at: datetime


class PayoutListResponse(BaseModel):
    results: List[PayoutResponse]
