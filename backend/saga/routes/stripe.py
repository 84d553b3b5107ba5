"""
Heimursaga API — Stripe Routes
================================

POST /stripe/webhook is unprefixed and unauthenticated: the signature in
the `Stripe-Signature` header over the raw body is the only credential.
Any error returns non-2xx so Stripe redelivers the event.

The account endpoints are the dashboard entry points for connected
accounts and share the payouts service.
"""

import logging
from typing import Dict, Optional

from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from saga.config import settings
from saga.dependencies import get_db, require_pro
from saga.models.user import User
from saga.routes import error_responses
from saga.schemas.payout import AccountLinkRequest, AccountLinkResponse, PayoutMethodListResponse
from saga.services.payout_service import payout_service
from saga.services.stripe_webhook_service import stripe_webhook_service

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Stripe"])


@router.post("/stripe/webhook", responses=error_responses(400), summary="Stripe event receiver")
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(default=None, alias="stripe-signature"),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, bool]:
    payload = await request.body()
    return await stripe_webhook_service.process(db, payload, stripe_signature)


@router.get(
    f"{settings.api_prefix}/stripe/account",
    response_model=PayoutMethodListResponse,
    responses=error_responses(401, 403),
    summary="Connected accounts with refreshed verification state",
)
async def stripe_account(
    user: User = Depends(require_pro), db: AsyncSession = Depends(get_db)
) -> PayoutMethodListResponse:
    return await payout_service.payout_methods(db, user)


@router.post(
    f"{settings.api_prefix}/stripe/account-link",
    response_model=AccountLinkResponse,
    responses=error_responses(401, 403, 404, 502),
    summary="Onboarding link, or Express dashboard link once verified",
)
async def stripe_account_link(
    payload: AccountLinkRequest,
    user: User = Depends(require_pro),
    db: AsyncSession = Depends(get_db),
) -> AccountLinkResponse:
    methods = await payout_service.payout_methods(db, user)
    if any(m.id == payload.payout_method_id and m.is_verified for m in methods.results):
        return await payout_service.dashboard_link(db, user)
    return await payout_service.account_link(db, user, payload.payout_method_id)
