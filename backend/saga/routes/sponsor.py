"""
Heimursaga API — Sponsor Routes
=================================

Checkout creates the Stripe payment (one-time) or subscription (monthly)
and returns a client secret for the frontend to confirm. The sponsorship
row itself is written when Stripe reports the payment succeeded.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from saga.config import settings
from saga.dependencies import get_db, get_session_user
from saga.middleware.bot_detection import bot_guard
from saga.models.user import User
from saga.routes import error_responses
from saga.schemas.sponsor import (
    CheckoutResponse,
    EmailDeliveryResponse,
    SponsorCheckoutRequest,
    SponsorshipResponse,
)
from saga.services.sponsor_service import sponsor_service

router = APIRouter(prefix=f"{settings.api_prefix}/sponsor", tags=["Sponsorships"])


@router.post(
    "/checkout",
    response_model=CheckoutResponse,
    dependencies=[Depends(bot_guard)],
    responses=error_responses(400, 401, 403, 404, 502),
    summary="Start a one-time or monthly sponsorship",
)
async def checkout(
    payload: SponsorCheckoutRequest,
    user: User = Depends(get_session_user),
    db: AsyncSession = Depends(get_db),
) -> CheckoutResponse:
    return await sponsor_service.checkout(db, user, payload)


@router.post(
    "/{sponsorship_id}/cancel",
    response_model=SponsorshipResponse,
    responses=error_responses(400, 401, 404, 502),
    summary="Cancel a monthly sponsorship",
)
async def cancel(
    sponsorship_id: str,
    user: User = Depends(get_session_user),
    db: AsyncSession = Depends(get_db),
) -> SponsorshipResponse:
    return await sponsor_service.cancel(db, user, sponsorship_id)


@router.post(
    "/{sponsorship_id}/email-delivery",
    response_model=EmailDeliveryResponse,
    responses=error_responses(401, 404),
    summary="Toggle emailing new entries to this sponsor",
)
async def toggle_email_delivery(
    sponsorship_id: str,
    user: User = Depends(get_session_user),
    db: AsyncSession = Depends(get_db),
) -> EmailDeliveryResponse:
    return await sponsor_service.toggle_email_delivery(db, user, sponsorship_id)
