"""
Heimursaga API — Payout Routes
================================

Stripe Connect for Explorer Pro members: onboarding an express account,
reading the balance and withdrawing to the linked bank account.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from saga.config import settings
from saga.dependencies import get_db, require_pro
from saga.models.user import User
from saga.routes import error_responses
from saga.schemas.payout import (
    AccountLinkRequest,
    AccountLinkResponse,
    BalanceResponse,
    PayoutCreateRequest,
    PayoutListResponse,
    PayoutMethodCreateRequest,
    PayoutMethodListResponse,
    PayoutMethodResponse,
    PayoutResponse,
)
from saga.services.payout_service import payout_service

router = APIRouter(prefix=f"{settings.api_prefix}/payouts", tags=["Payouts"])


@router.get("/methods", response_model=PayoutMethodListResponse, responses=error_responses(401, 403))
async def payout_methods(
    user: User = Depends(require_pro), db: AsyncSession = Depends(get_db)
) -> PayoutMethodListResponse:
    return await payout_service.payout_methods(db, user)


@router.post(
    "/methods",
    status_code=201,
    response_model=PayoutMethodResponse,
    responses=error_responses(400, 401, 403),
    summary="Create a Stripe express account for the caller",
)
async def create_payout_method(
    payload: PayoutMethodCreateRequest,
    user: User = Depends(require_pro),
    db: AsyncSession = Depends(get_db),
) -> PayoutMethodResponse:
    return await payout_service.create_payout_method(db, user, payload.country.upper())


@router.post(
    "/account-link",
    response_model=AccountLinkResponse,
    responses=error_responses(401, 403, 404, 502),
    summary="Stripe onboarding link for a payout method",
)
async def account_link(
    payload: AccountLinkRequest,
    user: User = Depends(require_pro),
    db: AsyncSession = Depends(get_db),
) -> AccountLinkResponse:
    return await payout_service.account_link(db, user, payload.payout_method_id)


@router.get("/balance", response_model=BalanceResponse, responses=error_responses(401, 403, 502))
async def balance(
    user: User = Depends(require_pro), db: AsyncSession = Depends(get_db)
) -> BalanceResponse:
    return await payout_service.balance(db, user)


@router.get("", response_model=PayoutListResponse, responses=error_responses(401, 403))
async def payouts(
    user: User = Depends(require_pro), db: AsyncSession = Depends(get_db)
) -> PayoutListResponse:
    return await payout_service.payouts(db, user)


@router.post(
    "",
    status_code=201,
    response_model=PayoutResponse,
    responses=error_responses(400, 401, 403, 502),
    summary="Withdraw from the available balance",
)
async def create_payout(
    payload: PayoutCreateRequest,
    user: User = Depends(require_pro),
    db: AsyncSession = Depends(get_db),
) -> PayoutResponse:
    return await payout_service.create_payout(db, user, payload.amount)
