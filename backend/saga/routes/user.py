"""
Heimursaga API — User Routes
==============================

Everything under /user acts on the signed-in caller: profile settings,
pictures, drafts, bookmarks, notifications, payment methods, the Explorer Pro plan
and (for Pro members) sponsorship tiers.
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from saga.config import settings
from saga.dependencies import get_db, get_optional_user, get_session_user, require_pro
from saga.models.user import User
from saga.routes import error_responses
from saga.schemas.common import SuccessResponse
from saga.schemas.entry import EntryListResponse
from saga.schemas.expedition import ExpeditionListResponse
from saga.schemas.explorer import (
    ExplorerListResponse,
    InsightsResponse,
    PictureResponse,
    UploadReference,
    UserSettingsResponse,
    UserSettingsUpdate,
)
from saga.schemas.notification import BadgeCountResponse, NotificationListResponse
from saga.schemas.sponsor import (
    CheckoutResponse,
    PaymentMethodCreateRequest,
    PaymentMethodListResponse,
    PaymentMethodResponse,
    PlansResponse,
    SetupIntentResponse,
    SponsorshipListResponse,
    TierResponse,
    TiersResponse,
    TierUpdateRequest,
    UpgradeCheckoutRequest,
)
from saga.services.entry_service import entry_service
from saga.services.expedition_service import expedition_service
from saga.services.explorer_service import explorer_service
from saga.services.notification_service import notification_service
from saga.services.payment_service import payment_service
from saga.services.sponsor_service import sponsor_service

router = APIRouter(prefix=f"{settings.api_prefix}/user", tags=["User"])


# ── Profile ───────────────────────────────────────────────────────────────


@router.get("/settings", response_model=UserSettingsResponse, responses=error_responses(401))
async def get_settings(user: User = Depends(get_session_user)) -> UserSettingsResponse:
    return explorer_service.get_settings(user)


@router.put("/settings", response_model=UserSettingsResponse, responses=error_responses(400, 401))
async def update_settings(
    payload: UserSettingsUpdate,
    user: User = Depends(get_session_user),
    db: AsyncSession = Depends(get_db),
) -> UserSettingsResponse:
    return await explorer_service.update_settings(db, user, payload)


@router.put(
    "/picture",
    response_model=PictureResponse,
    responses=error_responses(400, 401, 404),
    summary="Set the profile picture from an upload",
)
async def update_picture(
    payload: UploadReference,
    user: User = Depends(get_session_user),
    db: AsyncSession = Depends(get_db),
) -> PictureResponse:
    return PictureResponse(url=await explorer_service.update_picture(db, user, payload.upload_id))


@router.put(
    "/cover",
    response_model=PictureResponse,
    responses=error_responses(400, 401, 404),
    summary="Set the cover photo from an upload",
)
async def update_cover(
    payload: UploadReference,
    user: User = Depends(get_session_user),
    db: AsyncSession = Depends(get_db),
) -> PictureResponse:
    return PictureResponse(url=await explorer_service.update_cover(db, user, payload.upload_id))


@router.get("/drafts", response_model=EntryListResponse, responses=error_responses(401))
async def drafts(
    user: User = Depends(get_session_user), db: AsyncSession = Depends(get_db)
) -> EntryListResponse:
    return await entry_service.drafts(db, user)


# ── Bookmarks ─────────────────────────────────────────────────────────────


@router.get("/bookmarks", response_model=EntryListResponse, responses=error_responses(401))
async def bookmarked_entries(
    cursor: Optional[int] = Query(default=None),
    limit: int = Query(default=20, ge=1, le=100),
    user: User = Depends(get_session_user),
    db: AsyncSession = Depends(get_db),
) -> EntryListResponse:
    return await entry_service.bookmarked(db, user, cursor=cursor, limit=limit)


@router.get("/bookmarks/expeditions", response_model=ExpeditionListResponse, responses=error_responses(401))
async def bookmarked_expeditions(
    user: User = Depends(get_session_user), db: AsyncSession = Depends(get_db)
) -> ExpeditionListResponse:
    return await expedition_service.bookmarked(db, user)


@router.get("/bookmarks/explorers", response_model=ExplorerListResponse, responses=error_responses(401))
async def bookmarked_explorers(
    user: User = Depends(get_session_user), db: AsyncSession = Depends(get_db)
) -> ExplorerListResponse:
    return await explorer_service.bookmarked(db, user)


@router.get(
    "/insights",
    response_model=InsightsResponse,
    responses=error_responses(401),
    summary="Views, likes and comments per entry",
)
async def insights(
    user: User = Depends(get_session_user), db: AsyncSession = Depends(get_db)
) -> InsightsResponse:
    return await explorer_service.insights(db, user)


# ── Notifications ─────────────────────────────────────────────────────────


@router.get("/notifications", response_model=NotificationListResponse, responses=error_responses(401))
async def notifications(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    user: User = Depends(get_session_user),
    db: AsyncSession = Depends(get_db),
) -> NotificationListResponse:
    return await notification_service.list_notifications(db, user, page=page, limit=limit)


@router.post("/notifications/mark-read", response_model=SuccessResponse, responses=error_responses(401))
async def mark_notifications_read(
    user: User = Depends(get_session_user), db: AsyncSession = Depends(get_db)
) -> SuccessResponse:
    await notification_service.mark_all_read(db, user)
    return SuccessResponse()


@router.get(
    "/badge-count",
    response_model=BadgeCountResponse,
    responses=error_responses(401),
    summary="Unread notifications and messages",
)
async def badge_count(
    user: User = Depends(get_session_user), db: AsyncSession = Depends(get_db)
) -> BadgeCountResponse:
    return await notification_service.badge_count(db, user)


# ── Sponsorships ──────────────────────────────────────────────────────────


@router.get(
    "/sponsorships",
    response_model=SponsorshipListResponse,
    responses=error_responses(401),
    summary="Sponsorships given, or received with as_creator=true",
)
async def sponsorships(
    as_creator: bool = Query(default=False),
    user: User = Depends(get_session_user),
    db: AsyncSession = Depends(get_db),
) -> SponsorshipListResponse:
    return await sponsor_service.sponsorships(db, user, as_creator=as_creator)


# ── Payment methods ───────────────────────────────────────────────────────


@router.get("/payment-methods", response_model=PaymentMethodListResponse, responses=error_responses(401))
async def list_payment_methods(
    user: User = Depends(get_session_user), db: AsyncSession = Depends(get_db)
) -> PaymentMethodListResponse:
    return await payment_service.list_payment_methods(db, user)


@router.post(
    "/payment-methods",
    status_code=201,
    response_model=PaymentMethodResponse,
    responses=error_responses(400, 401, 502),
    summary="Attach a Stripe payment method to the caller",
)
async def create_payment_method(
    payload: PaymentMethodCreateRequest,
    user: User = Depends(get_session_user),
    db: AsyncSession = Depends(get_db),
) -> PaymentMethodResponse:
    return await payment_service.create_payment_method(db, user, payload.stripe_payment_method_id)


@router.post(
    "/payment-methods/setup-intent",
    status_code=201,
    response_model=SetupIntentResponse,
    responses=error_responses(401, 502),
)
async def create_setup_intent(
    user: User = Depends(get_session_user), db: AsyncSession = Depends(get_db)
) -> SetupIntentResponse:
    return await payment_service.create_setup_intent(db, user)


@router.post(
    "/payment-methods/{payment_method_id}/default",
    response_model=PaymentMethodResponse,
    responses=error_responses(401, 404, 502),
)
async def set_default_payment_method(
    payment_method_id: str,
    user: User = Depends(get_session_user),
    db: AsyncSession = Depends(get_db),
) -> PaymentMethodResponse:
    return await payment_service.set_default_payment_method(db, user, payment_method_id)


@router.delete(
    "/payment-methods/{payment_method_id}",
    response_model=SuccessResponse,
    responses=error_responses(401, 404, 502),
)
async def delete_payment_method(
    payment_method_id: str,
    user: User = Depends(get_session_user),
    db: AsyncSession = Depends(get_db),
) -> SuccessResponse:
    await payment_service.delete_payment_method(db, user, payment_method_id)
    return SuccessResponse()


# ── Explorer Pro plan ─────────────────────────────────────────────────────


@router.get("/plans", response_model=PlansResponse, summary="Explorer Pro prices and the caller's status")
async def plans(
    user: Optional[User] = Depends(get_optional_user), db: AsyncSession = Depends(get_db)
) -> PlansResponse:
    return await payment_service.get_plans(db, user)


@router.post(
    "/upgrade",
    response_model=CheckoutResponse,
    responses=error_responses(400, 401, 404, 502),
    summary="Start an Explorer Pro upgrade checkout",
)
async def upgrade(
    payload: UpgradeCheckoutRequest,
    user: User = Depends(get_session_user),
    db: AsyncSession = Depends(get_db),
) -> CheckoutResponse:
    return await payment_service.upgrade_checkout(
        db, user, payload.period.value, payload.payment_method_id
    )


@router.post(
    "/downgrade",
    response_model=SuccessResponse,
    responses=error_responses(401, 403, 502),
    summary="Cancel Explorer Pro and the sponsorships it receives",
)
async def downgrade(
    user: User = Depends(require_pro), db: AsyncSession = Depends(get_db)
) -> SuccessResponse:
    await payment_service.downgrade(db, user)
    return SuccessResponse()


# ── Sponsorship tiers ─────────────────────────────────────────────────────


@router.get("/tiers", response_model=TiersResponse, responses=error_responses(401, 403))
async def my_tiers(
    user: User = Depends(require_pro), db: AsyncSession = Depends(get_db)
) -> TiersResponse:
    return await sponsor_service.my_tiers(db, user)


@router.put("/tiers/{tier_id}", response_model=TierResponse, responses=error_responses(400, 401, 403, 404))
async def update_tier(
    tier_id: str,
    payload: TierUpdateRequest,
    user: User = Depends(require_pro),
    db: AsyncSession = Depends(get_db),
) -> TierResponse:
    return await sponsor_service.update_tier(db, user, tier_id, payload)


@router.delete("/tiers/{tier_id}", response_model=SuccessResponse, responses=error_responses(401, 403, 404))
async def delete_tier(
    tier_id: str,
    user: User = Depends(require_pro),
    db: AsyncSession = Depends(get_db),
) -> SuccessResponse:
    await sponsor_service.delete_tier(db, user, tier_id)
    return SuccessResponse()
