"""
Heimursaga API — Sponsorship Service
======================================

What:  Sponsorship tiers, sponsor checkout (one-time and monthly), checkout
       completion, and the sponsor's view of their sponsorships.
How:   Money moves through Stripe Connect destination charges:
           one-time   PaymentIntent with transfer_data.destination and an
                      application_fee_amount
           monthly    Subscription with inline monthly price_data and an
                      application_fee_percent; its first invoice's
                      PaymentIntent is confirmed client-side
       A pending Checkout is stored before the client confirms. The
       `payment_intent.succeeded` webhook emits SPONSORSHIP_CHECKOUT_COMPLETE
       and `complete_checkout` turns the Checkout into a Sponsorship.
Who:   Sponsor and user routes; the webhook service.
"""

import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from saga.config import settings
from saga.database import async_session_factory, utcnow
from saga.exceptions import (
    BadRequestError,
    ForbiddenError,
    NotFoundError,
    StripeError,
    ValidationError,
)
from saga.lib.ids import public_id
from saga.lib.money import (
    DEFAULT_CURRENCY,
    MIN_CHARGE,
    application_fee,
    currency_info,
    decimal_to_integer,
    integer_to_decimal,
)
from saga.lib.sanitizer import sanitize_user_text
from saga.lib.tiers import get_tier_label, is_valid_tier_price
from saga.models.enums import (
    CheckoutStatus,
    NotificationContext,
    PaymentTransactionType,
    SponsorshipStatus,
    SponsorshipType,
    TierType,
)
from saga.models.payout import PayoutMethod
from saga.models.sponsorship import Checkout, Sponsorship, SponsorshipTier
from saga.models.user import User
from saga.schemas.common import UserSummary
from saga.schemas.sponsor import (
    CheckoutResponse,
    EmailDeliveryResponse,
    SponsorCheckoutRequest,
    SponsorshipListResponse,
    SponsorshipResponse,
    TierResponse,
    TiersResponse,
    TierUpdateRequest,
)
from saga.services.event_service import Events, event_service
from saga.services.expedition_service import expedition_service
from saga.services.explorer_service import explorer_service
from saga.services.payment_service import payment_service
from saga.services.stripe_client import invoice_payment_intent, stripe_client

logger = logging.getLogger(__name__)

SPONSORSHIP_PERIOD = timedelta(days=30)


class SponsorService:
    # ── Tiers ─────────────────────────────────────────────────────────────

    async def _tiers_of(self, db: AsyncSession, user_id: int, available_only: bool) -> TiersResponse:
        query = select(SponsorshipTier).where(
            SponsorshipTier.user_id == user_id, SponsorshipTier.deleted_at.is_(None)
        )
        if available_only:
            query = query.where(SponsorshipTier.is_available.is_(True))
        result = await db.execute(query.order_by(SponsorshipTier.slot.asc()))

        grouped = TiersResponse()
        for tier in result.scalars().all():
            target = grouped.monthly if tier.type == TierType.MONTHLY.value else grouped.one_time
            target.append(self._tier_response(tier))
        return grouped

    async def tiers_by_username(self, db: AsyncSession, username: str) -> TiersResponse:
        creator = await explorer_service.get_user_by_username(db, username)
        if not creator.is_pro:
            return TiersResponse()
        return await self._tiers_of(db, creator.id, available_only=True)

    async def my_tiers(self, db: AsyncSession, user: User) -> TiersResponse:
        return await self._tiers_of(db, user.id, available_only=False)

    async def _get_owned_tier(self, db: AsyncSession, user: User, tier_id: str) -> SponsorshipTier:
        result = await db.execute(
            select(SponsorshipTier).where(
                SponsorshipTier.public_id == tier_id,
                SponsorshipTier.user_id == user.id,
                SponsorshipTier.deleted_at.is_(None),
            )
        )
        tier = result.scalar_one_or_none()
        if tier is None:
            raise NotFoundError("sponsorship tier", tier_id)
        return tier

    async def update_tier(
        self, db: AsyncSession, user: User, tier_id: str, payload: TierUpdateRequest
    ) -> TierResponse:
        tier = await self._get_owned_tier(db, user, tier_id)
        if payload.price is not None:
            if not is_valid_tier_price(tier.type, tier.slot, payload.price):
                raise ValidationError(
                    f"price is outside the allowed range for {get_tier_label(tier.type, tier.slot)}",
                    field="price",
                )
            tier.price = decimal_to_integer(payload.price)
        if payload.description is not None:
            tier.description = sanitize_user_text(payload.description) or None
        if payload.is_available is not None:
            tier.is_available = payload.is_available
        await db.flush()
        return self._tier_response(tier)

    async def delete_tier(self, db: AsyncSession, user: User, tier_id: str) -> None:
        tier = await self._get_owned_tier(db, user, tier_id)
        tier.deleted_at = utcnow()
        await db.flush()

    # ── Checkout ──────────────────────────────────────────────────────────

    async def _creator_account(self, db: AsyncSession, creator: User) -> str:
        """Verified Stripe Connect account of the creator, or 403."""
        result = await db.execute(
            select(PayoutMethod).where(
                PayoutMethod.user_id == creator.id,
                PayoutMethod.stripe_account_id.is_not(None),
                PayoutMethod.is_verified.is_(True),
                PayoutMethod.deleted_at.is_(None),
            )
        )
        method = result.scalars().first()
        if method is None:
            raise ForbiddenError("this explorer cannot receive sponsorships yet")
        return method.stripe_account_id

    async def checkout(
        self, db: AsyncSession, user: User, payload: SponsorCheckoutRequest
    ) -> CheckoutResponse:
        creator = await explorer_service.get_user_by_username(db, payload.creator_username)
        if creator.id == user.id:
            raise BadRequestError("you cannot sponsor yourself")
        if not creator.is_pro:
            raise ForbiddenError("this explorer cannot receive sponsorships")

        destination = await self._creator_account(db, creator)
        method = await payment_service.get_payment_method(db, user, payload.payment_method_id)
        message = sanitize_user_text(payload.message or "") or None

        try:
            customer_id = await payment_service.ensure_customer(db, user)
            if payload.sponsorship_type == SponsorshipType.ONE_TIME_PAYMENT:
                return await self._one_time_checkout(
                    db, user, creator, destination, customer_id, method.stripe_payment_method_id,
                    payload, message,
                )
            return await self._subscription_checkout(
                db, user, creator, destination, customer_id, method.stripe_payment_method_id,
                payload, message,
            )
        except StripeError as e:
            logger.warning("Sponsor checkout by user %s failed: %s", user.id, e.message)
            raise ForbiddenError("sponsor checkout failed")

    def _metadata(self, checkout: Checkout, user: User, creator: User) -> Dict[str, Any]:
        return {
            "transaction": PaymentTransactionType.SPONSORSHIP.value,
            "checkout_id": checkout.public_id,
            "user_id": user.id,
            "creator_id": creator.id,
        }

    async def _one_time_checkout(
        self,
        db: AsyncSession,
        user: User,
        creator: User,
        destination: str,
        customer_id: str,
        payment_method: str,
        payload: SponsorCheckoutRequest,
        message: Optional[str],
    ) -> CheckoutResponse:
        amount = decimal_to_integer(payload.one_time_amount)
        if amount < MIN_CHARGE:
            raise ValidationError("sponsorship amount must be at least $1", field="one_time_amount")

        checkout = self._new_checkout(user, creator, amount, SponsorshipType.ONE_TIME_PAYMENT.value, payload, message)
        db.add(checkout)
        await db.flush()

        intent = await stripe_client.create_payment_intent(
            {
                "amount": amount,
                "currency": DEFAULT_CURRENCY,
                "customer": customer_id,
                "payment_method": payment_method,
                "payment_method_types": ["card"],
                "transfer_data": {"destination": destination},
                "application_fee_amount": application_fee(amount, settings.stripe_platform_fee_percent),
                "description": f"Sponsorship of {creator.username}",
                "metadata": self._metadata(checkout, user, creator),
            },
            idempotency_key=f"sponsor_{checkout.public_id}",
        )
        checkout.stripe_payment_intent_id = intent["id"]
        await db.flush()

        logger.info("One-time checkout %s: user %s → creator %s (%d)", checkout.public_id, user.id, creator.id, amount)
        return CheckoutResponse(checkout_id=checkout.public_id, client_secret=intent.get("client_secret"))

    async def _subscription_checkout(
        self,
        db: AsyncSession,
        user: User,
        creator: User,
        destination: str,
        customer_id: str,
        payment_method: str,
        payload: SponsorCheckoutRequest,
        message: Optional[str],
    ) -> CheckoutResponse:
        tier = (
            await db.execute(
                select(SponsorshipTier).where(
                    SponsorshipTier.public_id == payload.tier_id,
                    SponsorshipTier.user_id == creator.id,
                    SponsorshipTier.deleted_at.is_(None),
                )
            )
        ).scalar_one_or_none()
        if tier is None:
            raise NotFoundError("sponsorship tier", payload.tier_id)
        if not tier.is_available or tier.type != TierType.MONTHLY.value:
            raise BadRequestError("sponsorship tier is not available")

        checkout = self._new_checkout(user, creator, tier.price, SponsorshipType.SUBSCRIPTION.value, payload, message)
        checkout.tier_id = tier.id
        db.add(checkout)
        await db.flush()

        subscription = await stripe_client.create_subscription(
            {
                "customer": customer_id,
                "default_payment_method": payment_method,
                "items": [
                    {
                        "price_data": {
                            "currency": DEFAULT_CURRENCY,
                            "product": settings.stripe_sponsorship_product_id,
                            "unit_amount": tier.price,
                            "recurring": {"interval": "month"},
                        }
                    }
                ],
                "application_fee_percent": settings.stripe_platform_fee_percent,
                "transfer_data": {"destination": destination},
                "payment_behavior": "default_incomplete",
                "expand": ["latest_invoice.payment_intent"],
                "metadata": self._metadata(checkout, user, creator),
            },
            idempotency_key=f"sponsor_{checkout.public_id}",
        )

        intent = invoice_payment_intent(subscription)
        checkout.stripe_subscription_id = subscription["id"]
        checkout.stripe_payment_intent_id = intent["id"]
        await db.flush()

        # The first invoice's PaymentIntent carries no metadata of its own
        await stripe_client.update_payment_intent(
            intent["id"], {"metadata": self._metadata(checkout, user, creator)}
        )

        logger.info("Monthly checkout %s: user %s → creator %s (%d)", checkout.public_id, user.id, creator.id, tier.price)
        return CheckoutResponse(checkout_id=checkout.public_id, client_secret=intent.get("client_secret"))

    @staticmethod
    def _new_checkout(
        user: User,
        creator: User,
        amount: int,
        kind: str,
        payload: SponsorCheckoutRequest,
        message: Optional[str],
    ) -> Checkout:
        return Checkout(
            public_id=public_id(),
            user_id=user.id,
            creator_id=creator.id,
            transaction=PaymentTransactionType.SPONSORSHIP.value,
            total=amount,
            currency=DEFAULT_CURRENCY,
            kind=kind,
            message=message,
            email_delivery=payload.email_delivery,
        )

    # ── Checkout completion ───────────────────────────────────────────────

    async def complete_checkout(self, data: Dict[str, Any]) -> None:
        """SPONSORSHIP_CHECKOUT_COMPLETE listener."""
        checkout_id = data.get("checkout_id")
        user_id = int(data["user_id"])
        creator_id = int(data["creator_id"])

        async with async_session_factory() as db:
            async with db.begin():
                checkout = (
                    await db.execute(
                        select(Checkout).where(
                            Checkout.public_id == checkout_id,
                            Checkout.user_id == user_id,
                            Checkout.creator_id == creator_id,
                        )
                    )
                ).scalar_one_or_none()
                if checkout is None:
                    logger.warning("Sponsor checkout %s not found", checkout_id)
                    return
                if checkout.status == CheckoutStatus.CONFIRMED.value:
                    logger.info("Sponsor checkout %s already confirmed", checkout_id)
                    return

                sponsor = await db.get(User, user_id)
                creator = await db.get(User, creator_id)
                if sponsor is None or creator is None:
                    return

                is_subscription = checkout.kind == SponsorshipType.SUBSCRIPTION.value
                checkout.status = CheckoutStatus.CONFIRMED.value
                sponsorship = Sponsorship(
                    public_id=public_id(),
                    type=checkout.kind or SponsorshipType.ONE_TIME_PAYMENT.value,
                    status=(
                        SponsorshipStatus.ACTIVE.value if is_subscription
                        else SponsorshipStatus.CONFIRMED.value
                    ),
                    amount=checkout.total,
                    currency=checkout.currency,
                    message=checkout.message,
                    email_delivery_enabled=checkout.email_delivery,
                    user_id=sponsor.id,
                    creator_id=creator.id,
                    tier_id=checkout.tier_id,
                    checkout_id=checkout.id,
                    stripe_subscription_id=checkout.stripe_subscription_id,
                    expiry=utcnow() + SPONSORSHIP_PERIOD if is_subscription else None,
                )
                db.add(sponsorship)

                expedition = await expedition_service.latest_live_expedition(db, creator.id)
                if expedition is not None:
                    expedition.raised = (expedition.raised or 0) + checkout.total
                await db.flush()

                amount = checkout.total
                currency = checkout.currency
                kind = sponsorship.type
                message = checkout.message
                sponsor_id, sponsor_username = sponsor.id, sponsor.username
                creator_email = creator.email

        logger.info("Sponsorship from %s to %s confirmed (checkout %s)", user_id, creator_id, checkout_id)
        event_service.trigger(
            Events.NOTIFICATION_CREATE,
            {
                "user_id": creator_id,
                "context": NotificationContext.SPONSORSHIP.value,
                "mention_user_id": sponsor_id,
                "sponsorship_type": kind,
                "sponsorship_amount": amount,
                "sponsorship_currency": currency,
            },
        )
        event_service.trigger(
            Events.SEND_EMAIL,
            {
                "to": creator_email,
                "template": "sponsorship_received",
                "variables": {
                    "sponsor_username": sponsor_username,
                    "amount": integer_to_decimal(amount),
                    "currency": currency_info(currency)["symbol"],
                    "message": message,
                },
            },
        )

    # ── Sponsorships ──────────────────────────────────────────────────────

    async def _get_sponsorship(self, db: AsyncSession, user: User, sponsorship_id: str) -> Sponsorship:
        result = await db.execute(
            select(Sponsorship).where(
                Sponsorship.public_id == sponsorship_id,
                Sponsorship.user_id == user.id,
                Sponsorship.deleted_at.is_(None),
            )
        )
        sponsorship = result.scalar_one_or_none()
        if sponsorship is None:
            raise NotFoundError("sponsorship", sponsorship_id)
        return sponsorship

    async def sponsorships(
        self, db: AsyncSession, user: User, as_creator: bool = False
    ) -> SponsorshipListResponse:
        owner = Sponsorship.creator_id if as_creator else Sponsorship.user_id
        result = await db.execute(
            select(Sponsorship)
            .where(
                owner == user.id,
                Sponsorship.deleted_at.is_(None),
            )
            .order_by(Sponsorship.created_at.desc())
            .limit(100)
        )
        return SponsorshipListResponse(results=[self._to_response(s) for s in result.scalars().all()])

    async def cancel(self, db: AsyncSession, user: User, sponsorship_id: str) -> SponsorshipResponse:
        sponsorship = await self._get_sponsorship(db, user, sponsorship_id)
        if sponsorship.type != SponsorshipType.SUBSCRIPTION.value:
            raise BadRequestError("only monthly sponsorships can be canceled")
        if sponsorship.status == SponsorshipStatus.CANCELED.value:
            return self._to_response(sponsorship)

        if sponsorship.stripe_subscription_id:
            try:
                await stripe_client.cancel_subscription(sponsorship.stripe_subscription_id)
            except StripeError as e:
                if not e.is_resource_missing:
                    raise
                logger.info("Subscription %s already gone on Stripe", sponsorship.stripe_subscription_id)
        sponsorship.status = SponsorshipStatus.CANCELED.value
        await db.flush()
        logger.info("Sponsorship %s canceled by user %s", sponsorship.public_id, user.id)
        return self._to_response(sponsorship)

    async def toggle_email_delivery(
        self, db: AsyncSession, user: User, sponsorship_id: str
    ) -> EmailDeliveryResponse:
        sponsorship = await self._get_sponsorship(db, user, sponsorship_id)
        sponsorship.email_delivery_enabled = not sponsorship.email_delivery_enabled
        await db.flush()
        return EmailDeliveryResponse(email_delivery_enabled=sponsorship.email_delivery_enabled)

    async def active_subscription_sponsorships(
        self, db: AsyncSession, creator_id: int, statuses: List[str]
    ) -> List[Sponsorship]:
        result = await db.execute(
            select(Sponsorship).where(
                Sponsorship.creator_id == creator_id,
                Sponsorship.type == SponsorshipType.SUBSCRIPTION.value,
                Sponsorship.status.in_(statuses),
                Sponsorship.stripe_subscription_id.is_not(None),
                Sponsorship.deleted_at.is_(None),
            )
        )
        return list(result.scalars().all())

    # ── Mapping ───────────────────────────────────────────────────────────

    @staticmethod
    def _tier_response(tier: SponsorshipTier) -> TierResponse:
        return TierResponse(
            id=tier.public_id,
            type=tier.type,
            slot=tier.slot,
            label=get_tier_label(tier.type, tier.slot),
            price=integer_to_decimal(tier.price),
            description=tier.description,
            is_available=tier.is_available,
        )

    @staticmethod
    def _to_response(sponsorship: Sponsorship) -> SponsorshipResponse:
        return SponsorshipResponse(
            id=sponsorship.public_id,
            type=sponsorship.type,
            status=sponsorship.status,
            amount=integer_to_decimal(sponsorship.amount),
            currency=sponsorship.currency,
            message=sponsorship.message,
            sponsor=UserSummary.from_user(sponsorship.sponsor),
            creator=UserSummary.from_user(sponsorship.creator),
            email_delivery_enabled=sponsorship.email_delivery_enabled,
            expiry=sponsorship.expiry,
            created_at=sponsorship.created_at or utcnow(),
        )


# Singleton instance
sponsor_service = SponsorService()
