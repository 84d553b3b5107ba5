"""
Heimursaga API — Payment Methods & Explorer Pro Plans
=======================================================

What:  Saved cards, the Explorer Pro plan catalogue, upgrade checkout,
       upgrade completion and downgrade.
How:   The upgrade is a recurring Stripe subscription created
       `default_incomplete`; its first invoice's PaymentIntent is tagged with
       `metadata.transaction=subscription` and confirmed client-side. The
       `payment_intent.succeeded` webhook then emits
       SUBSCRIPTION_UPGRADE_COMPLETE, handled by `complete_upgrade` in its
       own session. Renewal invoices and subscription webhooks move the
       paid-through date; a daily job downgrades members whose date has
       lapsed past the grace period.
Who:   User routes (payment-methods, plans, upgrade, downgrade), the
       webhook service and the scheduler.
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Dict, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from saga.config import settings
from saga.database import as_utc, async_session_factory, utcnow
from saga.exceptions import (
    BadRequestError,
    CircuitBreakerOpenError,
    ExternalServiceError,
    NotFoundError,
    StripeError,
)
from saga.lib.ids import public_id
from saga.lib.money import DEFAULT_CURRENCY, integer_to_decimal
from saga.lib.tiers import default_tiers
from saga.models.enums import (
    CheckoutStatus,
    PaymentTransactionType,
    PlanPeriod,
    SponsorshipStatus,
    SponsorshipType,
    SubscriptionStatus,
    UserRole,
)
from saga.models.sponsorship import (
    Checkout,
    PaymentMethod,
    Sponsorship,
    SponsorshipTier,
    Subscription,
)
from saga.models.user import User
from saga.schemas.sponsor import (
    CheckoutResponse,
    PaymentMethodListResponse,
    PaymentMethodResponse,
    PlanResponse,
    PlansResponse,
    SetupIntentResponse,
)
from saga.services.event_service import Events, event_service
from saga.services.stripe_client import invoice_payment_intent, period_end, stripe_client

logger = logging.getLogger(__name__)

PLAN_DURATION = {
    PlanPeriod.MONTH.value: timedelta(days=30),
    PlanPeriod.YEAR.value: timedelta(days=365),
}

PLAN_INTERVAL = {
    PlanPeriod.MONTH.value: "month",
    PlanPeriod.YEAR.value: "year",
}


def plan_price(period: str) -> int:
    """Explorer Pro price in cents."""
    return settings.pro_price_year if period == PlanPeriod.YEAR.value else settings.pro_price_month


class PaymentService:
    # ── Payment methods ───────────────────────────────────────────────────

    async def ensure_customer(self, db: AsyncSession, user: User) -> str:
        """Stripe customer id of the user, created on first use."""
        if user.stripe_customer_id:
            return user.stripe_customer_id
        customer = await stripe_client.find_or_create_customer(
            user.email, name=user.username, metadata={"user_id": user.id}
        )
        user.stripe_customer_id = customer["id"]
        await db.flush()
        return user.stripe_customer_id

    async def get_payment_method(self, db: AsyncSession, user: User, payment_method_id: str) -> PaymentMethod:
        result = await db.execute(
            select(PaymentMethod).where(
                PaymentMethod.public_id == payment_method_id,
                PaymentMethod.user_id == user.id,
                PaymentMethod.deleted_at.is_(None),
            )
        )
        method = result.scalar_one_or_none()
        if method is None:
            raise NotFoundError("payment method", payment_method_id)
        return method

    async def list_payment_methods(self, db: AsyncSession, user: User) -> PaymentMethodListResponse:
        result = await db.execute(
            select(PaymentMethod)
            .where(PaymentMethod.user_id == user.id, PaymentMethod.deleted_at.is_(None))
            .order_by(PaymentMethod.created_at.desc())
            .limit(20)
        )
        return PaymentMethodListResponse(
            results=[self._method_response(m) for m in result.scalars().all()]
        )

    async def create_payment_method(
        self, db: AsyncSession, user: User, stripe_payment_method_id: str
    ) -> PaymentMethodResponse:
        customer_id = await self.ensure_customer(db, user)
        attached = await stripe_client.attach_payment_method(stripe_payment_method_id, customer_id)

        card = attached.get("card") or {}
        brand = card.get("brand")
        method = PaymentMethod(
            public_id=public_id(),
            user_id=user.id,
            stripe_payment_method_id=attached.get("id", stripe_payment_method_id),
            label=brand.upper() if brand else None,
            last4=card.get("last4"),
        )
        db.add(method)
        await db.flush()
        logger.info("Payment method %s added for user %s", method.public_id, user.id)
        return self._method_response(method)

    async def create_setup_intent(self, db: AsyncSession, user: User) -> SetupIntentResponse:
        """Client secret for collecting a card with Stripe Elements."""
        customer_id = await self.ensure_customer(db, user)
        intent = await stripe_client.create_setup_intent(customer_id)
        return SetupIntentResponse(secret=intent.get("client_secret"))

    async def set_default_payment_method(
        self, db: AsyncSession, user: User, payment_method_id: str
    ) -> PaymentMethodResponse:
        method = await self.get_payment_method(db, user, payment_method_id)
        customer_id = await self.ensure_customer(db, user)
        await stripe_client.set_default_payment_method(customer_id, method.stripe_payment_method_id)

        await db.execute(
            update(PaymentMethod)
            .where(PaymentMethod.user_id == user.id, PaymentMethod.id != method.id)
            .values(is_default=False)
        )
        method.is_default = True
        await db.flush()
        logger.info("Payment method %s is now the default for user %s", method.public_id, user.id)
        return self._method_response(method)

    async def delete_payment_method(self, db: AsyncSession, user: User, payment_method_id: str) -> None:
        method = await self.get_payment_method(db, user, payment_method_id)
        try:
            await stripe_client.detach_payment_method(method.stripe_payment_method_id)
        except StripeError as e:
            # Already detached on Stripe's side
            if not e.is_resource_missing:
                raise
        method.deleted_at = utcnow()
        await db.flush()

    # ── Plans ─────────────────────────────────────────────────────────────

    async def _subscription(self, db: AsyncSession, user_id: int) -> Optional[Subscription]:
        result = await db.execute(select(Subscription).where(Subscription.user_id == user_id))
        return result.scalar_one_or_none()

    async def get_plans(self, db: AsyncSession, user: Optional[User]) -> PlansResponse:
        plans = [
            PlanResponse(period=period.value, price=integer_to_decimal(plan_price(period.value)))
            for period in PlanPeriod
        ]
        subscription = await self._subscription(db, user.id) if user else None
        return PlansResponse(
            plans=plans,
            is_pro=bool(user and user.is_pro),
            subscription_status=subscription.status if subscription else None,
            subscription_expiry=subscription.expiry if subscription else None,
        )

    async def upgrade_checkout(
        self, db: AsyncSession, user: User, period: str, payment_method_id: str
    ) -> CheckoutResponse:
        if user.is_pro:
            raise BadRequestError("you are already an Explorer Pro member")

        method = await self.get_payment_method(db, user, payment_method_id)
        customer_id = await self.ensure_customer(db, user)
        amount = plan_price(period)

        checkout = Checkout(
            public_id=public_id(),
            user_id=user.id,
            transaction=PaymentTransactionType.SUBSCRIPTION.value,
            total=amount,
            currency=DEFAULT_CURRENCY,
            kind=period,
        )
        db.add(checkout)
        await db.flush()

        metadata = {
            "transaction": PaymentTransactionType.SUBSCRIPTION.value,
            "checkout_id": checkout.public_id,
            "user_id": user.id,
            "period": period,
        }
        subscription = await stripe_client.create_subscription(
            {
                "customer": customer_id,
                "default_payment_method": method.stripe_payment_method_id,
                "items": [
                    {
                        "price_data": {
                            "currency": DEFAULT_CURRENCY,
                            "product": settings.stripe_pro_product_id,
                            "unit_amount": amount,
                            "recurring": {"interval": PLAN_INTERVAL.get(period, "month")},
                        }
                    }
                ],
                "payment_behavior": "default_incomplete",
                "payment_settings": {"save_default_payment_method": "on_subscription"},
                "expand": ["latest_invoice.payment_intent"],
                "metadata": metadata,
            },
            idempotency_key=f"upgrade_{checkout.public_id}",
        )
        intent = invoice_payment_intent(subscription)
        checkout.stripe_subscription_id = subscription["id"]
        checkout.stripe_payment_intent_id = intent["id"]
        await db.flush()

        # The first invoice's PaymentIntent carries no metadata of its own
        await stripe_client.update_payment_intent(intent["id"], {"metadata": metadata})

        logger.info(
            "Upgrade checkout %s created for user %s (%s, subscription %s)",
            checkout.public_id, user.id, period, subscription["id"],
        )
        return CheckoutResponse(checkout_id=checkout.public_id, client_secret=intent.get("client_secret"))

    # ── Upgrade completion ────────────────────────────────────────────────

    async def complete_upgrade(self, data: Dict[str, Any]) -> None:
        """SUBSCRIPTION_UPGRADE_COMPLETE listener."""
        user_id = int(data["user_id"])
        checkout_id = data.get("checkout_id")

        async with async_session_factory() as db:
            async with db.begin():
                checkout = (
                    await db.execute(
                        select(Checkout).where(
                            Checkout.public_id == checkout_id, Checkout.user_id == user_id
                        )
                    )
                ).scalar_one_or_none()
                if checkout is None:
                    logger.warning("Upgrade checkout %s not found", checkout_id)
                    return
                if checkout.status == CheckoutStatus.CONFIRMED.value:
                    logger.info("Upgrade checkout %s already confirmed", checkout_id)
                    return
                user = await db.get(User, user_id)
                if user is None:
                    return

                period = data.get("period") or checkout.kind or PlanPeriod.MONTH.value
                expiry = await self._stripe_period_end(checkout.stripe_subscription_id)
                checkout.status = CheckoutStatus.CONFIRMED.value
                await self._extend_subscription(
                    db, user, period, stripe_subscription_id=checkout.stripe_subscription_id, expiry=expiry
                )
                await self.activate_pro(db, user)
                await self._create_default_tiers(db, user)

                email = {
                    "to": user.email,
                    "template": "upgrade_confirmation",
                    "variables": {
                        "username": user.username,
                        "period": period,
                        "amount": integer_to_decimal(checkout.total),
                    },
                }

        logger.info("User %s upgraded to Explorer Pro (%s)", user_id, period)
        event_service.trigger(Events.SEND_EMAIL, email)

    @staticmethod
    async def _stripe_period_end(subscription_id: Optional[str]) -> Optional[datetime]:
        """Paid-through date Stripe reports; None falls back to the plan duration."""
        if not subscription_id:
            return None
        try:
            subscription = await stripe_client.retrieve_subscription(subscription_id)
        except (ExternalServiceError, CircuitBreakerOpenError) as e:
            logger.warning("Could not read subscription %s period end: %s", subscription_id, e.message)
            return None
        return period_end(subscription)

    async def _extend_subscription(
        self,
        db: AsyncSession,
        user: User,
        period: str,
        stripe_subscription_id: Optional[str] = None,
        expiry: Optional[datetime] = None,
    ) -> Subscription:
        now = utcnow()
        duration = PLAN_DURATION.get(period, PLAN_DURATION[PlanPeriod.MONTH.value])
        subscription = await self._subscription(db, user.id)
        if subscription is None:
            subscription = Subscription(public_id=public_id(), user_id=user.id, period=period)
            db.add(subscription)
            start = now
        else:
            current = as_utc(subscription.expiry)
            start = current if current and current > now else now
            subscription.period = period
        if stripe_subscription_id:
            subscription.stripe_subscription_id = stripe_subscription_id
        subscription.status = SubscriptionStatus.ACTIVE.value
        subscription.expiry = expiry or start + duration
        await db.flush()
        return subscription

    async def renew(self, db: AsyncSession, subscription: Subscription, expiry: Optional[datetime]) -> None:
        """A paid renewal invoice of an Explorer Pro subscription."""
        now = utcnow()
        if expiry is None:
            current = as_utc(subscription.expiry)
            start = current if current and current > now else now
            expiry = start + PLAN_DURATION.get(subscription.period, PLAN_DURATION[PlanPeriod.MONTH.value])
        subscription.expiry = expiry
        subscription.status = SubscriptionStatus.ACTIVE.value
        user = await db.get(User, subscription.user_id)
        if user is not None:
            await self.activate_pro(db, user)
        await db.flush()
        logger.info("Explorer Pro subscription %s renewed until %s", subscription.public_id, expiry)

    async def expire_lapsed(self) -> int:
        """
        Daily job. Downgrades members whose paid-through date is more than
        `pro_grace_days` behind; returns how many were downgraded.
        """
        cutoff = utcnow() - timedelta(days=settings.pro_grace_days)
        downgraded = 0
        async with async_session_factory() as db:
            async with db.begin():
                result = await db.execute(
                    select(Subscription, User)
                    .join(User, User.id == Subscription.user_id)
                    .where(
                        Subscription.expiry.is_not(None),
                        Subscription.expiry < cutoff,
                        User.is_premium.is_(True),
                    )
                )
                for subscription, user in result.all():
                    if subscription.status != SubscriptionStatus.CANCELED.value:
                        subscription.status = SubscriptionStatus.PAST_DUE.value
                    await self.deactivate_pro(db, user)
                    downgraded += 1
                    logger.info(
                        "Explorer Pro of user %s lapsed (paid through %s)", user.id, subscription.expiry
                    )
        return downgraded

    async def _create_default_tiers(self, db: AsyncSession, user: User) -> None:
        existing = (
            await db.execute(select(SponsorshipTier.id).where(SponsorshipTier.user_id == user.id).limit(1))
        ).first()
        if existing:
            return
        for tier_type, slot in default_tiers():
            db.add(
                SponsorshipTier(
                    public_id=public_id(),
                    user_id=user.id,
                    type=tier_type,
                    slot=slot.slot,
                    price=slot.default_price * 100,
                    is_available=True,
                )
            )
        await db.flush()

    # ── Role changes ──────────────────────────────────────────────────────

    @staticmethod
    async def activate_pro(db: AsyncSession, user: User) -> None:
        if not user.is_admin:
            user.role = UserRole.CREATOR.value
        user.is_premium = True
        await db.flush()

    @staticmethod
    async def deactivate_pro(db: AsyncSession, user: User) -> None:
        if not user.is_admin:
            user.role = UserRole.USER.value
        user.is_premium = False
        await db.flush()

    async def set_subscription_status(self, db: AsyncSession, user: User, status: str) -> None:
        subscription = await self._subscription(db, user.id)
        if subscription is not None:
            subscription.status = status
            await db.flush()

    async def downgrade(self, db: AsyncSession, user: User) -> None:
        subscription = await self._subscription(db, user.id)
        if subscription is not None:
            if subscription.stripe_subscription_id:
                await self._cancel_stripe_subscription(subscription.stripe_subscription_id)
            subscription.status = SubscriptionStatus.CANCELED.value

        result = await db.execute(
            select(Sponsorship).where(
                Sponsorship.creator_id == user.id,
                Sponsorship.type == SponsorshipType.SUBSCRIPTION.value,
                Sponsorship.status.in_(
                    (SponsorshipStatus.ACTIVE.value, SponsorshipStatus.PAUSED.value,
                     SponsorshipStatus.PAST_DUE.value)
                ),
                Sponsorship.deleted_at.is_(None),
            )
        )
        for sponsorship in result.scalars().all():
            if sponsorship.stripe_subscription_id:
                await self._cancel_stripe_subscription(sponsorship.stripe_subscription_id)
            sponsorship.status = SponsorshipStatus.CANCELED.value

        await self.deactivate_pro(db, user)
        logger.info("User %s downgraded from Explorer Pro", user.id)

    @staticmethod
    async def _cancel_stripe_subscription(subscription_id: str) -> None:
        try:
            await stripe_client.cancel_subscription(subscription_id)
        except StripeError as e:
            if not e.is_resource_missing:
                raise
            logger.info("Stripe subscription %s already gone", subscription_id)

    @staticmethod
    def _method_response(method: PaymentMethod) -> PaymentMethodResponse:
        return PaymentMethodResponse(
            id=method.public_id,
            label=method.label,
            last4=method.last4,
            is_default=bool(method.is_default),
            created_at=method.created_at or utcnow(),
        )


# Singleton instance
payment_service = PaymentService()
