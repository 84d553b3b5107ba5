"""
Heimursaga API — Stripe Webhook Processing
============================================

What:  Verifies, deduplicates and dispatches Stripe webhook events.
How:   1. The signature is checked against STRIPE_WEBHOOK_SECRET.
       2. A ProcessedWebhookEvent row is inserted in a savepoint; a unique
          conflict means Stripe re-delivered an event we already handled.
       3. The handler for the event type runs in the request transaction.
          If it raises, the transaction (ledger row included) is rolled back
          and the error propagates, so Stripe retries the delivery.
       Completion work that needs its own transaction (sponsorship and
       upgrade completion) is handed to event listeners.
Who:   `POST /stripe/webhook`.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from saga.config import settings
from saga.database import as_utc, utcnow
from saga.exceptions import BadRequestError
from saga.lib.money import integer_to_decimal
from saga.models.enums import (
    CheckoutStatus,
    PaymentTransactionType,
    PayoutStatus,
    SponsorshipStatus,
    SubscriptionStatus,
)
from saga.models.payout import Payout, PayoutMethod
from saga.models.sponsorship import Checkout, Sponsorship, Subscription
from saga.models.user import User
from saga.models.webhook import ProcessedWebhookEvent
from saga.services.event_service import Events, event_service
from saga.services.expedition_service import expedition_service
from saga.services.payment_service import payment_service
from saga.services.stripe_client import period_end, stripe_client

logger = logging.getLogger(__name__)

Handler = Callable[[AsyncSession, Dict[str, Any]], Awaitable[None]]

RENEWAL_PERIOD = timedelta(days=30)

SPONSORSHIP_STATUS_MAP = {
    "active": SponsorshipStatus.ACTIVE.value,
    "past_due": SponsorshipStatus.PAST_DUE.value,
    "unpaid": SponsorshipStatus.UNPAID.value,
    "canceled": SponsorshipStatus.CANCELED.value,
}

PRO_LAPSED_STATUSES = ("past_due", "unpaid", "canceled")


def _object_id(value: Any) -> Optional[str]:
    """Stripe fields may hold an id or an expanded object."""
    if isinstance(value, dict):
        return value.get("id")
    return value


def _invoice_period_end(invoice: Dict[str, Any]) -> Optional[datetime]:
    """Service period end of the invoice's first line."""
    lines = (invoice.get("lines") or {}).get("data") or []
    end = ((lines[0].get("period") or {}).get("end")) if lines else None
    return datetime.fromtimestamp(end, tz=timezone.utc) if end else None


class StripeWebhookService:
    def __init__(self) -> None:
        self._handlers: Dict[str, Handler] = {
            "payment_intent.succeeded": self.on_payment_intent_succeeded,
            "payment_intent.payment_failed": self.on_payment_intent_failed,
            "invoice.payment_succeeded": self.on_invoice_payment_succeeded,
            "invoice.payment_failed": self.on_invoice_payment_failed,
            "account.updated": self.on_account_updated,
            "payout.paid": self.on_payout_paid,
            "payout.failed": self.on_payout_failed,
            "customer.subscription.deleted": self.on_subscription_deleted,
            "customer.subscription.updated": self.on_subscription_updated,
            "charge.refunded": self.on_charge_refunded,
            "charge.dispute.created": self.on_dispute_created,
        }

    async def process(self, db: AsyncSession, payload: bytes, sig_header: Optional[str]) -> Dict[str, bool]:
        event = stripe_client.construct_event(payload, sig_header)
        event_id = event.get("id")
        event_type = event.get("type", "")
        if not event_id:
            raise BadRequestError("webhook event has no id")

        try:
            async with db.begin_nested():
                db.add(ProcessedWebhookEvent(event_id=event_id, event_type=event_type))
        except IntegrityError:
            logger.info("Webhook event %s (%s) already processed", event_id, event_type)
            return {"received": True}

        try:
            await self.dispatch(db, event)
        except Exception:
            logger.error("Webhook event %s (%s) failed; Stripe will retry", event_id, event_type, exc_info=True)
            await db.rollback()
            raise
        return {"received": True}

    async def dispatch(self, db: AsyncSession, event: Dict[str, Any]) -> None:
        event_type = event.get("type", "")
        handler = self._handlers.get(event_type)
        if handler is None:
            logger.debug("Unhandled webhook event type: %s", event_type)
            return
        obj = (event.get("data") or {}).get("object") or {}
        logger.info("Handling webhook %s (%s)", event.get("id"), event_type)
        await handler(db, obj)

    # ── Lookups ───────────────────────────────────────────────────────────

    async def _sponsorships_by_subscription(self, db: AsyncSession, subscription_id: str) -> List[Sponsorship]:
        result = await db.execute(
            select(Sponsorship).where(Sponsorship.stripe_subscription_id == subscription_id)
        )
        return list(result.scalars().all())

    async def _pro_subscription(self, db: AsyncSession, subscription_id: str) -> Optional[Subscription]:
        result = await db.execute(
            select(Subscription).where(Subscription.stripe_subscription_id == subscription_id)
        )
        return result.scalar_one_or_none()

    async def _checkout_by_intent(self, db: AsyncSession, intent_id: Optional[str]) -> Optional[Checkout]:
        if not intent_id:
            return None
        result = await db.execute(
            select(Checkout).where(Checkout.stripe_payment_intent_id == intent_id)
        )
        return result.scalars().first()

    # ── Payment intents ───────────────────────────────────────────────────

    async def on_payment_intent_succeeded(self, db: AsyncSession, intent: Dict[str, Any]) -> None:
        metadata = intent.get("metadata") or {}
        transaction = metadata.get("transaction")
        if not metadata.get("checkout_id") or not metadata.get("user_id"):
            logger.debug("Payment intent %s carries no checkout metadata", intent.get("id"))
            return

        if transaction == PaymentTransactionType.SPONSORSHIP.value:
            event_service.trigger(
                Events.SPONSORSHIP_CHECKOUT_COMPLETE,
                {
                    "checkout_id": metadata["checkout_id"],
                    "user_id": metadata["user_id"],
                    "creator_id": metadata.get("creator_id"),
                },
            )
        elif transaction == PaymentTransactionType.SUBSCRIPTION.value:
            event_service.trigger(
                Events.SUBSCRIPTION_UPGRADE_COMPLETE,
                {
                    "checkout_id": metadata["checkout_id"],
                    "user_id": metadata["user_id"],
                    "period": metadata.get("period"),
                },
            )
        else:
            logger.debug("Payment intent %s has unknown transaction %r", intent.get("id"), transaction)

    async def on_payment_intent_failed(self, db: AsyncSession, intent: Dict[str, Any]) -> None:
        checkout = await self._checkout_by_intent(db, intent.get("id"))
        if checkout is None or checkout.status == CheckoutStatus.CONFIRMED.value:
            return
        checkout.status = CheckoutStatus.CANCELED.value
        await db.flush()
        logger.info("Checkout %s canceled after failed payment", checkout.public_id)

    # ── Invoices ──────────────────────────────────────────────────────────

    async def on_invoice_payment_succeeded(self, db: AsyncSession, invoice: Dict[str, Any]) -> None:
        subscription_id = _object_id(invoice.get("subscription"))
        # The first invoice is credited by checkout completion
        if not subscription_id or invoice.get("billing_reason") == "subscription_create":
            return
        amount_paid = invoice.get("amount_paid") or 0

        now = utcnow()
        for sponsorship in await self._sponsorships_by_subscription(db, subscription_id):
            if amount_paid:
                expedition = await expedition_service.latest_live_expedition(db, sponsorship.creator_id)
                if expedition is not None:
                    expedition.raised = (expedition.raised or 0) + amount_paid
                    logger.info(
                        "Sponsorship renewal: added %d to expedition %s", amount_paid, expedition.public_id
                    )
            expiry = as_utc(sponsorship.expiry)
            sponsorship.expiry = (expiry if expiry and expiry > now else now) + RENEWAL_PERIOD
            sponsorship.status = SponsorshipStatus.ACTIVE.value

        pro = await self._pro_subscription(db, subscription_id)
        if pro is not None:
            await payment_service.renew(db, pro, _invoice_period_end(invoice))
        await db.flush()

    async def on_invoice_payment_failed(self, db: AsyncSession, invoice: Dict[str, Any]) -> None:
        subscription_id = _object_id(invoice.get("subscription"))
        if not subscription_id:
            return
        logger.info(
            "Invoice payment failed for subscription %s, attempt %s",
            subscription_id,
            invoice.get("attempt_count"),
        )
        for sponsorship in await self._sponsorships_by_subscription(db, subscription_id):
            # Paused by the billing jobs; a late retry must not override that
            if sponsorship.status == SponsorshipStatus.PAUSED.value:
                continue
            sponsorship.status = SponsorshipStatus.PAST_DUE.value
        await db.flush()

    # ── Connect accounts & payouts ────────────────────────────────────────

    async def on_account_updated(self, db: AsyncSession, account: Dict[str, Any]) -> None:
        result = await db.execute(
            select(PayoutMethod).where(PayoutMethod.stripe_account_id == account.get("id"))
        )
        method = result.scalar_one_or_none()
        if method is None:
            return
        method.is_verified = bool(account.get("charges_enabled") and account.get("payouts_enabled"))
        method.business_type = account.get("business_type") or method.business_type
        await db.flush()
        logger.info("Payout method %s verified=%s", method.public_id, method.is_verified)

    async def _set_payout_status(self, db: AsyncSession, payout_obj: Dict[str, Any], status: str) -> None:
        result = await db.execute(select(Payout).where(Payout.stripe_payout_id == payout_obj.get("id")))
        payout = result.scalar_one_or_none()
        if payout is None:
            return
        payout.status = status
        await db.flush()
        logger.info("Payout %s is now %s", payout.public_id, status)

    async def on_payout_paid(self, db: AsyncSession, payout_obj: Dict[str, Any]) -> None:
        await self._set_payout_status(db, payout_obj, PayoutStatus.CONFIRMED.value)

    async def on_payout_failed(self, db: AsyncSession, payout_obj: Dict[str, Any]) -> None:
        await self._set_payout_status(db, payout_obj, PayoutStatus.CANCELED.value)

    # ── Subscriptions ─────────────────────────────────────────────────────

    async def on_subscription_deleted(self, db: AsyncSession, subscription: Dict[str, Any]) -> None:
        subscription_id = subscription.get("id")
        for sponsorship in await self._sponsorships_by_subscription(db, subscription_id):
            sponsorship.status = SponsorshipStatus.CANCELED.value

        pro = await self._pro_subscription(db, subscription_id)
        if pro is not None:
            pro.status = SubscriptionStatus.CANCELED.value
            user = await db.get(User, pro.user_id)
            if user is not None:
                await payment_service.deactivate_pro(db, user)
                logger.info("Explorer Pro subscription %s deleted; user %s downgraded", subscription_id, user.id)
        await db.flush()

    async def on_subscription_updated(self, db: AsyncSession, subscription: Dict[str, Any]) -> None:
        subscription_id = subscription.get("id")
        status = subscription.get("status")

        if subscription.get("pause_collection"):
            logger.info("Subscription %s has pause_collection set, skipping status sync", subscription_id)
        elif status in SPONSORSHIP_STATUS_MAP:
            for sponsorship in await self._sponsorships_by_subscription(db, subscription_id):
                sponsorship.status = SPONSORSHIP_STATUS_MAP[status]

        pro = await self._pro_subscription(db, subscription_id)
        if pro is not None:
            user = await db.get(User, pro.user_id)
            if user is not None and status in PRO_LAPSED_STATUSES:
                pro.status = (
                    SubscriptionStatus.CANCELED.value if status == "canceled"
                    else SubscriptionStatus.PAST_DUE.value
                )
                await payment_service.deactivate_pro(db, user)
                logger.info("Explorer Pro subscription %s is %s; user %s downgraded", subscription_id, status, user.id)
            elif user is not None and status == "active":
                pro.status = SubscriptionStatus.ACTIVE.value
                pro.expiry = period_end(subscription) or pro.expiry
                await payment_service.activate_pro(db, user)
                logger.info("Explorer Pro subscription %s reactivated for user %s", subscription_id, user.id)
        await db.flush()

    # ── Charges ───────────────────────────────────────────────────────────

    async def on_charge_refunded(self, db: AsyncSession, charge: Dict[str, Any]) -> None:
        logger.info(
            "Charge %s refunded: %s cents (full refund: %s)",
            charge.get("id"),
            charge.get("amount_refunded"),
            charge.get("refunded"),
        )
        checkout = await self._checkout_by_intent(db, _object_id(charge.get("payment_intent")))
        if checkout is None:
            return
        checkout.status = CheckoutStatus.CANCELED.value
        result = await db.execute(select(Sponsorship).where(Sponsorship.checkout_id == checkout.id))
        sponsorship = result.scalar_one_or_none()
        if sponsorship is not None:
            sponsorship.status = SponsorshipStatus.CANCELED.value
        await db.flush()

    async def on_dispute_created(self, db: AsyncSession, dispute: Dict[str, Any]) -> None:
        charge_id = _object_id(dispute.get("charge"))
        logger.error(
            "DISPUTE CREATED: %s for charge %s, amount: %s, reason: %s, status: %s",
            dispute.get("id"),
            charge_id,
            dispute.get("amount"),
            dispute.get("reason"),
            dispute.get("status"),
        )
        event_service.trigger(
            Events.ADMIN_DISPUTE_CREATED,
            {
                "dispute_id": dispute.get("id"),
                "charge_id": charge_id,
                "amount": dispute.get("amount") or 0,
                "reason": dispute.get("reason"),
                "status": dispute.get("status"),
            },
        )

    async def handle_dispute_created(self, data: Dict[str, Any]) -> None:
        """ADMIN_DISPUTE_CREATED listener."""
        if not settings.admin_email:
            logger.warning("ADMIN_EMAIL is not set; dispute %s not emailed", data.get("dispute_id"))
            return
        event_service.trigger(
            Events.SEND_EMAIL,
            {
                "to": settings.admin_email,
                "template": "admin_dispute_created",
                "variables": {**data, "amount": integer_to_decimal(data.get("amount") or 0)},
            },
        )


# Singleton instance
stripe_webhook_service = StripeWebhookService()
