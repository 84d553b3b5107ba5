"""
Heimursaga API — Sponsor Billing Jobs
=======================================

What:  Keeps monthly sponsorships in step with the creator's "resting"
       state (no planned or active expedition).
How:   resting ≥ 30 days  → Stripe collection paused (`void`), status paused
       resting ≥ 90 days  → paused subscriptions canceled, sponsors emailed;
                            `resting_since` cleared only if every cancel
                            succeeded, so the next run retries the rest
       exits resting      → collection resumed, status active
       Each explorer is processed in its own transaction.
Who:   The scheduler (daily jobs) and the EXPLORER_EXITED_RESTING listener.
"""

import logging
from datetime import timedelta
from typing import Any, Dict, List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from saga.config import settings
from saga.database import async_session_factory, utcnow
from saga.exceptions import StripeError
from saga.models.enums import SponsorshipStatus
from saga.models.user import User
from saga.services.event_service import Events, event_service
from saga.services.sponsor_service import sponsor_service
from saga.services.stripe_client import stripe_client

logger = logging.getLogger(__name__)


def _already_canceled(error: StripeError) -> bool:
    return error.is_resource_missing or "canceled" in error.message


class SponsorBillingService:
    async def _resting_explorer_ids(self, days: int) -> List[int]:
        cutoff = utcnow() - timedelta(days=days)
        async with async_session_factory() as db:
            result = await db.execute(
                select(User.id).where(
                    User.resting_since.is_not(None),
                    User.resting_since <= cutoff,
                    User.deleted_at.is_(None),
                )
            )
            return list(result.scalars().all())

    # ── Pause ─────────────────────────────────────────────────────────────

    async def pause_resting_sponsorships(self) -> int:
        """Daily job. Returns the number of sponsorships paused."""
        paused = 0
        for explorer_id in await self._resting_explorer_ids(settings.resting_pause_days):
            async with async_session_factory() as db:
                async with db.begin():
                    paused += await self.pause_sponsorships(db, explorer_id)
        logger.info("Pause job finished: %d sponsorships paused", paused)
        return paused

    async def pause_sponsorships(self, db: AsyncSession, explorer_id: int) -> int:
        explorer = await db.get(User, explorer_id)
        if explorer is None or explorer.resting_since is None:
            logger.info("Explorer %s is no longer resting, skipping pause", explorer_id)
            return 0

        sponsorships = await sponsor_service.active_subscription_sponsorships(
            db, explorer_id, [SponsorshipStatus.ACTIVE.value]
        )
        logger.info("Pausing %d sponsorships for resting explorer %s", len(sponsorships), explorer_id)

        paused = 0
        for sponsorship in sponsorships:
            try:
                await stripe_client.update_subscription(
                    sponsorship.stripe_subscription_id, {"pause_collection": {"behavior": "void"}}
                )
                sponsorship.status = SponsorshipStatus.PAUSED.value
                paused += 1
            except StripeError as e:
                if _already_canceled(e):
                    sponsorship.status = SponsorshipStatus.CANCELED.value
                    logger.info("Sponsorship %s already canceled on Stripe", sponsorship.public_id)
                else:
                    logger.error("Failed to pause sponsorship %s: %s", sponsorship.public_id, e.message)
        await db.flush()
        return paused

    # ── Cancel ────────────────────────────────────────────────────────────

    async def cancel_long_resting_sponsorships(self) -> int:
        """Daily job. Returns the number of sponsorships canceled."""
        canceled = 0
        for explorer_id in await self._resting_explorer_ids(settings.resting_cancel_days):
            async with async_session_factory() as db:
                async with db.begin():
                    canceled += await self.cancel_paused_sponsorships(db, explorer_id)
        logger.info("Cancel job finished: %d sponsorships canceled", canceled)
        return canceled

    async def cancel_paused_sponsorships(self, db: AsyncSession, explorer_id: int) -> int:
        explorer = await db.get(User, explorer_id)
        if explorer is None:
            return 0

        sponsorships = await sponsor_service.active_subscription_sponsorships(
            db, explorer_id, [SponsorshipStatus.PAUSED.value]
        )
        if not sponsorships:
            return 0
        logger.info(
            "Auto-canceling %d paused sponsorships for explorer %s", len(sponsorships), explorer_id
        )

        canceled = 0
        failures = 0
        emails: List[Dict[str, Any]] = []
        for sponsorship in sponsorships:
            try:
                await stripe_client.cancel_subscription(sponsorship.stripe_subscription_id)
            except StripeError as e:
                if not _already_canceled(e):
                    failures += 1
                    logger.error("Failed to cancel sponsorship %s: %s", sponsorship.public_id, e.message)
                    continue
                logger.info("Sponsorship %s already canceled on Stripe", sponsorship.public_id)
            else:
                if sponsorship.sponsor is not None:
                    emails.append(
                        {
                            "to": sponsorship.sponsor.email,
                            "template": "sponsorship_auto_canceled",
                            "variables": {
                                "sponsor_username": sponsorship.sponsor.username,
                                "explorer_name": explorer.name or explorer.username,
                                "explorer_username": explorer.username,
                                "days_resting": settings.resting_cancel_days,
                            },
                        }
                    )
            sponsorship.status = SponsorshipStatus.CANCELED.value
            canceled += 1

        if failures == 0:
            explorer.resting_since = None
        else:
            logger.error(
                "%d cancellations failed for explorer %s, keeping resting_since for retry",
                failures,
                explorer_id,
            )
        await db.flush()

        for email in emails:
            event_service.trigger(Events.SEND_EMAIL, email)
        return canceled

    # ── Resume ────────────────────────────────────────────────────────────

    async def handle_explorer_exited_resting(self, data: Dict[str, Any]) -> None:
        """EXPLORER_EXITED_RESTING listener."""
        async with async_session_factory() as db:
            async with db.begin():
                await self.resume_sponsorships(db, int(data["explorer_id"]))

    async def resume_sponsorships(self, db: AsyncSession, explorer_id: int) -> int:
        sponsorships = await sponsor_service.active_subscription_sponsorships(
            db, explorer_id, [SponsorshipStatus.PAUSED.value]
        )
        logger.info("Resuming %d paused sponsorships for explorer %s", len(sponsorships), explorer_id)

        resumed = 0
        for sponsorship in sponsorships:
            try:
                # An empty value unsets pause_collection
                await stripe_client.update_subscription(
                    sponsorship.stripe_subscription_id, {"pause_collection": ""}
                )
                sponsorship.status = SponsorshipStatus.ACTIVE.value
                resumed += 1
            except StripeError as e:
                if _already_canceled(e):
                    sponsorship.status = SponsorshipStatus.CANCELED.value
                    logger.info("Sponsorship %s already canceled on Stripe", sponsorship.public_id)
                else:
                    logger.error("Failed to resume sponsorship %s: %s", sponsorship.public_id, e.message)
        await db.flush()
        return resumed


# Singleton instance
sponsor_billing_service = SponsorBillingService()
