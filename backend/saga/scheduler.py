"""
Heimursaga API — Background Job Scheduler
===========================================

What:  Daily sponsor billing and Explorer Pro expiry jobs on an APScheduler AsyncIOScheduler.
When:  Started and stopped by the app lifespan unless SCHEDULER_ENABLED=false.

Jobs (UTC):
    03:00  pause_resting_sponsorships        resting ≥ RESTING_PAUSE_DAYS
    04:00  cancel_long_resting_sponsorships  resting ≥ RESTING_CANCEL_DAYS
    05:00  expire_lapsed_pro                 Pro paid-through date older than PRO_GRACE_DAYS
"""

import logging
from typing import Awaitable, Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from saga.services.payment_service import payment_service
from saga.services.sponsor_billing_service import sponsor_billing_service

logger = logging.getLogger(__name__)

_scheduler: Optional[AsyncIOScheduler] = None


def _logged(name: str, job: Callable[[], Awaitable[int]]) -> Callable[[], Awaitable[None]]:
    """Wrap a job so a failure is logged instead of lost in the scheduler."""

    async def run() -> None:
        logger.info("Job %s started", name)
        try:
            count = await job()
        except Exception:
            logger.error("Job %s failed", name, exc_info=True)
            return
        logger.info("Job %s finished (%d affected)", name, count)

    return run


def create_scheduler() -> AsyncIOScheduler:
    scheduler = AsyncIOScheduler(timezone="UTC")
    scheduler.add_job(
        _logged("pause_resting_sponsorships", sponsor_billing_service.pause_resting_sponsorships),
        trigger=CronTrigger(hour=3, minute=0, timezone="UTC"),
        id="pause_resting_sponsorships",
        replace_existing=True,
        coalesce=True,
        max_instances=1,
    )
    scheduler.add_job(
        _logged("cancel_long_resting_sponsorships", sponsor_billing_service.cancel_long_resting_sponsorships),
        trigger=CronTrigger(hour=4, minute=0, timezone="UTC"),
        id="cancel_long_resting_sponsorships",
        replace_existing=True,
        coalesce=True,
        max_instances=1,
    )
    scheduler.add_job(
        _logged("expire_lapsed_pro", payment_service.expire_lapsed),
        trigger=CronTrigger(hour=5, minute=0, timezone="UTC"),
        id="expire_lapsed_pro",
        replace_existing=True,
        coalesce=True,
        max_instances=1,
    )
    return scheduler


def start_scheduler() -> AsyncIOScheduler:
    global _scheduler
    if _scheduler is None or not _scheduler.running:
        _scheduler = create_scheduler()
        _scheduler.start()
        logger.info("Scheduler started with %d jobs", len(_scheduler.get_jobs()))
    return _scheduler


def shutdown_scheduler() -> None:
    global _scheduler
    if _scheduler is not None and _scheduler.running:
        _scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
    _scheduler = None
