"""
Heimursaga API — Admin Service
================================

Platform statistics, paginated content listings and soft deletes for
admins. Blocking explorers lives in the explorer service; moderation of
flagged content in the flag service.
"""

import logging

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from saga.models.entry import Entry
from saga.models.enums import FlagStatus, SponsorshipStatus, UserRole
from saga.models.expedition import Expedition
from saga.models.flag import Flag
from saga.models.sponsorship import Sponsorship
from saga.models.user import User
from saga.schemas.entry import EntryListResponse
from saga.schemas.expedition import ExpeditionListResponse
from saga.schemas.explorer import ExplorerListResponse
from saga.schemas.search import AdminStatsResponse
from saga.services.entry_service import entry_service
from saga.services.expedition_service import expedition_service
from saga.services.explorer_service import explorer_service

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


class AdminService:
    async def _count(self, db: AsyncSession, column, *conditions) -> int:
        return (await db.execute(select(func.count(column)).where(*conditions))).scalar_one()

    async def stats(self, db: AsyncSession) -> AdminStatsResponse:
        return AdminStatsResponse(
            users=await self._count(db, User.id, User.deleted_at.is_(None)),
            pro_users=await self._count(
                db, User.id, User.deleted_at.is_(None), User.role == UserRole.CREATOR.value
            ),
            entries=await self._count(
                db, Entry.id, Entry.deleted_at.is_(None), Entry.is_draft.is_(False)
            ),
            expeditions=await self._count(db, Expedition.id, Expedition.deleted_at.is_(None)),
            pending_flags=await self._count(db, Flag.id, Flag.status == FlagStatus.PENDING.value),
            active_sponsorships=await self._count(
                db,
                Sponsorship.id,
                Sponsorship.deleted_at.is_(None),
                Sponsorship.status == SponsorshipStatus.ACTIVE.value,
            ),
        )

    # ── Listings ──────────────────────────────────────────────────────────

    async def entries(self, db: AsyncSession, limit: int = 20, offset: int = 0) -> EntryListResponse:
        limit = max(1, min(limit, MAX_PAGE_SIZE))
        result = await db.execute(
            select(Entry)
            .where(Entry.deleted_at.is_(None))
            .order_by(Entry.id.desc())
            .offset(offset)
            .limit(limit + 1)
        )
        entries = list(result.scalars().all())
        return EntryListResponse(
            results=[entry_service.to_response(e) for e in entries[:limit]],
            has_more=len(entries) > limit,
        )

    async def expeditions(self, db: AsyncSession, limit: int = 20, offset: int = 0) -> ExpeditionListResponse:
        limit = max(1, min(limit, MAX_PAGE_SIZE))
        result = await db.execute(
            select(Expedition)
            .where(Expedition.deleted_at.is_(None))
            .order_by(Expedition.id.desc())
            .offset(offset)
            .limit(limit)
        )
        return ExpeditionListResponse(
            results=[await expedition_service.to_response(db, e) for e in result.scalars().all()]
        )

    async def explorers(self, db: AsyncSession, limit: int = 20, offset: int = 0) -> ExplorerListResponse:
        """Every explorer, blocked ones included."""
        limit = max(1, min(limit, MAX_PAGE_SIZE))
        result = await db.execute(
            select(User)
            .where(User.deleted_at.is_(None))
            .order_by(User.id.desc())
            .offset(offset)
            .limit(limit + 1)
        )
        users = list(result.scalars().all())
        return ExplorerListResponse(
            results=[explorer_service.to_response(u) for u in users[:limit]],
            has_more=len(users) > limit,
        )

    # ── Deletes ───────────────────────────────────────────────────────────

    async def delete_entry(self, db: AsyncSession, entry_id: str) -> None:
        entry = await entry_service.get_entry(db, entry_id)
        await entry_service.soft_delete_entry(db, entry)
        logger.info("Entry %s deleted by admin", entry_id)

    async def delete_expedition(self, db: AsyncSession, expedition_id: str) -> None:
        expedition = await expedition_service.get_expedition(db, expedition_id)
        await expedition_service.soft_delete_expedition(db, expedition)
        logger.info("Expedition %s deleted by admin", expedition_id)


# Singleton instance
admin_service = AdminService()
