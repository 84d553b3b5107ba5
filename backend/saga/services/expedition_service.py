"""
Heimursaga API — Expedition Service
=====================================

What:  Expeditions (trips) with waypoints, a current location, bookmarks,
       and the owner's "resting" state.
How:   An explorer is resting while they have no `planned` or `active`
       expedition. Every status change, create or delete recomputes it:
       entering sets `resting_since = now`; leaving clears it and emits
       EXPLORER_EXITED_RESTING, which resumes paused sponsorships.
"""

import logging
from typing import List, Optional

from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from saga.database import utcnow
from saga.exceptions import BadRequestError, NotFoundError
from saga.lib.ids import public_id
from saga.lib.locations import location_key, resolve_locations
from saga.lib.money import decimal_to_integer, integer_to_decimal
from saga.lib.sanitizer import sanitize_user_content, sanitize_user_text
from saga.models.enums import LIVE_EXPEDITION_STATUSES, Visibility
from saga.models.expedition import Expedition, ExpeditionBookmark, Waypoint
from saga.models.user import User
from saga.schemas.common import UserSummary
from saga.schemas.expedition import (
    ExpeditionCreateRequest,
    ExpeditionListResponse,
    ExpeditionResponse,
    ExpeditionUpdateRequest,
    LocationRequest,
    LocationResponse,
    WaypointRequest,
    WaypointResponse,
    WaypointUpdateRequest,
)
from saga.schemas.explorer import BookmarkResponse
from saga.services.event_service import Events, event_service
from saga.services.file_service import file_service

logger = logging.getLogger(__name__)


class ExpeditionService:
    # ── Lookups ───────────────────────────────────────────────────────────

    async def get_expedition(self, db: AsyncSession, expedition_id: str) -> Expedition:
        result = await db.execute(
            select(Expedition).where(
                Expedition.public_id == expedition_id, Expedition.deleted_at.is_(None)
            )
        )
        expedition = result.scalar_one_or_none()
        if expedition is None:
            raise NotFoundError("expedition", expedition_id)
        return expedition

    async def get_owned(self, db: AsyncSession, user: User, expedition_id: str) -> Expedition:
        expedition = await self.get_expedition(db, expedition_id)
        if expedition.author_id != user.id:
            raise NotFoundError("expedition", expedition_id)
        return expedition

    async def latest_live_expedition(self, db: AsyncSession, author_id: int) -> Optional[Expedition]:
        """Most recent planned/active expedition; sponsorship money is credited here."""
        result = await db.execute(
            select(Expedition)
            .where(
                Expedition.author_id == author_id,
                Expedition.status.in_(LIVE_EXPEDITION_STATUSES),
                Expedition.deleted_at.is_(None),
            )
            .order_by(Expedition.created_at.desc(), Expedition.id.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    # ── Resting state ─────────────────────────────────────────────────────

    async def recompute_resting(self, db: AsyncSession, user: User) -> None:
        live = (
            await db.execute(
                select(func.count(Expedition.id)).where(
                    Expedition.author_id == user.id,
                    Expedition.status.in_(LIVE_EXPEDITION_STATUSES),
                    Expedition.deleted_at.is_(None),
                )
            )
        ).scalar_one()

        if live == 0 and user.resting_since is None:
            user.resting_since = utcnow()
            await db.flush()
            logger.info("Explorer %s is now resting", user.id)
        elif live > 0 and user.resting_since is not None:
            user.resting_since = None
            await db.flush()
            logger.info("Explorer %s exited resting", user.id)
            event_service.trigger(Events.EXPLORER_EXITED_RESTING, {"explorer_id": user.id})

    # ── CRUD ──────────────────────────────────────────────────────────────

    async def create(
        self, db: AsyncSession, user: User, payload: ExpeditionCreateRequest
    ) -> ExpeditionResponse:
        expedition = Expedition(
            public_id=public_id(),
            author_id=user.id,
            title=sanitize_user_text(payload.title),
            description=sanitize_user_content(payload.description) or None,
            status=payload.status.value,
            visibility=payload.visibility.value,
            start_date=payload.start_date,
            end_date=payload.end_date,
            goal=decimal_to_integer(payload.goal),
            raised=0,
        )
        if not expedition.title:
            raise BadRequestError("title is required")
        if payload.cover_upload_id:
            expedition.cover_image = await file_service.resolve_upload_url(db, user, payload.cover_upload_id)

        expedition.author = user
        db.add(expedition)
        await db.flush()
        await self.recompute_resting(db, user)
        logger.info("Expedition %s created by user %s", expedition.public_id, user.id)
        return await self.to_response(db, expedition, waypoints=[])

    async def get(
        self, db: AsyncSession, viewer: Optional[User], expedition_id: str
    ) -> ExpeditionResponse:
        expedition = await self.get_expedition(db, expedition_id)
        is_author = viewer is not None and viewer.id == expedition.author_id
        if not is_author and (expedition.visibility == Visibility.PRIVATE.value or expedition.author.blocked):
            raise NotFoundError("expedition", expedition_id)

        bookmarked = False
        if viewer is not None:
            bookmarked = await db.get(ExpeditionBookmark, (viewer.id, expedition.id)) is not None
        return await self.to_response(db, expedition, bookmarked=bookmarked)

    async def list_by_explorer(
        self, db: AsyncSession, username: str, viewer: Optional[User] = None
    ) -> ExpeditionListResponse:
        author = (
            await db.execute(
                select(User).where(
                    User.username == username.lower(),
                    User.deleted_at.is_(None),
                    User.blocked.is_(False),
                )
            )
        ).scalar_one_or_none()
        if author is None:
            raise NotFoundError("explorer", username)

        query = select(Expedition).where(
            Expedition.author_id == author.id, Expedition.deleted_at.is_(None)
        )
        if viewer is None or viewer.id != author.id:
            query = query.where(Expedition.visibility != Visibility.PRIVATE.value)
        result = await db.execute(query.order_by(Expedition.created_at.desc()))
        return ExpeditionListResponse(
            results=[await self.to_response(db, e) for e in result.scalars().all()]
        )

    async def update(
        self, db: AsyncSession, user: User, expedition_id: str, payload: ExpeditionUpdateRequest
    ) -> ExpeditionResponse:
        expedition = await self.get_owned(db, user, expedition_id)
        changes = payload.model_dump(exclude_unset=True)

        if changes.get("title") is not None:
            expedition.title = sanitize_user_text(changes["title"]) or expedition.title
        if "description" in changes:
            expedition.description = sanitize_user_content(changes["description"]) or None
        if payload.status is not None:
            expedition.status = payload.status.value
        if payload.visibility is not None:
            expedition.visibility = payload.visibility.value
        for field in ("start_date", "end_date"):
            if field in changes:
                setattr(expedition, field, changes[field])
        if (
            expedition.start_date and expedition.end_date
            and expedition.end_date < expedition.start_date
        ):
            raise BadRequestError("end_date must not be before start_date")
        if payload.goal is not None:
            expedition.goal = decimal_to_integer(payload.goal)
        if payload.cover_upload_id:
            expedition.cover_image = await file_service.resolve_upload_url(db, user, payload.cover_upload_id)

        await db.flush()
        if payload.status is not None:
            await self.recompute_resting(db, user)
        return await self.to_response(db, expedition)

    async def delete(self, db: AsyncSession, user: User, expedition_id: str) -> None:
        expedition = await self.get_owned(db, user, expedition_id)
        await self.soft_delete_expedition(db, expedition)

    async def soft_delete_expedition(self, db: AsyncSession, expedition: Expedition) -> None:
        expedition.soft_delete()
        await db.flush()
        author = await db.get(User, expedition.author_id)
        if author is not None:
            await self.recompute_resting(db, author)
        logger.info("Expedition %s deleted", expedition.public_id)

    # ── Waypoints ─────────────────────────────────────────────────────────

    async def _waypoints(self, db: AsyncSession, expedition: Expedition) -> List[Waypoint]:
        result = await db.execute(
            select(Waypoint)
            .where(Waypoint.expedition_id == expedition.id, Waypoint.deleted_at.is_(None))
            .order_by(Waypoint.sequence, Waypoint.id)
        )
        return list(result.scalars().all())

    async def _get_waypoint(self, db: AsyncSession, expedition: Expedition, waypoint_id: int) -> Waypoint:
        waypoint = await db.get(Waypoint, waypoint_id)
        if waypoint is None or waypoint.expedition_id != expedition.id or waypoint.deleted_at is not None:
            raise NotFoundError("waypoint", str(waypoint_id))
        return waypoint

    async def add_waypoint(
        self, db: AsyncSession, user: User, expedition_id: str, payload: WaypointRequest
    ) -> WaypointResponse:
        expedition = await self.get_owned(db, user, expedition_id)
        waypoint = Waypoint(
            expedition_id=expedition.id,
            title=sanitize_user_text(payload.title) or None,
            lat=payload.lat,
            lon=payload.lon,
            date=payload.date,
            sequence=payload.sequence,
        )
        db.add(waypoint)
        await db.flush()
        return self._waypoint_response(waypoint)

    async def update_waypoint(
        self,
        db: AsyncSession,
        user: User,
        expedition_id: str,
        waypoint_id: int,
        payload: WaypointUpdateRequest,
    ) -> WaypointResponse:
        expedition = await self.get_owned(db, user, expedition_id)
        waypoint = await self._get_waypoint(db, expedition, waypoint_id)
        changes = payload.model_dump(exclude_unset=True)
        if "title" in changes:
            waypoint.title = sanitize_user_text(changes["title"]) or None
        for field in ("lat", "lon", "sequence"):
            if changes.get(field) is not None:
                setattr(waypoint, field, changes[field])
        if "date" in changes:
            waypoint.date = changes["date"]
        await db.flush()
        return self._waypoint_response(waypoint)

    async def delete_waypoint(
        self, db: AsyncSession, user: User, expedition_id: str, waypoint_id: int
    ) -> None:
        expedition = await self.get_owned(db, user, expedition_id)
        waypoint = await self._get_waypoint(db, expedition, waypoint_id)
        waypoint.soft_delete()
        if expedition.location_type == "waypoint" and expedition.location_ref == str(waypoint.id):
            expedition.location_type = None
            expedition.location_ref = None
        await db.flush()

    # ── Location & bookmarks ──────────────────────────────────────────────

    async def set_location(
        self, db: AsyncSession, user: User, expedition_id: str, payload: LocationRequest
    ) -> ExpeditionResponse:
        expedition = await self.get_owned(db, user, expedition_id)
        resolved = await resolve_locations(db, [(payload.type, payload.id)])
        if location_key(payload.type, payload.id) not in resolved:
            raise BadRequestError("location not found or has no coordinates")

        if payload.type == "waypoint":
            waypoint = await self._get_waypoint(db, expedition, int(payload.id))
            expedition.location_ref = str(waypoint.id)
        else:
            expedition.location_ref = payload.id
        expedition.location_type = payload.type
        await db.flush()
        return await self.to_response(db, expedition)

    async def bookmark(self, db: AsyncSession, user: User, expedition_id: str) -> BookmarkResponse:
        expedition = await self.get_expedition(db, expedition_id)
        existing = await db.get(ExpeditionBookmark, (user.id, expedition.id))
        if existing is not None:
            await db.delete(existing)
            await db.flush()
            return BookmarkResponse(bookmarked=False)
        db.add(ExpeditionBookmark(user_id=user.id, expedition_id=expedition.id))
        await db.flush()
        return BookmarkResponse(bookmarked=True)

    async def bookmarked(self, db: AsyncSession, user: User) -> ExpeditionListResponse:
        """Expeditions the user bookmarked, most recently bookmarked first."""
        result = await db.execute(
            select(Expedition)
            .join(ExpeditionBookmark, ExpeditionBookmark.expedition_id == Expedition.id)
            .where(
                ExpeditionBookmark.user_id == user.id,
                Expedition.deleted_at.is_(None),
                or_(Expedition.visibility != Visibility.PRIVATE.value, Expedition.author_id == user.id),
            )
            .order_by(ExpeditionBookmark.created_at.desc())
        )
        return ExpeditionListResponse(
            results=[await self.to_response(db, e, bookmarked=True) for e in result.scalars().all()]
        )

    # ── Serialization ─────────────────────────────────────────────────────

    @staticmethod
    def _waypoint_response(waypoint: Waypoint) -> WaypointResponse:
        return WaypointResponse(
            id=waypoint.id,
            title=waypoint.title,
            lat=waypoint.lat,
            lon=waypoint.lon,
            date=waypoint.date,
            sequence=waypoint.sequence or 0,
        )

    async def to_response(
        self,
        db: AsyncSession,
        expedition: Expedition,
        bookmarked: bool = False,
        waypoints: Optional[List[Waypoint]] = None,
    ) -> ExpeditionResponse:
        if waypoints is None:
            waypoints = await self._waypoints(db, expedition)

        location = None
        if expedition.location_type and expedition.location_ref:
            resolved = await resolve_locations(db, [(expedition.location_type, expedition.location_ref)])
            found = resolved.get(location_key(expedition.location_type, expedition.location_ref))
            if found:
                location = LocationResponse(
                    type=expedition.location_type, id=expedition.location_ref, **found
                )

        return ExpeditionResponse(
            id=expedition.public_id,
            title=expedition.title,
            description=expedition.description,
            status=expedition.status,
            visibility=expedition.visibility,
            start_date=expedition.start_date,
            end_date=expedition.end_date,
            cover_image=expedition.cover_image,
            goal=integer_to_decimal(expedition.goal or 0),
            raised=integer_to_decimal(expedition.raised or 0),
            entries_count=expedition.entries_count or 0,
            author=UserSummary.from_user(expedition.author),
            location=location,
            waypoints=[self._waypoint_response(w) for w in waypoints],
            bookmarked=bookmarked,
            created_at=expedition.created_at or utcnow(),
        )


# Singleton instance
expedition_service = ExpeditionService()
