"""
Heimursaga API — Journal Entry Service
========================================

What:  Create, read, update and soft-delete geo-tagged journal entries;
       the public feed, drafts, likes and bookmarks.
How:   Visibility rules are applied on read:
           public          everyone
           sponsors-only   author or an active sponsor; others get the
                           entry with `content` withheld and `locked=True`
           private         author only (404 for everyone else)
       Counters (`entries_count`, likes, bookmarks) change in the same
       transaction as the rows they count.
Who:   Entry routes; the ENTRY_CREATED listener emails sponsors.
"""

import logging
from typing import Any, Dict, List, Optional, Set

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from saga.database import async_session_factory, utcnow
from saga.exceptions import ForbiddenError, NotFoundError, ValidationError
from saga.lib.geocoding import get_country_code
from saga.lib.ids import public_id
from saga.lib.sanitizer import sanitize_user_content, sanitize_user_text
from saga.models.entry import Entry, EntryBookmark, EntryLike
from saga.models.enums import NotificationContext, SponsorshipStatus, Visibility
from saga.models.expedition import Expedition
from saga.models.sponsorship import Sponsorship
from saga.models.user import User
from saga.schemas.common import UserSummary
from saga.schemas.entry import (
    EntryBookmarkResponse,
    EntryCreateRequest,
    EntryListResponse,
    EntryResponse,
    EntryUpdateRequest,
    LikeResponse,
)
from saga.services.event_service import Events, event_service
from saga.services.file_service import file_service

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100
EXCERPT_LENGTH = 200


class EntryService:
    # ── Helpers ───────────────────────────────────────────────────────────

    async def get_entry(self, db: AsyncSession, entry_id: str) -> Entry:
        result = await db.execute(
            select(Entry).where(Entry.public_id == entry_id, Entry.deleted_at.is_(None))
        )
        entry = result.scalar_one_or_none()
        if entry is None:
            raise NotFoundError("entry", entry_id)
        return entry

    async def get_owned_entry(self, db: AsyncSession, user: User, entry_id: str) -> Entry:
        entry = await self.get_entry(db, entry_id)
        if entry.author_id != user.id:
            raise NotFoundError("entry", entry_id)
        return entry

    async def has_active_sponsorship(self, db: AsyncSession, sponsor_id: int, creator_id: int) -> bool:
        result = await db.execute(
            select(Sponsorship.id)
            .where(
                Sponsorship.user_id == sponsor_id,
                Sponsorship.creator_id == creator_id,
                Sponsorship.status == SponsorshipStatus.ACTIVE.value,
                Sponsorship.expiry > utcnow(),
                Sponsorship.deleted_at.is_(None),
            )
            .limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def _resolve_expedition(self, db: AsyncSession, user: User, expedition_id: str) -> Expedition:
        result = await db.execute(
            select(Expedition).where(
                Expedition.public_id == expedition_id, Expedition.deleted_at.is_(None)
            )
        )
        expedition = result.scalar_one_or_none()
        if expedition is None or expedition.author_id != user.id:
            raise NotFoundError("expedition", expedition_id)
        return expedition

    @staticmethod
    def _check_publishable(entry: Entry) -> None:
        missing = [f for f in ("title", "content", "place") if not getattr(entry, f)]
        if missing:
            raise ValidationError(
                f"published entries require {', '.join(missing)}",
                field=missing[0],
            )

    @staticmethod
    def _check_visibility(user: User, visibility: str) -> None:
        if visibility == Visibility.SPONSORS_ONLY.value and not user.is_pro:
            raise ForbiddenError("only Explorer Pro members can publish sponsors-only entries")

    def _emit_created(self, entry: Entry) -> None:
        if entry.is_draft or entry.visibility != Visibility.PUBLIC.value:
            return
        event_service.trigger(
            Events.ENTRY_CREATED,
            {
                "entry_id": entry.public_id,
                "creator_id": entry.author_id,
                "title": entry.title,
                "content": entry.content,
                "place": entry.place,
                "date": entry.date.isoformat() if entry.date else None,
            },
        )

    # ── Create / update / delete ──────────────────────────────────────────

    async def create(self, db: AsyncSession, user: User, payload: EntryCreateRequest) -> EntryResponse:
        self._check_visibility(user, payload.visibility.value)

        entry = Entry(
            public_id=public_id(),
            author_id=user.id,
            title=sanitize_user_text(payload.title) or None,
            content=sanitize_user_content(payload.content) or None,
            place=sanitize_user_text(payload.place) or None,
            lat=payload.lat,
            lon=payload.lon,
            date=payload.date or utcnow(),
            entry_type=payload.entry_type.value,
            visibility=payload.visibility.value,
            is_draft=payload.is_draft,
            comments_enabled=payload.comments_enabled,
        )
        if not entry.is_draft:
            self._check_publishable(entry)

        expedition = None
        if payload.expedition_id:
            expedition = await self._resolve_expedition(db, user, payload.expedition_id)
            entry.expedition_id = expedition.id
        if payload.cover_upload_id:
            entry.cover_image = await file_service.resolve_upload_url(db, user, payload.cover_upload_id)
        if entry.lat is not None and entry.lon is not None:
            entry.country_code = await get_country_code(entry.lat, entry.lon)

        entry.author = user
        db.add(entry)
        user.entries_count = (user.entries_count or 0) + 1
        if expedition is not None:
            expedition.entries_count = (expedition.entries_count or 0) + 1
        await db.flush()

        logger.info("Entry %s created by user %s (draft=%s)", entry.public_id, user.id, entry.is_draft)
        self._emit_created(entry)
        return self.to_response(entry, expedition_public_id=payload.expedition_id)

    async def update(
        self, db: AsyncSession, user: User, entry_id: str, payload: EntryUpdateRequest
    ) -> EntryResponse:
        entry = await self.get_owned_entry(db, user, entry_id)
        was_draft = entry.is_draft
        changes = payload.model_dump(exclude_unset=True)

        if "title" in changes:
            entry.title = sanitize_user_text(changes["title"]) or None
        if "content" in changes:
            entry.content = sanitize_user_content(changes["content"]) or None
        if "place" in changes:
            entry.place = sanitize_user_text(changes["place"]) or None
        for field in ("date", "comments_enabled"):
            if changes.get(field) is not None:
                setattr(entry, field, changes[field])
        if payload.entry_type is not None:
            entry.entry_type = payload.entry_type.value
        if payload.visibility is not None:
            self._check_visibility(user, payload.visibility.value)
            entry.visibility = payload.visibility.value
        if payload.is_draft is not None:
            entry.is_draft = payload.is_draft

        coords_changed = "lat" in changes or "lon" in changes
        if coords_changed:
            entry.lat = changes.get("lat", entry.lat)
            entry.lon = changes.get("lon", entry.lon)
            entry.country_code = (
                await get_country_code(entry.lat, entry.lon)
                if entry.lat is not None and entry.lon is not None
                else None
            )

        if "expedition_id" in changes:
            await self._move_to_expedition(db, user, entry, changes["expedition_id"])
        if payload.cover_upload_id:
            entry.cover_image = await file_service.resolve_upload_url(db, user, payload.cover_upload_id)

        if not entry.is_draft:
            self._check_publishable(entry)
        await db.flush()

        if was_draft and not entry.is_draft:
            self._emit_created(entry)
        return self.to_response(entry, expedition_public_id=await self._expedition_public_id(db, entry))

    async def _move_to_expedition(
        self, db: AsyncSession, user: User, entry: Entry, expedition_id: Optional[str]
    ) -> None:
        if entry.expedition_id is not None:
            previous = await db.get(Expedition, entry.expedition_id)
            if previous is not None:
                previous.entries_count = max((previous.entries_count or 0) - 1, 0)
        entry.expedition_id = None
        if expedition_id:
            expedition = await self._resolve_expedition(db, user, expedition_id)
            entry.expedition_id = expedition.id
            expedition.entries_count = (expedition.entries_count or 0) + 1

    async def delete(self, db: AsyncSession, user: User, entry_id: str) -> None:
        entry = await self.get_owned_entry(db, user, entry_id)
        await self.soft_delete_entry(db, entry)
        logger.info("Entry %s deleted by user %s", entry_id, user.id)

    async def soft_delete_entry(self, db: AsyncSession, entry: Entry) -> None:
        """Soft-delete and fix up counters; shared with admin and flag moderation."""
        entry.soft_delete()
        author = await db.get(User, entry.author_id)
        if author is not None:
            author.entries_count = max((author.entries_count or 0) - 1, 0)
        if entry.expedition_id is not None:
            expedition = await db.get(Expedition, entry.expedition_id)
            if expedition is not None:
                expedition.entries_count = max((expedition.entries_count or 0) - 1, 0)
        await db.flush()

    # ── Reads ─────────────────────────────────────────────────────────────

    async def get(self, db: AsyncSession, viewer: Optional[User], entry_id: str) -> EntryResponse:
        entry = await self.get_entry(db, entry_id)
        is_author = viewer is not None and viewer.id == entry.author_id

        if not is_author and (entry.is_draft or entry.visibility == Visibility.PRIVATE.value):
            raise NotFoundError("entry", entry_id)
        if not is_author and entry.author.blocked:
            raise NotFoundError("entry", entry_id)

        locked = False
        if entry.visibility == Visibility.SPONSORS_ONLY.value and not is_author:
            locked = viewer is None or not await self.has_active_sponsorship(db, viewer.id, entry.author_id)

        if not is_author:
            entry.views_count = (entry.views_count or 0) + 1
            await db.flush()

        liked, bookmarked = await self._viewer_flags(db, viewer, [entry.id])
        return self.to_response(
            entry,
            liked=entry.id in liked,
            bookmarked=entry.id in bookmarked,
            locked=locked,
            expedition_public_id=await self._expedition_public_id(db, entry),
        )

    async def list_feed(
        self,
        db: AsyncSession,
        viewer: Optional[User] = None,
        cursor: Optional[int] = None,
        limit: int = 20,
        author: Optional[str] = None,
    ) -> EntryListResponse:
        limit = max(1, min(limit, MAX_PAGE_SIZE))
        query = (
            select(Entry)
            .join(User, User.id == Entry.author_id)
            .where(
                Entry.deleted_at.is_(None),
                Entry.is_draft.is_(False),
                Entry.visibility == Visibility.PUBLIC.value,
                User.blocked.is_(False),
            )
        )
        if author:
            query = query.where(User.username == author.lower())
        if cursor:
            query = query.where(Entry.id < cursor)
        result = await db.execute(query.order_by(Entry.id.desc()).limit(limit + 1))
        return await self._page(db, viewer, list(result.scalars().all()), limit)

    async def drafts(self, db: AsyncSession, user: User) -> EntryListResponse:
        result = await db.execute(
            select(Entry)
            .where(Entry.author_id == user.id, Entry.is_draft.is_(True), Entry.deleted_at.is_(None))
            .order_by(Entry.updated_at.desc())
        )
        entries = list(result.scalars().all())
        return EntryListResponse(results=[self.to_response(e) for e in entries])

    async def bookmarked(
        self, db: AsyncSession, user: User, cursor: Optional[int] = None, limit: int = 20
    ) -> EntryListResponse:
        """Entries the user bookmarked, most recent entry first."""
        limit = max(1, min(limit, MAX_PAGE_SIZE))
        query = (
            select(Entry)
            .join(EntryBookmark, EntryBookmark.entry_id == Entry.id)
            .where(
                EntryBookmark.user_id == user.id,
                Entry.deleted_at.is_(None),
                Entry.is_draft.is_(False),
                or_(Entry.visibility != Visibility.PRIVATE.value, Entry.author_id == user.id),
            )
        )
        if cursor:
            query = query.where(Entry.id < cursor)
        result = await db.execute(query.order_by(Entry.id.desc()).limit(limit + 1))
        return await self._page(db, user, list(result.scalars().all()), limit)

    async def _page(
        self, db: AsyncSession, viewer: Optional[User], entries: List[Entry], limit: int
    ) -> EntryListResponse:
        has_more = len(entries) > limit
        entries = entries[:limit]
        liked, bookmarked = await self._viewer_flags(db, viewer, [e.id for e in entries])
        return EntryListResponse(
            results=[
                self.to_response(e, liked=e.id in liked, bookmarked=e.id in bookmarked)
                for e in entries
            ],
            next_cursor=entries[-1].id if has_more and entries else None,
            has_more=has_more,
        )

    async def _viewer_flags(self, db: AsyncSession, viewer: Optional[User], ids: List[int]):
        if viewer is None or not ids:
            return set(), set()
        liked: Set[int] = set(
            (
                await db.execute(
                    select(EntryLike.entry_id).where(
                        EntryLike.user_id == viewer.id, EntryLike.entry_id.in_(ids)
                    )
                )
            ).scalars().all()
        )
        bookmarked: Set[int] = set(
            (
                await db.execute(
                    select(EntryBookmark.entry_id).where(
                        EntryBookmark.user_id == viewer.id, EntryBookmark.entry_id.in_(ids)
                    )
                )
            ).scalars().all()
        )
        return liked, bookmarked

    async def _expedition_public_id(self, db: AsyncSession, entry: Entry) -> Optional[str]:
        if entry.expedition_id is None:
            return None
        expedition = await db.get(Expedition, entry.expedition_id)
        return expedition.public_id if expedition is not None else None

    # ── Likes & bookmarks ─────────────────────────────────────────────────

    async def get_readable(self, db: AsyncSession, viewer: Optional[User], entry_id: str) -> Entry:
        """
        An entry whose discussion the viewer may see or join.

        Drafts and private entries exist only for their author; sponsors-only
        entries also need an active sponsorship of the author.
        """
        entry = await self.get_entry(db, entry_id)
        if viewer is not None and viewer.id == entry.author_id:
            return entry
        if entry.is_draft or entry.visibility == Visibility.PRIVATE.value:
            raise NotFoundError("entry", entry_id)
        if entry.visibility == Visibility.SPONSORS_ONLY.value and (
            viewer is None or not await self.has_active_sponsorship(db, viewer.id, entry.author_id)
        ):
            raise ForbiddenError("this entry is for sponsors only")
        return entry

    async def _get_interactable(self, db: AsyncSession, user: User, entry_id: str) -> Entry:
        entry = await self.get_entry(db, entry_id)
        if entry.author_id != user.id and (entry.is_draft or entry.visibility == Visibility.PRIVATE.value):
            raise NotFoundError("entry", entry_id)
        return entry

    async def like(self, db: AsyncSession, user: User, entry_id: str) -> LikeResponse:
        entry = await self._get_interactable(db, user, entry_id)
        existing = await db.get(EntryLike, (user.id, entry.id))
        if existing is not None:
            await db.delete(existing)
            entry.likes_count = max((entry.likes_count or 0) - 1, 0)
            await db.flush()
            return LikeResponse(liked=False, likes_count=entry.likes_count)

        db.add(EntryLike(user_id=user.id, entry_id=entry.id))
        entry.likes_count = (entry.likes_count or 0) + 1
        await db.flush()

        if entry.author_id != user.id:
            event_service.trigger(
                Events.NOTIFICATION_CREATE,
                {
                    "user_id": entry.author_id,
                    "context": NotificationContext.LIKE.value,
                    "mention_user_id": user.id,
                    "mention_entry_id": entry.id,
                },
            )
        return LikeResponse(liked=True, likes_count=entry.likes_count)

    async def bookmark(self, db: AsyncSession, user: User, entry_id: str) -> EntryBookmarkResponse:
        entry = await self._get_interactable(db, user, entry_id)
        existing = await db.get(EntryBookmark, (user.id, entry.id))
        if existing is not None:
            await db.delete(existing)
            entry.bookmarks_count = max((entry.bookmarks_count or 0) - 1, 0)
            await db.flush()
            return EntryBookmarkResponse(bookmarked=False, bookmarks_count=entry.bookmarks_count)

        db.add(EntryBookmark(user_id=user.id, entry_id=entry.id))
        entry.bookmarks_count = (entry.bookmarks_count or 0) + 1
        await db.flush()
        return EntryBookmarkResponse(bookmarked=True, bookmarks_count=entry.bookmarks_count)

    # ── Listeners ─────────────────────────────────────────────────────────

    async def handle_entry_created(self, data: Dict[str, Any]) -> None:
        """ENTRY_CREATED listener: email active sponsors who opted in."""
        async with async_session_factory() as db:
            author = await db.get(User, data["creator_id"])
            if author is None:
                return
            result = await db.execute(
                select(User)
                .join(Sponsorship, Sponsorship.user_id == User.id)
                .where(
                    Sponsorship.creator_id == author.id,
                    Sponsorship.status == SponsorshipStatus.ACTIVE.value,
                    Sponsorship.expiry > utcnow(),
                    Sponsorship.email_delivery_enabled.is_(True),
                    Sponsorship.deleted_at.is_(None),
                    User.email_notifications.is_(True),
                    User.blocked.is_(False),
                    User.deleted_at.is_(None),
                )
                .distinct()
            )
            sponsors = list(result.scalars().all())

        content = data.get("content") or ""
        excerpt = content[:EXCERPT_LENGTH] + ("…" if len(content) > EXCERPT_LENGTH else "")
        for sponsor in sponsors:
            event_service.trigger(
                Events.SEND_EMAIL,
                {
                    "to": sponsor.email,
                    "template": "new_entry_notification",
                    "variables": {
                        "recipient_username": sponsor.username,
                        "author_username": author.username,
                        "entry_title": data.get("title"),
                        "entry_id": data.get("entry_id"),
                        "location": data.get("place"),
                        "excerpt": excerpt,
                    },
                },
            )
        logger.info("Entry %s: notified %d sponsors", data.get("entry_id"), len(sponsors))

    # ── Serialization ─────────────────────────────────────────────────────

    @staticmethod
    def to_response(
        entry: Entry,
        liked: bool = False,
        bookmarked: bool = False,
        locked: bool = False,
        expedition_public_id: Optional[str] = None,
    ) -> EntryResponse:
        return EntryResponse(
            id=entry.public_id,
            title=entry.title,
            content=None if locked else entry.content,
            place=entry.place,
            lat=entry.lat,
            lon=entry.lon,
            country_code=entry.country_code,
            date=entry.date,
            cover_image=entry.cover_image,
            entry_type=entry.entry_type,
            visibility=entry.visibility,
            is_draft=entry.is_draft,
            comments_enabled=entry.comments_enabled,
            likes_count=entry.likes_count or 0,
            bookmarks_count=entry.bookmarks_count or 0,
            comments_count=entry.comments_count or 0,
            author=UserSummary.from_user(entry.author),
            expedition_id=expedition_public_id,
            liked=liked,
            bookmarked=bookmarked,
            locked=locked,
            created_at=entry.created_at or utcnow(),
        )


# Singleton instance
entry_service = EntryService()
