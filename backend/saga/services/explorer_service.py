"""
Heimursaga API — Explorer Service
===================================

What:  Public explorer profiles, the follow graph, explorer bookmarks, the
       signed-in user's settings/pictures/insights, and admin block/unblock.
How:   Counter columns on `users` change in the same transaction as the
       follow rows. Follow notifications are emitted as events.
"""

import logging
from typing import List, Optional, Set

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from saga.exceptions import BadRequestError, NotFoundError
from saga.lib.sanitizer import sanitize_user_content, sanitize_user_text
from saga.models.entry import Entry
from saga.models.enums import NotificationContext
from saga.models.user import ExplorerBookmark, User, UserFollow
from saga.schemas.common import UserSummary
from saga.schemas.explorer import (
    BookmarkResponse,
    EntryInsight,
    ExplorerListResponse,
    ExplorerResponse,
    FollowListResponse,
    InsightsResponse,
    UserSettingsResponse,
    UserSettingsUpdate,
)
from saga.services.auth_service import auth_service
from saga.services.event_service import Events, event_service
from saga.services.file_service import file_service

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


class ExplorerService:
    # ── Lookups ───────────────────────────────────────────────────────────

    async def get_user_by_username(
        self, db: AsyncSession, username: str, include_blocked: bool = False
    ) -> User:
        query = select(User).where(
            User.username == (username or "").strip().lower(), User.deleted_at.is_(None)
        )
        if not include_blocked:
            query = query.where(User.blocked.is_(False))
        user = (await db.execute(query)).scalar_one_or_none()
        if user is None:
            raise NotFoundError("explorer", username)
        return user

    async def _followed_ids(self, db: AsyncSession, viewer: Optional[User], ids: List[int]) -> Set[int]:
        if viewer is None or not ids:
            return set()
        result = await db.execute(
            select(UserFollow.followee_id).where(
                UserFollow.follower_id == viewer.id, UserFollow.followee_id.in_(ids)
            )
        )
        return set(result.scalars().all())

    async def _bookmarked_ids(self, db: AsyncSession, viewer: Optional[User], ids: List[int]) -> Set[int]:
        if viewer is None or not ids:
            return set()
        result = await db.execute(
            select(ExplorerBookmark.explorer_id).where(
                ExplorerBookmark.user_id == viewer.id, ExplorerBookmark.explorer_id.in_(ids)
            )
        )
        return set(result.scalars().all())

    # ── Public profiles ───────────────────────────────────────────────────

    async def list_explorers(
        self,
        db: AsyncSession,
        viewer: Optional[User] = None,
        cursor: Optional[int] = None,
        limit: int = 20,
    ) -> ExplorerListResponse:
        limit = max(1, min(limit, MAX_PAGE_SIZE))
        query = select(User).where(User.blocked.is_(False), User.deleted_at.is_(None))
        if cursor:
            query = query.where(User.id < cursor)
        result = await db.execute(query.order_by(User.id.desc()).limit(limit + 1))
        users = list(result.scalars().all())

        has_more = len(users) > limit
        users = users[:limit]
        ids = [u.id for u in users]
        followed = await self._followed_ids(db, viewer, ids)
        bookmarked = await self._bookmarked_ids(db, viewer, ids)

        return ExplorerListResponse(
            results=[self.to_response(u, u.id in followed, u.id in bookmarked) for u in users],
            next_cursor=users[-1].id if has_more and users else None,
            has_more=has_more,
        )

    async def get_by_username(
        self, db: AsyncSession, username: str, viewer: Optional[User] = None
    ) -> ExplorerResponse:
        user = await self.get_user_by_username(db, username)
        followed = await self._followed_ids(db, viewer, [user.id])
        bookmarked = await self._bookmarked_ids(db, viewer, [user.id])
        return self.to_response(user, user.id in followed, user.id in bookmarked)

    # ── Follow graph ──────────────────────────────────────────────────────

    async def follow(self, db: AsyncSession, viewer: User, username: str) -> None:
        followee = await self.get_user_by_username(db, username)
        if followee.id == viewer.id:
            raise BadRequestError("you cannot follow yourself")

        existing = await db.get(UserFollow, (viewer.id, followee.id))
        if existing is not None:
            raise BadRequestError("explorer is already followed")

        db.add(UserFollow(follower_id=viewer.id, followee_id=followee.id))
        viewer.following_count = (viewer.following_count or 0) + 1
        followee.followers_count = (followee.followers_count or 0) + 1
        await db.flush()

        event_service.trigger(
            Events.NOTIFICATION_CREATE,
            {
                "user_id": followee.id,
                "context": NotificationContext.FOLLOW.value,
                "mention_user_id": viewer.id,
            },
        )
        logger.info("User %s followed %s", viewer.id, followee.id)

    async def unfollow(self, db: AsyncSession, viewer: User, username: str) -> None:
        followee = await self.get_user_by_username(db, username, include_blocked=True)
        existing = await db.get(UserFollow, (viewer.id, followee.id))
        if existing is None:
            raise BadRequestError("explorer is not followed")

        await db.delete(existing)
        viewer.following_count = max((viewer.following_count or 0) - 1, 0)
        followee.followers_count = max((followee.followers_count or 0) - 1, 0)
        await db.flush()

    async def followers(self, db: AsyncSession, username: str) -> FollowListResponse:
        user = await self.get_user_by_username(db, username)
        result = await db.execute(
            select(User)
            .join(UserFollow, UserFollow.follower_id == User.id)
            .where(UserFollow.followee_id == user.id, User.blocked.is_(False), User.deleted_at.is_(None))
            .order_by(UserFollow.created_at.desc())
        )
        return FollowListResponse(results=[UserSummary.from_user(u) for u in result.scalars().all()])

    async def following(self, db: AsyncSession, username: str) -> FollowListResponse:
        user = await self.get_user_by_username(db, username)
        result = await db.execute(
            select(User)
            .join(UserFollow, UserFollow.followee_id == User.id)
            .where(UserFollow.follower_id == user.id, User.blocked.is_(False), User.deleted_at.is_(None))
            .order_by(UserFollow.created_at.desc())
        )
        return FollowListResponse(results=[UserSummary.from_user(u) for u in result.scalars().all()])

    async def bookmark_explorer(self, db: AsyncSession, viewer: User, username: str) -> BookmarkResponse:
        explorer = await self.get_user_by_username(db, username)
        if explorer.id == viewer.id:
            raise BadRequestError("you cannot bookmark yourself")

        existing = await db.get(ExplorerBookmark, (viewer.id, explorer.id))
        if existing is not None:
            await db.delete(existing)
            await db.flush()
            return BookmarkResponse(bookmarked=False)

        db.add(ExplorerBookmark(user_id=viewer.id, explorer_id=explorer.id))
        await db.flush()
        return BookmarkResponse(bookmarked=True)

    async def bookmarked(self, db: AsyncSession, viewer: User) -> ExplorerListResponse:
        """Explorers the viewer bookmarked, most recently bookmarked first."""
        result = await db.execute(
            select(User)
            .join(ExplorerBookmark, ExplorerBookmark.explorer_id == User.id)
            .where(
                ExplorerBookmark.user_id == viewer.id,
                User.blocked.is_(False),
                User.deleted_at.is_(None),
            )
            .order_by(ExplorerBookmark.created_at.desc())
        )
        users = list(result.scalars().all())
        followed = await self._followed_ids(db, viewer, [u.id for u in users])
        return ExplorerListResponse(
            results=[self.to_response(u, u.id in followed, bookmarked=True) for u in users],
            next_cursor=None,
            has_more=False,
        )

    # ── Own settings ──────────────────────────────────────────────────────

    def get_settings(self, user: User) -> UserSettingsResponse:
        return UserSettingsResponse(
            username=user.username,
            email=user.email,
            name=user.name,
            bio=user.bio,
            picture=user.picture,
            cover_photo=user.cover_photo,
            location_from=user.location_from,
            location_lives=user.location_lives,
            website=user.website,
            email_notifications=user.email_notifications,
        )

    async def update_settings(
        self, db: AsyncSession, user: User, payload: UserSettingsUpdate
    ) -> UserSettingsResponse:
        changes = payload.model_dump(exclude_unset=True)
        for field in ("name", "location_from", "location_lives", "website"):
            if field in changes:
                setattr(user, field, sanitize_user_text(changes[field]) or None)
        if "bio" in changes:
            user.bio = sanitize_user_content(changes["bio"]) or None
        if changes.get("email_notifications") is not None:
            user.email_notifications = changes["email_notifications"]
        await db.flush()
        return self.get_settings(user)

    async def update_picture(self, db: AsyncSession, user: User, upload_id: str) -> str:
        user.picture = await file_service.resolve_upload_url(db, user, upload_id)
        await db.flush()
        return user.picture

    async def update_cover(self, db: AsyncSession, user: User, upload_id: str) -> str:
        user.cover_photo = await file_service.resolve_upload_url(db, user, upload_id)
        await db.flush()
        return user.cover_photo

    async def insights(self, db: AsyncSession, user: User) -> InsightsResponse:
        result = await db.execute(
            select(Entry)
            .where(Entry.author_id == user.id, Entry.deleted_at.is_(None), Entry.is_draft.is_(False))
            .order_by(Entry.created_at.desc())
        )
        items = [
            EntryInsight(
                id=entry.public_id,
                title=entry.title,
                date=entry.date,
                views=entry.views_count,
                likes=entry.likes_count,
                bookmarks=entry.bookmarks_count,
                comments=entry.comments_count,
            )
            for entry in result.scalars().all()
        ]
        return InsightsResponse(
            entries=items,
            total_views=sum(i.views for i in items),
            total_likes=sum(i.likes for i in items),
            total_bookmarks=sum(i.bookmarks for i in items),
            total_comments=sum(i.comments for i in items),
        )

    # ── Admin ─────────────────────────────────────────────────────────────

    async def admin_block(self, db: AsyncSession, username: str) -> None:
        user = await self.get_user_by_username(db, username, include_blocked=True)
        if user.is_admin:
            raise BadRequestError("admins cannot be blocked")
        user.blocked = True
        await auth_service.expire_user_sessions(db, user.id)
        await db.flush()
        logger.warning("User %s (%s) blocked", user.id, user.username)

    async def admin_unblock(self, db: AsyncSession, username: str) -> None:
        user = await self.get_user_by_username(db, username, include_blocked=True)
        user.blocked = False
        await db.flush()
        logger.info("User %s (%s) unblocked", user.id, user.username)

    @staticmethod
    def to_response(user: User, followed: bool = False, bookmarked: bool = False) -> ExplorerResponse:
        return ExplorerResponse(
            username=user.username,
            name=user.name,
            bio=user.bio,
            picture=user.picture,
            cover_photo=user.cover_photo,
            location_from=user.location_from,
            location_lives=user.location_lives,
            website=user.website,
            role=user.role,
            is_pro=user.is_pro,
            followers_count=user.followers_count,
            following_count=user.following_count,
            entries_count=user.entries_count,
            resting=user.resting_since is not None,
            followed=followed,
            bookmarked=bookmarked,
            created_at=user.created_at,
        )


# Singleton instance
explorer_service = ExplorerService()
