"""
Heimursaga API — Comment Service
==================================

Threads are one level deep: top-level comments (newest first, cursor on id)
with replies nested oldest first. Replying to a reply is rejected.
"""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from saga.database import utcnow
from saga.exceptions import BadRequestError, ForbiddenError, NotFoundError
from saga.lib.ids import public_id
from saga.lib.sanitizer import sanitize_user_content
from saga.models.entry import Comment, Entry
from saga.models.enums import NotificationContext
from saga.models.user import User
from saga.schemas.comment import (
    CommentListResponse,
    CommentResponse,
    CommentToggleResponse,
)
from saga.schemas.common import UserSummary
from saga.services.entry_service import entry_service
from saga.services.event_service import Events, event_service

logger = logging.getLogger(__name__)

MAX_COMMENTS_LIMIT = 100


class CommentService:
    async def _get_comment(self, db: AsyncSession, comment_id: str) -> Comment:
        result = await db.execute(
            select(Comment).where(Comment.public_id == comment_id, Comment.deleted_at.is_(None))
        )
        comment = result.scalar_one_or_none()
        if comment is None:
            raise NotFoundError("comment", comment_id)
        return comment

    async def list(
        self,
        db: AsyncSession,
        entry_id: str,
        cursor: Optional[int] = None,
        limit: int = 20,
        viewer: Optional[User] = None,
    ) -> CommentListResponse:
        entry = await entry_service.get_readable(db, viewer, entry_id)

        limit = max(1, min(limit, MAX_COMMENTS_LIMIT))
        query = select(Comment).where(
            Comment.entry_id == entry.id,
            Comment.parent_id.is_(None),
            Comment.deleted_at.is_(None),
        )
        if cursor:
            query = query.where(Comment.id < cursor)
        result = await db.execute(query.order_by(Comment.id.desc()).limit(limit + 1))
        comments = list(result.scalars().all())

        has_more = len(comments) > limit
        comments = comments[:limit]
        return CommentListResponse(
            results=[self._to_response(c) for c in comments],
            next_cursor=comments[-1].id if has_more and comments else None,
            has_more=has_more,
        )

    async def create(
        self,
        db: AsyncSession,
        user: User,
        entry_id: str,
        content: str,
        parent_id: Optional[str] = None,
    ) -> CommentResponse:
        entry = await entry_service.get_readable(db, user, entry_id)
        if not entry.comments_enabled:
            raise ForbiddenError("Comments are disabled for this post")

        parent: Optional[Comment] = None
        if parent_id:
            result = await db.execute(
                select(Comment).where(
                    Comment.public_id == parent_id,
                    Comment.entry_id == entry.id,
                    Comment.deleted_at.is_(None),
                )
            )
            parent = result.scalar_one_or_none()
            if parent is None:
                raise NotFoundError("Parent comment")
            if parent.parent_id is not None:
                raise BadRequestError(
                    "Cannot reply to a reply. Please reply to the parent comment instead."
                )

        text = sanitize_user_content(content)
        if not text:
            raise BadRequestError("comment cannot be empty")

        comment = Comment(
            public_id=public_id(),
            entry_id=entry.id,
            author_id=user.id,
            parent_id=parent.id if parent else None,
            content=text,
        )
        comment.author = user
        db.add(comment)
        entry.comments_count = (entry.comments_count or 0) + 1
        await db.flush()

        if parent is not None and parent.author_id != user.id:
            self._notify(parent.author_id, NotificationContext.COMMENT_REPLY, user, entry, text)
        elif parent is None and entry.author_id != user.id:
            self._notify(entry.author_id, NotificationContext.COMMENT, user, entry, text)

        return self._to_response(comment, parent_public_id=parent_id, include_replies=False)

    async def update(self, db: AsyncSession, user: User, comment_id: str, content: str) -> CommentResponse:
        comment = await self._get_comment(db, comment_id)
        if comment.author_id != user.id:
            raise ForbiddenError("you can only edit your own comments")
        text = sanitize_user_content(content)
        if not text:
            raise BadRequestError("comment cannot be empty")
        comment.content = text
        comment.updated_at = utcnow()
        await db.flush()
        return self._to_response(comment, include_replies=False)

    async def delete(self, db: AsyncSession, user: User, comment_id: str) -> None:
        comment = await self._get_comment(db, comment_id)
        entry = await db.get(Entry, comment.entry_id)
        if comment.author_id != user.id and (entry is None or entry.author_id != user.id):
            raise ForbiddenError("you cannot delete this comment")
        await self.soft_delete_comment(db, comment, entry)

    async def soft_delete_comment(self, db: AsyncSession, comment: Comment, entry: Optional[Entry]) -> None:
        comment.soft_delete()
        if entry is not None:
            entry.comments_count = max((entry.comments_count or 0) - 1, 0)
        await db.flush()

    async def toggle(self, db: AsyncSession, user: User, entry_id: str) -> CommentToggleResponse:
        entry = await entry_service.get_owned_entry(db, user, entry_id)
        entry.comments_enabled = not entry.comments_enabled
        await db.flush()
        return CommentToggleResponse(comments_enabled=entry.comments_enabled)

    @staticmethod
    def _notify(recipient_id: int, context: NotificationContext, author: User, entry: Entry, text: str) -> None:
        event_service.trigger(
            Events.NOTIFICATION_CREATE,
            {
                "user_id": recipient_id,
                "context": context.value,
                "mention_user_id": author.id,
                "mention_entry_id": entry.id,
                "body": text[:200],
            },
        )

    def _to_response(
        self,
        comment: Comment,
        parent_public_id: Optional[str] = None,
        include_replies: bool = True,
    ) -> CommentResponse:
        replies = []
        if include_replies and comment.parent_id is None:
            replies = [
                self._to_response(r, parent_public_id=comment.public_id, include_replies=False)
                for r in comment.replies
                if r.deleted_at is None
            ]
        now = utcnow()
        return CommentResponse(
            id=comment.public_id,
            content=comment.content,
            author=UserSummary.from_user(comment.author),
            parent_id=parent_public_id,
            created_at=comment.created_at or now,
            updated_at=comment.updated_at or comment.created_at or now,
            replies=replies,
            reply_count=len(replies),
        )


# Singleton instance
comment_service = CommentService()
