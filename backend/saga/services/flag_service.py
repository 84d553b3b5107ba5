"""
Heimursaga API — Content Flag Service
=======================================

Users flag entries or comments; admins review flags and apply an action:

    content_deleted   soft-delete the flagged entry/comment
    user_blocked      block the content author (sessions expired)
    user_warned       recorded only
    no_action         recorded only
"""

import logging
from typing import Optional, Tuple

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from saga.database import utcnow
from saga.exceptions import BadRequestError, NotFoundError
from saga.lib.ids import public_id
from saga.lib.sanitizer import sanitize_user_text
from saga.models.entry import Comment, Entry
from saga.models.enums import FlagActionType, FlagStatus
from saga.models.flag import Flag
from saga.models.user import User
from saga.schemas.common import UserSummary
from saga.schemas.flag import (
    FlagCreateRequest,
    FlagListResponse,
    FlagResponse,
    FlagUpdateRequest,
)
from saga.services.auth_service import auth_service
from saga.services.comment_service import comment_service
from saga.services.entry_service import entry_service

logger = logging.getLogger(__name__)

PREVIEW_LENGTH = 140


class FlagService:
    async def create(self, db: AsyncSession, user: User, payload: FlagCreateRequest) -> FlagResponse:
        entry: Optional[Entry] = None
        comment: Optional[Comment] = None

        if payload.entry_id:
            entry = await entry_service.get_entry(db, payload.entry_id)
            target_author_id = entry.author_id
            target_filter = Flag.flagged_entry_id == entry.id
        else:
            result = await db.execute(
                select(Comment).where(
                    Comment.public_id == payload.comment_id, Comment.deleted_at.is_(None)
                )
            )
            comment = result.scalar_one_or_none()
            if comment is None:
                raise NotFoundError("comment", payload.comment_id)
            target_author_id = comment.author_id
            target_filter = Flag.flagged_comment_id == comment.id

        if target_author_id == user.id:
            raise BadRequestError("you cannot flag your own content")

        duplicate = (
            await db.execute(
                select(Flag.id).where(
                    Flag.reporter_id == user.id,
                    Flag.status == FlagStatus.PENDING.value,
                    target_filter,
                )
            )
        ).first()
        if duplicate is not None:
            raise BadRequestError("you have already flagged this content")

        flag = Flag(
            public_id=public_id(),
            reporter_id=user.id,
            category=payload.category.value,
            description=sanitize_user_text(payload.description) or None,
            status=FlagStatus.PENDING.value,
            flagged_entry_id=entry.id if entry else None,
            flagged_comment_id=comment.id if comment else None,
        )
        flag.reporter = user
        flag.flagged_entry = entry
        flag.flagged_comment = comment
        db.add(flag)
        await db.flush()
        logger.info("Flag %s (%s) filed by user %s", flag.public_id, flag.category, user.id)
        return self._to_response(flag)

    # ── Admin ─────────────────────────────────────────────────────────────

    async def list(
        self,
        db: AsyncSession,
        status: Optional[FlagStatus] = None,
        limit: int = 50,
        offset: int = 0,
    ) -> FlagListResponse:
        query = select(Flag)
        if status is not None:
            query = query.where(Flag.status == status.value)
        total = (await db.execute(select(func.count()).select_from(query.subquery()))).scalar_one()
        result = await db.execute(
            query.order_by(Flag.created_at.desc(), Flag.id.desc()).offset(offset).limit(min(limit, 100))
        )
        return FlagListResponse(
            results=[self._to_response(f) for f in result.scalars().all()], total=total
        )

    async def _get_flag(self, db: AsyncSession, flag_id: str) -> Flag:
        flag = (await db.execute(select(Flag).where(Flag.public_id == flag_id))).scalar_one_or_none()
        if flag is None:
            raise NotFoundError("flag", flag_id)
        return flag

    async def get(self, db: AsyncSession, flag_id: str) -> FlagResponse:
        return self._to_response(await self._get_flag(db, flag_id))

    async def update(
        self, db: AsyncSession, admin: User, flag_id: str, payload: FlagUpdateRequest
    ) -> FlagResponse:
        flag = await self._get_flag(db, flag_id)
        action = payload.action_taken

        if action == FlagActionType.CONTENT_DELETED:
            await self._delete_target(db, flag)
        elif action == FlagActionType.USER_BLOCKED:
            author_id = self._target(flag)[1]
            author = await db.get(User, author_id) if author_id else None
            if author is not None and not author.is_admin:
                author.blocked = True
                await auth_service.expire_user_sessions(db, author.id)
                logger.warning("User %s blocked via flag %s", author.id, flag.public_id)

        flag.status = payload.status.value
        if action is not None:
            flag.action_taken = action.value
        if payload.admin_notes is not None:
            flag.admin_notes = sanitize_user_text(payload.admin_notes) or None
        flag.reviewed_by_id = admin.id
        flag.reviewed_by = admin
        flag.reviewed_at = utcnow()
        await db.flush()

        return self._to_response(flag)

    async def _delete_target(self, db: AsyncSession, flag: Flag) -> None:
        if flag.flagged_entry is not None and flag.flagged_entry.deleted_at is None:
            await entry_service.soft_delete_entry(db, flag.flagged_entry)
        elif flag.flagged_comment is not None and flag.flagged_comment.deleted_at is None:
            entry = await db.get(Entry, flag.flagged_comment.entry_id)
            await comment_service.soft_delete_comment(db, flag.flagged_comment, entry)

    @staticmethod
    def _target(flag: Flag) -> Tuple[str, Optional[int], str, Optional[str]]:
        """(type, author id, public id, preview) of the flagged content."""
        if flag.flagged_entry is not None:
            entry = flag.flagged_entry
            return "entry", entry.author_id, entry.public_id, entry.title
        comment = flag.flagged_comment
        if comment is not None:
            return "comment", comment.author_id, comment.public_id, comment.content[:PREVIEW_LENGTH]
        return "unknown", None, "", None

    def _to_response(self, flag: Flag) -> FlagResponse:
        target_type, _, target_id, preview = self._target(flag)
        return FlagResponse(
            id=flag.public_id,
            category=flag.category,
            description=flag.description,
            status=flag.status,
            reporter=UserSummary.from_user(flag.reporter),
            target_type=target_type,
            target_id=target_id,
            target_preview=preview,
            reviewed_by=UserSummary.from_user(flag.reviewed_by),
            reviewed_at=flag.reviewed_at,
            admin_notes=flag.admin_notes,
            action_taken=flag.action_taken,
            created_at=flag.created_at or utcnow(),
        )


# Singleton instance
flag_service = FlagService()
