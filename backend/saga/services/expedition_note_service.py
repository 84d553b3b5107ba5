"""
Heimursaga API — Expedition Note Service
==========================================

What:  Short field notes an explorer posts on an expedition, with replies.
How:   Only the expedition owner writes or deletes notes, at most
       `expedition_note_daily_limit` per expedition per UTC day. Reading
       and replying need the owner or an active sponsor of the owner.
       The note count is public so clients can show a locked teaser.
"""

import logging
from collections import defaultdict
from datetime import datetime, time, timezone
from typing import Dict, List, Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from saga.config import settings
from saga.database import utcnow
from saga.exceptions import BadRequestError, ForbiddenError, NotFoundError
from saga.lib.sanitizer import sanitize_user_text
from saga.models.expedition import Expedition, ExpeditionNote, ExpeditionNoteReply
from saga.models.user import User
from saga.schemas.common import CountResponse, UserSummary
from saga.schemas.expedition import (
    NoteCreatedResponse,
    NoteDailyLimit,
    NoteListResponse,
    NoteReplyResponse,
    NoteResponse,
)
from saga.services.entry_service import entry_service
from saga.services.expedition_service import expedition_service

logger = logging.getLogger(__name__)


class ExpeditionNoteService:
    async def _readable(self, db: AsyncSession, user: Optional[User], expedition_id: str) -> Expedition:
        expedition = await expedition_service.get_expedition(db, expedition_id)
        if user is None:
            raise ForbiddenError("expedition notes are for sponsors only")
        if user.id == expedition.author_id:
            return expedition
        if not await entry_service.has_active_sponsorship(db, user.id, expedition.author_id):
            raise ForbiddenError("expedition notes are for sponsors only")
        return expedition

    async def _get_note(self, db: AsyncSession, expedition: Expedition, note_id: int) -> ExpeditionNote:
        note = await db.get(ExpeditionNote, note_id)
        if note is None or note.expedition_id != expedition.id or note.deleted_at is not None:
            raise NotFoundError("note", str(note_id))
        return note

    async def _used_today(self, db: AsyncSession, expedition: Expedition) -> int:
        day_start = datetime.combine(utcnow().date(), time.min, tzinfo=timezone.utc)
        result = await db.execute(
            select(func.count(ExpeditionNote.id)).where(
                ExpeditionNote.expedition_id == expedition.id,
                ExpeditionNote.created_at >= day_start,
                ExpeditionNote.deleted_at.is_(None),
            )
        )
        return result.scalar_one()

    async def count(self, db: AsyncSession, expedition_id: str) -> CountResponse:
        expedition = await expedition_service.get_expedition(db, expedition_id)
        result = await db.execute(
            select(func.count(ExpeditionNote.id)).where(
                ExpeditionNote.expedition_id == expedition.id,
                ExpeditionNote.deleted_at.is_(None),
            )
        )
        return CountResponse(count=result.scalar_one())

    async def list(self, db: AsyncSession, user: Optional[User], expedition_id: str) -> NoteListResponse:
        expedition = await self._readable(db, user, expedition_id)
        notes = list(
            (
                await db.execute(
                    select(ExpeditionNote)
                    .where(
                        ExpeditionNote.expedition_id == expedition.id,
                        ExpeditionNote.deleted_at.is_(None),
                    )
                    .order_by(ExpeditionNote.created_at.desc(), ExpeditionNote.id.desc())
                )
            ).scalars().all()
        )

        replies: Dict[int, List[ExpeditionNoteReply]] = defaultdict(list)
        if notes:
            result = await db.execute(
                select(ExpeditionNoteReply)
                .where(
                    ExpeditionNoteReply.note_id.in_([n.id for n in notes]),
                    ExpeditionNoteReply.deleted_at.is_(None),
                )
                .order_by(ExpeditionNoteReply.created_at, ExpeditionNoteReply.id)
            )
            for reply in result.scalars().all():
                replies[reply.note_id].append(reply)

        used = await self._used_today(db, expedition) if user.id == expedition.author_id else 0
        return NoteListResponse(
            results=[
                NoteResponse(
                    id=note.id,
                    text=note.text,
                    expedition_status=expedition.status,
                    created_at=note.created_at or utcnow(),
                    replies=[
                        NoteReplyResponse(
                            id=reply.id,
                            note_id=note.id,
                            author=UserSummary.from_user(reply.author),
                            is_explorer=reply.author_id == expedition.author_id,
                            text=reply.text,
                            created_at=reply.created_at or utcnow(),
                        )
                        for reply in replies[note.id]
                    ],
                )
                for note in notes
            ],
            daily_limit=NoteDailyLimit(used=used, max=settings.expedition_note_daily_limit),
        )

    async def create(self, db: AsyncSession, user: User, expedition_id: str, text: str) -> NoteCreatedResponse:
        expedition = await expedition_service.get_expedition(db, expedition_id)
        if expedition.author_id != user.id:
            raise ForbiddenError("only the expedition owner can post notes")

        limit = settings.expedition_note_daily_limit
        if limit and await self._used_today(db, expedition) >= limit:
            raise BadRequestError("daily note limit reached")

        clean = sanitize_user_text(text)
        if not clean:
            raise BadRequestError("text is required")
        note = ExpeditionNote(expedition_id=expedition.id, author_id=user.id, text=clean)
        db.add(note)
        await db.flush()
        logger.info("Note %s posted on expedition %s", note.id, expedition.public_id)
        return NoteCreatedResponse(id=note.id)

    async def reply(
        self, db: AsyncSession, user: User, expedition_id: str, note_id: int, text: str
    ) -> NoteCreatedResponse:
        expedition = await self._readable(db, user, expedition_id)
        note = await self._get_note(db, expedition, note_id)

        clean = sanitize_user_text(text)
        if not clean:
            raise BadRequestError("text is required")
        reply = ExpeditionNoteReply(note_id=note.id, author_id=user.id, text=clean)
        reply.author = user
        db.add(reply)
        await db.flush()
        return NoteCreatedResponse(id=reply.id)

    async def delete(self, db: AsyncSession, user: User, expedition_id: str, note_id: int) -> None:
        expedition = await expedition_service.get_expedition(db, expedition_id)
        if expedition.author_id != user.id:
            raise ForbiddenError("only the expedition owner can delete notes")
        note = await self._get_note(db, expedition, note_id)
        note.soft_delete()
        await db.flush()
        logger.info("Note %s deleted from expedition %s", note.id, expedition.public_id)


# Singleton instance
expedition_note_service = ExpeditionNoteService()
