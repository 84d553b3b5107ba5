"""
Heimursaga API — Direct Message Service
=========================================

Messaging is an Explorer Pro feature on both ends of a conversation.
"""

import logging
from typing import Dict, List

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from saga.database import utcnow
from saga.exceptions import BadRequestError, ForbiddenError, NotFoundError
from saga.lib.ids import public_id
from saga.lib.sanitizer import sanitize_user_content
from saga.models.notification import Message
from saga.models.user import User
from saga.schemas.common import CountResponse, UserSummary
from saga.schemas.message import (
    ConversationListResponse,
    ConversationResponse,
    MessageListResponse,
    MessageResponse,
)

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 2000
# Messages scanned when building the conversation list
CONVERSATION_SCAN_LIMIT = 1000


class MessageService:
    @staticmethod
    def _require_pro(user: User) -> None:
        if not user.is_pro:
            raise ForbiddenError("Messaging is only available to Explorer Pro members")

    async def _get_recipient(self, db: AsyncSession, username: str) -> User:
        result = await db.execute(
            select(User).where(
                User.username == (username or "").strip().lower(),
                User.deleted_at.is_(None),
                User.blocked.is_(False),
            )
        )
        recipient = result.scalar_one_or_none()
        if recipient is None or not recipient.is_pro:
            raise NotFoundError("recipient", username)
        return recipient

    async def send(self, db: AsyncSession, user: User, username: str, content: str) -> MessageResponse:
        self._require_pro(user)
        recipient = await self._get_recipient(db, username)
        if recipient.id == user.id:
            raise BadRequestError("you cannot message yourself")

        text = sanitize_user_content(content)
        if not text:
            raise BadRequestError("message cannot be empty")
        if len(text) > MAX_MESSAGE_LENGTH:
            raise BadRequestError(f"message cannot exceed {MAX_MESSAGE_LENGTH} characters")

        message = Message(
            public_id=public_id(),
            sender_id=user.id,
            recipient_id=recipient.id,
            content=text,
        )
        message.sender = user
        message.recipient = recipient
        db.add(message)
        await db.flush()
        logger.debug("Message %s sent from %s to %s", message.public_id, user.id, recipient.id)
        return self._to_response(message)

    async def conversation(self, db: AsyncSession, user: User, username: str) -> MessageListResponse:
        self._require_pro(user)
        partner = await self._get_recipient(db, username)
        result = await db.execute(
            select(Message)
            .where(
                or_(
                    and_(Message.sender_id == user.id, Message.recipient_id == partner.id),
                    and_(Message.sender_id == partner.id, Message.recipient_id == user.id),
                )
            )
            .order_by(Message.created_at.asc(), Message.id.asc())
        )
        messages = list(result.scalars().all())

        now = utcnow()
        for message in messages:
            if message.recipient_id == user.id and not message.is_read:
                message.is_read = True
                message.read_at = now
        await db.flush()
        return MessageListResponse(results=[self._to_response(m) for m in messages])

    async def conversations(self, db: AsyncSession, user: User) -> ConversationListResponse:
        self._require_pro(user)
        result = await db.execute(
            select(Message)
            .where(or_(Message.sender_id == user.id, Message.recipient_id == user.id))
            .order_by(Message.created_at.desc(), Message.id.desc())
            .limit(CONVERSATION_SCAN_LIMIT)
        )

        latest: Dict[int, Message] = {}
        unread: Dict[int, int] = {}
        order: List[int] = []
        for message in result.scalars().all():
            partner_id = message.recipient_id if message.sender_id == user.id else message.sender_id
            if partner_id not in latest:
                latest[partner_id] = message
                order.append(partner_id)
            if message.recipient_id == user.id and not message.is_read:
                unread[partner_id] = unread.get(partner_id, 0) + 1

        results = []
        for partner_id in order:
            message = latest[partner_id]
            partner = message.recipient if message.sender_id == user.id else message.sender
            results.append(
                ConversationResponse(
                    partner=UserSummary.from_user(partner),
                    last_message=self._to_response(message),
                    unread_count=unread.get(partner_id, 0),
                )
            )
        return ConversationListResponse(results=results)

    async def mark_read(self, db: AsyncSession, user: User, message_id: str) -> MessageResponse:
        message = (
            await db.execute(select(Message).where(Message.public_id == message_id))
        ).scalar_one_or_none()
        if message is None or message.recipient_id != user.id:
            raise NotFoundError("message", message_id)
        if not message.is_read:
            message.is_read = True
            message.read_at = utcnow()
            await db.flush()
        return self._to_response(message)

    async def unread_count(self, db: AsyncSession, user: User) -> CountResponse:
        count = (
            await db.execute(
                select(func.count(Message.id)).where(
                    Message.recipient_id == user.id, Message.is_read.is_(False)
                )
            )
        ).scalar_one()
        return CountResponse(count=count)

    async def mark_all_read(self, db: AsyncSession, user: User) -> None:
        await db.execute(
            update(Message)
            .where(Message.recipient_id == user.id, Message.is_read.is_(False))
            .values(is_read=True, read_at=utcnow())
        )

    @staticmethod
    def _to_response(message: Message) -> MessageResponse:
        return MessageResponse(
            id=message.public_id,
            sender=UserSummary.from_user(message.sender),
            recipient=UserSummary.from_user(message.recipient),
            content=message.content,
            is_read=bool(message.is_read),
            read_at=message.read_at,
            created_at=message.created_at or utcnow(),
        )


# Singleton instance
message_service = MessageService()
