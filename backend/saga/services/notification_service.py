"""
Heimursaga API — Notification Service
=======================================

Notifications are created asynchronously by the NOTIFICATION_CREATE
listener (own session, own commit) and read through the user routes.
"""

import logging
from typing import Any, Dict

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from saga.database import async_session_factory
from saga.lib.ids import public_id
from saga.lib.money import integer_to_decimal
from saga.models.enums import NotificationContext
from saga.models.notification import Message, Notification
from saga.models.user import User
from saga.schemas.common import UserSummary
from saga.schemas.notification import (
    BadgeCountResponse,
    NotificationListResponse,
    NotificationResponse,
)

logger = logging.getLogger(__name__)

_CREATE_FIELDS = (
    "user_id",
    "context",
    "mention_user_id",
    "mention_entry_id",
    "body",
    "sponsorship_type",
    "sponsorship_amount",
    "sponsorship_currency",
)


class NotificationService:
    async def create(self, db: AsyncSession, data: Dict[str, Any]) -> Notification:
        context = data.get("context")
        if context not in {c.value for c in NotificationContext}:
            raise ValueError(f"unknown notification context: {context}")

        notification = Notification(
            public_id=public_id(),
            **{field: data.get(field) for field in _CREATE_FIELDS},
        )
        db.add(notification)
        await db.flush()
        return notification

    async def handle_notification_create(self, data: Dict[str, Any]) -> None:
        """NOTIFICATION_CREATE listener."""
        async with async_session_factory() as db:
            async with db.begin():
                await self.create(db, data)
        logger.debug("Notification %s created for user %s", data.get("context"), data.get("user_id"))

    async def list_notifications(
        self, db: AsyncSession, user: User, page: int = 1, limit: int = 20
    ) -> NotificationListResponse:
        base = select(Notification).where(Notification.user_id == user.id)
        total = (
            await db.execute(select(func.count()).select_from(base.subquery()))
        ).scalar_one()
        result = await db.execute(
            base.order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return NotificationListResponse(
            results=[self._to_response(n) for n in result.scalars().all()],
            page=page,
            limit=limit,
            total=total,
        )

    async def badge_count(self, db: AsyncSession, user: User) -> BadgeCountResponse:
        notifications = (
            await db.execute(
                select(func.count(Notification.id)).where(
                    Notification.user_id == user.id, Notification.is_read.is_(False)
                )
            )
        ).scalar_one()
        messages = (
            await db.execute(
                select(func.count(Message.id)).where(
                    Message.recipient_id == user.id, Message.is_read.is_(False)
                )
            )
        ).scalar_one()
        return BadgeCountResponse(notifications=notifications, messages=messages)

    async def mark_all_read(self, db: AsyncSession, user: User) -> int:
        result = await db.execute(
            update(Notification)
            .where(Notification.user_id == user.id, Notification.is_read.is_(False))
            .values(is_read=True)
        )
        return result.rowcount or 0

    @staticmethod
    def _to_response(notification: Notification) -> NotificationResponse:
        amount = notification.sponsorship_amount
        return NotificationResponse(
            id=notification.public_id,
            context=notification.context,
            body=notification.body,
            mention_user=UserSummary.from_user(notification.mention_user),
            mention_entry_id=notification.mention_entry.public_id if notification.mention_entry else None,
            sponsorship_type=notification.sponsorship_type,
            sponsorship_amount=integer_to_decimal(amount) if amount is not None else None,
            sponsorship_currency=notification.sponsorship_currency,
            is_read=notification.is_read,
            created_at=notification.created_at,
        )


# Singleton instance
notification_service = NotificationService()
