"""
Heimursaga API — Notification Tests
=====================================

The NOTIFICATION_CREATE listener, the unread badge and mark-all-read,
against `sqlite_db`.
"""

import pytest
from sqlalchemy import select

from saga.models.enums import NotificationContext
from saga.models.notification import Message, Notification
from saga.models.user import User
from saga.services.notification_service import notification_service


def _user(username: str) -> User:
    return User(username=username, email=f"{username}@example.com", password="x")


@pytest.fixture
def users():
    return _user("ana"), _user("ben")


async def _seed(factory, *rows):
    async with factory() as db:
        async with db.begin():
            db.add_all(rows)


def _notification(public_id, user, is_read=False):
    return Notification(
        public_id=public_id, user_id=user.id, context=NotificationContext.LIKE.value, is_read=is_read
    )


class TestListener:
    async def test_listener_commits_in_own_session(self, sqlite_db, users):
        ana, ben = users
        await _seed(sqlite_db, ana, ben)

        await notification_service.handle_notification_create(
            {"user_id": ana.id, "context": "follow", "mention_user_id": ben.id}
        )

        async with sqlite_db() as db:
            stored = (await db.execute(select(Notification))).scalar_one()
            listed = await notification_service.list_notifications(db, ana)
        assert stored.context == "follow"
        assert listed.total == 1
        assert listed.results[0].mention_user.username == "ben"

    async def test_unknown_context_rejected(self, mock_db_session):
        with pytest.raises(ValueError, match="unknown notification context"):
            await notification_service.create(mock_db_session, {"user_id": 1, "context": "poke"})
        mock_db_session.add.assert_not_called()


class TestBadge:
    async def test_counts_unread_notifications_and_messages(self, sqlite_db, users):
        ana, ben = users
        await _seed(sqlite_db, ana, ben)
        await _seed(
            sqlite_db,
            _notification("n1", ana),
            _notification("n2", ana),
            _notification("n3", ana, is_read=True),
            _notification("n4", ben),
            Message(public_id="m1", sender_id=ben.id, recipient_id=ana.id, content="hi"),
            Message(public_id="m2", sender_id=ben.id, recipient_id=ana.id, content="read", is_read=True),
            Message(public_id="m3", sender_id=ana.id, recipient_id=ben.id, content="yo"),
        )

        async with sqlite_db() as db:
            badge = await notification_service.badge_count(db, ana)

        assert badge.notifications == 2
        assert badge.messages == 1

    async def test_mark_all_read_touches_only_own_unread(self, sqlite_db, users):
        ana, ben = users
        await _seed(sqlite_db, ana, ben)
        await _seed(
            sqlite_db,
            _notification("n1", ana),
            _notification("n2", ana),
            _notification("n3", ana, is_read=True),
            _notification("n4", ben),
        )

        async with sqlite_db() as db:
            async with db.begin():
                updated = await notification_service.mark_all_read(db, ana)

        async with sqlite_db() as db:
            badge_ana = await notification_service.badge_count(db, ana)
            badge_ben = await notification_service.badge_count(db, ben)
        assert updated == 2
        assert badge_ana.notifications == 0
        assert badge_ben.notifications == 1
