"""
Heimursaga API — Expedition Note Tests
========================================

Owner-only posting with a daily limit, sponsor-only reading and replying,
the public count and soft deletion. Runs against `sqlite_db`.
"""

from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from saga.config import settings
from saga.exceptions import BadRequestError, ForbiddenError, NotFoundError
from saga.models.enums import SponsorshipStatus, SponsorshipType
from saga.models.expedition import Expedition
from saga.models.sponsorship import Sponsorship
from saga.models.user import User
from saga.services.expedition_note_service import expedition_note_service


def _user(username: str) -> User:
    return User(username=username, email=f"{username}@example.com", password="x")


async def _load(db, *users):
    """The same explorers, bound to `db` as a request would see them."""
    return [await db.get(User, user.id) for user in users]


@pytest_asyncio.fixture
async def world(sqlite_db):
    """Owner `ana` with expedition `exp1`, sponsor `ben`, stranger `cy`."""
    owner, sponsor, stranger = _user("ana"), _user("ben"), _user("cy")
    async with sqlite_db() as db:
        async with db.begin():
            db.add_all([owner, sponsor, stranger])
        async with db.begin():
            db.add_all(
                [
                    Expedition(public_id="exp1", author_id=owner.id, title="Crossing", status="active"),
                    Sponsorship(
                        public_id="sp1", type=SponsorshipType.SUBSCRIPTION.value, amount=500,
                        user_id=sponsor.id, creator_id=owner.id, status=SponsorshipStatus.ACTIVE.value,
                        expiry=datetime.now(timezone.utc) + timedelta(days=20),
                    ),
                ]
            )
    return sqlite_db, owner, sponsor, stranger


class TestPosting:
    async def test_owner_posts_and_sponsor_reads(self, world):
        factory, owner, sponsor, _ = world
        async with factory() as db:
            owner, sponsor = await _load(db, owner, sponsor)
            created = await expedition_note_service.create(db, owner, "exp1", "Camp at <b>4000m</b>")
            await db.commit()

            notes = await expedition_note_service.list(db, sponsor, "exp1")

        assert [n.id for n in notes.results] == [created.id]
        assert notes.results[0].text == "Camp at 4000m"
        assert notes.results[0].expedition_status == "active"
        assert notes.daily_limit.used == 0

    async def test_only_owner_posts(self, world):
        factory, _, sponsor, _ = world
        async with factory() as db:
            [sponsor] = await _load(db, sponsor)
            with pytest.raises(ForbiddenError, match="owner"):
                await expedition_note_service.create(db, sponsor, "exp1", "hello")

    async def test_daily_limit(self, world, monkeypatch):
        monkeypatch.setattr(settings, "expedition_note_daily_limit", 1)
        factory, owner, _, _ = world
        async with factory() as db:
            [owner] = await _load(db, owner)
            await expedition_note_service.create(db, owner, "exp1", "first")
            with pytest.raises(BadRequestError, match="daily note limit"):
                await expedition_note_service.create(db, owner, "exp1", "second")

            notes = await expedition_note_service.list(db, owner, "exp1")
        assert notes.daily_limit.used == 1
        assert notes.daily_limit.max == 1

    async def test_limit_disabled(self, world, monkeypatch):
        monkeypatch.setattr(settings, "expedition_note_daily_limit", 0)
        factory, owner, _, _ = world
        async with factory() as db:
            [owner] = await _load(db, owner)
            for text in ("one", "two", "three"):
                await expedition_note_service.create(db, owner, "exp1", text)
            count = await expedition_note_service.count(db, "exp1")
        assert count.count == 3


class TestAccess:
    async def test_stranger_cannot_read(self, world):
        factory, _, _, stranger = world
        async with factory() as db:
            [stranger] = await _load(db, stranger)
            with pytest.raises(ForbiddenError):
                await expedition_note_service.list(db, stranger, "exp1")
            with pytest.raises(ForbiddenError):
                await expedition_note_service.list(db, None, "exp1")

    async def test_count_is_public(self, world):
        factory, owner, _, _ = world
        async with factory() as db:
            [owner] = await _load(db, owner)
            await expedition_note_service.create(db, owner, "exp1", "note")
            assert (await expedition_note_service.count(db, "exp1")).count == 1

    async def test_unknown_expedition(self, world):
        factory = world[0]
        async with factory() as db:
            with pytest.raises(NotFoundError):
                await expedition_note_service.count(db, "missing")


class TestReplies:
    async def test_sponsor_and_owner_reply(self, world):
        factory, owner, sponsor, _ = world
        async with factory() as db:
            owner, sponsor = await _load(db, owner, sponsor)
            note = await expedition_note_service.create(db, owner, "exp1", "Storm tonight")
            await expedition_note_service.reply(db, sponsor, "exp1", note.id, "Stay safe")
            await expedition_note_service.reply(db, owner, "exp1", note.id, "Thanks")

            notes = await expedition_note_service.list(db, owner, "exp1")

        replies = notes.results[0].replies
        assert [(r.author.username, r.is_explorer) for r in replies] == [("ben", False), ("ana", True)]

    async def test_stranger_cannot_reply(self, world):
        factory, owner, _, stranger = world
        async with factory() as db:
            owner, stranger = await _load(db, owner, stranger)
            note = await expedition_note_service.create(db, owner, "exp1", "note")
            with pytest.raises(ForbiddenError):
                await expedition_note_service.reply(db, stranger, "exp1", note.id, "hi")

    async def test_reply_to_missing_note(self, world):
        factory, _, sponsor, _ = world
        async with factory() as db:
            [sponsor] = await _load(db, sponsor)
            with pytest.raises(NotFoundError):
                await expedition_note_service.reply(db, sponsor, "exp1", 999, "hi")


class TestDelete:
    async def test_owner_deletes(self, world):
        factory, owner, sponsor, _ = world
        async with factory() as db:
            owner, sponsor = await _load(db, owner, sponsor)
            note = await expedition_note_service.create(db, owner, "exp1", "note")
            with pytest.raises(ForbiddenError):
                await expedition_note_service.delete(db, sponsor, "exp1", note.id)

            await expedition_note_service.delete(db, owner, "exp1", note.id)

            assert (await expedition_note_service.count(db, "exp1")).count == 0
            with pytest.raises(NotFoundError):
                await expedition_note_service.delete(db, owner, "exp1", note.id)
