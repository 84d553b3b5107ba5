"""
Heimursaga API — Bookmark Listing Tests
=========================================

The "my bookmarks" listings for entries, expeditions and explorers,
against `sqlite_db`.
"""

from datetime import datetime, timedelta, timezone

from saga.models.entry import Entry, EntryBookmark
from saga.models.enums import Visibility
from saga.models.expedition import Expedition, ExpeditionBookmark
from saga.models.user import ExplorerBookmark, User
from saga.services.entry_service import entry_service
from saga.services.expedition_service import expedition_service
from saga.services.explorer_service import explorer_service


def _user(username: str, **fields) -> User:
    return User(username=username, email=f"{username}@example.com", password="x", **fields)


async def _seed(factory, *rows):
    async with factory() as db:
        async with db.begin():
            db.add_all(rows)


class TestEntryBookmarks:
    async def test_hides_private_drafts_and_deleted(self, sqlite_db):
        ana, ben = _user("ana"), _user("ben")
        await _seed(sqlite_db, ana, ben)
        entries = [
            Entry(public_id="e1", author_id=ana.id, title="Open"),
            Entry(public_id="e2", author_id=ana.id, title="Secret", visibility=Visibility.PRIVATE.value),
            Entry(public_id="e3", author_id=ana.id, title="Draft", is_draft=True),
            Entry(public_id="e4", author_id=ana.id, title="Gone", deleted_at=datetime.now(timezone.utc)),
            Entry(public_id="e5", author_id=ben.id, title="Mine", visibility=Visibility.PRIVATE.value),
            Entry(public_id="e6", author_id=ana.id, title="Not saved"),
        ]
        await _seed(sqlite_db, *entries)
        await _seed(sqlite_db, *[EntryBookmark(user_id=ben.id, entry_id=e.id) for e in entries[:5]])

        async with sqlite_db() as db:
            listing = await entry_service.bookmarked(db, await db.get(User, ben.id))

        assert [e.id for e in listing.results] == ["e5", "e1"]
        assert all(e.bookmarked for e in listing.results)

    async def test_pages_by_cursor(self, sqlite_db):
        ana = _user("ana")
        await _seed(sqlite_db, ana)
        entries = [Entry(public_id=f"e{i}", author_id=ana.id, title=f"Day {i}") for i in range(3)]
        await _seed(sqlite_db, *entries)
        await _seed(sqlite_db, *[EntryBookmark(user_id=ana.id, entry_id=e.id) for e in entries])

        async with sqlite_db() as db:
            reader = await db.get(User, ana.id)
            first = await entry_service.bookmarked(db, reader, limit=2)
            rest = await entry_service.bookmarked(db, reader, cursor=first.next_cursor, limit=2)

        assert [e.id for e in first.results] == ["e2", "e1"]
        assert first.has_more is True
        assert [e.id for e in rest.results] == ["e0"]
        assert rest.has_more is False


class TestExpeditionBookmarks:
    async def test_latest_bookmark_first(self, sqlite_db):
        ana, ben = _user("ana"), _user("ben")
        await _seed(sqlite_db, ana, ben)
        older = Expedition(public_id="x1", author_id=ana.id, title="Andes")
        newer = Expedition(public_id="x2", author_id=ana.id, title="Alps")
        hidden = Expedition(public_id="x3", author_id=ana.id, title="Hidden", visibility=Visibility.PRIVATE.value)
        await _seed(sqlite_db, older, newer, hidden)
        now = datetime.now(timezone.utc)
        await _seed(
            sqlite_db,
            ExpeditionBookmark(user_id=ben.id, expedition_id=older.id, created_at=now - timedelta(days=2)),
            ExpeditionBookmark(user_id=ben.id, expedition_id=newer.id, created_at=now - timedelta(days=1)),
            ExpeditionBookmark(user_id=ben.id, expedition_id=hidden.id, created_at=now),
        )

        async with sqlite_db() as db:
            listing = await expedition_service.bookmarked(db, await db.get(User, ben.id))

        assert [x.id for x in listing.results] == ["x2", "x1"]


class TestExplorerBookmarks:
    async def test_skips_blocked_explorers(self, sqlite_db):
        ana, ben, mal = _user("ana"), _user("ben"), _user("mal", blocked=True)
        await _seed(sqlite_db, ana, ben, mal)
        now = datetime.now(timezone.utc)
        await _seed(
            sqlite_db,
            ExplorerBookmark(user_id=ana.id, explorer_id=ben.id, created_at=now - timedelta(hours=1)),
            ExplorerBookmark(user_id=ana.id, explorer_id=mal.id, created_at=now),
        )

        async with sqlite_db() as db:
            listing = await explorer_service.bookmarked(db, await db.get(User, ana.id))

        assert [e.username for e in listing.results] == ["ben"]
        assert listing.results[0].bookmarked is True
        assert listing.has_more is False
