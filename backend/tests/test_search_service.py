"""
Heimursaga API — Search & Map Tests
=====================================

Query length and result caps, LIKE escaping, bounding-box validation and
the per-explorer map. Queries run against `sqlite_db`.
"""

import pytest

from saga.exceptions import NotFoundError, ValidationError
from saga.models.entry import Entry
from saga.models.enums import Visibility
from saga.models.expedition import Expedition, Waypoint
from saga.models.user import User
from saga.services.search_service import SEARCH_LIMIT, search_service


def _user(username: str, **fields) -> User:
    return User(username=username, email=f"{username}@example.com", password="x", **fields)


async def _seed(factory, *rows):
    async with factory() as db:
        async with db.begin():
            db.add_all(rows)


class TestSearch:
    @pytest.mark.parametrize("q", ["", " ", "a", " b "])
    async def test_short_query_skips_database(self, mock_db_session, q):
        response = await search_service.search(mock_db_session, q)
        assert response.explorers == [] and response.entries == []
        mock_db_session.execute.assert_not_awaited()

    async def test_results_are_capped(self, sqlite_db):
        await _seed(sqlite_db, *[_user(f"trekker{i}", followers_count=i) for i in range(SEARCH_LIMIT + 2)])

        async with sqlite_db() as db:
            response = await search_service.search(db, "TREK")

        assert len(response.explorers) == SEARCH_LIMIT
        # Most followed first
        assert response.explorers[0].username == f"trekker{SEARCH_LIMIT + 1}"

    async def test_entries_public_and_published_only(self, sqlite_db):
        author, blocked = _user("ana"), _user("mal", blocked=True)
        await _seed(sqlite_db, author, blocked)
        await _seed(
            sqlite_db,
            Entry(public_id="e1", author_id=author.id, title="Andes crossing"),
            Entry(public_id="e2", author_id=author.id, title="Andes draft", is_draft=True),
            Entry(public_id="e3", author_id=author.id, title="Andes secret", visibility=Visibility.PRIVATE.value),
            Entry(public_id="e4", author_id=blocked.id, title="Andes spam"),
            Entry(public_id="e5", author_id=author.id, title="Lima", place="Andes foothills"),
        )

        async with sqlite_db() as db:
            response = await search_service.search(db, "andes")

        assert [e.id for e in response.entries] == ["e5", "e1"]

    async def test_like_wildcards_are_literal(self, sqlite_db):
        await _seed(sqlite_db, _user("ana"), _user("a_b"))
        async with sqlite_db() as db:
            response = await search_service.search(db, "a_")
        assert [u.username for u in response.explorers] == ["a_b"]


class TestMap:
    @pytest.mark.parametrize(
        "bounds",
        [(10.0, 0.0, 5.0, 20.0), (0.0, 30.0, 10.0, 20.0)],
    )
    async def test_inverted_bounds_rejected(self, mock_db_session, bounds):
        with pytest.raises(ValidationError):
            await search_service.map_query(mock_db_session, *bounds)
        mock_db_session.execute.assert_not_awaited()

    async def test_point_box_is_accepted(self, mock_db_session):
        response = await search_service.map_query(mock_db_session, 1.0, 2.0, 1.0, 2.0)
        assert response.entries == [] and response.waypoints == []

    async def test_bounding_box(self, sqlite_db):
        author = _user("ana")
        await _seed(sqlite_db, author)
        await _seed(
            sqlite_db,
            Entry(public_id="in", author_id=author.id, title="Inside", lat=5.0, lon=5.0),
            Entry(public_id="out", author_id=author.id, title="Outside", lat=50.0, lon=5.0),
        )
        async with sqlite_db() as db:
            response = await search_service.map_query(db, 0.0, 0.0, 10.0, 10.0)
        assert [e.id for e in response.entries] == ["in"]
        assert response.entries[0].author == "ana"


class TestExplorerMap:
    async def _world(self, factory):
        author, viewer = _user("ana"), _user("ben")
        await _seed(factory, author, viewer)
        public = Expedition(public_id="x1", author_id=author.id, title="Open")
        hidden = Expedition(public_id="x2", author_id=author.id, title="Hidden", visibility=Visibility.PRIVATE.value)
        await _seed(
            factory,
            public,
            hidden,
            Entry(public_id="e1", author_id=author.id, lat=1.0, lon=1.0),
            Entry(public_id="e2", author_id=author.id, lat=2.0, lon=2.0, visibility=Visibility.SPONSORS_ONLY.value),
            Entry(public_id="e3", author_id=author.id, lat=3.0, lon=3.0, visibility=Visibility.PRIVATE.value),
            Entry(public_id="e4", author_id=author.id, lat=4.0, lon=4.0, is_draft=True),
            Entry(public_id="e5", author_id=author.id),
        )
        await _seed(
            factory,
            Waypoint(expedition_id=public.id, lat=1.5, lon=1.5, sequence=0),
            Waypoint(expedition_id=hidden.id, lat=9.0, lon=9.0, sequence=0),
        )
        return author, viewer

    async def test_visitor_sees_public_and_sponsors_only(self, sqlite_db):
        _, viewer = await self._world(sqlite_db)
        async with sqlite_db() as db:
            response = await search_service.explorer_map(db, "ANA", viewer)
        assert sorted(e.id for e in response.entries) == ["e1", "e2"]
        assert [w.expedition_id for w in response.waypoints] == ["x1"]

    async def test_explorer_sees_private_too(self, sqlite_db):
        author, _ = await self._world(sqlite_db)
        async with sqlite_db() as db:
            response = await search_service.explorer_map(db, "ana", author)
        assert sorted(e.id for e in response.entries) == ["e1", "e2", "e3"]
        assert sorted(w.expedition_id for w in response.waypoints) == ["x1", "x2"]

    async def test_unknown_explorer(self, sqlite_db):
        async with sqlite_db() as db:
            with pytest.raises(NotFoundError):
                await search_service.explorer_map(db, "nobody")
