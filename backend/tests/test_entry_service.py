"""
Heimursaga API — Entry Service Unit Tests
===========================================

What:  Publishing rules, visibility and sponsor-locked content, likes.
How:   Mocked AsyncSession with queued `execute()` results; reverse
       geocoding is patched out.
"""

from unittest.mock import AsyncMock, patch

import pytest

from conftest import db_result
from saga.exceptions import ForbiddenError, NotFoundError, ValidationError
from saga.models.entry import Entry, EntryLike
from saga.models.enums import UserRole, Visibility
from saga.schemas.entry import EntryCreateRequest, EntryUpdateRequest
from saga.services import entry_service as entry_module
from saga.services.entry_service import entry_service
from saga.services.event_service import Events


def _entry(author, **overrides):
    fields = dict(
        id=10,
        public_id="entry1",
        author_id=author.id,
        title="Crossing the pass",
        content="Snow to the knees.",
        place="Khunjerab",
        entry_type="standard",
        visibility=Visibility.PUBLIC.value,
        is_draft=False,
        comments_enabled=True,
        likes_count=0,
        bookmarks_count=0,
        comments_count=0,
        views_count=0,
    )
    fields.update(overrides)
    entry = Entry(**fields)
    entry.author = author
    return entry


@pytest.fixture
def created_events(clean_events):
    seen = []

    async def listener(data):
        seen.append(data)

    clean_events.on(Events.ENTRY_CREATED, listener)
    return seen


class TestCreate:
    async def test_publishes_and_emits(self, mock_db_session, make_user, clean_events, created_events):
        user = make_user("ana", entries_count=2)
        payload = EntryCreateRequest(
            title="Day <b>one</b>", content="Left at dawn.", place="Leh", lat=34.1, lon=77.5
        )
        with patch.object(entry_module, "get_country_code", AsyncMock(return_value="IN")):
            response = await entry_service.create(mock_db_session, user, payload)
        await clean_events.drain()

        assert response.title == "Day one"
        assert response.country_code == "IN"
        assert response.author.username == "ana"
        assert user.entries_count == 3
        assert created_events[0]["entry_id"] == response.id
        assert created_events[0]["creator_id"] == user.id

    async def test_published_entry_needs_required_fields(self, mock_db_session, make_user):
        with pytest.raises(ValidationError, match="place"):
            await entry_service.create(
                mock_db_session, make_user(), EntryCreateRequest(title="T", content="C")
            )

    async def test_draft_may_be_incomplete_and_is_silent(
        self, mock_db_session, make_user, clean_events, created_events
    ):
        response = await entry_service.create(
            mock_db_session, make_user(), EntryCreateRequest(title="Idea", is_draft=True)
        )
        await clean_events.drain()
        assert response.is_draft is True
        assert created_events == []

    async def test_sponsors_only_requires_pro(self, mock_db_session, make_user):
        payload = EntryCreateRequest(
            title="T", content="C", place="P", visibility=Visibility.SPONSORS_ONLY
        )
        with pytest.raises(ForbiddenError):
            await entry_service.create(mock_db_session, make_user(), payload)

    async def test_publishing_a_draft_emits(
        self, mock_db_session, make_user, clean_events, created_events
    ):
        author = make_user("ana")
        draft = _entry(author, is_draft=True)
        mock_db_session.execute.return_value = db_result(scalar=draft)

        await entry_service.update(mock_db_session, author, "entry1", EntryUpdateRequest(is_draft=False))
        await clean_events.drain()

        assert draft.is_draft is False
        assert len(created_events) == 1


class TestRead:
    async def test_draft_hidden_from_others(self, mock_db_session, make_user):
        mock_db_session.execute.return_value = db_result(scalar=_entry(make_user("ana"), is_draft=True))
        with pytest.raises(NotFoundError):
            await entry_service.get(mock_db_session, make_user("ben"), "entry1")

    async def test_private_visible_to_author(self, mock_db_session, make_user):
        author = make_user("ana")
        entry = _entry(author, visibility=Visibility.PRIVATE.value)
        mock_db_session.execute.side_effect = [db_result(scalar=entry), db_result(), db_result()]

        response = await entry_service.get(mock_db_session, author, "entry1")

        assert response.content == "Snow to the knees."
        assert entry.views_count == 0

    async def test_sponsors_only_locked_for_anonymous(self, mock_db_session, make_user):
        entry = _entry(make_user("ana", UserRole.CREATOR.value), visibility=Visibility.SPONSORS_ONLY.value)
        mock_db_session.execute.return_value = db_result(scalar=entry)

        response = await entry_service.get(mock_db_session, None, "entry1")

        assert response.locked is True
        assert response.content is None
        assert response.title == "Crossing the pass"
        assert entry.views_count == 1

    async def test_sponsors_only_unlocked_for_sponsor(self, mock_db_session, make_user):
        entry = _entry(make_user("ana", UserRole.CREATOR.value), visibility=Visibility.SPONSORS_ONLY.value)
        mock_db_session.execute.side_effect = [
            db_result(scalar=entry),
            db_result(scalar=5),
            db_result(),
            db_result(),
        ]

        response = await entry_service.get(mock_db_session, make_user("ben"), "entry1")

        assert response.locked is False
        assert response.content == "Snow to the knees."

    async def test_blocked_author_hidden(self, mock_db_session, make_user):
        entry = _entry(make_user("ana", blocked=True))
        mock_db_session.execute.return_value = db_result(scalar=entry)
        with pytest.raises(NotFoundError):
            await entry_service.get(mock_db_session, None, "entry1")


class TestLikes:
    async def test_like_notifies_author(self, mock_db_session, make_user, clean_events):
        notifications = []

        async def listener(data):
            notifications.append(data)

        clean_events.on(Events.NOTIFICATION_CREATE, listener)
        author = make_user("ana")
        entry = _entry(author)
        mock_db_session.execute.return_value = db_result(scalar=entry)

        response = await entry_service.like(mock_db_session, make_user("ben"), "entry1")
        await clean_events.drain()

        assert response.liked is True and response.likes_count == 1
        assert notifications[0]["context"] == "like"

    async def test_second_like_toggles_off(self, mock_db_session, make_user):
        user = make_user("ben")
        entry = _entry(make_user("ana"), likes_count=4)
        mock_db_session.execute.return_value = db_result(scalar=entry)
        mock_db_session.get.return_value = EntryLike(user_id=user.id, entry_id=entry.id)

        response = await entry_service.like(mock_db_session, user, "entry1")

        assert response.liked is False
        assert response.likes_count == 3
        mock_db_session.delete.assert_awaited_once()

    async def test_soft_delete_updates_counters(self, mock_db_session, make_user):
        author = make_user("ana", entries_count=3)
        entry = _entry(author)
        mock_db_session.get.return_value = author

        await entry_service.soft_delete_entry(mock_db_session, entry)

        assert entry.deleted_at is not None
        assert author.entries_count == 2
