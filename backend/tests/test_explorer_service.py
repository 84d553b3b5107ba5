"""
Heimursaga API — Explorer Service Unit Tests
==============================================

Follow graph counters and profile lookups.
"""

import pytest

from conftest import db_result
from saga.exceptions import BadRequestError, NotFoundError
from saga.models.user import UserFollow
from saga.services.event_service import Events
from saga.services.explorer_service import explorer_service


class TestLookup:
    async def test_unknown_explorer(self, mock_db_session):
        with pytest.raises(NotFoundError, match="explorer not found"):
            await explorer_service.get_user_by_username(mock_db_session, "ghost")

    async def test_profile_flags_for_viewer(self, mock_db_session, make_user):
        ana, ben = make_user("ana"), make_user("ben")
        mock_db_session.execute.side_effect = [
            db_result(scalar=ana),
            db_result(scalars=[ana.id]),
            db_result(scalars=[]),
        ]
        response = await explorer_service.get_by_username(mock_db_session, "ANA", viewer=ben)
        assert response.username == "ana"
        assert response.followed is True
        assert response.bookmarked is False


class TestFollow:
    async def test_follow_updates_counters_and_notifies(self, mock_db_session, make_user, clean_events):
        notifications = []

        async def listener(data):
            notifications.append(data)

        clean_events.on(Events.NOTIFICATION_CREATE, listener)
        viewer, followee = make_user("ben"), make_user("ana")
        mock_db_session.execute.return_value = db_result(scalar=followee)

        await explorer_service.follow(mock_db_session, viewer, "ana")
        await clean_events.drain()

        assert viewer.following_count == 1
        assert followee.followers_count == 1
        assert isinstance(mock_db_session.add.call_args.args[0], UserFollow)
        assert notifications == [{"user_id": followee.id, "context": "follow", "mention_user_id": viewer.id}]

    async def test_cannot_follow_yourself(self, mock_db_session, make_user):
        ana = make_user("ana")
        mock_db_session.execute.return_value = db_result(scalar=ana)
        with pytest.raises(BadRequestError, match="yourself"):
            await explorer_service.follow(mock_db_session, ana, "ana")

    async def test_already_followed(self, mock_db_session, make_user):
        viewer, followee = make_user("ben"), make_user("ana")
        mock_db_session.execute.return_value = db_result(scalar=followee)
        mock_db_session.get.return_value = UserFollow(follower_id=viewer.id, followee_id=followee.id)
        with pytest.raises(BadRequestError, match="already followed"):
            await explorer_service.follow(mock_db_session, viewer, "ana")

    async def test_unfollow_never_goes_negative(self, mock_db_session, make_user):
        viewer, followee = make_user("ben"), make_user("ana")
        mock_db_session.execute.return_value = db_result(scalar=followee)
        mock_db_session.get.return_value = UserFollow(follower_id=viewer.id, followee_id=followee.id)

        await explorer_service.unfollow(mock_db_session, viewer, "ana")

        assert viewer.following_count == 0
        assert followee.followers_count == 0
        mock_db_session.delete.assert_awaited_once()

    async def test_unfollow_when_not_following(self, mock_db_session, make_user):
        mock_db_session.execute.return_value = db_result(scalar=make_user("ana"))
        with pytest.raises(BadRequestError, match="not followed"):
            await explorer_service.unfollow(mock_db_session, make_user("ben"), "ana")

    async def test_bookmark_toggle(self, mock_db_session, make_user):
        mock_db_session.execute.return_value = db_result(scalar=make_user("ana"))
        response = await explorer_service.bookmark_explorer(mock_db_session, make_user("ben"), "ana")
        assert response.bookmarked is True
