"""
Heimursaga API — Expedition Service Unit Tests
================================================

Resting transitions drive sponsor billing, so they are tested directly.
"""

from datetime import datetime, timezone

import pytest

from conftest import db_result
from saga.exceptions import BadRequestError, NotFoundError
from saga.models.enums import ExpeditionStatus, Visibility
from saga.models.expedition import Expedition
from saga.schemas.expedition import ExpeditionCreateRequest
from saga.services.event_service import Events
from saga.services.expedition_service import expedition_service


class TestResting:
    async def test_no_live_expeditions_starts_resting(self, mock_db_session, make_user):
        user = make_user("ana", resting_since=None)
        mock_db_session.execute.return_value = db_result(scalar=0)

        await expedition_service.recompute_resting(mock_db_session, user)

        assert user.resting_since is not None

    async def test_live_expedition_exits_resting(self, mock_db_session, make_user, clean_events):
        exited = []

        async def listener(data):
            exited.append(data)

        clean_events.on(Events.EXPLORER_EXITED_RESTING, listener)
        user = make_user("ana", resting_since=datetime(2026, 1, 1, tzinfo=timezone.utc))
        mock_db_session.execute.return_value = db_result(scalar=1)

        await expedition_service.recompute_resting(mock_db_session, user)
        await clean_events.drain()

        assert user.resting_since is None
        assert exited == [{"explorer_id": user.id}]

    async def test_still_resting_keeps_timestamp(self, mock_db_session, make_user):
        since = datetime(2026, 1, 1, tzinfo=timezone.utc)
        user = make_user("ana", resting_since=since)
        mock_db_session.execute.return_value = db_result(scalar=0)

        await expedition_service.recompute_resting(mock_db_session, user)

        assert user.resting_since == since
        mock_db_session.flush.assert_not_awaited()


class TestCrud:
    async def test_blank_title_rejected(self, mock_db_session, make_user):
        payload = ExpeditionCreateRequest(title="<b></b>")
        with pytest.raises(BadRequestError, match="title"):
            await expedition_service.create(mock_db_session, make_user(), payload)

    async def test_private_expedition_hidden(self, mock_db_session, make_user):
        author = make_user("ana")
        expedition = Expedition(
            id=1,
            public_id="exp1",
            author_id=author.id,
            title="Silk Road",
            status=ExpeditionStatus.ACTIVE.value,
            visibility=Visibility.PRIVATE.value,
        )
        expedition.author = author
        mock_db_session.execute.return_value = db_result(scalar=expedition)
        with pytest.raises(NotFoundError):
            await expedition_service.get(mock_db_session, make_user("ben"), "exp1")
