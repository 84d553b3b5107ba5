"""
Heimursaga API — Message Service Unit Tests
=============================================

Direct messages are Explorer Pro only, on both ends.
"""

import pytest

from conftest import db_result
from saga.exceptions import BadRequestError, ForbiddenError, NotFoundError
from saga.models.enums import UserRole
from saga.models.notification import Message
from saga.services.message_service import MAX_MESSAGE_LENGTH, message_service

PRO = UserRole.CREATOR.value


class TestSend:
    async def test_sends_sanitized_message(self, mock_db_session, make_user):
        sender = make_user("ana", PRO)
        recipient = make_user("ben", PRO)
        mock_db_session.execute.return_value = db_result(scalar=recipient)

        response = await message_service.send(mock_db_session, sender, "Ben", "<b>hello</b>   there")

        assert response.content == "hello there"
        assert response.sender.username == "ana"
        assert response.recipient.username == "ben"
        assert response.is_read is False
        stored = mock_db_session.add.call_args.args[0]
        assert isinstance(stored, Message)
        assert stored.recipient_id == recipient.id

    async def test_non_pro_sender_forbidden(self, mock_db_session, make_user):
        with pytest.raises(ForbiddenError, match="Explorer Pro"):
            await message_service.send(mock_db_session, make_user("ana"), "ben", "hi")
        mock_db_session.execute.assert_not_awaited()

    async def test_non_pro_recipient_not_found(self, mock_db_session, make_user):
        mock_db_session.execute.return_value = db_result(scalar=make_user("ben"))
        with pytest.raises(NotFoundError):
            await message_service.send(mock_db_session, make_user("ana", PRO), "ben", "hi")

    async def test_cannot_message_yourself(self, mock_db_session, make_user):
        ana = make_user("ana", PRO)
        mock_db_session.execute.return_value = db_result(scalar=ana)
        with pytest.raises(BadRequestError, match="yourself"):
            await message_service.send(mock_db_session, ana, "ana", "hi")

    async def test_empty_after_sanitizing(self, mock_db_session, make_user):
        mock_db_session.execute.return_value = db_result(scalar=make_user("ben", PRO))
        with pytest.raises(BadRequestError, match="empty"):
            await message_service.send(mock_db_session, make_user("ana", PRO), "ben", "<p>  </p>")

    async def test_too_long(self, mock_db_session, make_user):
        mock_db_session.execute.return_value = db_result(scalar=make_user("ben", PRO))
        with pytest.raises(BadRequestError):
            await message_service.send(
                mock_db_session, make_user("ana", PRO), "ben", "x" * (MAX_MESSAGE_LENGTH + 1)
            )


class TestReading:
    def _message(self, sender, recipient, public_id="msg1", is_read=False):
        message = Message(
            public_id=public_id,
            sender_id=sender.id,
            recipient_id=recipient.id,
            content="hi",
            is_read=is_read,
        )
        message.sender = sender
        message.recipient = recipient
        return message

    async def test_conversation_marks_incoming_read(self, mock_db_session, make_user):
        ana, ben = make_user("ana", PRO), make_user("ben", PRO)
        incoming = self._message(ben, ana, "m1")
        outgoing = self._message(ana, ben, "m2")
        mock_db_session.execute.side_effect = [
            db_result(scalar=ben),
            db_result(scalars=[incoming, outgoing]),
        ]

        response = await message_service.conversation(mock_db_session, ana, "ben")

        assert [m.id for m in response.results] == ["m1", "m2"]
        assert incoming.is_read is True and incoming.read_at is not None
        assert outgoing.is_read is False

    async def test_conversations_group_by_partner(self, mock_db_session, make_user):
        ana, ben, cy = make_user("ana", PRO), make_user("ben", PRO), make_user("cy", PRO)
        mock_db_session.execute.return_value = db_result(
            scalars=[
                self._message(ben, ana, "m3"),
                self._message(cy, ana, "m2", is_read=True),
                self._message(ben, ana, "m1"),
            ]
        )

        response = await message_service.conversations(mock_db_session, ana)

        assert [c.partner.username for c in response.results] == ["ben", "cy"]
        assert response.results[0].last_message.id == "m3"
        assert response.results[0].unread_count == 2
        assert response.results[1].unread_count == 0

    async def test_mark_read_requires_recipient(self, mock_db_session, make_user):
        ana, ben = make_user("ana", PRO), make_user("ben", PRO)
        mock_db_session.execute.return_value = db_result(scalar=self._message(ana, ben))
        with pytest.raises(NotFoundError):
            await message_service.mark_read(mock_db_session, ana, "msg1")

    async def test_unread_count(self, mock_db_session, make_user):
        mock_db_session.execute.return_value = db_result(scalar=4)
        response = await message_service.unread_count(mock_db_session, make_user("ana", PRO))
        assert response.count == 4
