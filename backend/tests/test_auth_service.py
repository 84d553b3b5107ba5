"""
Heimursaga API — Auth Service Unit Tests
==========================================

What:  Signup conflicts, password login, JWT issue/decode, password reset
       and email verification.
How:   Mocked AsyncSession; emails are observed through the event bus.
"""

from datetime import datetime, timedelta, timezone

import jwt
import pytest
from pydantic import ValidationError as PydanticValidationError

from conftest import db_result
from saga.config import settings
from saga.exceptions import BadRequestError, ForbiddenError, UnauthorizedError
from saga.lib.passwords import hash_password
from saga.models.user import EmailVerification
from saga.schemas.auth import SignupRequest
from saga.services.auth_service import ACCESS_TOKEN, REFRESH_TOKEN, auth_service
from saga.services.event_service import Events


def _capture(bus, event):
    sent = []

    async def listener(data):
        sent.append(data)

    bus.on(event, listener)
    return sent


class TestSignupSchema:
    def test_normalizes_email_and_username(self):
        payload = SignupRequest(email=" Ana@Example.COM ", username="Ana_1", password="Secret123")
        assert payload.email == "ana@example.com"
        assert payload.username == "ana_1"

    @pytest.mark.parametrize("password", ["short1A", "alllowercase1", "ALLUPPERCASE1", "NoDigitsHere"])
    def test_weak_passwords_rejected(self, password):
        with pytest.raises(PydanticValidationError):
            SignupRequest(email="a@example.com", username="ana", password=password)

    def test_username_charset(self):
        with pytest.raises(PydanticValidationError):
            SignupRequest(email="a@example.com", username="ana-maria", password="Secret123")


class TestSignup:
    async def test_creates_user_and_sends_emails(self, mock_db_session, clean_events):
        emails = _capture(clean_events, Events.SEND_EMAIL)
        payload = SignupRequest(email="ana@example.com", username="ana", password="Secret123")

        user = await auth_service.signup(mock_db_session, payload)
        await clean_events.drain()

        assert user.username == "ana"
        assert user.password.startswith("pbkdf2:sha256:")
        added = [call.args[0] for call in mock_db_session.add.call_args_list]
        assert any(isinstance(obj, EmailVerification) for obj in added)
        templates = {e["template"] for e in emails}
        assert {"welcome", "email_verification"} <= templates

    async def test_email_in_use(self, mock_db_session):
        mock_db_session.execute.return_value = db_result(rows=[("ana@example.com", "someone")])
        payload = SignupRequest(email="ana@example.com", username="ana", password="Secret123")
        with pytest.raises(ForbiddenError, match="email already in use"):
            await auth_service.signup(mock_db_session, payload)

    async def test_username_in_use(self, mock_db_session):
        mock_db_session.execute.return_value = db_result(rows=[("other@example.com", "ana")])
        payload = SignupRequest(email="ana@example.com", username="ana", password="Secret123")
        with pytest.raises(ForbiddenError, match="username already in use"):
            await auth_service.signup(mock_db_session, payload)


class TestLogin:
    async def test_login_creates_session(self, mock_db_session, make_user):
        user = make_user("ana", password=hash_password("Secret123", iterations=10_000))
        mock_db_session.execute.return_value = db_result(scalar=user)

        sid, found = await auth_service.login(mock_db_session, "ANA", "Secret123", ip_address="203.0.113.1")

        assert found is user
        assert len(sid) > 30
        session_row = mock_db_session.add.call_args.args[0]
        assert session_row.user_id == user.id
        assert session_row.expires_at > datetime.now(timezone.utc)

    async def test_wrong_password(self, mock_db_session, make_user):
        user = make_user("ana", password=hash_password("Secret123", iterations=10_000))
        mock_db_session.execute.return_value = db_result(scalar=user)
        with pytest.raises(BadRequestError, match="bad email or password"):
            await auth_service.login(mock_db_session, "ana", "Wrong1234")

    async def test_blocked_user(self, mock_db_session, make_user):
        user = make_user("ana", blocked=True, password=hash_password("Secret123", iterations=10_000))
        mock_db_session.execute.return_value = db_result(scalar=user)
        with pytest.raises(BadRequestError):
            await auth_service.login(mock_db_session, "ana", "Secret123")

    async def test_unknown_user(self, mock_db_session):
        with pytest.raises(BadRequestError):
            await auth_service.login(mock_db_session, "ghost", "Secret123")

    async def test_validate_session_without_sid(self, mock_db_session):
        with pytest.raises(UnauthorizedError):
            await auth_service.validate_session(mock_db_session, None)


class TestTokens:
    def test_issue_and_decode(self, make_user):
        user = make_user("ana", id=42)
        pair = auth_service.issue_tokens(user)

        access = auth_service.decode_token(pair.access_token)
        refresh = auth_service.decode_token(pair.refresh_token, expected_type=REFRESH_TOKEN)

        assert access["sub"] == "42" and access["type"] == ACCESS_TOKEN
        assert refresh["sub"] == "42"
        assert pair.expires_in == settings.jwt_access_ttl_minutes * 60
        assert pair.user.username == "ana"

    def test_refresh_token_is_not_an_access_token(self, make_user):
        pair = auth_service.issue_tokens(make_user())
        with pytest.raises(UnauthorizedError):
            auth_service.decode_token(pair.refresh_token)

    def test_expired_token(self):
        past = datetime.now(timezone.utc) - timedelta(hours=2)
        token = jwt.encode(
            {"sub": "1", "type": ACCESS_TOKEN, "exp": int((past + timedelta(minutes=5)).timestamp())},
            settings.jwt_secret,
            algorithm=settings.jwt_algorithm,
        )
        with pytest.raises(UnauthorizedError, match="expired"):
            auth_service.decode_token(token)

    def test_foreign_signature(self):
        token = jwt.encode({"sub": "1", "type": ACCESS_TOKEN}, "another-secret-0123456789abcdef0123456", algorithm="HS256")
        with pytest.raises(UnauthorizedError, match="invalid token"):
            auth_service.decode_token(token)

    async def test_refresh_rejects_blocked_user(self, mock_db_session, make_user):
        user = make_user(blocked=True)
        mock_db_session.get.return_value = user
        pair = auth_service.issue_tokens(user)
        with pytest.raises(UnauthorizedError):
            await auth_service.refresh(mock_db_session, pair.refresh_token)

    async def test_refresh_issues_new_pair(self, mock_db_session, make_user):
        user = make_user("ana")
        mock_db_session.get.return_value = user
        pair = auth_service.issue_tokens(user)
        renewed = await auth_service.refresh(mock_db_session, pair.refresh_token)
        assert auth_service.decode_token(renewed.access_token)["sub"] == str(user.id)


class TestPasswordReset:
    async def test_unknown_email_is_silent(self, mock_db_session, clean_events):
        emails = _capture(clean_events, Events.SEND_EMAIL)
        await auth_service.reset_password(mock_db_session, "ghost@example.com")
        await clean_events.drain()
        assert emails == []

    async def test_sends_reset_link(self, mock_db_session, clean_events, make_user):
        emails = _capture(clean_events, Events.SEND_EMAIL)
        user = make_user("ana")
        mock_db_session.execute.side_effect = [db_result(scalar=user), db_result(scalar=0)]

        await auth_service.reset_password(mock_db_session, "ANA@example.com")
        await clean_events.drain()

        assert len(emails) == 1
        assert emails[0]["template"] == "password_reset"
        assert "/reset-password?token=" in emails[0]["variables"]["reset_link"]

    async def test_throttled_when_too_many_outstanding(self, mock_db_session, clean_events, make_user):
        emails = _capture(clean_events, Events.SEND_EMAIL)
        mock_db_session.execute.side_effect = [
            db_result(scalar=make_user("ana")),
            db_result(scalar=settings.password_reset_max_outstanding),
        ]
        await auth_service.reset_password(mock_db_session, "ana@example.com")
        await clean_events.drain()
        assert emails == []

    async def test_change_password_with_bad_token(self, mock_db_session):
        with pytest.raises(BadRequestError, match="invalid or expired token"):
            await auth_service.change_password(mock_db_session, "nope", "Secret123")

    async def test_change_password(self, mock_db_session, make_user):
        user = make_user("ana")
        record = EmailVerification(email=user.email, token="tok", type="password_reset")
        mock_db_session.execute.side_effect = [
            db_result(scalar=record),
            db_result(scalar=user),
            db_result(),
            db_result(),
        ]
        old_hash = user.password

        await auth_service.change_password(mock_db_session, "tok", "NewSecret1")

        assert user.password != old_hash
        assert user.password.startswith("pbkdf2:sha256:")


class TestEmailVerification:
    async def test_already_verified(self, mock_db_session, make_user):
        with pytest.raises(BadRequestError, match="already verified"):
            await auth_service.send_email_verification(mock_db_session, make_user(is_email_verified=True))

    async def test_verify_marks_user_and_consumes_token(self, mock_db_session, make_user):
        user = make_user("ana", is_email_verified=False)
        record = EmailVerification(email=user.email, token="tok", type="email_verification", expired=False)
        mock_db_session.execute.side_effect = [db_result(scalar=record), db_result(scalar=user)]

        await auth_service.verify_email(mock_db_session, "tok")

        assert user.is_email_verified is True
        assert record.expired is True
