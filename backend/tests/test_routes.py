"""
Heimursaga API — HTTP Layer Tests
===================================

What:  Health check, the error envelope, session cookies, auth guards and
       the note, map, setup-intent and bookmark endpoints.
How:   Requests go through the full middleware stack via ASGITransport;
       the database dependency is overridden with the shared mock session.
"""

from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio

from conftest import db_result
from saga.config import settings
from saga.database import get_db_session
from saga.main import app
from saga.schemas.common import CountResponse
from saga.schemas.expedition import NoteCreatedResponse
from saga.schemas.search import MapResponse
from saga.schemas.sponsor import SetupIntentResponse
from saga.services.auth_service import auth_service
from saga.services.expedition_note_service import expedition_note_service
from saga.services.payment_service import payment_service
from saga.services.search_service import search_service

PREFIX = settings.api_prefix


@pytest_asyncio.fixture
async def api(test_client, mock_db_session):
    async def override():
        yield mock_db_session

    app.dependency_overrides[get_db_session] = override
    yield test_client
    app.dependency_overrides.clear()


class TestHealth:
    async def test_healthy(self, test_client):
        with patch("saga.routes.health.check_database_health", AsyncMock(return_value=True)):
            response = await test_client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["database"] == "connected"
        assert "X-Request-ID" in response.headers

    async def test_degraded(self, test_client):
        with patch("saga.routes.health.check_database_health", AsyncMock(return_value=False)):
            response = await test_client.get("/health")

        assert response.status_code == 503
        assert response.json()["status"] == "degraded"


class TestErrorEnvelope:
    async def test_not_found_body(self, api, mock_db_session):
        mock_db_session.execute.return_value = db_result()
        response = await api.get(f"{PREFIX}/entries/missing")

        assert response.status_code == 404
        body = response.json()
        assert body["error"] == "not_found"
        assert body["message"] == "entry not found"
        assert body["details"]["resource"] == "entry"
        assert body["request_id"] == response.headers["X-Request-ID"]

    async def test_validation_error_is_400(self, api):
        response = await api.post(
            f"{PREFIX}/auth/signup",
            json={"email": "not-an-email", "username": "ana", "password": "weak"},
        )

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "validation_error"
        fields = {item["field"] for item in body["details"]["validation"]}
        assert {"email", "password"} <= fields

    async def test_protected_route_requires_session(self, api):
        response = await api.get(f"{PREFIX}/user/settings")
        assert response.status_code == 401
        assert response.json()["error"] == "unauthorized"

    async def test_unknown_path(self, test_client):
        response = await test_client.get(f"{PREFIX}/nowhere")
        assert response.status_code == 404
        assert response.json()["error"] == "http_error"

    async def test_client_request_id_is_echoed(self, test_client):
        with patch("saga.routes.health.check_database_health", AsyncMock(return_value=True)):
            response = await test_client.get("/health", headers={"X-Request-ID": "abc-123"})
        assert response.headers["X-Request-ID"] == "abc-123"


class TestSessions:
    async def test_login_sets_cookie(self, api, make_user):
        user = make_user("ana")
        with patch.object(auth_service, "login", AsyncMock(return_value=("sid-123", user))):
            response = await api.post(f"{PREFIX}/auth/login", json={"login": "ana", "password": "Secret123"})

        assert response.status_code == 200
        assert response.json()["user"]["username"] == "ana"
        cookie = response.headers["set-cookie"]
        assert f"{settings.session_cookie_name}=sid-123" in cookie
        assert "httponly" in cookie.lower()

    async def test_session_from_cookie(self, api, make_user):
        user = make_user("ana")
        with patch.object(auth_service, "validate_session", AsyncMock(return_value=user)) as validate:
            response = await api.get(
                f"{PREFIX}/auth/session", headers={"Cookie": f"{settings.session_cookie_name}=sid-123"}
            )

        assert response.status_code == 200
        assert response.json()["user"]["email"] == "ana@example.com"
        assert validate.await_args.args[1] == "sid-123"

    async def test_bearer_token(self, api, mock_db_session, make_user):
        user = make_user("ana")
        mock_db_session.execute.return_value = db_result(scalar=user)
        access = auth_service.issue_tokens(user).access_token

        response = await api.get(f"{PREFIX}/auth/session", headers={"Authorization": f"Bearer {access}"})

        assert response.status_code == 200
        assert response.json()["user"]["username"] == "ana"

    async def test_admin_routes_reject_regular_users(self, api, make_user):
        with patch.object(auth_service, "validate_session", AsyncMock(return_value=make_user("ana"))):
            response = await api.get(
                f"{PREFIX}/admin/stats", headers={"Cookie": f"{settings.session_cookie_name}=sid-123"}
            )
        assert response.status_code == 403


class TestNewEndpoints:
    COOKIE = {"Cookie": f"{settings.session_cookie_name}=sid-123"}

    async def test_note_count_is_public(self, api):
        with patch.object(expedition_note_service, "count", AsyncMock(return_value=CountResponse(count=3))):
            response = await api.get(f"{PREFIX}/expeditions/exp1/notes/count")

        assert response.status_code == 200
        assert response.json() == {"count": 3}

    async def test_notes_need_a_session(self, api):
        response = await api.get(f"{PREFIX}/expeditions/exp1/notes")
        assert response.status_code == 401

    async def test_create_note(self, api, mock_db_session, make_user):
        user = make_user("ana")
        with patch.object(auth_service, "validate_session", AsyncMock(return_value=user)), patch.object(
            expedition_note_service, "create", AsyncMock(return_value=NoteCreatedResponse(id=7))
        ) as create:
            response = await api.post(
                f"{PREFIX}/expeditions/exp1/notes", json={"text": "Camp two"}, headers=self.COOKIE
            )

        assert response.status_code == 201
        assert response.json() == {"id": 7}
        create.assert_awaited_once_with(mock_db_session, user, "exp1", "Camp two")

    async def test_empty_note_rejected(self, api, make_user):
        with patch.object(auth_service, "validate_session", AsyncMock(return_value=make_user("ana"))):
            response = await api.post(f"{PREFIX}/expeditions/exp1/notes", json={"text": ""}, headers=self.COOKIE)
        assert response.status_code == 400

    async def test_explorer_map_without_session(self, api, mock_db_session):
        empty = MapResponse(entries=[], waypoints=[])
        with patch.object(search_service, "explorer_map", AsyncMock(return_value=empty)) as explorer_map:
            response = await api.get(f"{PREFIX}/explorers/ana/map")

        assert response.status_code == 200
        assert response.json() == {"entries": [], "waypoints": []}
        explorer_map.assert_awaited_once_with(mock_db_session, "ana", viewer=None)

    async def test_setup_intent(self, api, make_user):
        with patch.object(auth_service, "validate_session", AsyncMock(return_value=make_user("ana"))), patch.object(
            payment_service, "create_setup_intent", AsyncMock(return_value=SetupIntentResponse(secret="seti_secret"))
        ):
            response = await api.post(f"{PREFIX}/user/payment-methods/setup-intent", headers=self.COOKIE)

        assert response.status_code == 201
        assert response.json()["secret"] == "seti_secret"

    async def test_bookmark_listings_need_a_session(self, api):
        for path in ("bookmarks", "bookmarks/expeditions", "bookmarks/explorers"):
            response = await api.get(f"{PREFIX}/user/{path}")
            assert response.status_code == 401
