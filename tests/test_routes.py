"""
HTTP-level tests for the /user routes.
"""

from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient

from auth.errors import StoreUnavailable
from conftest import ALICE, make_settings
from main import create_app


@pytest.fixture
def client(tmp_path):
    app = create_app(make_settings(tmp_path, login_after_registration=True))
    with TestClient(app) as client:
        yield client


def _auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def _register(client, **overrides) -> dict:
    response = client.post("/user/register", json=dict(ALICE, **overrides))
    assert response.status_code == 200, response.text
    return response.json()


class TestLoginRoutes:
    def test_register_logs_in(self, client):
        body = _register(client)
        assert body["outcome"] == "success"
        assert body["token"]
        assert body["redirect"] == "/user"
        assert body["identity"]["email"] == "alice@x.com"
        assert "password_hash" not in body["identity"]

    def test_login_and_index(self, client):
        _register(client)
        response = client.post("/user/login", json={"identity": "alice@x.com", "credential": "P@ss1"})
        assert response.status_code == 200
        token = response.json()["token"]

        me = client.get("/user", headers=_auth(token))
        assert me.status_code == 200
        assert me.json()["username"] == "alice"

    def test_failed_login_is_generic(self, client):
        _register(client)
        wrong = client.post("/user/login", json={"identity": "alice", "credential": "nope"})
        unknown = client.post("/user/login", json={"identity": "mallory", "credential": "nope"})
        assert wrong.status_code == unknown.status_code == 401
        assert wrong.json()["message"] == unknown.json()["message"]
        assert wrong.json()["redirect"] == unknown.json()["redirect"] == "/user/login"

    def test_failed_login_keeps_local_redirect(self, client):
        response = client.post(
            "/user/authenticate",
            json={"identity": "mallory", "credential": "nope", "redirect": "/dashboard"},
        )
        assert response.status_code == 401
        assert response.json()["redirect"] == "/user/login?redirect=%2Fdashboard"

    def test_offsite_redirect_ignored(self, client):
        _register(client)
        response = client.post(
            "/user/login",
            json={"identity": "alice", "credential": "P@ss1", "redirect": "https://evil.example"},
        )
        assert response.json()["redirect"] == "/user"

    def test_blank_login_needs_input(self, client):
        response = client.post("/user/login", json={"identity": "", "credential": ""})
        assert response.status_code == 422
        assert response.json()["outcome"] == "needs_input"

    def test_logout_revokes_token(self, client):
        token = _register(client)["token"]
        response = client.post("/user/logout", headers=_auth(token))
        assert response.status_code == 200
        assert response.json()["redirect"] == "/user/login"
        assert client.get("/user", headers=_auth(token)).status_code == 401

    def test_index_requires_login(self, client):
        response = client.get("/user")
        assert response.status_code == 401
        assert response.json()["code"] == "not_authenticated"

    def test_garbage_token(self, client):
        response = client.get("/user", headers=_auth("garbage"))
        assert response.status_code == 401
        assert response.json()["code"] == "session_invalid"


class TestStaleBearerToken:
    @pytest.fixture
    def stale_token(self, client):
        token = _register(client)["token"]
        assert client.post("/user/logout", headers=_auth(token)).status_code == 200
        return token

    def test_login_ignores_revoked_token(self, client, stale_token):
        response = client.post(
            "/user/login",
            headers=_auth(stale_token),
            json={"identity": "alice", "credential": "P@ss1"},
        )
        assert response.status_code == 200
        assert response.json()["token"] != stale_token

    def test_authenticate_ignores_revoked_token(self, client, stale_token):
        response = client.post(
            "/user/authenticate",
            headers=_auth(stale_token),
            json={"identity": "alice@x.com", "credential": "P@ss1"},
        )
        assert response.status_code == 200

    def test_logout_with_revoked_token_succeeds(self, client, stale_token):
        response = client.post("/user/logout", headers=_auth(stale_token))
        assert response.status_code == 200
        assert response.json()["redirect"] == "/user/login"

    def test_register_ignores_revoked_token(self, client, stale_token):
        body = client.post(
            "/user/register",
            headers=_auth(stale_token),
            json=dict(ALICE, username="bob", email="bob@x.com"),
        ).json()
        assert body["outcome"] == "success"
        assert body["identity"]["email"] == "bob@x.com"

    def test_protected_routes_still_reject_it(self, client, stale_token):
        assert client.get("/user", headers=_auth(stale_token)).json()["code"] == "session_invalid"
        response = client.post(
            "/user/change-password",
            headers=_auth(stale_token),
            json={"credential": "P@ss1", "new_credential": "P@ss2", "new_credential_verify": "P@ss2"},
        )
        assert response.status_code == 401

    def test_login_ignores_expired_token(self, tmp_path):
        app = create_app(make_settings(tmp_path, login_after_registration=True, session_ttl_seconds=0))
        with TestClient(app) as client:
            expired = _register(client)["token"]
            assert client.get("/user", headers=_auth(expired)).json()["code"] == "session_expired"
            response = client.post(
                "/user/login",
                headers=_auth(expired),
                json={"identity": "alice", "credential": "P@ss1"},
            )
            assert response.status_code == 200
            assert client.post("/user/logout", headers=_auth(expired)).status_code == 200


class TestStoreFailure:
    def test_store_outage_is_503(self, client):
        store = client.app.state.auth.store
        with patch.object(store, "find_by_identifier", AsyncMock(side_effect=StoreUnavailable())):
            response = client.post("/user/login", json={"identity": "alice", "credential": "P@ss1"})
        assert response.status_code == 503
        assert response.json()["code"] == "store_unavailable"


class TestRegisterRoute:
    def test_username_whitespace_is_trimmed(self, client):
        body = _register(client, username="  bob  ", email="bob@x.com")
        assert body["identity"]["username"] == "bob"
        for identity in ("bob", " bob "):
            response = client.post("/user/login", json={"identity": identity, "credential": "P@ss1"})
            assert response.status_code == 200, identity

    def test_duplicate_email_conflict(self, client):
        _register(client)
        response = client.post("/user/register", json=dict(ALICE, username="other", email="Alice@X.com"))
        assert response.status_code == 409
        assert response.json()["code"] == "conflict"

    def test_validation_errors_listed(self, client):
        response = client.post("/user/register", json=dict(ALICE, email="nope"))
        assert response.status_code == 422
        body = response.json()
        assert body["code"] == "validation_error"
        assert any(fe["field"] == "email" for fe in body["field_errors"])

    def test_registration_disabled(self, tmp_path):
        app = create_app(make_settings(tmp_path, enable_registration=False))
        with TestClient(app) as client:
            response = client.post("/user/register", json=ALICE)
        assert response.status_code == 403
        assert response.json()["code"] == "registration_disabled"


class TestCredentialChangeRoutes:
    def test_change_password(self, client):
        token = _register(client)["token"]
        other = client.post("/user/login", json={"identity": "alice", "credential": "P@ss1"}).json()["token"]

        response = client.post(
            "/user/change-password",
            headers=_auth(token),
            json={"credential": "P@ss1", "new_credential": "P@ss2", "new_credential_verify": "P@ss2"},
        )
        assert response.status_code == 200
        assert response.json()["redirect"] == "/user/change-password"

        assert client.get("/user", headers=_auth(token)).status_code == 200
        assert client.get("/user", headers=_auth(other)).status_code == 401

    def test_change_password_wrong_old(self, client):
        token = _register(client)["token"]
        response = client.post(
            "/user/change-password",
            headers=_auth(token),
            json={"credential": "bad", "new_credential": "P@ss2", "new_credential_verify": "P@ss2"},
        )
        assert response.status_code == 403
        assert response.json()["code"] == "invalid_old_secret"

    def test_change_password_requires_login(self, client):
        response = client.post(
            "/user/change-password",
            json={"credential": "P@ss1", "new_credential": "P@ss2", "new_credential_verify": "P@ss2"},
        )
        assert response.status_code == 401

    def test_change_email(self, client):
        token = _register(client)["token"]
        response = client.post(
            "/user/change-email",
            headers=_auth(token),
            json={"new_identity": "alice@new.com", "new_identity_verify": "alice@new.com", "credential": "P@ss1"},
        )
        assert response.status_code == 200
        assert response.json()["identity"]["email"] == "alice@new.com"
        assert client.get("/user", headers=_auth(token)).json()["email"] == "alice@new.com"

    def test_change_email_wrong_secret(self, client):
        token = _register(client)["token"]
        response = client.post(
            "/user/change-email",
            headers=_auth(token),
            json={"new_identity": "alice@new.com", "new_identity_verify": "alice@new.com", "credential": "bad"},
        )
        assert response.status_code == 403
        assert response.json()["code"] == "invalid_secret"


class TestMiddleware:
    def test_request_id_echoed(self, client):
        response = client.get("/user", headers={"X-Request-ID": "abc123"})
        assert response.headers["X-Request-ID"] == "abc123"
        assert "X-Process-Time" in response.headers
