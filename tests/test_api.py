"""
Tests for the HTTP API.

Covers:
- Auth endpoints (register/login/refresh/logout/me/password)
- Bearer auth: 401 + WWW-Authenticate without a valid token
- Data CRUD with base64 payloads, type filter, sync, versions
- Error mapping: 400 / 403 / 404 / 409 / 500 / 504
"""

import asyncio
import base64
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from vaultfactory.api import create_app
from vaultfactory.api.main import _sweep_sessions
from vaultfactory.auth import AuthManager
from vaultfactory.core.audit_log import EventType
from vaultfactory.core.errors import StoreError
from vaultfactory.db import MemoryDataVersionStore, MemoryStores
from vaultfactory.models import User, utcnow
from vaultfactory.vault import VaultManager

PASSWORD = "correct horse battery"


@pytest.fixture
def client(config, audit):
    """FastAPI test client over SQLite stores under tmp_path."""
    app = create_app(config, audit=audit)
    with TestClient(app) as test_client:
        yield test_client


def _register(client, email="alice@example.com", password=PASSWORD):
    resp = client.post("/api/auth/register", json={"email": email, "password": password})
    assert resp.status_code == 201, resp.text
    return resp.json()


def _bearer(tokens):
    return {"Authorization": f"Bearer {tokens['access_token']}"}


def _b64(raw: bytes) -> str:
    return base64.b64encode(raw).decode("ascii")


def _create(client, headers, name="gmail", data_type="login_password", raw=b'{"u":"a","p":"b"}'):
    resp = client.post(
        "/api/data",
        json={"type": data_type, "name": name, "metadata": "personal", "data": _b64(raw)},
        headers=headers,
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


# ── Auth ──────────────────────────────────────────────────────────────


class TestRegister:
    def test_register_returns_user_and_tokens(self, client):
        body = _register(client)
        assert body["user"]["email"] == "alice@example.com"
        assert body["token_type"] == "bearer"
        assert len(body["refresh_token"]) == 64
        assert body["access_token"].count(".") == 2

    def test_duplicate_email(self, client):
        _register(client)
        resp = client.post(
            "/api/auth/register",
            json={"email": "alice@example.com", "password": "other password"},
        )
        assert resp.status_code == 409

    def test_invalid_email(self, client):
        resp = client.post("/api/auth/register", json={"email": "not-an-email", "password": PASSWORD})
        assert resp.status_code == 400
        assert resp.json()["field"] == "email"

    def test_short_password(self, client):
        resp = client.post("/api/auth/register", json={"email": "a@example.com", "password": "short"})
        assert resp.status_code == 400
        assert resp.json()["field"] == "password"


class TestLogin:
    def test_login(self, client):
        _register(client)
        resp = client.post("/api/auth/login", json={"email": "alice@example.com", "password": PASSWORD})
        assert resp.status_code == 200
        assert "access_token" in resp.json()

    def test_bad_credentials_are_indistinguishable(self, client):
        _register(client)
        wrong_password = client.post(
            "/api/auth/login", json={"email": "alice@example.com", "password": "nope nope"}
        )
        unknown_email = client.post(
            "/api/auth/login", json={"email": "bob@example.com", "password": PASSWORD}
        )
        assert wrong_password.status_code == unknown_email.status_code == 401
        assert wrong_password.json() == unknown_email.json()
        assert wrong_password.headers["WWW-Authenticate"] == "Bearer"


class TestBearerAuth:
    def test_me(self, client):
        tokens = _register(client)
        resp = client.get("/api/auth/me", headers=_bearer(tokens))
        assert resp.status_code == 200
        assert resp.json()["id"] == tokens["user"]["id"]

    def test_missing_token(self, client):
        resp = client.get("/api/auth/me")
        assert resp.status_code == 401
        assert resp.headers["WWW-Authenticate"] == "Bearer"

    @pytest.mark.parametrize("header", ["Bearer garbage", "Bearer a.b.c", "Basic dXNlcjpwYXNz"])
    def test_bad_token(self, client, header):
        resp = client.get("/api/data", headers={"Authorization": header})
        assert resp.status_code == 401

    def test_expired_token_detail_is_generic(self, client, audit, tokens, monkeypatch):
        tokens_body = _register(client)
        user = User(email="alice@example.com", password_hash="x", id=tokens_body["user"]["id"])
        expired = tokens.issue_access_token(user, utcnow() - timedelta(minutes=10))
        events = []
        real_log_event = audit.log_event

        def recording_log_event(event_type, severity, message, details=None, user_id=None):
            events.append((event_type, details))
            return real_log_event(event_type, severity, message, details=details, user_id=user_id)

        monkeypatch.setattr(audit, "log_event", recording_log_event)

        resp = client.get("/api/auth/me", headers={"Authorization": f"Bearer {expired}"})
        assert resp.status_code == 401
        assert resp.json() == {"detail": "invalid token"}
        rejected = [details for event_type, details in events if event_type == EventType.TOKEN_REJECTED]
        assert "expired" in rejected[0]["reason"].lower()

    def test_refresh_token_is_not_an_access_token(self, client):
        tokens = _register(client)
        resp = client.get("/api/auth/me", headers={"Authorization": f"Bearer {tokens['refresh_token']}"})
        assert resp.status_code == 401


class TestSessions:
    def test_refresh_rotates(self, client):
        tokens = _register(client)
        resp = client.post("/api/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert resp.status_code == 200
        rotated = resp.json()
        assert rotated["refresh_token"] != tokens["refresh_token"]
        assert client.get("/api/auth/me", headers=_bearer(rotated)).status_code == 200

        replay = client.post("/api/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert replay.status_code == 401

    def test_logout(self, client):
        tokens = _register(client)
        resp = client.post("/api/auth/logout", json={"refresh_token": tokens["refresh_token"]})
        assert resp.status_code == 204

        after = client.post("/api/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert after.status_code == 401
        again = client.post("/api/auth/logout", json={"refresh_token": tokens["refresh_token"]})
        assert again.status_code == 401

    def test_change_password(self, client):
        tokens = _register(client)
        client.post("/api/auth/login", json={"email": "alice@example.com", "password": PASSWORD})

        resp = client.post(
            "/api/auth/password",
            json={"current_password": PASSWORD, "new_password": "brand new password"},
            headers=_bearer(tokens),
        )
        assert resp.status_code == 200
        assert resp.json()["sessions_revoked"] == 2

        stale = client.post("/api/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
        assert stale.status_code == 401
        relogin = client.post(
            "/api/auth/login", json={"email": "alice@example.com", "password": "brand new password"}
        )
        assert relogin.status_code == 200

    def test_change_password_wrong_current(self, client):
        tokens = _register(client)
        resp = client.post(
            "/api/auth/password",
            json={"current_password": "wrong password", "new_password": "brand new password"},
            headers=_bearer(tokens),
        )
        assert resp.status_code == 401


# ── Data ──────────────────────────────────────────────────────────────


class TestData:
    def test_create_and_read(self, client):
        headers = _bearer(_register(client))
        created = _create(client, headers)
        assert created["version"] == 1
        assert created["data"] is None

        resp = client.get(f"/api/data/{created['id']}", headers=headers)
        assert resp.status_code == 200
        assert base64.b64decode(resp.json()["data"]) == b'{"u":"a","p":"b"}'

    def test_list_and_filter(self, client):
        headers = _bearer(_register(client))
        note = _create(client, headers, name="note", data_type="text_data")
        card = _create(client, headers, name="visa", data_type="bank_card")

        listed = client.get("/api/data", headers=headers).json()
        assert [i["id"] for i in listed] == [card["id"], note["id"]]
        assert all(i["data"] is None for i in listed)

        cards = client.get("/api/data", params={"type": "bank_card"}, headers=headers).json()
        assert [i["id"] for i in cards] == [card["id"]]

    def test_invalid_type(self, client):
        headers = _bearer(_register(client))
        resp = client.post(
            "/api/data",
            json={"type": "crypto_wallet", "name": "x", "data": _b64(b"x")},
            headers=headers,
        )
        assert resp.status_code == 400
        assert resp.json()["field"] == "type"

    def test_invalid_base64(self, client):
        headers = _bearer(_register(client))
        resp = client.post(
            "/api/data",
            json={"type": "text_data", "name": "x", "data": "***not base64***"},
            headers=headers,
        )
        assert resp.status_code == 400
        assert resp.json()["field"] == "data"

    def test_update_and_versions(self, client):
        headers = _bearer(_register(client))
        created = _create(client, headers)

        resp = client.put(
            f"/api/data/{created['id']}",
            json={"name": "gmail", "metadata": "", "data": _b64(b'{"u":"a","p":"c"}')},
            headers=headers,
        )
        assert resp.status_code == 200
        assert resp.json()["version"] == 2

        fetched = client.get(f"/api/data/{created['id']}", headers=headers).json()
        assert base64.b64decode(fetched["data"]) == b'{"u":"a","p":"c"}'

        history = client.get(f"/api/data/{created['id']}/versions", headers=headers).json()
        assert [v["version"] for v in history["versions"]] == [1, 2]
        assert history["current_version"] == 2
        assert history["drift"] is False

    def test_delete(self, client):
        headers = _bearer(_register(client))
        created = _create(client, headers)

        assert client.delete(f"/api/data/{created['id']}", headers=headers).status_code == 204
        assert client.get(f"/api/data/{created['id']}", headers=headers).status_code == 404
        assert client.delete(f"/api/data/{created['id']}", headers=headers).status_code == 404

    def test_other_users_item_is_forbidden(self, client):
        alice = _bearer(_register(client, "alice@example.com"))
        bob = _bearer(_register(client, "bob@example.com"))
        created = _create(client, alice)

        for method, kwargs in [
            ("get", {}),
            ("put", {"json": {"name": "mine", "data": _b64(b"x")}}),
            ("put", {"json": {"name": "", "data": _b64(b"x")}}),
            ("delete", {}),
        ]:
            resp = getattr(client, method)(f"/api/data/{created['id']}", headers=bob, **kwargs)
            assert resp.status_code == 403
            assert resp.json()["detail"] == "Access denied"

        assert client.get(f"/api/data/{created['id']}/versions", headers=bob).status_code == 403
        assert client.get("/api/data", headers=bob).json() == []
        assert client.get(f"/api/data/{created['id']}", headers=alice).status_code == 200

    def test_sync(self, client):
        headers = _bearer(_register(client))
        first = _create(client, headers, name="first")
        second = _create(client, headers, name="second")

        resp = client.get("/api/data/sync", params={"last_sync": first["updated_at"]}, headers=headers)
        assert resp.status_code == 200
        items = resp.json()
        assert [i["id"] for i in items] == [second["id"]]
        assert items[0]["data"] is None

        resp = client.get("/api/data/sync", params={"last_sync": items[-1]["updated_at"]}, headers=headers)
        assert resp.json() == []

    def test_sync_requires_timestamp(self, client):
        headers = _bearer(_register(client))
        assert client.get("/api/data/sync", headers=headers).status_code == 422


# ── Failure mapping ───────────────────────────────────────────────────


class BrokenVersionStore(MemoryDataVersionStore):
    async def create(self, version):
        raise StoreError("version table locked")


class SlowVaultManager(VaultManager):
    async def get_user_data(self, user_id):
        await asyncio.sleep(2)
        return []


def _memory_app(config, audit, crypto, tokens, vault_cls=VaultManager, versions=None):
    stores = MemoryStores()
    auth = AuthManager(stores.users, stores.sessions, crypto, tokens)
    vault = vault_cls(stores.items, versions or stores.versions, crypto)
    return create_app(config, auth=auth, vault=vault, audit=audit)


class TestFailureMapping:
    def test_partial_write_is_generic_500(self, config, audit, crypto, tokens):
        app = _memory_app(config, audit, crypto, tokens, versions=BrokenVersionStore())
        with TestClient(app) as client:
            headers = _bearer(_register(client))
            resp = client.post(
                "/api/data",
                json={"type": "text_data", "name": "note", "data": _b64(b"x")},
                headers=headers,
            )
        assert resp.status_code == 500
        assert resp.json() == {"detail": "Internal error"}

    def test_timeout_is_504(self, config, audit, crypto, tokens):
        config = config.model_copy(update={"request_timeout": 0.2})
        app = _memory_app(config, audit, crypto, tokens, vault_cls=SlowVaultManager)
        with TestClient(app) as client:
            headers = _bearer(_register(client))
            resp = client.get("/api/data", headers=headers)
        assert resp.status_code == 504


class CrashingAuthManager(AuthManager):
    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.sweeps = 0

    async def purge_expired_sessions(self):
        self.sweeps += 1
        if self.sweeps == 1:
            raise RuntimeError("unexpected sweep failure")
        return 0


class TestSessionSweep:
    @pytest.mark.asyncio
    async def test_sweep_survives_unexpected_error(self, config, audit, crypto, tokens, caplog):
        stores = MemoryStores()
        auth = CrashingAuthManager(stores.users, stores.sessions, crypto, tokens)
        vault = VaultManager(stores.items, stores.versions, crypto)
        app = create_app(config, auth=auth, vault=vault, audit=audit)

        sweeper = asyncio.create_task(_sweep_sessions(app, 0))
        for _ in range(100):
            if auth.sweeps >= 3:
                break
            await asyncio.sleep(0)
        sweeper.cancel()
        with pytest.raises(asyncio.CancelledError):
            await sweeper

        assert auth.sweeps >= 3
        assert "sweep crashed" in caplog.text
