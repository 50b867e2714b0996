"""
Authentication tests.

Verifies:
- Registration returns a usable token and never leaks password_hash
- Duplicate e-mail is 409; weak or malformed input is 400
- Login failures share one 401 message
- Expired and tampered tokens are rejected
"""

from datetime import datetime, timedelta, timezone

import pytest
from jose import jwt

from codebook.errors import Unauthenticated
from codebook.services import document_store, session_service


class TestRegister:

    def test_register_and_use_token(self, client, db_session):
        resp = client.post("/api/register", json={
            "email": "  New.Reader@Example.com ",
            "password": "secret1",
            "name": "New Reader",
        })

        assert resp.status_code == 201
        body = resp.get_json()
        assert body["user"]["email"] == "new.reader@example.com"
        assert body["user"]["role"] == "user"
        assert "password_hash" not in body["user"]

        stored = document_store.get("users", body["user"]["id"])
        assert stored["password_hash"].startswith("$2")

        me = client.get(
            f"/api/users/{body['user']['id']}",
            headers={"Authorization": f"Bearer {body['access_token']}"},
        )
        assert me.status_code == 200
        assert me.get_json()["name"] == "New Reader"

    def test_duplicate_email(self, client, customer):
        resp = client.post("/api/register", json={
            "email": customer["email"].upper(),
            "password": "secret1",
            "name": "Copycat",
        })
        assert resp.status_code == 409
        assert resp.get_json()["error"] == "User with this email already exists"

    @pytest.mark.parametrize("payload", [
        {"email": "not-an-email", "password": "secret1", "name": "X"},
        {"email": "a@b.co", "password": "short", "name": "X"},
        {"email": "a@b.co", "password": "secret1", "name": "  "},
        {},
    ])
    def test_invalid_registration(self, client, db_session, payload):
        assert client.post("/api/register", json=payload).status_code == 400


class TestLogin:

    def test_login(self, client, customer):
        resp = client.post("/api/login", json={"email": "Reader@Example.com", "password": "reader-pass"})
        assert resp.status_code == 200
        body = resp.get_json()
        context = session_service.validate_token(body["access_token"])
        assert context.user_id == customer["id"]
        assert context.role == "user"
        assert context.expires_at - context.issued_at == timedelta(days=7)

    @pytest.mark.parametrize("email,password", [
        ("reader@example.com", "wrong-pass"),
        ("nobody@example.com", "reader-pass"),
    ])
    def test_bad_credentials(self, client, customer, email, password):
        resp = client.post("/api/login", json={"email": email, "password": password})
        assert resp.status_code == 401
        assert resp.get_json()["error"] == "Invalid email or password"

    def test_missing_fields(self, client, db_session):
        assert client.post("/api/login", json={"email": "x@y.z"}).status_code == 400


class TestTokens:

    def _token(self, app, **overrides):
        now = datetime.now(timezone.utc)
        claims = {
            "sub": "u1",
            "email": "u1@example.com",
            "name": "U1",
            "role": "user",
            "iat": now - timedelta(days=8),
            "exp": now - timedelta(days=1),
            **overrides,
        }
        return jwt.encode(claims, app.config["JWT_SECRET"], algorithm="HS256")

    def test_expired_token(self, app):
        with pytest.raises(Unauthenticated) as exc:
            session_service.validate_token(self._token(app))
        assert exc.value.message == "Token has expired"

    def test_tampered_token(self, app, client, customer_headers, customer):
        token = customer_headers["Authorization"].split(" ", 1)[1]
        resp = client.get(f"/api/users/{customer['id']}", headers={"Authorization": f"Bearer {token}x"})
        assert resp.status_code == 401

    def test_unknown_role_downgraded(self, app):
        token = self._token(app, role="superuser", exp=datetime.now(timezone.utc) + timedelta(hours=1))
        assert session_service.validate_token(token).role == "user"
