"""
tests/test_api_auth.py -- HTTP integration tests for signup, login and /me.

The seeded accounts in conftest.py all share the password api.password.
"""

from __future__ import annotations

import uuid

from auth.models import Role


def _email() -> str:
    return f"new-{uuid.uuid4().hex[:8]}@example.com"


class TestSignup:
    def test_signup_creates_collaborator_and_signs_in(self, api):
        email = _email()
        resp = api.client.post(
            "/api/v1/auth/signup",
            json={"email": email, "display_name": "New Person", "password": "long-enough-pw"},
        )
        assert resp.status_code == 200, resp.text
        assert resp.headers["Cache-Control"] == "no-store"
        data = resp.json()["data"]
        assert data["user"]["email"] == email
        assert data["user"]["role"] == "collaborator"
        assert "hashed_password" not in data["user"]
        assert data["token_type"] == "bearer"
        stored = api.user_store.get_by_email(email)
        assert stored is not None
        assert stored.role is Role.collaborator

        me = api.client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {data['access_token']}"})
        assert me.status_code == 200
        assert me.json()["data"]["subject_id"] == stored.id

    def test_signup_echoes_the_stored_email(self, api):
        suffix = uuid.uuid4().hex[:8]
        resp = api.client.post(
            "/api/v1/auth/signup",
            json={"email": f"Mixed.Case.{suffix}@Example.com", "display_name": "Mixed", "password": "long-enough-pw"},
        )
        assert resp.status_code == 200, resp.text
        assert resp.json()["data"]["user"]["email"] == f"mixed.case.{suffix}@example.com"

    def test_password_whitespace_is_kept(self, api):
        email = _email()
        password = "  padded password  "
        resp = api.client.post(
            "/api/v1/auth/signup", json={"email": f"  {email} ", "display_name": " Pad ", "password": password}
        )
        assert resp.status_code == 200, resp.text
        assert resp.json()["data"]["user"]["display_name"] == "Pad"

        ok = api.client.post("/api/v1/auth/login", json={"email": email, "password": password})
        assert ok.status_code == 200
        trimmed = api.client.post("/api/v1/auth/login", json={"email": email, "password": password.strip()})
        assert trimmed.status_code == 401

    def test_duplicate_email_is_409(self, api):
        resp = api.client.post(
            "/api/v1/auth/signup",
            json={"email": "OWNER@example.com", "display_name": "Again", "password": "long-enough-pw"},
        )
        assert resp.status_code == 409

    def test_short_password_is_422(self, api):
        resp = api.client.post(
            "/api/v1/auth/signup", json={"email": _email(), "display_name": "x", "password": "short"}
        )
        assert resp.status_code == 422

    def test_bad_email_is_422(self, api):
        resp = api.client.post(
            "/api/v1/auth/signup", json={"email": "not-an-email", "display_name": "x", "password": "long-enough-pw"}
        )
        assert resp.status_code == 422


class TestLogin:
    def test_login_returns_usable_token(self, api):
        resp = api.client.post("/api/v1/auth/login", json={"email": "owner@example.com", "password": api.password})
        assert resp.status_code == 200, resp.text
        assert resp.headers["Cache-Control"] == "no-store"
        data = resp.json()["data"]
        assert data["token_type"] == "bearer"
        assert data["expires_in"] > 0
        assert data["user"]["id"] == api.users["owner"].id

        me = api.client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {data['access_token']}"})
        assert me.status_code == 200
        assert me.json()["data"] == {
            "subject_id": api.users["owner"].id,
            "role": "owner",
            "email": "owner@example.com",
        }

    def test_wrong_password_is_401(self, api):
        resp = api.client.post("/api/v1/auth/login", json={"email": "owner@example.com", "password": "wrong-one"})
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "unauthorized"

    def test_unknown_email_gets_same_401(self, api):
        wrong_pw = api.client.post("/api/v1/auth/login", json={"email": "owner@example.com", "password": "nope1234"})
        no_user = api.client.post("/api/v1/auth/login", json={"email": "ghost@example.com", "password": "nope1234"})
        assert no_user.status_code == wrong_pw.status_code == 401
        assert no_user.json()["error"] == wrong_pw.json()["error"]

    def test_login_is_rate_limited(self, api):
        statuses = [
            api.client.post("/api/v1/auth/login", json={"email": "ghost@example.com", "password": "x"}).status_code
            for _ in range(11)
        ]
        assert statuses[:10] == [401] * 10
        assert statuses[10] == 429


class TestMe:
    def test_me_requires_token(self, api):
        assert api.client.get("/api/v1/auth/me").status_code == 401

    def test_me_for_viewer(self, api):
        resp = api.client.get("/api/v1/auth/me", headers=api.headers("viewer"))
        assert resp.status_code == 200
        assert resp.json()["data"]["role"] == "viewer"
