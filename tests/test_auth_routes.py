"""
tests/test_auth_routes.py -- Integration tests for the session sign-in flow.

These tests run the whole pipeline through the real ASGI stack: session
cookie decode -> identity resolution -> access predicates -> handler ->
response shape filter -> session cookie encode.

Coverage:
  - signup / signin / signout / whoami with the session cookie
  - error envelope codes: email_in_use, user_not_found, bad_password, unauthorized, forbidden
  - responses never include the password encoding or admin flag
  - no log record carries a plaintext password
  - stale sessions (user deleted) pass whoami but resolve to null
  - admin-only user management
"""

from __future__ import annotations

import logging

import pytest
from fastapi.testclient import TestClient

from core.config import get_settings

SIGNUP = "/api/v1/auth/signup"
SIGNIN = "/api/v1/auth/signin"
SIGNOUT = "/api/v1/auth/signout"
WHOAMI = "/api/v1/auth/whoami"
USERS = "/api/v1/auth/users"

# Credentials created by the signed_in_client / admin_client fixtures in conftest.py.
USER_EMAIL = "user@example.com"
USER_PASSWORD = "userpass123"
ADMIN_EMAIL = "admin@example.com"
ADMIN_PASSWORD = "adminpass123"


class TestSignupSignin:
    def test_signup_returns_shaped_user_and_signs_in(self, client: TestClient) -> None:
        resp = client.post(SIGNUP, json={"email": "a@x.com", "password": "pw1"})
        assert resp.status_code == 201, resp.text
        body = resp.json()
        assert set(body) == {"id", "email"}
        assert body["email"] == "a@x.com"
        assert resp.headers["Cache-Control"] == "no-store"

        me = client.get(WHOAMI)
        assert me.status_code == 200
        assert me.json() == body

    def test_full_scenario(self, client: TestClient) -> None:
        first = client.post(SIGNUP, json={"email": "a@x.com", "password": "pw1"})
        assert first.status_code == 201

        dup = client.post(SIGNUP, json={"email": "a@x.com", "password": "pw2"})
        assert dup.status_code == 409
        assert dup.json()["error"]["code"] == "email_in_use"

        ok = client.post(SIGNIN, json={"email": "a@x.com", "password": "pw1"})
        assert ok.status_code == 200
        assert ok.json()["id"] == first.json()["id"]

        bad = client.post(SIGNIN, json={"email": "a@x.com", "password": "wrong"})
        assert bad.status_code == 400
        assert bad.json()["error"]["code"] == "bad_password"

        unknown = client.post(SIGNIN, json={"email": "b@x.com", "password": "anything"})
        assert unknown.status_code == 404
        assert unknown.json()["error"]["code"] == "user_not_found"

    def test_password_encoding_never_returned(self, client: TestClient) -> None:
        resp = client.post(SIGNUP, json={"email": "a@x.com", "password": "pw1"})
        assert "password" not in resp.json()
        assert "admin" not in resp.json()
        assert "password" not in client.get(WHOAMI).json()

    def test_invalid_email_rejected_by_validation(self, client: TestClient) -> None:
        resp = client.post(SIGNUP, json={"email": "not-an-email", "password": "pw1"})
        assert resp.status_code == 422
        assert resp.json()["error"]["code"] == "validation_error"

    def test_failed_signin_keeps_previous_session(self, signed_in_client: TestClient) -> None:
        bad = signed_in_client.post(SIGNIN, json={"email": USER_EMAIL, "password": "wrong"})
        assert bad.status_code == 400
        assert signed_in_client.get(WHOAMI).json()["email"] == USER_EMAIL

    def test_no_log_record_contains_a_password(self, client: TestClient, caplog: pytest.LogCaptureFixture) -> None:
        passwords = ("Route-Secret-One", "Route-Secret-Two", "Route-Wrong-Guess", "Route-Unknown-Guess")
        first, second, wrong, unknown = passwords
        caplog.set_level(logging.DEBUG)

        assert client.post(SIGNUP, json={"email": "logs@x.com", "password": first}).status_code == 201
        assert client.post(SIGNUP, json={"email": "logs@x.com", "password": second}).status_code == 409
        assert client.post(SIGNIN, json={"email": "logs@x.com", "password": first}).status_code == 200
        assert client.post(SIGNIN, json={"email": "logs@x.com", "password": wrong}).status_code == 400
        assert client.post(SIGNIN, json={"email": "nobody@x.com", "password": unknown}).status_code == 404

        assert caplog.records
        for record in caplog.records:
            text = record.getMessage() + repr(record.args)
            for password in passwords:
                assert password not in text


class TestSessionLifecycle:
    def test_whoami_requires_session(self, client: TestClient) -> None:
        resp = client.get(WHOAMI)
        assert resp.status_code == 401
        assert resp.json()["error"]["code"] == "unauthorized"

    def test_signout_clears_session(self, signed_in_client: TestClient) -> None:
        assert signed_in_client.get(WHOAMI).status_code == 200
        resp = signed_in_client.post(SIGNOUT)
        assert resp.status_code == 200
        assert signed_in_client.get(WHOAMI).status_code == 401

    def test_signin_after_signout(self, signed_in_client: TestClient) -> None:
        signed_in_client.post(SIGNOUT)
        resp = signed_in_client.post(SIGNIN, json={"email": USER_EMAIL, "password": USER_PASSWORD})
        assert resp.status_code == 200
        assert signed_in_client.get(WHOAMI).json()["email"] == USER_EMAIL

    def test_tampered_cookie_is_anonymous(self, signed_in_client: TestClient) -> None:
        cookie_name = get_settings().session_cookie
        value = signed_in_client.cookies.get(cookie_name)
        signed_in_client.cookies.clear()
        tampered = value[:-4] + ("AAAA" if not value.endswith("AAAA") else "BBBB")

        genuine = signed_in_client.get(WHOAMI, headers={"Cookie": f"{cookie_name}={value}"})
        assert genuine.status_code == 200
        signed_in_client.cookies.clear()
        forged = signed_in_client.get(WHOAMI, headers={"Cookie": f"{cookie_name}={tampered}"})
        assert forged.status_code == 401

    def test_deleted_user_session_still_passes_whoami(self, signed_in_client: TestClient, user_store) -> None:
        """A session for a deleted user is signed in but resolves to nothing."""
        user_id = signed_in_client.get(WHOAMI).json()["id"]
        user_store.delete(user_id)
        resp = signed_in_client.get(WHOAMI)
        assert resp.status_code == 200
        assert resp.json() is None

    def test_deleted_user_rejected_when_resolution_required(
        self, signed_in_client: TestClient, user_store, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        user_id = signed_in_client.get(WHOAMI).json()["id"]
        user_store.delete(user_id)
        monkeypatch.setattr(get_settings(), "auth_requires_resolved_identity", True)
        assert signed_in_client.get(WHOAMI).status_code == 401


class TestUserManagement:
    def test_regular_user_forbidden(self, signed_in_client: TestClient) -> None:
        resp = signed_in_client.get(USERS)
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "forbidden"

    def test_anonymous_forbidden(self, client: TestClient) -> None:
        assert client.get(USERS).status_code == 403

    def test_admin_lists_and_filters(self, admin_client: TestClient) -> None:
        admin_client.post(SIGNOUT)
        admin_client.post(SIGNUP, json={"email": "other@x.com", "password": "pw"})
        admin_client.post(SIGNIN, json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})

        everyone = admin_client.get(USERS)
        assert everyone.status_code == 200
        assert [u["email"] for u in everyone.json()] == [ADMIN_EMAIL, "other@x.com"]
        assert all(set(u) == {"id", "email"} for u in everyone.json())

        filtered = admin_client.get(USERS, params={"email": "other@x.com"})
        assert [u["email"] for u in filtered.json()] == ["other@x.com"]

    def test_admin_get_update_delete(self, admin_client: TestClient) -> None:
        admin_client.post(SIGNOUT)
        target = admin_client.post(SIGNUP, json={"email": "t@x.com", "password": "old"}).json()
        admin_client.post(SIGNIN, json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})

        assert admin_client.get(f"{USERS}/{target['id']}").json() == target

        patched = admin_client.patch(f"{USERS}/{target['id']}", json={"email": "t2@x.com", "password": "new"})
        assert patched.status_code == 200
        assert patched.json() == {"id": target["id"], "email": "t2@x.com"}

        assert admin_client.delete(f"{USERS}/{target['id']}").status_code == 204
        missing = admin_client.get(f"{USERS}/{target['id']}")
        assert missing.status_code == 404
        assert missing.json()["error"]["code"] == "user_not_found"

    def test_patched_password_is_hashed(self, admin_client: TestClient, user_store) -> None:
        admin_id = admin_client.get(WHOAMI).json()["id"]
        admin_client.patch(f"{USERS}/{admin_id}", json={"password": "rotated"})
        assert user_store.find_by_id(admin_id).password != "rotated"
        admin_client.post(SIGNOUT)
        assert admin_client.post(SIGNIN, json={"email": ADMIN_EMAIL, "password": "rotated"}).status_code == 200

    def test_patch_to_taken_email_conflicts(self, admin_client: TestClient) -> None:
        admin_id = admin_client.get(WHOAMI).json()["id"]
        admin_client.post(SIGNOUT)
        admin_client.post(SIGNUP, json={"email": "taken@x.com", "password": "pw"})
        admin_client.post(SIGNIN, json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})
        resp = admin_client.patch(f"{USERS}/{admin_id}", json={"email": "taken@x.com"})
        assert resp.status_code == 409
