#!/usr/bin/env python3
"""
Admin Authentication Tests

Session token signing/verification, the login endpoint and the bearer
guard on admin routes.
"""

import base64
import json
import os
import sys
import time

import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from web_ui.api.middleware import auth as auth_module
from web_ui.api.middleware.auth import create_admin_session_token, verify_token


def _forge(payload: dict) -> str:
    encoded = base64.urlsafe_b64encode(json.dumps(payload).encode()).rstrip(b"=").decode()
    return f"{encoded}.{auth_module._sign(encoded)}"


class TestSessionTokens:

    def test_round_trip(self):
        token, expires_at = create_admin_session_token("admin")
        session = verify_token(token)
        assert session is not None
        assert session.username == "admin"
        assert session.exp == expires_at

    def test_expires_in_24_hours(self):
        before = int(time.time() * 1000)
        _, expires_at = create_admin_session_token("admin")
        assert expires_at - before == pytest.approx(24 * 3600 * 1000, abs=5000)

    def test_token_has_no_padding(self):
        token, _ = create_admin_session_token("admin")
        assert "=" not in token
        assert token.count(".") == 1

    def test_tampered_signature_rejected(self):
        token, _ = create_admin_session_token("admin")
        payload, signature = token.split(".")
        flipped = ("A" if signature[0] != "A" else "B") + signature[1:]
        assert verify_token(f"{payload}.{flipped}") is None

    def test_tampered_payload_rejected(self):
        token, _ = create_admin_session_token("admin")
        _, signature = token.split(".")
        other = base64.urlsafe_b64encode(b'{"username":"root","exp":99999999999999}').rstrip(b"=").decode()
        assert verify_token(f"{other}.{signature}") is None

    def test_non_ascii_token_rejected(self):
        assert verify_token("\u00e9t\u00e9.sig\u00e9") is None

    def test_wrong_part_count(self):
        assert verify_token("abc") is None
        assert verify_token("a.b.c") is None

    def test_expired(self):
        token = _forge({"username": "admin", "exp": int(time.time() * 1000) - 1})
        assert verify_token(token) is None

    def test_missing_username(self):
        token = _forge({"exp": int(time.time() * 1000) + 60000})
        assert verify_token(token) is None

    def test_garbage_payload(self):
        encoded = base64.urlsafe_b64encode(b"not json").rstrip(b"=").decode()
        assert verify_token(f"{encoded}.{auth_module._sign(encoded)}") is None


class TestLoginEndpoint:

    def test_login_success(self, client):
        resp = client.post("/auth/login", json={"username": "admin", "password": "s3cret"})
        assert resp.status_code == 200
        data = resp.json()
        assert data["ok"] is True
        assert data["username"] == "admin"
        assert verify_token(data["token"]).username == "admin"
        assert isinstance(data["expiresAt"], int)

    def test_login_wrong_password(self, client):
        resp = client.post("/auth/login", json={"username": "admin", "password": "nope"})
        assert resp.status_code == 401
        assert resp.json() == {"message": "invalid username or password"}

    def test_login_empty_fields(self, client):
        resp = client.post("/auth/login", json={"username": "", "password": ""})
        assert resp.status_code == 400
        paths = {issue["path"] for issue in resp.json()["issues"]}
        assert paths == {"username", "password"}


class TestRequireAdmin:

    def test_missing_header(self, client):
        resp = client.get("/admin/users")
        assert resp.status_code == 401
        assert resp.json() == {"message": "unauthorized"}

    def test_invalid_token(self, client):
        resp = client.get("/admin/users", headers={"Authorization": "Bearer nope.nope"})
        assert resp.status_code == 401

    def test_lowercase_scheme_accepted(self, client):
        token, _ = create_admin_session_token("admin")
        resp = client.get("/admin/users", headers={"Authorization": f"bearer {token}"})
        assert resp.status_code == 200

    def test_health_is_public(self, client):
        resp = client.get("/health")
        assert resp.status_code == 200
        assert resp.json()["ok"] is True
        assert resp.json()["now"].endswith("Z")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
