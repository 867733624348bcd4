#!/usr/bin/env python3
"""
Pytest Configuration and Shared Fixtures

Provides an in-memory database, a fake Emby server (httpx MockTransport)
and an authenticated FastAPI test client.
"""

import json
import os
import sys
import uuid
from typing import Any, Dict, List, Optional

import httpx
import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

# Required settings must exist before config is imported
os.environ.setdefault("ADMIN_USERNAME", "admin")
os.environ.setdefault("ADMIN_PASSWORD", "s3cret")
os.environ.setdefault("AUTH_SECRET", "test-auth-secret")
os.environ.setdefault("EMBY_WEBHOOK_SECRET", "hook-secret")
os.environ.setdefault("EMBY_BASE_URL", "http://emby.test/emby/")
os.environ.setdefault("EMBY_API_KEY", "test-api-key")
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["SCHEDULER_ENABLED"] = "false"

from membership import database
from membership.emby_client import EmbyClient, get_emby_client
from membership.expiration import get_expire_scheduler
from membership.models import Base


# ============================================================================
# FAKE EMBY SERVER
# ============================================================================

class FakeEmby:
    """
    In-memory stand-in for the Emby REST API.

    ``fail`` maps "METHOD path" to a status code the fake answers with
    instead of handling the request.

    Setting ``unreachable`` makes every request fail at the transport level,
    as when the server is down.
    """

    def __init__(self, api_key: str = "test-api-key"):
        self.api_key = api_key
        self.users: Dict[str, Dict[str, Any]] = {}
        self.sessions: List[Dict[str, Any]] = []
        self.passwords: Dict[str, str] = {}
        self.requests: List[httpx.Request] = []
        self.fail: Dict[str, int] = {}
        self.unreachable = False

    def add_user(self, name: str, user_id: Optional[str] = None, disabled: bool = False) -> str:
        user_id = user_id or uuid.uuid4().hex
        self.users[user_id] = {
            "Id": user_id,
            "Name": name,
            "DateCreated": "2026-01-01T00:00:00.0000000Z",
            "Policy": {"IsDisabled": disabled, "EnableRemoteAccess": True},
        }
        return user_id

    def calls(self, method: str, path: str) -> List[httpx.Request]:
        return [r for r in self.requests if r.method == method and r.url.path == path]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.unreachable:
            raise httpx.ConnectError("connection refused", request=request)
        if request.url.params.get("api_key") != self.api_key:
            return httpx.Response(401, text="missing api key")

        path = request.url.path
        if path.startswith("/emby"):
            path = path[len("/emby"):]
        key = f"{request.method} {path}"
        if key in self.fail:
            return httpx.Response(self.fail[key], text=f"forced failure for {key}")

        parts = [p for p in path.split("/") if p]
        body = json.loads(request.content) if request.content else None

        if key == "GET /System/Info":
            return httpx.Response(200, json={
                "ServerName": "Test Emby", "Version": "4.8.0.0", "Id": "server-1",
            })
        if key == "GET /Users":
            return httpx.Response(200, json=list(self.users.values()))
        if key == "GET /Sessions":
            return httpx.Response(200, json=self.sessions)
        if key == "POST /Users/New":
            name = request.url.params.get("Name") or (body or {}).get("Name")
            user_id = self.add_user(name)
            return httpx.Response(200, json={"Id": user_id, "Name": name})
        if key == "POST /Users/Delete":
            user_id = request.url.params.get("Id")
            if self.users.pop(user_id, None) is None:
                return httpx.Response(404, text="not found")
            return httpx.Response(204)

        if len(parts) >= 2 and parts[0] == "Users":
            user = self.users.get(parts[1])
            if user is None:
                return httpx.Response(404, text="user not found")
            if len(parts) == 2 and request.method == "GET":
                return httpx.Response(200, json=user)
            if len(parts) == 2 and request.method == "DELETE":
                del self.users[parts[1]]
                return httpx.Response(204)
            if parts[2:] == ["Policy"] and request.method == "POST":
                user["Policy"] = body
                return httpx.Response(204)
            if parts[2:] == ["Password"] and request.method == "POST":
                self.passwords[parts[1]] = body["NewPw"]
                return httpx.Response(204)

        return httpx.Response(404, text=f"no route for {key}")


class FakeScheduler:
    """Records schedule changes instead of running APScheduler"""

    def __init__(self):
        self.applied: List[str] = []

    def apply(self, expression: str) -> None:
        from membership.expiration import parse_cron
        parse_cron(expression)
        self.applied.append(expression)


# ============================================================================
# DATABASE
# ============================================================================

@pytest.fixture
def db_engine():
    engine = database.configure_database("sqlite://")
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def db(db_engine):
    session = database.SessionLocal()
    try:
        yield session
    finally:
        session.close()


# ============================================================================
# EMBY
# ============================================================================

@pytest.fixture
def fake_emby():
    return FakeEmby()


@pytest.fixture
async def emby_client(fake_emby):
    client = EmbyClient(
        "http://emby.test/emby",
        "test-api-key",
        transport=httpx.MockTransport(fake_emby),
    )
    yield client
    await client.aclose()


# ============================================================================
# SMTP
# ============================================================================

@pytest.fixture
def smtp_mock(monkeypatch):
    """Replace SMTP_SSL / SMTP with a MagicMock and return it"""
    from unittest.mock import MagicMock
    from membership import email_service

    smtp = MagicMock()
    monkeypatch.setattr(email_service.smtplib, "SMTP_SSL", smtp)
    monkeypatch.setattr(email_service.smtplib, "SMTP", smtp)
    return smtp


@pytest.fixture
def smtp_configured(db):
    """Fully configured notification settings"""
    from membership.settings_store import NotificationSettingsData, update_notification_settings
    return update_notification_settings(db, NotificationSettingsData(
        sender_email="noreply@example.com",
        email_auth_code="auth-code",
        smtp_host="smtp.example.com",
        smtp_port=465,
        smtp_secure=True,
        ingestion_push_enabled=True,
    ))


# ============================================================================
# FASTAPI TEST CLIENT FIXTURES
# ============================================================================

@pytest.fixture
def fake_scheduler():
    return FakeScheduler()


@pytest.fixture
def app(db_engine, fake_emby, fake_scheduler):
    """FastAPI application wired to the test database and fake Emby"""
    from web_ui.api.main import app

    client = EmbyClient(
        "http://emby.test/emby",
        "test-api-key",
        transport=httpx.MockTransport(fake_emby),
    )
    app.dependency_overrides[get_emby_client] = lambda: client
    app.dependency_overrides[get_expire_scheduler] = lambda: fake_scheduler
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def client(app):
    from fastapi.testclient import TestClient
    return TestClient(app)


@pytest.fixture
def auth_headers():
    from web_ui.api.middleware.auth import create_admin_session_token
    token, _ = create_admin_session_token("admin")
    return {"Authorization": f"Bearer {token}"}
