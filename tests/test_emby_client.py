#!/usr/bin/env python3
"""
Emby Client Tests

Exercises the client against the in-memory fake Emby server, including
the endpoint/payload fallbacks and error reporting.
"""

import json
import os
import sys

import httpx
import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from membership.exceptions import EmbyAPIError


class TestRequests:

    async def test_api_key_sent_as_query_and_header(self, emby_client, fake_emby):
        await emby_client.test_connection()
        request = fake_emby.requests[-1]
        assert request.url.params["api_key"] == "test-api-key"
        assert request.headers["X-Emby-Token"] == "test-api-key"
        assert request.url.path == "/emby/System/Info"

    async def test_test_connection(self, emby_client):
        info = await emby_client.test_connection()
        assert info == {"ok": True, "serverName": "Test Emby", "version": "4.8.0.0", "serverId": "server-1"}

    async def test_error_message_carries_status_and_body(self, emby_client, fake_emby):
        fake_emby.fail["GET /System/Info"] = 503
        with pytest.raises(EmbyAPIError) as exc_info:
            await emby_client.test_connection()
        assert exc_info.value.status_code == 503
        assert "status=503" in str(exc_info.value)
        assert "forced failure" in str(exc_info.value)

    async def test_unreachable_server_raises_api_error(self, emby_client, fake_emby):
        fake_emby.unreachable = True
        with pytest.raises(EmbyAPIError) as exc_info:
            await emby_client.test_connection()
        assert exc_info.value.status_code is None
        assert "Emby connection failed" in str(exc_info.value)
        assert "ConnectError" in str(exc_info.value)
        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)

    async def test_unreachable_during_fallbacks(self, emby_client, fake_emby):
        fake_emby.unreachable = True
        with pytest.raises(EmbyAPIError) as exc_info:
            await emby_client.delete_user("u1")
        assert "Emby delete user failed" in str(exc_info.value)


class TestUsers:

    async def test_list_users(self, emby_client, fake_emby):
        fake_emby.add_user("alice", user_id="u1")
        fake_emby.add_user("bob", user_id="u2", disabled=True)
        users = await emby_client.list_users()
        by_id = {u["embyUserId"]: u for u in users}
        assert by_id["u1"]["embyUsername"] == "alice"
        assert by_id["u1"]["embyDisabled"] is False
        assert by_id["u2"]["embyDisabled"] is True
        assert by_id["u1"]["embyCreatedAt"].startswith("2026-01-01")

    async def test_create_user_sets_stream_limit_and_password(self, emby_client, fake_emby):
        created = await emby_client.create_user("carol", "  pw123  ")
        user_id = created["embyUserId"]
        assert created["embyUsername"] == "carol"
        policy = fake_emby.users[user_id]["Policy"]
        assert policy["SimultaneousStreamLimit"] == 1
        assert policy["EnableRemoteAccess"] is True
        assert fake_emby.passwords[user_id] == "pw123"

    async def test_create_user_without_password(self, emby_client, fake_emby):
        created = await emby_client.create_user("dave", "   ")
        assert created["embyUserId"] not in fake_emby.passwords

    async def test_create_user_falls_back_to_second_endpoint(self, emby_client, fake_emby):
        calls = {"n": 0}
        original = fake_emby.__call__

        def flaky(request):
            if request.url.path.endswith("/Users/New") and "Name" in request.url.params and calls["n"] == 0:
                calls["n"] += 1
                fake_emby.requests.append(request)
                return httpx.Response(400, text="query form not supported")
            return original(request)

        emby_client._client._transport.handler = flaky
        created = await emby_client.create_user("erin")
        assert created["embyUsername"] == "erin"
        new_calls = fake_emby.calls("POST", "/emby/Users/New")
        assert len(new_calls) == 2
        assert "Name" not in new_calls[1].url.params
        assert json.loads(new_calls[1].content) == {"Name": "erin"}

    async def test_create_user_reports_last_error(self, emby_client, fake_emby):
        fake_emby.fail["POST /Users/New"] = 500
        with pytest.raises(EmbyAPIError) as exc_info:
            await emby_client.create_user("frank")
        assert "Emby create user failed" in str(exc_info.value)
        assert len(fake_emby.calls("POST", "/emby/Users/New")) == 2

    async def test_set_password_first_payload(self, emby_client, fake_emby):
        user_id = fake_emby.add_user("gina")
        await emby_client.set_password(user_id, "newpw")
        call = fake_emby.calls("POST", f"/emby/Users/{user_id}/Password")[0]
        assert json.loads(call.content) == {
            "Id": user_id, "CurrentPw": "", "NewPw": "newpw", "ResetPassword": False,
        }

    async def test_set_password_tries_all_payloads(self, emby_client, fake_emby):
        user_id = fake_emby.add_user("hank")
        fake_emby.fail[f"POST /Users/{user_id}/Password"] = 400
        with pytest.raises(EmbyAPIError):
            await emby_client.set_password(user_id, "pw")
        assert len(fake_emby.calls("POST", f"/emby/Users/{user_id}/Password")) == 4

    async def test_delete_user(self, emby_client, fake_emby):
        user_id = fake_emby.add_user("ivy")
        await emby_client.delete_user(user_id)
        assert user_id not in fake_emby.users

    async def test_delete_user_falls_back_to_post(self, emby_client, fake_emby):
        user_id = fake_emby.add_user("jack")
        fake_emby.fail[f"DELETE /Users/{user_id}"] = 405
        await emby_client.delete_user(user_id)
        assert user_id not in fake_emby.users
        assert fake_emby.calls("POST", "/emby/Users/Delete")[0].url.params["Id"] == user_id

    async def test_policy_round_trip(self, emby_client, fake_emby):
        user_id = fake_emby.add_user("kim")
        await emby_client.set_user_policy(user_id, {"IsHidden": True})
        assert await emby_client.get_user_policy(user_id) == {"IsHidden": True}

    async def test_set_user_disabled_merges_policy(self, emby_client, fake_emby):
        user_id = fake_emby.add_user("lee")
        await emby_client.set_user_disabled(user_id, True)
        policy = fake_emby.users[user_id]["Policy"]
        assert policy == {"IsDisabled": True, "EnableRemoteAccess": True}

    async def test_unknown_user_lookup_fails(self, emby_client):
        with pytest.raises(EmbyAPIError) as exc_info:
            await emby_client.get_user("missing")
        assert exc_info.value.status_code == 404


class TestSessions:

    async def test_activity_mapping(self, emby_client, fake_emby):
        fake_emby.sessions = [
            {
                "Id": "s1", "UserId": "u1", "UserName": "alice", "DeviceName": "TV",
                "Client": "Emby Theater", "LastActivityDate": "2026-10-18T10:00:00Z",
                "NowPlayingItem": {"Name": "Movie", "Type": "Movie", "RunTimeTicks": 1000},
                "PlayState": {"PositionTicks": 250, "IsPaused": True},
            },
            {"Id": "s2", "UserId": "u2", "NowPlayingItem": {"Name": "Ep"}, "PlayState": {}},
            {"Id": "s3"},
        ]
        activities = await emby_client.list_realtime_activities()
        assert activities[0] == {
            "sessionId": "s1", "userName": "alice", "userId": "u1", "deviceName": "TV",
            "client": "Emby Theater", "itemName": "Movie", "itemType": "Movie",
            "playbackState": "PAUSED", "positionTicks": 250, "runtimeTicks": 1000,
            "lastActivityAt": "2026-10-18T10:00:00Z",
        }
        assert activities[1]["playbackState"] == "PLAYING"
        assert activities[2]["playbackState"] == "IDLE"
        assert activities[2]["userId"] is None


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
