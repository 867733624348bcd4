"""
Emby REST API client

Thin async wrapper over the Emby server endpoints used by the admin backend.
Every request carries the API key both as the ``api_key`` query parameter and
the ``X-Emby-Token`` header. Several operations try more than one endpoint or
payload shape because Emby versions disagree on them; the first success wins
and the last failure is reported.
"""

from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote

import httpx

from config import settings
from membership.exceptions import EmbyAPIError
from utils.logger import logger

ERROR_BODY_LIMIT = 400


def _describe_error(response: httpx.Response) -> str:
    return f"status={response.status_code} body={response.text[:ERROR_BODY_LIMIT]}"


def _playback_state(session: Dict[str, Any]) -> str:
    if not session.get("NowPlayingItem"):
        return "IDLE"
    play_state = session.get("PlayState") or {}
    return "PAUSED" if play_state.get("IsPaused") else "PLAYING"


class EmbyClient:
    """Async client for one Emby server"""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=timeout,
            transport=transport,
            headers={
                "Content-Type": "application/json",
                "X-Emby-Token": api_key,
            },
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(
        self,
        method: str,
        path: str,
        json: Any = None,
        params: Optional[Dict[str, str]] = None,
        operation: str = "Emby request",
    ) -> httpx.Response:
        """Send one request; connection and timeout failures raise EmbyAPIError"""
        if not path.startswith("/"):
            path = f"/{path}"
        query = dict(params or {})
        query["api_key"] = self.api_key
        try:
            return await self._client.request(method, path, json=json, params=query)
        except httpx.HTTPError as e:
            raise EmbyAPIError(operation, f"{method} {path}: {e.__class__.__name__}: {e}") from e

    async def _request_ok(self, operation: str, method: str, path: str, **kwargs) -> httpx.Response:
        response = await self._request(method, path, operation=operation, **kwargs)
        if response.is_error:
            raise EmbyAPIError(operation, _describe_error(response), response.status_code)
        return response

    async def _first_success(
        self, operation: str, candidates: List[Tuple[str, str, Dict[str, Any]]]
    ) -> httpx.Response:
        last_error = "unknown"
        last_status: Optional[int] = None
        for method, path, kwargs in candidates:
            response = await self._request(method, path, operation=operation, **kwargs)
            if response.is_success:
                return response
            last_error = _describe_error(response)
            last_status = response.status_code
            logger.debug(f"[emby] {operation} attempt {method} {path} failed: {last_error}")
        raise EmbyAPIError(operation, last_error, last_status)

    # =========================================================================
    # Server
    # =========================================================================

    async def test_connection(self) -> Dict[str, Any]:
        response = await self._request_ok("Emby connection", "GET", "/System/Info")
        info = response.json()
        return {
            "ok": True,
            "serverName": info.get("ServerName"),
            "version": info.get("Version"),
            "serverId": info.get("Id"),
        }

    # =========================================================================
    # Users
    # =========================================================================

    async def list_users(self) -> List[Dict[str, Any]]:
        response = await self._request_ok("Emby users query", "GET", "/Users")
        return [
            {
                "embyUserId": item["Id"],
                "embyUsername": item["Name"],
                "embyDisabled": bool((item.get("Policy") or {}).get("IsDisabled")),
                "embyCreatedAt": item.get("DateCreated"),
            }
            for item in response.json()
        ]

    async def get_user(self, emby_user_id: str) -> Dict[str, Any]:
        response = await self._request_ok(
            "Emby user lookup", "GET", f"/Users/{quote(emby_user_id, safe='')}"
        )
        return response.json()

    async def create_user(self, username: str, password: Optional[str] = None) -> Dict[str, str]:
        """Create a user limited to one simultaneous stream, optionally with a password"""
        body = {"Name": username}
        response = await self._first_success(
            "Emby create user",
            [
                ("POST", "/Users/New", {"json": body, "params": {"Name": username}}),
                ("POST", "/Users/New", {"json": body}),
            ],
        )
        created = response.json()
        emby_user_id = created["Id"]

        user = await self.get_user(emby_user_id)
        policy = dict(user.get("Policy") or {})
        policy["SimultaneousStreamLimit"] = 1
        await self.set_user_policy(emby_user_id, policy)

        if password and password.strip():
            await self.set_password(emby_user_id, password.strip())

        return {"embyUserId": emby_user_id, "embyUsername": created["Name"]}

    async def set_password(self, emby_user_id: str, password: str) -> None:
        path = f"/Users/{quote(emby_user_id, safe='')}/Password"
        payloads = [
            {"Id": emby_user_id, "CurrentPw": "", "NewPw": password, "ResetPassword": False},
            {"CurrentPw": "", "NewPw": password, "ResetPassword": False},
            {"CurrentPw": "", "NewPw": password},
            {"Id": emby_user_id, "NewPw": password},
        ]
        await self._first_success(
            "Emby set password",
            [("POST", path, {"json": payload}) for payload in payloads],
        )

    async def delete_user(self, emby_user_id: str) -> None:
        await self._first_success(
            "Emby delete user",
            [
                ("DELETE", f"/Users/{quote(emby_user_id, safe='')}", {}),
                ("POST", "/Users/Delete", {"params": {"Id": emby_user_id}}),
            ],
        )

    async def get_user_policy(self, emby_user_id: str) -> Dict[str, Any]:
        user = await self.get_user(emby_user_id)
        return user.get("Policy") or {}

    async def set_user_policy(self, emby_user_id: str, policy: Dict[str, Any]) -> None:
        await self._request_ok(
            "Emby policy update",
            "POST",
            f"/Users/{quote(emby_user_id, safe='')}/Policy",
            json=policy,
        )

    async def set_user_disabled(self, emby_user_id: str, disabled: bool) -> Dict[str, Any]:
        """Merge IsDisabled into the current policy; returns the user as fetched"""
        user = await self.get_user(emby_user_id)
        policy = dict(user.get("Policy") or {})
        policy["IsDisabled"] = disabled
        await self.set_user_policy(emby_user_id, policy)
        return user

    # =========================================================================
    # Sessions
    # =========================================================================

    async def list_realtime_activities(self) -> List[Dict[str, Any]]:
        response = await self._request_ok("Emby sessions query", "GET", "/Sessions")
        activities = []
        for session in response.json():
            item = session.get("NowPlayingItem") or {}
            play_state = session.get("PlayState") or {}
            activities.append({
                "sessionId": session.get("Id"),
                "userName": session.get("UserName"),
                "userId": session.get("UserId"),
                "deviceName": session.get("DeviceName"),
                "client": session.get("Client"),
                "itemName": item.get("Name"),
                "itemType": item.get("Type"),
                "playbackState": _playback_state(session),
                "positionTicks": play_state.get("PositionTicks"),
                "runtimeTicks": item.get("RunTimeTicks"),
                "lastActivityAt": session.get("LastActivityDate"),
            })
        return activities


# Singleton instance
_emby_client: Optional[EmbyClient] = None


def get_emby_client() -> EmbyClient:
    """Get or create the Emby client singleton (also used as a FastAPI dependency)"""
    global _emby_client
    if _emby_client is None:
        _emby_client = EmbyClient(
            settings.EMBY_BASE_URL,
            settings.EMBY_API_KEY,
            timeout=settings.EMBY_TIMEOUT_SECONDS,
        )
    return _emby_client


async def close_emby_client() -> None:
    global _emby_client
    if _emby_client is not None:
        await _emby_client.aclose()
        _emby_client = None
