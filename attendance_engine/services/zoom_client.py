# attendance_engine/services/zoom_client.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from attendance_engine.core.config import get_settings
from attendance_engine.services.errors import ParticipantSourceError


class ZoomClientError(ParticipantSourceError):
    """
    Raised when the ZoomClient cannot obtain an access token or when a
    Zoom API call fails in a non-recoverable way.
    """


@dataclass
class _TokenState:
    access_token: str
    expires_at: datetime


def encode_meeting_uuid(meeting_uuid: str) -> str:
    """
    Zoom requires UUIDs that start with '/' or contain '//' to be
    URL-encoded twice when used as a path segment.
    """
    encoded = quote(meeting_uuid, safe="")
    if meeting_uuid.startswith("/") or "//" in meeting_uuid:
        encoded = quote(encoded, safe="")
    return encoded


class ZoomClient:
    """
    Minimal Zoom REST API client using the server-to-server OAuth
    (`account_credentials`) flow.

    Responsibilities
    ----------------
    - Fetch and cache an access token.
    - Provide thin GET helpers, including cursor pagination.
    - Avoid leaking HTTP client details into the rest of the codebase.

    Notes
    -----
    - Token caching is in-memory for this process only.
    - A small safety margin is applied when calculating token expiry to avoid
      edge cases near expiration.
    """

    def __init__(
        self,
        account_id: str,
        client_id: str,
        client_secret: str,
        base_url: str = "https://api.zoom.us/v2",
        token_url: str = "https://zoom.us/oauth/token",
        timeout_seconds: float = 10.0,
    ) -> None:
        if not account_id or not client_id or not client_secret:
            raise ValueError("account_id, client_id and client_secret are required")

        self._account_id = account_id
        self._client_id = client_id
        self._client_secret = client_secret
        self._base_url = base_url.rstrip("/")
        self._token_url = token_url
        self._timeout_seconds = timeout_seconds

        self._token_state: Optional[_TokenState] = None

    async def _fetch_token(self) -> _TokenState:
        params = {
            "grant_type": "account_credentials",
            "account_id": self._account_id,
        }

        try:
            async with httpx.AsyncClient(timeout=self._timeout_seconds) as client:
                resp = await client.post(
                    self._token_url,
                    params=params,
                    auth=(self._client_id, self._client_secret),
                )
        except httpx.HTTPError as exc:
            raise ZoomClientError(f"Zoom token request failed: {exc}") from exc

        if resp.status_code != 200:
            raise ZoomClientError(
                f"Failed to obtain Zoom token (status={resp.status_code}): {resp.text}"
            )

        payload = resp.json()
        access_token = payload.get("access_token")
        expires_in = payload.get("expires_in")

        if not access_token or not isinstance(expires_in, (int, float)):
            raise ZoomClientError(
                "Invalid token response from Zoom (missing access_token/expires_in)"
            )

        now = datetime.now(tz=timezone.utc)
        safety_margin = 60  # seconds
        expires_at = now + timedelta(seconds=float(expires_in) - safety_margin)

        return _TokenState(access_token=access_token, expires_at=expires_at)

    async def get_access_token(self) -> str:
        """
        Return a valid access token, using a cached value if still valid.
        """
        now = datetime.now(tz=timezone.utc)
        if self._token_state and self._token_state.expires_at > now:
            return self._token_state.access_token

        self._token_state = await self._fetch_token()
        return self._token_state.access_token

    async def get_json(
        self,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Issue a GET request to a Zoom endpoint and return the JSON payload.

        Raises ZoomClientError on non-2xx responses or transport failures.
        """
        token = await self.get_access_token()

        if path.startswith("http://") or path.startswith("https://"):
            url = path
        else:
            url = f"{self._base_url}/{path.lstrip('/')}"

        headers = {
            "Authorization": f"Bearer {token}",
            "Accept": "application/json",
        }

        try:
            async with httpx.AsyncClient(timeout=self._timeout_seconds) as client:
                resp = await client.request(
                    method="GET",
                    url=url,
                    headers=headers,
                    params=params,
                )
        except httpx.HTTPError as exc:
            raise ZoomClientError(f"Zoom GET {path} failed: {exc}") from exc

        if resp.status_code // 100 != 2:
            raise ZoomClientError(
                f"Zoom GET failed (status={resp.status_code}): {resp.text}"
            )
        return resp.json()

    async def get_paginated(
        self,
        path: str,
        item_key: str,
        *,
        page_size: int = 300,
    ) -> List[Dict[str, Any]]:
        """
        Follow `next_page_token` until exhausted and return all items.
        """
        items: List[Dict[str, Any]] = []
        params: Dict[str, Any] = {"page_size": page_size}

        while True:
            payload = await self.get_json(path, params=params)
            items.extend(payload.get(item_key) or [])
            next_token = payload.get("next_page_token")
            if not next_token:
                return items
            params = {"page_size": page_size, "next_page_token": next_token}

    async def get_past_meeting_participants(self, meeting_uuid: str) -> List[Dict[str, Any]]:
        path = f"/past_meetings/{encode_meeting_uuid(meeting_uuid)}/participants"
        return await self.get_paginated(path, "participants")

    async def get_past_meeting_details(self, meeting_uuid: str) -> Dict[str, Any]:
        return await self.get_json(f"/past_meetings/{encode_meeting_uuid(meeting_uuid)}")


# Simple singleton-style accessor wired to app settings
_zoom_client_instance: Optional[ZoomClient] = None


def get_zoom_client() -> ZoomClient:
    """
    Lazily construct a ZoomClient instance using application settings.
    """
    global _zoom_client_instance
    if _zoom_client_instance is None:
        settings = get_settings()
        if not settings.ZOOM_ACCOUNT_ID or not settings.ZOOM_CLIENT_ID or not settings.ZOOM_CLIENT_SECRET:
            raise ZoomClientError(
                "ZOOM_ACCOUNT_ID, ZOOM_CLIENT_ID and ZOOM_CLIENT_SECRET must be "
                "configured in settings to use the shared Zoom client."
            )
        _zoom_client_instance = ZoomClient(
            account_id=settings.ZOOM_ACCOUNT_ID,
            client_id=settings.ZOOM_CLIENT_ID,
            client_secret=settings.ZOOM_CLIENT_SECRET,
            base_url=str(settings.ZOOM_BASE_URL or "https://api.zoom.us/v2"),
        )
    return _zoom_client_instance
