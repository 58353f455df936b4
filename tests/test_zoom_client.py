# tests/test_zoom_client.py
from http import HTTPStatus
from typing import Any, Dict, List, Optional

import httpx
import pytest

from attendance_engine.services.zoom_client import ZoomClient, ZoomClientError, encode_meeting_uuid


class _FakeResponse:
    def __init__(self, status_code: int, json_data: Dict[str, Any]):
        self.status_code = status_code
        self._json_data = json_data
        self.text = str(json_data)

    def json(self) -> Dict[str, Any]:
        return self._json_data


class _FakeAsyncClient:
    """
    Minimal stand-in for httpx.AsyncClient.

    Token requests always succeed; GET requests are answered from `pages`,
    one page per call, in order.
    """

    requests: List[Dict[str, Any]] = []
    token_call_count: int = 0
    pages: List[Dict[str, Any]] = []

    def __init__(self, timeout: float | None = None):
        self._timeout = timeout

    async def __aenter__(self) -> "_FakeAsyncClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        return None

    async def post(self, url: str, params: Optional[Dict[str, Any]] = None, **kwargs) -> _FakeResponse:
        _FakeAsyncClient.token_call_count += 1
        _FakeAsyncClient.requests.append({"method": "POST", "url": url, "params": params, **kwargs})
        return _FakeResponse(
            status_code=HTTPStatus.OK,
            json_data={"access_token": "zoom-token", "expires_in": 3599, "token_type": "bearer"},
        )

    async def request(
        self,
        method: str,
        url: str,
        headers: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> _FakeResponse:
        _FakeAsyncClient.requests.append(
            {"method": method, "url": url, "headers": headers, "params": dict(params or {})}
        )
        page = _FakeAsyncClient.pages.pop(0) if _FakeAsyncClient.pages else {}
        return _FakeResponse(status_code=HTTPStatus.OK, json_data=page)


@pytest.fixture
def fake_http(monkeypatch):
    _FakeAsyncClient.requests = []
    _FakeAsyncClient.token_call_count = 0
    _FakeAsyncClient.pages = []
    monkeypatch.setattr(httpx, "AsyncClient", _FakeAsyncClient)
    return _FakeAsyncClient


def _client() -> ZoomClient:
    return ZoomClient(account_id="acc-1", client_id="cid", client_secret="secret")


@pytest.mark.asyncio
async def test_token_uses_account_credentials_and_is_cached(fake_http):
    client = _client()

    token1 = await client.get_access_token()
    token2 = await client.get_access_token()

    assert token1 == token2 == "zoom-token"
    assert fake_http.token_call_count == 1
    token_request = fake_http.requests[0]
    assert token_request["url"] == "https://zoom.us/oauth/token"
    assert token_request["params"] == {"grant_type": "account_credentials", "account_id": "acc-1"}
    assert token_request["auth"] == ("cid", "secret")


@pytest.mark.asyncio
async def test_participants_follow_next_page_token(fake_http):
    fake_http.pages = [
        {"participants": [{"id": "a"}, {"id": "b"}], "next_page_token": "tok-2"},
        {"participants": [{"id": "c"}], "next_page_token": ""},
    ]

    participants = await _client().get_past_meeting_participants("abc==")

    assert [p["id"] for p in participants] == ["a", "b", "c"]
    gets = [r for r in fake_http.requests if r["method"] == "GET"]
    assert len(gets) == 2
    assert gets[0]["url"] == "https://api.zoom.us/v2/past_meetings/abc%3D%3D/participants"
    assert gets[0]["headers"]["Authorization"] == "Bearer zoom-token"
    assert "next_page_token" not in gets[0]["params"]
    assert gets[1]["params"]["next_page_token"] == "tok-2"


def test_uuid_with_slashes_is_double_encoded():
    assert encode_meeting_uuid("abc==") == "abc%3D%3D"
    assert encode_meeting_uuid("/ab//c==") == "%252Fab%252F%252Fc%253D%253D"


@pytest.mark.asyncio
async def test_bad_token_response_raises(monkeypatch):
    class _BadTokenClient(_FakeAsyncClient):
        async def post(self, url: str, params=None, **kwargs) -> _FakeResponse:
            return _FakeResponse(status_code=HTTPStatus.BAD_REQUEST, json_data={"reason": "invalid_client"})

    monkeypatch.setattr(httpx, "AsyncClient", _BadTokenClient)

    with pytest.raises(ZoomClientError):
        await _client().get_access_token()


@pytest.mark.asyncio
async def test_non_2xx_get_raises(monkeypatch, fake_http):
    class _NotFoundClient(_FakeAsyncClient):
        async def request(self, method, url, headers=None, params=None) -> _FakeResponse:
            return _FakeResponse(status_code=HTTPStatus.NOT_FOUND, json_data={"code": 3001})

    monkeypatch.setattr(httpx, "AsyncClient", _NotFoundClient)

    with pytest.raises(ZoomClientError) as exc_info:
        await _client().get_past_meeting_details("missing")

    assert "404" in str(exc_info.value)


def test_missing_credentials_are_rejected():
    with pytest.raises(ValueError):
        ZoomClient(account_id="", client_id="cid", client_secret="secret")
