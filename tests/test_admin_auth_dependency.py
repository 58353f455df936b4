# tests/test_admin_auth_dependency.py
from http import HTTPStatus

import pytest

from attendance_engine.api.dependencies import admin_auth as auth_module


class DummySettingsProd:
    APP_ENV = "prod"
    ADMIN_API_KEY = "supersecret"


class DummySettingsProdNoKey:
    APP_ENV = "prod"
    ADMIN_API_KEY = None


class DummySettingsLocalWithKey:
    APP_ENV = "local"
    ADMIN_API_KEY = "localsecret"


URL = "/admin/analytics/cliff-detection/bulk"


@pytest.mark.asyncio
async def test_401_when_key_missing_in_prod(monkeypatch, api_client):
    monkeypatch.setattr(auth_module, "get_settings", lambda: DummySettingsProd())

    resp = await api_client.post(URL)

    assert resp.status_code == HTTPStatus.UNAUTHORIZED
    assert "invalid or missing" in resp.json()["detail"].lower()


@pytest.mark.asyncio
async def test_401_when_key_wrong_in_prod(monkeypatch, api_client):
    monkeypatch.setattr(auth_module, "get_settings", lambda: DummySettingsProd())

    resp = await api_client.post(URL, headers={"X-Admin-Api-Key": "wrong-key"})

    assert resp.status_code == HTTPStatus.UNAUTHORIZED


@pytest.mark.asyncio
async def test_200_when_key_correct_in_prod(monkeypatch, api_client):
    monkeypatch.setattr(auth_module, "get_settings", lambda: DummySettingsProd())

    resp = await api_client.post(URL, headers={"X-Admin-Api-Key": "supersecret"})

    assert resp.status_code == HTTPStatus.OK
    assert resp.json()["summary"]["total"] == 0


@pytest.mark.asyncio
async def test_500_when_key_not_configured_in_prod(monkeypatch, api_client):
    monkeypatch.setattr(auth_module, "get_settings", lambda: DummySettingsProdNoKey())

    resp = await api_client.post(URL, headers={"X-Admin-Api-Key": "anything"})

    assert resp.status_code == HTTPStatus.INTERNAL_SERVER_ERROR


@pytest.mark.asyncio
async def test_local_key_is_enforced_once_configured(monkeypatch, api_client):
    monkeypatch.setattr(auth_module, "get_settings", lambda: DummySettingsLocalWithKey())

    denied = await api_client.post(URL)
    allowed = await api_client.post(URL, headers={"X-Admin-Api-Key": "localsecret"})

    assert denied.status_code == HTTPStatus.UNAUTHORIZED
    assert allowed.status_code == HTTPStatus.OK
