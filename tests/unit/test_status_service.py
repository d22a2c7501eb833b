import pytest
from fastapi import FastAPI

from credgate.core.exceptions import MalformedRequest, UnknownProvider
from credgate.core.oauth import MockHttpClient
from credgate.core.provider_manager import ProviderManager
from credgate.core.server import GatewayServer, RequestCounter, ServerStatus
from credgate.core.status_service import StatusService
from tests.fixtures.credentials import gemini_document


@pytest.fixture
def env(creds_env):
    return {
        **creds_env,
        "OPENAI_API_KEY": "sk-ABCD1234WXYZ",
        "OPENAI_BASE_URL": "https://api.openai.com/v1",
        "GEMINI_OAUTH_CLIENT_ID": "cid",
        "GEMINI_OAUTH_CLIENT_SECRET": "csecret-value",
    }


@pytest.fixture
def manager(env):
    http = MockHttpClient(json_response={"access_token": "ya29.manual", "expires_in": 3600})
    return ProviderManager.build(env=env, http_client=http, default_provider="openai")


@pytest.fixture
def service(manager, env):
    return StatusService(GatewayServer(FastAPI(), port=0), manager, env=env)


def test_env_variables_are_masked(service):
    rows = {row.key: row for row in service.list_env_variables("openai")}

    assert rows["OPENAI_API_KEY"].value == "sk-AB...WXYZ"
    assert rows["OPENAI_API_KEY"].masked
    assert rows["OPENAI_BASE_URL"].value == "https://api.openai.com/v1"
    assert not rows["OPENAI_BASE_URL"].masked


def test_env_variables_reveal(service):
    rows = {row.key: row for row in service.list_env_variables("openai", reveal=True)}

    assert rows["OPENAI_API_KEY"].value == "sk-ABCD1234WXYZ"
    assert not rows["OPENAI_API_KEY"].masked


@pytest.mark.asyncio
async def test_oauth_provider_rows_include_credential(service, manager, write_credential):
    write_credential("gemini", gemini_document(access_token="ya29.long-access-token"))
    await manager.store.load("gemini")

    rows = {row.key: row for row in service.list_env_variables("gemini")}

    assert rows["creds_path"].value.endswith("oauth_creds.json")
    assert rows["access_token"].value == "ya29....oken"
    assert rows["refresh_token"].masked
    assert rows["GEMINI_OAUTH_CLIENT_SECRET"].masked
    assert not rows["GEMINI_OAUTH_CLIENT_ID"].masked
    assert "expires_at" in rows


def test_env_variables_unknown_provider(service):
    with pytest.raises(UnknownProvider):
        service.list_env_variables("nope")


def test_status_while_stopped(service, manager):
    manager.initialize_default()

    status = service.get_status()

    assert status["running"] is False
    assert status["request_count"] == 0
    assert status["started_at"] is None
    assert status["default_provider"] == "openai"
    assert status["providers"] == ["openai"]
    assert status["failover"]["openai"]["state"] == "active"


def test_default_provider_roundtrip(service, manager):
    manager.initialize_default()

    with pytest.raises(UnknownProvider):
        service.set_default_provider("kiro")
    assert service.get_default_provider() == "openai"


@pytest.mark.asyncio
async def test_refresh_credentials(service, manager, write_credential):
    write_credential("gemini", gemini_document(expires_in=-30))
    await manager.store.load("gemini")

    summary = await service.refresh_credentials("gemini")

    assert summary["is_valid"]
    assert summary["has_access_token"]
    assert "access_token" not in summary

    with pytest.raises(MalformedRequest):
        await service.refresh_credentials("openai")


def test_list_providers(service, manager):
    manager.initialize_default()

    rows = {row["key"]: row for row in service.list_providers()}

    assert rows["openai"]["available"] and rows["openai"]["default"]
    assert rows["gemini"]["available"] is False
    assert rows["gemini"]["credential"]["loaded"] is False
    assert "credential" not in rows["openai"]


def test_request_counter():
    counter = RequestCounter()
    assert counter.increment() == 1
    assert counter.increment() == 2
    counter.reset()
    assert counter.value == 0


def test_server_status_to_dict():
    status = ServerStatus(running=False, host="127.0.0.1", port=3001)
    assert status.to_dict() == {
        "running": False,
        "host": "127.0.0.1",
        "port": 3001,
        "started_at": None,
        "uptime_seconds": 0.0,
        "request_count": 0,
    }
