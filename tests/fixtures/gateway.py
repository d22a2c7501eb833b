"""Application fixtures: a gateway app wired to test-only settings.

Upstream HTTP is intercepted with the `mock_upstreams` RESPX router; token
endpoints go through a MockHttpClient when a test passes one.
"""

from collections.abc import Mapping

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from credgate.core.config import Config
from credgate.core.oauth.http_client import HttpClient
from credgate.core.provider_manager import ProviderManager
from credgate.main import create_app

GATEWAY_API_KEY = "test-gateway-key"
AUTH_HEADERS = {"x-api-key": GATEWAY_API_KEY}

OPENAI_TEST_KEY = "sk-openai-test-0123456789"
CLAUDE_TEST_KEY = "sk-ant-test-0123456789"


def build_gateway_app(env: Mapping[str, str], http_client: HttpClient | None = None) -> FastAPI:
    """App with its own Config and ProviderManager; upstream retries disabled."""
    app_config = Config(env=env)
    manager = ProviderManager.build(
        env=env,
        http_client=http_client,
        default_provider=app_config.default_provider,
        default_source=app_config.default_provider_source,
        priority=app_config.provider_priority,
        failover_threshold=app_config.failover_threshold,
        retry_backoff_seconds=0.0,
        max_retries=0,
    )
    return create_app(manager=manager, app_config=app_config, watch_credentials=False)


@pytest.fixture
def gateway_env(creds_env: dict[str, str]) -> dict[str, str]:
    """Two API-key providers, openai first, with client auth enabled."""
    return {
        **creds_env,
        "CREDGATE_API_KEY": GATEWAY_API_KEY,
        "CREDGATE_DEFAULT_PROVIDER": "openai",
        "CREDGATE_PROVIDER_PRIORITY": "openai,claude,gemini",
        "OPENAI_API_KEY": OPENAI_TEST_KEY,
        "CLAUDE_API_KEY": CLAUDE_TEST_KEY,
    }


@pytest.fixture
def gateway_app(gateway_env: dict[str, str]) -> FastAPI:
    return build_gateway_app(gateway_env)


@pytest.fixture
def client(gateway_app: FastAPI):
    """TestClient with the app lifespan (credential loading) running."""
    with TestClient(gateway_app) as test_client:
        yield test_client
