import httpx
import respx
from typer.testing import CliRunner

from credgate.cli.main import app

runner = CliRunner()

GATEWAY = "http://gw.test"

STATUS = {
    "running": True,
    "host": "127.0.0.1",
    "port": 3001,
    "started_at": "2026-01-01T00:00:00+00:00",
    "uptime_seconds": 12.0,
    "request_count": 7,
    "default_provider": "claude",
    "providers": ["openai", "claude"],
    "failover": {
        "openai": {"state": "suspended", "consecutive_failures": 3, "last_error": "quota failure (HTTP 429)"},
        "claude": {"state": "active", "consecutive_failures": 0, "last_error": None},
    },
}


def test_version():
    result = runner.invoke(app, ["version"])

    assert result.exit_code == 0
    assert "credgate" in result.output


@respx.mock
def test_status_renders_gateway_state():
    respx.get(f"{GATEWAY}/admin/status").mock(return_value=httpx.Response(200, json=STATUS))

    result = runner.invoke(app, ["status", "--url", GATEWAY])

    assert result.exit_code == 0
    assert "claude" in result.output
    assert "suspended" in result.output


@respx.mock
def test_status_without_gateway_exits_nonzero():
    respx.get(f"{GATEWAY}/admin/status").mock(side_effect=httpx.ConnectError)

    result = runner.invoke(app, ["status", "--url", GATEWAY])

    assert result.exit_code == 1
    assert "No gateway answering" in result.output


@respx.mock
def test_creds_refresh_posts_to_admin_route():
    route = respx.post(f"{GATEWAY}/admin/credentials/gemini/refresh").mock(
        return_value=httpx.Response(200, json={"credential": {"is_valid": True}})
    )

    result = runner.invoke(app, ["creds", "refresh", "GEMINI", "--url", GATEWAY])

    assert result.exit_code == 0
    assert route.called


@respx.mock
def test_health_check_failure_exits_nonzero():
    respx.get(f"{GATEWAY}/health").mock(return_value=httpx.Response(503, json={"status": "down"}))

    result = runner.invoke(app, ["test", "health", "--url", GATEWAY])

    assert result.exit_code == 1
