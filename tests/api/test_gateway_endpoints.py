"""Public endpoint tests with RESPX-mocked upstreams."""

import json

import httpx
from fastapi.testclient import TestClient

from tests.fixtures.gateway import AUTH_HEADERS, CLAUDE_TEST_KEY, build_gateway_app
from tests.fixtures.mock_http import ANTHROPIC_BASE, OPENAI_BASE, create_openai_error, create_streaming_response

CHAT_BODY = {"model": "gpt-4o", "max_tokens": 16, "messages": [{"role": "user", "content": "ping"}]}


def _sse_data(text):
    return [line[len("data: ") :] for line in text.splitlines() if line.startswith("data: ")]


# === Auth and validation ===


def test_health_needs_no_auth_and_reports_listener_state(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert response.json()["server_running"] is False


def test_missing_key_is_rejected_in_chat_shape(client, gateway_app):
    response = client.post("/v1/chat/completions", json=CHAT_BODY)

    assert response.status_code == 401
    assert response.json()["error"]["type"] == "unauthorized"
    assert response.json()["error"]["code"] == 401
    assert gateway_app.state.request_counter.value == 0


def test_wrong_key_is_rejected_in_messages_shape(client):
    response = client.post("/v1/messages", json=CHAT_BODY, headers={"x-api-key": "wrong"})

    assert response.status_code == 401
    assert response.json() == {
        "type": "error",
        "error": {"type": "unauthorized", "message": "Invalid API key"},
    }


def test_bearer_key_is_accepted(client, mock_upstreams, openai_chat_completion):
    mock_upstreams.post(f"{OPENAI_BASE}/chat/completions").mock(
        return_value=httpx.Response(200, json=openai_chat_completion)
    )

    response = client.post(
        "/v1/chat/completions", json=CHAT_BODY, headers={"Authorization": "Bearer test-gateway-key"}
    )

    assert response.status_code == 200


def test_malformed_body_is_400_and_counted(client, gateway_app):
    response = client.post("/v1/chat/completions", content=b"{nope", headers=AUTH_HEADERS)

    assert response.status_code == 400
    assert response.json()["error"]["type"] == "malformed_request"
    assert gateway_app.state.request_counter.value == 1


def test_missing_messages_is_400_in_messages_shape(client):
    response = client.post("/v1/messages", json={"model": "gpt-4o"}, headers=AUTH_HEADERS)

    assert response.status_code == 400
    assert response.json()["type"] == "error"
    assert response.json()["error"]["type"] == "malformed_request"


def test_auth_disabled_without_server_key(creds_env, mock_upstreams, openai_chat_completion):
    env = {**creds_env, "OPENAI_API_KEY": "sk-openai", "CREDGATE_DEFAULT_PROVIDER": "openai"}
    mock_upstreams.post(f"{OPENAI_BASE}/chat/completions").mock(
        return_value=httpx.Response(200, json=openai_chat_completion)
    )

    with TestClient(build_gateway_app(env)) as client:
        response = client.post("/v1/chat/completions", json=CHAT_BODY)

    assert response.status_code == 200


def test_no_provider_available_is_503(creds_env):
    env = {**creds_env, "CREDGATE_API_KEY": "k"}

    with TestClient(build_gateway_app(env)) as client:
        response = client.post("/v1/chat/completions", json=CHAT_BODY, headers={"x-api-key": "k"})

    assert response.status_code == 503
    assert response.json()["error"]["type"] == "no_provider_available"


# === Non-streaming translation ===


def test_chat_to_openai_passthrough(client, gateway_app, mock_upstreams, openai_chat_completion):
    route = mock_upstreams.post(f"{OPENAI_BASE}/chat/completions").mock(
        return_value=httpx.Response(200, json=openai_chat_completion)
    )

    response = client.post("/v1/chat/completions", json=CHAT_BODY, headers=AUTH_HEADERS)

    assert response.status_code == 200
    body = response.json()
    assert body["choices"][0]["message"]["content"] == "pong"
    assert body["model"] == "gpt-4o"
    sent = json.loads(route.calls.last.request.content)
    assert sent["messages"] == [{"role": "user", "content": "ping"}]
    assert gateway_app.state.request_counter.value == 1


def test_chat_request_served_by_anthropic_provider(client, mock_upstreams, anthropic_message_response):
    route = mock_upstreams.post(f"{ANTHROPIC_BASE}/v1/messages").mock(
        return_value=httpx.Response(200, json=anthropic_message_response)
    )
    body = {
        "model": "claude:claude-sonnet-4-5",
        "messages": [
            {"role": "system", "content": "answer tersely"},
            {"role": "user", "content": "ping"},
        ],
    }

    response = client.post("/v1/chat/completions", json=body, headers=AUTH_HEADERS)

    assert response.status_code == 200
    out = response.json()
    assert out["object"] == "chat.completion"
    assert out["model"] == "claude:claude-sonnet-4-5"
    assert out["choices"][0]["message"]["content"] == "pong"
    assert out["choices"][0]["finish_reason"] == "stop"
    assert out["usage"]["total_tokens"] == 12

    upstream_request = route.calls.last.request
    sent = json.loads(upstream_request.content)
    assert sent["model"] == "claude-sonnet-4-5"
    assert sent["system"] == "answer tersely"
    assert sent["max_tokens"] == 4096
    assert upstream_request.headers["x-api-key"] == CLAUDE_TEST_KEY


def test_messages_request_served_by_openai_provider(client, mock_upstreams, openai_chat_completion):
    route = mock_upstreams.post(f"{OPENAI_BASE}/chat/completions").mock(
        return_value=httpx.Response(200, json=openai_chat_completion)
    )
    body = {
        "model": "gpt-4o",
        "max_tokens": 50,
        "system": "be terse",
        "messages": [{"role": "user", "content": "ping"}],
    }

    response = client.post("/v1/messages", json=body, headers=AUTH_HEADERS)

    assert response.status_code == 200
    out = response.json()
    assert out["type"] == "message"
    assert out["content"] == [{"type": "text", "text": "pong"}]
    assert out["stop_reason"] == "end_turn"
    assert out["usage"] == {"input_tokens": 12, "output_tokens": 1}
    sent = json.loads(route.calls.last.request.content)
    assert sent["messages"][0] == {"role": "system", "content": "be terse"}


def test_upstream_client_error_passes_status_through(client, mock_upstreams):
    mock_upstreams.post(f"{OPENAI_BASE}/chat/completions").mock(
        return_value=create_openai_error(400, "invalid_request_error", "context too long")
    )

    response = client.post("/v1/chat/completions", json=CHAT_BODY, headers=AUTH_HEADERS)

    assert response.status_code == 400
    assert response.json()["error"]["type"] == "upstream_error"
    assert "context too long" in response.json()["error"]["message"]


def test_empty_upstream_body_is_502_not_success(client, mock_upstreams):
    mock_upstreams.post(f"{OPENAI_BASE}/chat/completions").mock(return_value=httpx.Response(200, json={}))

    response = client.post("/v1/chat/completions", json=CHAT_BODY, headers=AUTH_HEADERS)

    assert response.status_code == 502
    assert response.json()["error"]["type"] == "upstream_error"


def test_anthropic_body_without_content_is_502(client, mock_upstreams):
    mock_upstreams.post(f"{ANTHROPIC_BASE}/v1/messages").mock(
        return_value=httpx.Response(200, json={"id": "msg_1", "type": "message"})
    )

    response = client.post("/v1/messages", json={**CHAT_BODY, "model": "claude-opus-4-1"}, headers=AUTH_HEADERS)

    assert response.status_code == 502
    assert response.json()["type"] == "error"


def test_upstream_server_error_is_502(client, mock_upstreams):
    mock_upstreams.post(f"{OPENAI_BASE}/chat/completions").mock(return_value=httpx.Response(500, text="down"))

    response = client.post("/v1/chat/completions", json=CHAT_BODY, headers=AUTH_HEADERS)

    assert response.status_code == 502


# === Streaming ===


def test_chat_stream_from_openai_provider(client, mock_upstreams, openai_streaming_chunks):
    mock_upstreams.post(f"{OPENAI_BASE}/chat/completions").mock(
        return_value=create_streaming_response(openai_streaming_chunks)
    )

    response = client.post("/v1/chat/completions", json={**CHAT_BODY, "stream": True}, headers=AUTH_HEADERS)

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/event-stream")
    data = _sse_data(response.text)
    assert data[-1] == "[DONE]"
    assert data.count("[DONE]") == 1
    text = "".join(
        choice["delta"].get("content") or ""
        for chunk in (json.loads(item) for item in data[:-1])
        for choice in chunk["choices"]
    )
    assert text == "Hello"


def test_chat_stream_from_anthropic_provider(client, mock_upstreams, anthropic_streaming_events):
    mock_upstreams.post(f"{ANTHROPIC_BASE}/v1/messages").mock(
        return_value=create_streaming_response(anthropic_streaming_events)
    )
    body = {**CHAT_BODY, "model": "claude-opus-4-1", "stream": True}

    response = client.post("/v1/chat/completions", json=body, headers=AUTH_HEADERS)

    assert response.status_code == 200
    data = _sse_data(response.text)
    assert data[-1] == "[DONE]"
    chunks = [json.loads(item) for item in data[:-1]]
    assert {chunk["object"] for chunk in chunks} == {"chat.completion.chunk"}
    assert chunks[-1]["usage"]["completion_tokens"] == 4


def test_messages_stream_from_openai_provider(client, mock_upstreams, openai_streaming_chunks):
    mock_upstreams.post(f"{OPENAI_BASE}/chat/completions").mock(
        return_value=create_streaming_response(openai_streaming_chunks)
    )
    body = {**CHAT_BODY, "stream": True}

    response = client.post("/v1/messages", json=body, headers=AUTH_HEADERS)

    assert response.status_code == 200
    events = [line[len("event: ") :] for line in response.text.splitlines() if line.startswith("event: ")]
    assert events[0] == "message_start"
    assert events[-1] == "message_stop"
    assert events.count("content_block_delta") == 2


def test_chat_stream_reports_anthropic_error_event(client, mock_upstreams):
    mock_upstreams.post(f"{ANTHROPIC_BASE}/v1/messages").mock(
        return_value=create_streaming_response(
            [
                b'event: message_start\ndata: {"type":"message_start","message":{"id":"m","usage":{"input_tokens":3}}}\n\n',
                b'event: error\ndata: {"type":"error","error":{"type":"overloaded_error","message":"Overloaded"}}\n\n',
            ]
        )
    )
    body = {**CHAT_BODY, "model": "claude-opus-4-1", "stream": True}

    response = client.post("/v1/chat/completions", json=body, headers=AUTH_HEADERS)

    data = _sse_data(response.text)
    assert data[-1] == "[DONE]"
    final = json.loads(data[-2])
    assert final["error"]["type"] == "upstream_error"
    assert "Overloaded" in final["error"]["message"]
    finish = [c["choices"][0]["finish_reason"] for c in map(json.loads, data[:-2]) if c.get("choices")]
    assert "stop" not in finish


def test_messages_stream_reports_openai_error_chunk(client, mock_upstreams):
    mock_upstreams.post(f"{OPENAI_BASE}/chat/completions").mock(
        return_value=create_streaming_response(
            [b'data: {"error":{"message":"quota exceeded","type":"insufficient_quota","code":null}}\n\n']
        )
    )

    response = client.post("/v1/messages", json={**CHAT_BODY, "stream": True}, headers=AUTH_HEADERS)

    events = [line[len("event: ") :] for line in response.text.splitlines() if line.startswith("event: ")]
    assert events[-1] == "error"
    assert "message_stop" not in events
    final = json.loads(_sse_data(response.text)[-1])
    assert final["type"] == "error"
    assert final["error"]["type"] == "rate_limit"


def test_stream_upstream_failure_before_first_byte_is_json_error(client, mock_upstreams):
    mock_upstreams.post(f"{OPENAI_BASE}/chat/completions").mock(return_value=httpx.Response(503, text="busy"))

    response = client.post("/v1/chat/completions", json={**CHAT_BODY, "stream": True}, headers=AUTH_HEADERS)

    assert response.status_code == 502
    assert response.json()["error"]["type"] == "upstream_error"


# === Models ===


def test_models_union_first_owner_wins(client):
    response = client.get("/v1/models", headers=AUTH_HEADERS)

    assert response.status_code == 200
    data = response.json()["data"]
    ids = [entry["id"] for entry in data]
    assert len(ids) == len(set(ids))
    owners = {entry["id"]: entry["owned_by"] for entry in data}
    assert owners["gpt-4o"] == "openai"
    assert owners["claude-opus-4-1"] == "claude"
    assert "gemini-2.5-pro" not in owners


def test_models_refresh_fetches_upstream_lists(client, mock_upstreams):
    mock_upstreams.get(f"{OPENAI_BASE}/models").mock(
        return_value=httpx.Response(200, json={"data": [{"id": "gpt-4.1"}, {"id": "o3"}]})
    )
    mock_upstreams.get(f"{ANTHROPIC_BASE}/v1/models").mock(return_value=httpx.Response(500))

    response = client.get("/v1/models", params={"refresh": "true"}, headers=AUTH_HEADERS)

    owners = {entry["id"]: entry["owned_by"] for entry in response.json()["data"]}
    assert owners["gpt-4.1"] == "openai"
    assert owners["o3"] == "openai"
    assert owners["claude-opus-4-1"] == "claude"


def test_models_requires_auth(client):
    response = client.get("/v1/models")

    assert response.status_code == 401
    assert response.json()["error"]["code"] == 401
