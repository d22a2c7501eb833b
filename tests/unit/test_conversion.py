import json

import pytest

from credgate.api.models.requests import ChatCompletionRequest, MessagesRequest, parse_pending_request
from credgate.conversion import CanonicalMessage, PendingRequest, WireFormat, convert_response, to_native_request
from credgate.conversion.response_converter import (
    convert_anthropic_to_chat_completion,
    convert_openai_to_message,
    finish_reason_from_stop_reason,
    stop_reason_from_finish_reason,
)
from credgate.core.exceptions import MalformedRequest, UpstreamError


def _pending(**overrides):
    fields = {
        "wire": WireFormat.CHAT,
        "model": "gpt-4o",
        "messages": (
            CanonicalMessage("user", "first"),
            CanonicalMessage("user", "second"),
            CanonicalMessage("assistant", "answer"),
        ),
        "max_tokens": 256,
        "system": "be brief",
    }
    fields.update(overrides)
    return PendingRequest(**fields)


# === Inbound parsing ===


def test_parse_chat_request_collects_system_messages():
    body = json.dumps(
        {
            "model": "gpt-4o",
            "messages": [
                {"role": "system", "content": "rule one"},
                {"role": "developer", "content": [{"type": "text", "text": "rule two"}]},
                {"role": "user", "content": [{"type": "text", "text": "hi"}, {"type": "image_url", "image_url": {}}]},
            ],
            "stop": "END",
        }
    ).encode()

    pending = parse_pending_request(body, ChatCompletionRequest, default_max_tokens=1024)

    assert pending.wire is WireFormat.CHAT
    assert pending.system == "rule one\n\nrule two"
    assert pending.messages == (CanonicalMessage("user", "hi"),)
    assert pending.max_tokens == 1024
    assert pending.stop_sequences == ("END",)


def test_parse_chat_request_prefers_explicit_max_tokens():
    body = json.dumps(
        {"model": "m", "max_completion_tokens": 77, "messages": [{"role": "user", "content": "x"}]}
    ).encode()

    assert parse_pending_request(body, ChatCompletionRequest, 1024).max_tokens == 77


def test_parse_messages_request():
    body = json.dumps(
        {
            "model": "claude-sonnet-4-5",
            "max_tokens": 300,
            "system": [{"type": "text", "text": "sys"}],
            "stream": True,
            "messages": [{"role": "user", "content": "hello"}],
        }
    ).encode()

    pending = parse_pending_request(body, MessagesRequest, 1024)

    assert pending.wire is WireFormat.MESSAGES
    assert pending.system == "sys"
    assert pending.stream
    assert pending.max_tokens == 300


@pytest.mark.parametrize(
    "body",
    [
        b"{not json",
        b"[]",
        b"",
        json.dumps({"messages": [{"role": "user", "content": "x"}]}).encode(),
        json.dumps({"model": "m", "messages": []}).encode(),
        json.dumps({"model": "m", "messages": [{"role": "tool", "content": "x"}]}).encode(),
        json.dumps({"model": "m", "messages": [{"role": "system", "content": "only system"}]}).encode(),
        json.dumps({"model": "m", "max_tokens": 0, "messages": [{"role": "user", "content": "x"}]}).encode(),
    ],
)
def test_malformed_chat_requests(body):
    with pytest.raises(MalformedRequest):
        parse_pending_request(body, ChatCompletionRequest, 1024)


def test_messages_request_rejects_system_role_in_messages():
    body = json.dumps({"model": "m", "messages": [{"role": "system", "content": "x"}]}).encode()
    with pytest.raises(MalformedRequest):
        parse_pending_request(body, MessagesRequest, 1024)


# === Request rendering ===


def test_openai_request_puts_system_first():
    out = to_native_request(_pending(stop_sequences=("###",), temperature=0.2), "gpt-4o-mini", "openai")

    assert out["model"] == "gpt-4o-mini"
    assert out["messages"][0] == {"role": "system", "content": "be brief"}
    assert len(out["messages"]) == 4
    assert out["stop"] == ["###"]
    assert out["temperature"] == 0.2
    assert "stream_options" not in out


def test_openai_stream_request_asks_for_usage():
    out = to_native_request(_pending(stream=True), "gpt-4o", "openai")
    assert out["stream_options"] == {"include_usage": True}


def test_anthropic_request_merges_roles_and_lifts_system():
    out = to_native_request(_pending(stop_sequences=("###",)), "claude-sonnet-4-5", "anthropic")

    assert out["system"] == "be brief"
    assert out["max_tokens"] == 256
    assert out["messages"] == [
        {"role": "user", "content": "first\n\nsecond"},
        {"role": "assistant", "content": "answer"},
    ]
    assert out["stop_sequences"] == ["###"]


# === Response mapping ===


@pytest.mark.parametrize(
    "stop_reason,finish_reason",
    [("end_turn", "stop"), ("stop_sequence", "stop"), ("max_tokens", "length"), ("tool_use", "tool_calls"), (None, "stop")],
)
def test_stop_reason_mapping(stop_reason, finish_reason):
    assert finish_reason_from_stop_reason(stop_reason) == finish_reason


@pytest.mark.parametrize(
    "finish_reason,stop_reason",
    [("stop", "end_turn"), ("length", "max_tokens"), ("tool_calls", "tool_use"), ("content_filter", "end_turn")],
)
def test_finish_reason_mapping(finish_reason, stop_reason):
    assert stop_reason_from_finish_reason(finish_reason) == stop_reason


def test_anthropic_message_to_chat_completion(anthropic_message_response):
    out = convert_anthropic_to_chat_completion(anthropic_message_response, "my-alias")

    assert out["id"] == "chatcmpl-msg_01XYZ"
    assert out["object"] == "chat.completion"
    assert out["model"] == "my-alias"
    assert out["choices"][0]["message"] == {"role": "assistant", "content": "pong"}
    assert out["choices"][0]["finish_reason"] == "stop"
    assert out["usage"] == {"prompt_tokens": 9, "completion_tokens": 3, "total_tokens": 12}


def test_chat_completion_to_anthropic_message(openai_chat_completion):
    out = convert_openai_to_message(openai_chat_completion, "gpt-4o", provider="openai")

    assert out["type"] == "message"
    assert out["content"] == [{"type": "text", "text": "pong"}]
    assert out["stop_reason"] == "end_turn"
    assert out["usage"] == {"input_tokens": 12, "output_tokens": 1}


def test_chat_completion_without_choices_is_an_upstream_error():
    with pytest.raises(UpstreamError) as exc_info:
        convert_openai_to_message({"id": "x", "choices": []}, "gpt-4o", provider="openai")
    assert exc_info.value.status_code == 502


def test_same_format_passes_through_with_requested_model(openai_chat_completion):
    out = convert_response(
        openai_chat_completion, upstream_format="openai", caller_format="openai", model="openai:gpt-4o"
    )

    assert out["model"] == "openai:gpt-4o"
    assert out["choices"] == openai_chat_completion["choices"]


@pytest.mark.parametrize(
    "response,upstream_format,caller_format",
    [
        ({}, "openai", "openai"),
        ({"id": "x", "choices": []}, "openai", "openai"),
        ({"id": "x", "choices": None}, "openai", "anthropic"),
        ({}, "anthropic", "anthropic"),
        ({"id": "msg_1", "type": "message"}, "anthropic", "openai"),
        ({"id": "msg_1", "content": "pong"}, "anthropic", "openai"),
    ],
)
def test_invalid_upstream_bodies_never_convert_to_success(response, upstream_format, caller_format):
    with pytest.raises(UpstreamError) as exc_info:
        convert_response(
            response, upstream_format=upstream_format, caller_format=caller_format, model="m", provider="p"
        )

    assert exc_info.value.status_code == 502
    assert exc_info.value.provider == "p"


def test_anthropic_body_with_empty_content_is_still_valid(anthropic_message_response):
    out = convert_response(
        {**anthropic_message_response, "content": []},
        upstream_format="anthropic",
        caller_format="anthropic",
        model="claude:claude-sonnet-4-5",
    )

    assert out["content"] == []
    assert out["model"] == "claude:claude-sonnet-4-5"
