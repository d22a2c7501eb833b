import time
import uuid
from typing import Any

from credgate.core.exceptions import UpstreamError

# Anthropic stop_reason -> OpenAI finish_reason
ANTHROPIC_TO_OPENAI_FINISH = {
    "end_turn": "stop",
    "stop_sequence": "stop",
    "max_tokens": "length",
    "tool_use": "tool_calls",
}

# OpenAI finish_reason -> Anthropic stop_reason
OPENAI_TO_ANTHROPIC_STOP = {
    "stop": "end_turn",
    "length": "max_tokens",
    "tool_calls": "tool_use",
    "function_call": "tool_use",
}


def finish_reason_from_stop_reason(stop_reason: str | None) -> str:
    return ANTHROPIC_TO_OPENAI_FINISH.get(stop_reason or "end_turn", "stop")


def stop_reason_from_finish_reason(finish_reason: str | None) -> str:
    return OPENAI_TO_ANTHROPIC_STOP.get(finish_reason or "stop", "end_turn")


def convert_anthropic_to_chat_completion(response: dict[str, Any], model: str) -> dict[str, Any]:
    """Convert an Anthropic message response to a chat completion."""
    text = "".join(
        block.get("text", "")
        for block in response.get("content") or []
        if isinstance(block, dict) and block.get("type") == "text"
    )
    usage = response.get("usage") or {}
    prompt_tokens = int(usage.get("input_tokens", 0) or 0)
    completion_tokens = int(usage.get("output_tokens", 0) or 0)

    return {
        "id": f"chatcmpl-{response.get('id') or uuid.uuid4().hex}",
        "object": "chat.completion",
        "created": int(time.time()),
        "model": model,
        "choices": [
            {
                "index": 0,
                "message": {"role": "assistant", "content": text},
                "finish_reason": finish_reason_from_stop_reason(response.get("stop_reason")),
            }
        ],
        "usage": {
            "prompt_tokens": prompt_tokens,
            "completion_tokens": completion_tokens,
            "total_tokens": prompt_tokens + completion_tokens,
        },
    }


def convert_openai_to_message(response: dict[str, Any], model: str, provider: str = "upstream") -> dict[str, Any]:
    """Convert an OpenAI chat completion to an Anthropic message response."""
    choices = response.get("choices") or []
    if not choices:
        raise UpstreamError(provider, 502, "No choices in upstream response")

    choice = choices[0]
    message = choice.get("message") or {}
    text = message.get("content")
    if isinstance(text, list):
        text = "".join(part.get("text", "") for part in text if isinstance(part, dict))
    usage = response.get("usage") or {}

    return {
        "id": f"msg_{response.get('id') or uuid.uuid4().hex}",
        "type": "message",
        "role": "assistant",
        "model": model,
        "content": [{"type": "text", "text": text or ""}],
        "stop_reason": stop_reason_from_finish_reason(choice.get("finish_reason")),
        "stop_sequence": None,
        "usage": {
            "input_tokens": int(usage.get("prompt_tokens", 0) or 0),
            "output_tokens": int(usage.get("completion_tokens", 0) or 0),
        },
    }


def validate_response_body(response: Any, api_format: str, provider: str = "upstream") -> None:
    if not isinstance(response, dict):
        raise UpstreamError(provider, 502, f"Upstream response is not a JSON object: {str(response)[:100]}")
    if api_format == "anthropic":
        if not isinstance(response.get("content"), list):
            raise UpstreamError(provider, 502, "No content in upstream response")
    elif not isinstance(response.get("choices"), list) or not response["choices"]:
        raise UpstreamError(provider, 502, "No choices in upstream response")


def convert_response(
    response: dict[str, Any],
    *,
    upstream_format: str,
    caller_format: str,
    model: str,
    provider: str = "upstream",
) -> dict[str, Any]:
    """Map an upstream response body to the caller's wire shape.

    Same-format responses pass through with only the model name replaced.
    A body without `choices` (OpenAI) or a `content` list (Anthropic) is an
    UpstreamError, never a success.
    """
    validate_response_body(response, upstream_format, provider)
    if upstream_format == caller_format:
        return {**response, "model": model}
    if upstream_format == "anthropic":
        return convert_anthropic_to_chat_completion(response, model)
    return convert_openai_to_message(response, model, provider)
