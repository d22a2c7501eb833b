"""Render a canonical request in an upstream's native format.

Text only: tools, images and other content parts are not translated.
"""

from __future__ import annotations

from typing import Any

from credgate.conversion.canonical import CanonicalMessage, PendingRequest


def to_openai_request(request: PendingRequest, model: str) -> dict[str, Any]:
    """Chat Completions body; the system prompt becomes the first message."""
    messages: list[dict[str, Any]] = []
    if request.system:
        messages.append({"role": "system", "content": request.system})
    messages.extend({"role": msg.role, "content": msg.content} for msg in request.messages)

    out: dict[str, Any] = {
        "model": model,
        "messages": messages,
        "max_tokens": request.max_tokens,
        "stream": request.stream,
    }
    if request.stream:
        out["stream_options"] = {"include_usage": True}
    if request.temperature is not None:
        out["temperature"] = request.temperature
    if request.top_p is not None:
        out["top_p"] = request.top_p
    if request.stop_sequences:
        out["stop"] = list(request.stop_sequences)
    return out


def merge_consecutive_roles(messages: tuple[CanonicalMessage, ...]) -> list[dict[str, Any]]:
    """Anthropic requires alternating roles: join runs of the same role."""
    merged: list[dict[str, Any]] = []
    for msg in messages:
        if merged and merged[-1]["role"] == msg.role:
            merged[-1]["content"] = f"{merged[-1]['content']}\n\n{msg.content}"
        else:
            merged.append({"role": msg.role, "content": msg.content})
    return merged


def to_anthropic_request(request: PendingRequest, model: str) -> dict[str, Any]:
    """Messages API body; system is top-level and max_tokens is always set."""
    out: dict[str, Any] = {
        "model": model,
        "max_tokens": request.max_tokens,
        "messages": merge_consecutive_roles(request.messages),
        "stream": request.stream,
    }
    if request.system:
        out["system"] = request.system
    if request.temperature is not None:
        out["temperature"] = request.temperature
    if request.top_p is not None:
        out["top_p"] = request.top_p
    if request.stop_sequences:
        out["stop_sequences"] = list(request.stop_sequences)
    return out


def to_native_request(request: PendingRequest, model: str, api_format: str) -> dict[str, Any]:
    if api_format == "anthropic":
        return to_anthropic_request(request, model)
    return to_openai_request(request, model)
