from __future__ import annotations

import json
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any

from credgate.core.exceptions import UpstreamError

DONE_SENTINEL = "[DONE]"
DONE_FRAME = f"data: {DONE_SENTINEL}\n\n"


@dataclass(frozen=True)
class SSEEvent:
    """One server-sent event: optional `event:` name plus its joined `data:` lines."""

    event: str | None
    data: str

    @property
    def is_done(self) -> bool:
        return self.data.strip() == DONE_SENTINEL

    def json(self) -> dict[str, Any] | None:
        """Decoded data payload, or None when it is not a JSON object."""
        try:
            payload = json.loads(self.data)
        except ValueError:
            return None
        return payload if isinstance(payload, dict) else None


def format_sse(data: dict[str, Any] | str, event: str | None = None) -> str:
    payload = data if isinstance(data, str) else json.dumps(data, ensure_ascii=False)
    if event:
        return f"event: {event}\ndata: {payload}\n\n"
    return f"data: {payload}\n\n"


async def iter_sse_events(lines: AsyncIterator[str]) -> AsyncIterator[SSEEvent]:
    """Group raw SSE lines into events.

    A blank line terminates an event; comment lines (`:`) and unknown fields
    are ignored. A trailing event without a final blank line is still emitted.
    """
    event: str | None = None
    data: list[str] = []

    async for raw_line in lines:
        line = raw_line.rstrip("\r\n")
        if not line:
            if data:
                yield SSEEvent(event, "\n".join(data))
            event, data = None, []
            continue
        if line.startswith(":"):
            continue

        field, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]
        if field == "event":
            event = value
        elif field == "data":
            data.append(value)

    if data:
        yield SSEEvent(event, "\n".join(data))


async def reframe_events(
    events: AsyncIterator[SSEEvent], *, terminate_with_done: bool = False
) -> AsyncIterator[str]:
    """Pass a same-format stream through, one frame per upstream event."""
    saw_done = False
    async for sse in events:
        if sse.is_done:
            saw_done = True
        yield format_sse(sse.data, sse.event)
    if terminate_with_done and not saw_done:
        yield DONE_FRAME


# Error types both upstream dialects put inside a mid-stream error payload
_STREAM_ERROR_STATUS = {
    "invalid_request_error": 400,
    "authentication_error": 401,
    "permission_error": 403,
    "not_found_error": 404,
    "rate_limit_error": 429,
    "insufficient_quota": 429,
    "api_error": 500,
    "server_error": 500,
    "overloaded_error": 529,
}


def stream_error(sse: SSEEvent, payload: dict[str, Any], provider: str) -> UpstreamError | None:
    """UpstreamError for an error frame (`event: error` or a payload carrying `error`), else None."""
    error = payload.get("error")
    if sse.event != "error" and payload.get("type") != "error" and not error:
        return None

    status = 502
    if isinstance(error, dict):
        code = error.get("code")
        if isinstance(code, int) and 400 <= code < 600:
            status = code
        else:
            status = _STREAM_ERROR_STATUS.get(str(error.get("type") or code or ""), 502)
    return UpstreamError(provider, status, sse.data)
