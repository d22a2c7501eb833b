from __future__ import annotations

import json
import time
from collections.abc import AsyncIterator
from typing import Any

from credgate.conversion.response_converter import finish_reason_from_stop_reason
from credgate.conversion.sse import DONE_FRAME, SSEEvent, stream_error


async def anthropic_sse_to_openai_chat_completions_sse(
    *,
    events: AsyncIterator[SSEEvent],
    model: str,
    completion_id: str,
    provider: str = "upstream",
) -> AsyncIterator[str]:
    """Translate Anthropic Messages SSE events into OpenAI Chat Completions SSE.

    Subset mapping:
    - message_start -> role delta
    - text deltas -> choices[].delta.content
    - message_delta stop_reason -> finish_reason, usage -> final usage chunk

    Always terminates with `data: [DONE]`. An upstream `error` event raises
    UpstreamError instead of finishing the completion normally.
    """
    created = int(time.time())
    emitted_role = False
    finished = False
    prompt_tokens = 0
    completion_tokens = 0

    def _chunk(delta: dict[str, Any], finish_reason: str | None = None) -> str:
        chunk = {
            "id": completion_id,
            "object": "chat.completion.chunk",
            "created": created,
            "model": model,
            "choices": [{"index": 0, "delta": delta, "finish_reason": finish_reason}],
        }
        return f"data: {json.dumps(chunk, ensure_ascii=False)}\n\n"

    def _usage_chunk() -> str:
        chunk = {
            "id": completion_id,
            "object": "chat.completion.chunk",
            "created": created,
            "model": model,
            "choices": [],
            "usage": {
                "prompt_tokens": prompt_tokens,
                "completion_tokens": completion_tokens,
                "total_tokens": prompt_tokens + completion_tokens,
            },
        }
        return f"data: {json.dumps(chunk, ensure_ascii=False)}\n\n"

    async for sse in events:
        if sse.is_done:
            break
        payload = sse.json()
        if payload is None:
            continue
        error = stream_error(sse, payload, provider)
        if error is not None:
            raise error
        event = sse.event or payload.get("type")

        if not emitted_role:
            emitted_role = True
            yield _chunk({"role": "assistant", "content": ""})

        if event == "message_start":
            usage = (payload.get("message") or {}).get("usage") or {}
            prompt_tokens = int(usage.get("input_tokens", 0) or 0)
        elif event == "content_block_delta":
            delta = payload.get("delta") or {}
            if delta.get("type") == "text_delta" and delta.get("text"):
                yield _chunk({"content": delta["text"]})
        elif event == "message_delta":
            usage = payload.get("usage") or {}
            completion_tokens = int(usage.get("output_tokens", completion_tokens) or 0)
            stop_reason = (payload.get("delta") or {}).get("stop_reason")
            if stop_reason and not finished:
                finished = True
                yield _chunk({}, finish_reason_from_stop_reason(stop_reason))
        elif event == "message_stop":
            break

    if not finished:
        yield _chunk({}, "stop")
    yield _usage_chunk()
    yield DONE_FRAME
