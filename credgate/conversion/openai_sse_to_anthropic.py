from __future__ import annotations

from collections.abc import AsyncIterator

from credgate.conversion.response_converter import stop_reason_from_finish_reason
from credgate.conversion.sse import SSEEvent, format_sse, stream_error

EVENT_MESSAGE_START = "message_start"
EVENT_MESSAGE_STOP = "message_stop"
EVENT_MESSAGE_DELTA = "message_delta"
EVENT_CONTENT_BLOCK_START = "content_block_start"
EVENT_CONTENT_BLOCK_STOP = "content_block_stop"
EVENT_CONTENT_BLOCK_DELTA = "content_block_delta"
EVENT_PING = "ping"


async def openai_sse_to_anthropic_messages_sse(
    *,
    events: AsyncIterator[SSEEvent],
    model: str,
    message_id: str,
    provider: str = "upstream",
) -> AsyncIterator[str]:
    """Translate OpenAI chat.completion.chunk events into Anthropic Messages SSE.

    Emits message_start, one text content block (start, deltas, stop),
    message_delta with the mapped stop_reason and usage, then message_stop.
    A chunk carrying `error` raises UpstreamError.
    """
    yield format_sse(
        {
            "type": EVENT_MESSAGE_START,
            "message": {
                "id": message_id,
                "type": "message",
                "role": "assistant",
                "model": model,
                "content": [],
                "stop_reason": None,
                "stop_sequence": None,
                "usage": {"input_tokens": 0, "output_tokens": 0},
            },
        },
        EVENT_MESSAGE_START,
    )
    yield format_sse(
        {"type": EVENT_CONTENT_BLOCK_START, "index": 0, "content_block": {"type": "text", "text": ""}},
        EVENT_CONTENT_BLOCK_START,
    )
    yield format_sse({"type": EVENT_PING}, EVENT_PING)

    finish_reason: str | None = None
    usage = {"input_tokens": 0, "output_tokens": 0}

    async for sse in events:
        if sse.is_done:
            break
        chunk = sse.json()
        if chunk is None:
            continue
        error = stream_error(sse, chunk, provider)
        if error is not None:
            raise error

        chunk_usage = chunk.get("usage")
        if isinstance(chunk_usage, dict):
            usage = {
                "input_tokens": int(chunk_usage.get("prompt_tokens", 0) or 0),
                "output_tokens": int(chunk_usage.get("completion_tokens", 0) or 0),
            }

        for choice in chunk.get("choices") or []:
            delta = choice.get("delta") or {}
            text = delta.get("content")
            if text:
                yield format_sse(
                    {
                        "type": EVENT_CONTENT_BLOCK_DELTA,
                        "index": 0,
                        "delta": {"type": "text_delta", "text": text},
                    },
                    EVENT_CONTENT_BLOCK_DELTA,
                )
            if choice.get("finish_reason"):
                finish_reason = choice["finish_reason"]

    yield format_sse({"type": EVENT_CONTENT_BLOCK_STOP, "index": 0}, EVENT_CONTENT_BLOCK_STOP)
    yield format_sse(
        {
            "type": EVENT_MESSAGE_DELTA,
            "delta": {"stop_reason": stop_reason_from_finish_reason(finish_reason), "stop_sequence": None},
            "usage": usage,
        },
        EVENT_MESSAGE_DELTA,
    )
    yield format_sse({"type": EVENT_MESSAGE_STOP}, EVENT_MESSAGE_STOP)
