from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable

from fastapi import BackgroundTasks
from fastapi.responses import StreamingResponse

from credgate.api.services.error_handling import ErrorResponseBuilder
from credgate.conversion.canonical import WireFormat
from credgate.core.logging import conversation_logger
from credgate.core.upstream_client import UpstreamStream


def sse_headers() -> dict[str, str]:
    return {
        "Cache-Control": "no-cache",
        "Connection": "keep-alive",
        "Access-Control-Allow-Origin": "*",
        "Access-Control-Allow-Headers": "*",
    }


def streaming_response(
    *,
    stream: AsyncIterator[str],
    headers: dict[str, str] | None = None,
    on_close: Callable[[], Awaitable[None]] | None = None,
) -> StreamingResponse:
    """SSE response; `on_close` runs after the body is sent or the client goes away.

    The stream generator only cleans up once iterated, so anything opened
    before the response is handed to the server is released through `on_close`.
    """
    background = None
    if on_close is not None:
        background = BackgroundTasks()
        background.add_task(on_close)
    return StreamingResponse(
        stream,
        media_type="text/event-stream",
        headers=headers or sse_headers(),
        background=background,
    )


async def relay_stream(
    frames: AsyncIterator[str],
    *,
    upstream: UpstreamStream,
    wire: WireFormat,
    request_id: str,
) -> AsyncIterator[str]:
    """Yield translated frames as they arrive; always release the upstream response.

    A failure after the first byte cannot change the HTTP status any more, so
    it is reported to the caller as a final error event in its own format.
    Client disconnect cancels this generator, which closes the upstream.
    """
    try:
        async for frame in frames:
            yield frame
    except asyncio.CancelledError:
        conversation_logger.info(f"🔌 Client disconnected, closing upstream stream ({request_id})")
        raise
    except Exception as e:
        conversation_logger.error(f"❌ Stream from '{upstream.provider}' failed mid-flight: {e}")
        yield ErrorResponseBuilder.sse_error_event(wire, e)
    finally:
        await upstream.aclose()
