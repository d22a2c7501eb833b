import asyncio
import json

import pytest

from credgate.api.services.streaming import relay_stream, streaming_response
from credgate.conversion.canonical import WireFormat
from credgate.core.exceptions import UpstreamError


class FakeUpstream:
    """Stands in for UpstreamStream; only records closes."""

    def __init__(self, provider="openai"):
        self.provider = provider
        self.close_calls = 0

    async def aclose(self):
        self.close_calls += 1


async def _frames_then_failure(error):
    yield 'data: {"n": 1}\n\n'
    raise error


async def _endless_frames():
    n = 0
    while True:
        n += 1
        yield f'data: {{"n": {n}}}\n\n'
        await asyncio.sleep(0)


async def _collect(frames):
    return [frame async for frame in frames]


@pytest.mark.asyncio
async def test_mid_stream_failure_ends_with_chat_error_event():
    upstream = FakeUpstream()
    error = UpstreamError("openai", 0, "connection reset")

    frames = await _collect(
        relay_stream(_frames_then_failure(error), upstream=upstream, wire=WireFormat.CHAT, request_id="r1")
    )

    assert frames[0] == 'data: {"n": 1}\n\n'
    assert frames[-1].endswith("data: [DONE]\n\n")
    final = json.loads(frames[-1].split("\n", 1)[0][len("data: ") :])
    assert final["error"]["type"] == "upstream_error"
    assert final["error"]["code"] == 502
    assert upstream.close_calls == 1


@pytest.mark.asyncio
async def test_mid_stream_failure_ends_with_messages_error_event():
    upstream = FakeUpstream("claude")
    error = UpstreamError("claude", 0, "read timed out", timeout=True)

    frames = await _collect(
        relay_stream(_frames_then_failure(error), upstream=upstream, wire=WireFormat.MESSAGES, request_id="r2")
    )

    assert frames[-1].startswith("event: error\n")
    final = json.loads(frames[-1].split("data: ", 1)[1])
    assert final == {"type": "error", "error": {"type": "upstream_timeout", "message": error.message}}
    assert upstream.close_calls == 1


@pytest.mark.asyncio
async def test_unexpected_exception_becomes_streaming_error():
    upstream = FakeUpstream()

    frames = await _collect(
        relay_stream(
            _frames_then_failure(RuntimeError("decoder blew up")),
            upstream=upstream,
            wire=WireFormat.CHAT,
            request_id="r3",
        )
    )

    final = json.loads(frames[-1].split("\n", 1)[0][len("data: ") :])
    assert final["error"]["type"] == "streaming_error"
    assert "decoder blew up" in final["error"]["message"]
    assert upstream.close_calls == 1


@pytest.mark.asyncio
async def test_consumer_that_stops_reading_closes_upstream():
    upstream = FakeUpstream()
    relay = relay_stream(_endless_frames(), upstream=upstream, wire=WireFormat.CHAT, request_id="r4")

    first = await relay.__anext__()
    await relay.aclose()

    assert first == 'data: {"n": 1}\n\n'
    assert upstream.close_calls == 1


@pytest.mark.asyncio
async def test_client_disconnect_cancels_and_closes_upstream():
    upstream = FakeUpstream()
    relay = relay_stream(_endless_frames(), upstream=upstream, wire=WireFormat.CHAT, request_id="r5")
    reading = asyncio.Event()

    async def consume():
        async for _ in relay:
            reading.set()

    task = asyncio.create_task(consume())
    await reading.wait()
    task.cancel()

    with pytest.raises(asyncio.CancelledError):
        await task
    assert upstream.close_calls == 1


@pytest.mark.asyncio
async def test_response_releases_upstream_even_if_never_iterated():
    upstream = FakeUpstream()
    relay = relay_stream(_endless_frames(), upstream=upstream, wire=WireFormat.CHAT, request_id="r6")

    response = streaming_response(stream=relay, on_close=upstream.aclose)

    assert response.media_type == "text/event-stream"
    assert response.background is not None
    await response.background()
    assert upstream.close_calls == 1
    await relay.aclose()


def test_streaming_response_without_close_hook_has_no_background():
    async def frames():
        yield "data: {}\n\n"

    response = streaming_response(stream=frames())

    assert response.background is None
    assert response.headers["cache-control"] == "no-cache"
