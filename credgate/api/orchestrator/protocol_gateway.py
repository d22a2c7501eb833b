"""Per-request flow of the protocol gateway.

Resolve provider, obtain a usable credential, call the upstream in its
native format and map the answer back to the caller's wire shape. A failed
credential refresh or a failure that suspends the provider re-routes the
request once; the second failure is surfaced to the caller.
"""

import time
import uuid
from collections.abc import AsyncIterator, Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from credgate.api.services.streaming import relay_stream
from credgate.conversion.anthropic_sse_to_openai import anthropic_sse_to_openai_chat_completions_sse
from credgate.conversion.canonical import PendingRequest, WireFormat
from credgate.conversion.openai_sse_to_anthropic import openai_sse_to_anthropic_messages_sse
from credgate.conversion.request_converter import to_native_request
from credgate.conversion.response_converter import convert_response
from credgate.conversion.sse import iter_sse_events, reframe_events
from credgate.core.exceptions import CredentialError, UpstreamError
from credgate.core.logging import conversation_logger
from credgate.core.provider.failover import ProviderState
from credgate.core.provider_config import Provider
from credgate.core.provider_manager import ProviderManager
from credgate.core.upstream_client import UpstreamClient, UpstreamStream


T = TypeVar("T")


@dataclass(frozen=True)
class Dispatched:
    """Outcome of one routed upstream call."""

    provider: Provider
    upstream_model: str
    result: Any


class ProtocolGateway:
    def __init__(self, manager: ProviderManager) -> None:
        self.manager = manager

    async def _dispatch(
        self,
        pending: PendingRequest,
        call: Callable[[UpstreamClient, dict[str, Any], str | None], Awaitable[T]],
    ) -> Dispatched:
        failover = self.manager.failover
        exclude: str | None = None
        rerouted = False

        while True:
            provider, upstream_model = self.manager.select_provider(pending.model, exclude=exclude)

            try:
                credential = await self.manager.credential_for(provider)
            except CredentialError as e:
                failover.record_refresh_failure(provider.key, e.message)
                if rerouted:
                    raise
                conversation_logger.warning(f"🔀 Credential of '{provider.key}' unusable, re-routing once")
                rerouted, exclude = True, provider.key
                continue

            client = self.manager.get_client(provider, credential)
            token = self.manager.token_for(provider, credential)
            payload = to_native_request(pending, upstream_model, provider.api_format)
            conversation_logger.info(
                f"➡️ {pending.wire.value} request for '{pending.model}' -> "
                f"{provider.key}:{upstream_model} ({provider.api_format})"
            )

            try:
                result = await call(client, payload, token)
            except UpstreamError as e:
                state = failover.record_failure(provider.key, e.upstream_status, e.body)
                if state is ProviderState.SUSPENDED and not rerouted:
                    conversation_logger.warning(f"🔀 Provider '{provider.key}' suspended, re-routing once")
                    rerouted, exclude = True, provider.key
                    continue
                raise

            failover.record_success(provider.key)
            return Dispatched(provider, upstream_model, result)

    async def complete(self, pending: PendingRequest, request_id: str) -> dict[str, Any]:
        """Serve a non-streaming request; returns the caller-shaped body."""
        start_time = time.time()

        async def call(client: UpstreamClient, payload: dict[str, Any], token: str | None) -> dict[str, Any]:
            return await client.create_chat_completion(payload, token, request_id)

        dispatched = await self._dispatch(pending, call)
        body = convert_response(
            dispatched.result,
            upstream_format=dispatched.provider.api_format,
            caller_format=pending.wire.api_format,
            model=pending.model,
            provider=dispatched.provider.key,
        )
        conversation_logger.info(
            f"✅ Served by '{dispatched.provider.key}' in {(time.time() - start_time) * 1000:.0f}ms"
        )
        return body

    async def stream(
        self, pending: PendingRequest, request_id: str
    ) -> tuple[AsyncIterator[str], UpstreamStream]:
        """Open the upstream stream (status checked, re-routable).

        Returns the caller-shaped frames together with the open upstream so the
        response can release it even if the frames are never iterated.
        """

        async def call(client: UpstreamClient, payload: dict[str, Any], token: str | None) -> UpstreamStream:
            return await client.open_stream(payload, token, request_id)

        dispatched = await self._dispatch(pending, call)
        upstream: UpstreamStream = dispatched.result
        conversation_logger.info(f"🌊 Streaming from '{dispatched.provider.key}'")
        frames = relay_stream(
            self._translate(pending, dispatched.provider, upstream),
            upstream=upstream,
            wire=pending.wire,
            request_id=request_id,
        )
        return frames, upstream

    @staticmethod
    def _translate(pending: PendingRequest, provider: Provider, upstream: UpstreamStream) -> AsyncIterator[str]:
        events = iter_sse_events(upstream.aiter_lines())
        if provider.api_format == pending.wire.api_format:
            return reframe_events(events, terminate_with_done=pending.wire is WireFormat.CHAT)
        if pending.wire is WireFormat.CHAT:
            return anthropic_sse_to_openai_chat_completions_sse(
                events=events,
                model=pending.model,
                completion_id=f"chatcmpl-{uuid.uuid4().hex}",
                provider=provider.key,
            )
        return openai_sse_to_anthropic_messages_sse(
            events=events, model=pending.model, message_id=f"msg_{uuid.uuid4().hex}", provider=provider.key
        )
