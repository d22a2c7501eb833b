"""Shared HTTP plumbing of the upstream provider clients.

OpenAIClient and AnthropicClient only differ in endpoint paths and auth
headers; the request loop, retry policy, streaming handshake and error
mapping live here.
"""

import asyncio
import json
import random
import time
from collections.abc import AsyncIterator
from typing import Any

import httpx

from credgate.core.exceptions import UpstreamError
from credgate.core.logging import conversation_logger
from credgate.core.provider_config import Provider


class UpstreamStream:
    """An upstream SSE response whose status has already been checked.

    Iterate `aiter_lines()` to relay events; always `aclose()` when done
    (including on client disconnect) so the upstream connection is released.
    """

    def __init__(self, provider: str, response: httpx.Response) -> None:
        self.provider = provider
        self.response = response
        self._closed = False

    @property
    def status_code(self) -> int:
        return self.response.status_code

    async def aiter_lines(self) -> AsyncIterator[str]:
        try:
            async for line in self.response.aiter_lines():
                yield line
        except httpx.TimeoutException as e:
            raise UpstreamError(self.provider, 0, str(e) or "stream read timeout", timeout=True) from e
        except httpx.HTTPError as e:
            raise UpstreamError(self.provider, 0, str(e) or type(e).__name__) from e

    async def aclose(self) -> None:
        if not self._closed:
            self._closed = True
            await self.response.aclose()


class UpstreamClient:
    """Base client for one provider's HTTP API."""

    chat_path = ""
    models_path = ""

    def __init__(
        self,
        provider: Provider,
        base_url: str | None = None,
        max_retries: int | None = None,
        retry_backoff_seconds: float = 0.5,
        streaming_connect_timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self.provider = provider
        self.base_url = (base_url or provider.base_url).rstrip("/")
        self.max_retries = provider.max_retries if max_retries is None else max_retries
        self.retry_backoff_seconds = retry_backoff_seconds
        self.streaming_connect_timeout = streaming_connect_timeout
        self._client = http_client
        self._owns_client = http_client is None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self.provider.timeout))
            self._owns_client = True
        return self._client

    def build_headers(self, token: str | None) -> dict[str, str]:
        raise NotImplementedError

    def _headers(self, token: str | None) -> dict[str, str]:
        headers = self.build_headers(token)
        headers.update(self.provider.custom_headers)
        return headers

    def _error(self, exc: httpx.HTTPError) -> UpstreamError:
        if isinstance(exc, httpx.TimeoutException):
            return UpstreamError(self.provider.key, 0, str(exc) or "timeout", timeout=True)
        return UpstreamError(self.provider.key, 0, str(exc) or type(exc).__name__)

    async def _post_once(self, payload: dict[str, Any], token: str | None) -> dict[str, Any]:
        try:
            response = await self.client.post(
                f"{self.base_url}{self.chat_path}",
                json=payload,
                headers=self._headers(token),
            )
        except httpx.HTTPError as e:
            raise self._error(e) from e

        if response.is_error:
            raise UpstreamError(self.provider.key, response.status_code, response.text)
        try:
            data = response.json()
        except ValueError as e:
            raise UpstreamError(self.provider.key, 502, f"invalid JSON from upstream: {response.text[:200]}") from e
        if not isinstance(data, dict):
            raise UpstreamError(self.provider.key, 502, "upstream response is not a JSON object")
        return data

    async def create_chat_completion(
        self, payload: dict[str, Any], token: str | None, request_id: str | None = None
    ) -> dict[str, Any]:
        """Send a non-streaming request, retrying network errors and 5xx.

        429 and other 4xx are returned to the caller at once.
        """
        start_time = time.time()
        conversation_logger.debug(
            f"📤 {self.provider.key.upper()} REQUEST | Model: {payload.get('model', 'unknown')}"
        )
        attempt = 0
        while True:
            try:
                data = await self._post_once(payload, token)
                break
            except UpstreamError as e:
                if not e.retryable or attempt >= self.max_retries:
                    raise
                delay = self.retry_backoff_seconds * (2**attempt)
                delay += random.uniform(0, self.retry_backoff_seconds)
                attempt += 1
                conversation_logger.warning(
                    f"Upstream '{self.provider.key}' failed ({e.upstream_status or 'network'}), "
                    f"retrying in {delay:.1f}s (attempt {attempt}/{self.max_retries})"
                )
                await asyncio.sleep(delay)

        duration_ms = (time.time() - start_time) * 1000
        conversation_logger.debug(
            f"📥 {self.provider.key.upper()} RESPONSE | Duration: {duration_ms:.0f}ms"
        )
        return data

    async def open_stream(
        self, payload: dict[str, Any], token: str | None, request_id: str | None = None
    ) -> UpstreamStream:
        """Start a streaming request and check its status before any byte is relayed.

        Never retried: the caller decides whether to re-route on failure.
        """
        conversation_logger.debug(
            f"📤 {self.provider.key.upper()} STREAM | Model: {payload.get('model', 'unknown')}"
        )
        request = self.client.build_request(
            "POST",
            f"{self.base_url}{self.chat_path}",
            json=payload,
            headers=self._headers(token),
            timeout=httpx.Timeout(self.provider.timeout, connect=self.streaming_connect_timeout),
        )
        try:
            response = await self.client.send(request, stream=True)
        except httpx.HTTPError as e:
            raise self._error(e) from e

        if response.is_error:
            try:
                body = (await response.aread()).decode("utf-8", errors="replace")
            finally:
                await response.aclose()
            raise UpstreamError(self.provider.key, response.status_code, body)
        return UpstreamStream(self.provider.key, response)

    async def list_models(self, token: str | None) -> list[str]:
        """Model ids advertised by the upstream's models endpoint."""
        try:
            response = await self.client.get(
                f"{self.base_url}{self.models_path}", headers=self._headers(token)
            )
        except httpx.HTTPError as e:
            raise self._error(e) from e
        if response.is_error:
            raise UpstreamError(self.provider.key, response.status_code, response.text)
        try:
            data = response.json()
        except json.JSONDecodeError as e:
            raise UpstreamError(self.provider.key, 502, "invalid JSON model list") from e
        entries = data.get("data", []) if isinstance(data, dict) else []
        return [entry["id"] for entry in entries if isinstance(entry, dict) and isinstance(entry.get("id"), str)]

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None
