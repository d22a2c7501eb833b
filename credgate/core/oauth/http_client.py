"""
HTTP client abstraction for token endpoints.

Provides a small async interface over httpx so the refresh engine can be
tested with respx or with the in-memory MockHttpClient. Token exchanges
are never retried here: a failed refresh is reported to the caller at once.
"""

from __future__ import annotations

import abc
import logging
import typing

import httpx

from .constants import OAuthProtocol, TokenRefreshDefaults

_logger = logging.getLogger(__name__)


# =============================================================================
# Exceptions
# =============================================================================


class HttpError(Exception):
    """HTTP request to a token endpoint failed.

    Attributes:
        status_code: HTTP status code (0 for network errors)
        reason: Human-readable reason
        body: Response body
        url: Request URL
    """

    def __init__(self, status_code: int, reason: str, body: str, url: str) -> None:
        self.status_code = status_code
        self.reason = reason
        self.body = body
        self.url = url

        body_preview = body[:200] if body else "(empty)"
        if len(body) > 200:
            body_preview += "..."

        super().__init__(f"HTTP {status_code} - {reason} for {url}\nResponse: {body_preview}")


# =============================================================================
# Abstract Client
# =============================================================================


class HttpClient(abc.ABC):
    """Abstract async HTTP client for token endpoints."""

    @abc.abstractmethod
    async def post_json(self, url: str, payload: dict[str, typing.Any]) -> dict[str, typing.Any]:
        """POST a JSON body and return the decoded JSON response.

        Raises:
            HttpError: If the request fails or the response is not a JSON object
        """

    @abc.abstractmethod
    async def post_form(self, url: str, payload: dict[str, str]) -> dict[str, typing.Any]:
        """POST a form-encoded body and return the decoded JSON response.

        Raises:
            HttpError: If the request fails or the response is not a JSON object
        """

    async def aclose(self) -> None:
        """Release pooled connections (no-op by default)."""
        return None


# =============================================================================
# httpx Implementation
# =============================================================================


class HttpxHttpClient(HttpClient):
    """Default client backed by a shared httpx.AsyncClient."""

    def __init__(self, timeout: float = TokenRefreshDefaults.HTTP_REQUEST_TIMEOUT) -> None:
        self.timeout = timeout
        self._client: httpx.AsyncClient | None = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(timeout=httpx.Timeout(self.timeout))
        return self._client

    async def post_json(self, url: str, payload: dict[str, typing.Any]) -> dict[str, typing.Any]:
        return await self._post(
            url, json=payload, headers={"Content-Type": OAuthProtocol.CONTENT_TYPE_JSON}
        )

    async def post_form(self, url: str, payload: dict[str, str]) -> dict[str, typing.Any]:
        return await self._post(
            url, data=payload, headers={"Content-Type": OAuthProtocol.CONTENT_TYPE_FORM}
        )

    async def _post(self, url: str, **kwargs: typing.Any) -> dict[str, typing.Any]:
        _logger.debug("HTTP POST %s (timeout=%ss)", url, self.timeout)
        try:
            response = await self._get_client().post(url, **kwargs)
        except (httpx.NetworkError, httpx.TimeoutException) as e:
            raise HttpError(status_code=0, reason=str(e) or type(e).__name__, body="", url=url) from e

        _logger.debug("HTTP %s from %s (body=%d bytes)", response.status_code, url, len(response.content))

        if response.is_error:
            raise HttpError(
                status_code=response.status_code,
                reason=str(response.reason_phrase),
                body=response.text,
                url=url,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise HttpError(response.status_code, "invalid JSON response", response.text, url) from e
        if not isinstance(data, dict):
            raise HttpError(response.status_code, "expected a JSON object", response.text, url)
        return typing.cast(dict[str, typing.Any], data)

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None


# =============================================================================
# Mock Client for Testing
# =============================================================================


class MockHttpClient(HttpClient):
    """Mock HTTP client for testing.

    Returns a predefined response without making network requests and
    records every request for assertions.

    Example:
        >>> mock = MockHttpClient(json_response={"access_token": "test"})
        >>> await mock.post_form("https://example.com", {})
        {'access_token': 'test'}
        >>> len(mock.requests)
        1
    """

    def __init__(
        self,
        json_response: dict[str, typing.Any] | None = None,
        raise_error: Exception | None = None,
    ) -> None:
        self.json_response = json_response or {}
        self.raise_error = raise_error
        self.requests: list[dict[str, typing.Any]] = []

    async def post_json(self, url: str, payload: dict[str, typing.Any]) -> dict[str, typing.Any]:
        return self._record(url, "json", payload)

    async def post_form(self, url: str, payload: dict[str, str]) -> dict[str, typing.Any]:
        return self._record(url, "form", payload)

    def _record(self, url: str, kind: str, payload: dict[str, typing.Any]) -> dict[str, typing.Any]:
        self.requests.append({"url": url, "kind": kind, "payload": payload})
        if self.raise_error:
            raise self.raise_error
        return dict(self.json_response)


__all__ = [
    "HttpClient",
    "HttpError",
    "HttpxHttpClient",
    "MockHttpClient",
]
