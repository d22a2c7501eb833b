"""Token refresh engine.

Exchanges a provider's stored refresh token for a new access token and
writes the result back through the credential store. Concurrent refreshes of
the same provider share one in-flight exchange; different providers refresh
independently.
"""

import asyncio
import logging
import os
from collections.abc import Mapping

from credgate.core.credentials.models import Credential
from credgate.core.credentials.store import CredentialStore
from credgate.core.exceptions import NoRefreshToken, RefreshFailed

from .constants import TokenRefreshDefaults
from .http_client import HttpClient, HttpError, HttpxHttpClient
from .refreshers import REFRESHERS, TokenRefresher, TokenResponseError

_logger = logging.getLogger(__name__)


class TokenRefreshEngine:
    """Refresh OAuth credentials with per-provider coalescing.

    Example:
        >>> engine = TokenRefreshEngine(store)
        >>> credential = await engine.refresh("gemini")
        >>> credential.valid
        True
    """

    def __init__(
        self,
        store: CredentialStore,
        http_client: HttpClient | None = None,
        env: Mapping[str, str] | None = None,
        refreshers: Mapping[str, TokenRefresher] | None = None,
        refresh_threshold_seconds: float = TokenRefreshDefaults.REFRESH_THRESHOLD_SECONDS,
    ) -> None:
        self.store = store
        self.http_client = http_client or HttpxHttpClient()
        self.refresh_threshold_seconds = refresh_threshold_seconds
        source_env = os.environ if env is None else env
        self._refreshers: dict[str, TokenRefresher] = (
            dict(refreshers)
            if refreshers is not None
            else {key: cls(source_env) for key, cls in REFRESHERS.items()}
        )
        self._inflight: dict[str, asyncio.Future[Credential]] = {}

    def in_flight(self, provider_id: str) -> bool:
        return provider_id in self._inflight

    async def refresh(self, provider_id: str) -> Credential:
        """Refresh now; a failure invalidates the stored credential.

        Raises:
            NoRefreshToken: If the stored credential has no refresh token
            RefreshFailed: If the exchange fails for any reason
        """
        return await self._join(provider_id, invalidate_on_failure=True)

    async def refresh_if_expiring(self, provider_id: str) -> Credential:
        """Refresh a still-valid credential that is about to expire.

        A failure only logs a warning and the current credential is kept,
        since its token can still be used until it expires.
        """
        credential = self.store.get(provider_id)
        if not credential.valid or not credential.expires_within(self.refresh_threshold_seconds):
            return credential
        try:
            return await self._join(provider_id, invalidate_on_failure=False)
        except (NoRefreshToken, RefreshFailed) as e:
            _logger.warning(f"Proactive refresh for '{provider_id}' failed: {e.message}")
            return self.store.get(provider_id)

    async def _join(self, provider_id: str, *, invalidate_on_failure: bool) -> Credential:
        future = self._inflight.get(provider_id)
        if future is None:
            future = asyncio.ensure_future(self._refresh(provider_id, invalidate_on_failure))
            self._inflight[provider_id] = future
            future.add_done_callback(lambda done: self._forget(provider_id, done))
        else:
            _logger.debug(f"Joining in-flight refresh for '{provider_id}'")
        # Shield so one cancelled waiter does not cancel the exchange for the others
        return await asyncio.shield(future)

    def _forget(self, provider_id: str, done: "asyncio.Future[Credential]") -> None:
        if self._inflight.get(provider_id) is done:
            del self._inflight[provider_id]
        if not done.cancelled():
            # Mark the exception retrieved even if every waiter went away
            done.exception()

    async def _refresh(self, provider_id: str, invalidate_on_failure: bool) -> Credential:
        refresher = self._refreshers.get(provider_id)
        if refresher is None:
            raise RefreshFailed(provider_id, "provider does not support token refresh")

        credential = self.store.get(provider_id)
        if not credential.refresh_token:
            raise NoRefreshToken(provider_id)

        _logger.info(f"🔄 Refreshing access token for '{provider_id}'")
        try:
            tokens = await refresher.exchange(credential, self.http_client)
        except HttpError as e:
            reason = f"HTTP {e.status_code} {e.reason}" if e.status_code else f"network error: {e.reason}"
            raise self._failed(provider_id, reason, invalidate_on_failure) from e
        except TokenResponseError as e:
            raise self._failed(provider_id, str(e), invalidate_on_failure) from e

        try:
            refreshed = await self.store.persist(
                provider_id,
                tokens.access_token,
                tokens.refresh_token,
                tokens.expires_at,
                tokens.native_updates,
            )
        except OSError as e:
            raise self._failed(
                provider_id, f"cannot write credential file: {e}", invalidate_on_failure
            ) from e

        _logger.info(
            f"✅ Refreshed access token for '{provider_id}'"
            + (f" (expires {refreshed.expires_at.isoformat()})" if refreshed.expires_at else "")
        )
        return refreshed

    def _failed(self, provider_id: str, reason: str, invalidate: bool) -> RefreshFailed:
        error = RefreshFailed(provider_id, reason)
        _logger.error(f"❌ {error.message}")
        if invalidate:
            self.store.invalidate(provider_id, error.message)
        return error

    async def aclose(self) -> None:
        await self.http_client.aclose()
