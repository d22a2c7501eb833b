"""Background task that reloads credential files changed by external tools."""

import asyncio
import logging

from credgate.core.credentials.store import CredentialStore
from credgate.core.exceptions import CredentialError

_logger = logging.getLogger(__name__)


class CredentialWatcher:
    """Poll credential files and reload the ones whose signature changed.

    The signature is `(mtime_ns, size)` of the file. The last observed
    signature is the one stored on the current record, so a write-back done
    by the refresh engine does not trigger a second reload.
    """

    def __init__(self, store: CredentialStore, interval: float = 5.0) -> None:
        self.store = store
        self.interval = interval
        self._task: asyncio.Task[None] | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="credgate-credential-watcher")
        _logger.debug(f"Credential watcher started (interval={self.interval}s)")

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        _logger.debug("Credential watcher stopped")

    async def _run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.check_once()
            except Exception:
                _logger.exception("Credential watcher check failed")

    async def check_once(self) -> list[str]:
        """Reload every provider whose file changed; returns the reloaded ids."""
        changed: list[str] = []
        for provider_id in self.store.provider_ids:
            on_disk = await asyncio.to_thread(self.store.current_signature, provider_id)
            if on_disk == self.store.get(provider_id).signature:
                continue

            changed.append(provider_id)
            try:
                credential = await self.store.load(provider_id)
            except CredentialError as e:
                _logger.warning(f"Credential file for '{provider_id}' changed but is unusable: {e.message}")
                continue
            _logger.info(
                f"Credential file for '{provider_id}' changed; reloaded (valid={credential.valid})"
            )
        return changed
