"""
Credential store for OAuth-session providers.

Holds the current Credential record of every OAuth provider, loads them from
the files written by the providers' login tools and writes refreshed tokens
back in the same native shape. Records are immutable and swapped whole under
a lock that is held only for the assignment, so readers on any thread see
either the old or the new record.
"""

import asyncio
import dataclasses
import json
import logging
import os
import threading
from collections.abc import Callable, Mapping
from datetime import datetime
from pathlib import Path
from types import MappingProxyType
from typing import Any

from credgate.core.credentials.formats import CREDENTIAL_FORMATS, CredentialFormat
from credgate.core.credentials.models import Credential, FileSignature
from credgate.core.exceptions import CredentialCorrupt, CredentialError, CredentialNotFound

_logger = logging.getLogger(__name__)

CredentialListener = Callable[[Credential], None]

CREDENTIAL_FILE_PERMISSIONS = 0o600


class CredentialStore:
    """Thread-safe holder of one Credential per OAuth provider.

    Listeners registered with `add_listener` are called (on the caller's
    thread, after the swap) every time a record is replaced.
    """

    def __init__(
        self,
        env: Mapping[str, str] | None = None,
        formats: Mapping[str, CredentialFormat] | None = None,
    ) -> None:
        self._env = os.environ if env is None else env
        self._formats = dict(CREDENTIAL_FORMATS if formats is None else formats)
        self._lock = threading.Lock()
        self._records: dict[str, Credential] = {
            provider_id: Credential.not_loaded(provider_id, str(self.path_for(provider_id)))
            for provider_id in self._formats
        }
        self._listeners: list[CredentialListener] = []

    @property
    def provider_ids(self) -> tuple[str, ...]:
        return tuple(self._formats)

    def format_for(self, provider_id: str) -> CredentialFormat:
        try:
            return self._formats[provider_id]
        except KeyError:
            raise KeyError(f"'{provider_id}' is not an OAuth provider") from None

    def path_for(self, provider_id: str) -> Path:
        return self.format_for(provider_id).resolve_path(self._env)

    # Listeners

    def add_listener(self, listener: CredentialListener) -> None:
        self._listeners.append(listener)

    # Reads

    def get(self, provider_id: str) -> Credential:
        """Current record; never touches the disk."""
        self.format_for(provider_id)
        with self._lock:
            return self._records[provider_id]

    def snapshot(self) -> dict[str, Credential]:
        with self._lock:
            return dict(self._records)

    def current_signature(self, provider_id: str) -> FileSignature | None:
        """Signature of the file as it is on disk now (None if missing)."""
        try:
            stat = self.path_for(provider_id).stat()
        except FileNotFoundError:
            return None
        return FileSignature(stat.st_mtime_ns, stat.st_size)

    def read(self, provider_id: str) -> Credential:
        """Read and parse the credential file (blocking).

        Raises:
            CredentialNotFound: If the file does not exist
            CredentialCorrupt: If the file is not a valid credential document
        """
        fmt = self.format_for(provider_id)
        path = self.path_for(provider_id)
        try:
            with open(path, encoding="utf-8") as f:
                signature = FileSignature(*_stat_signature(f.fileno()))
                data = json.load(f)
        except FileNotFoundError as e:
            raise CredentialNotFound(provider_id, str(path)) from e
        except json.JSONDecodeError as e:
            raise CredentialCorrupt(provider_id, str(path), f"invalid JSON: {e}") from e
        except (OSError, UnicodeDecodeError) as e:
            raise CredentialCorrupt(provider_id, str(path), f"cannot read file: {e}") from e

        if not isinstance(data, dict):
            raise CredentialCorrupt(provider_id, str(path), "expected a JSON object")

        try:
            fields = fmt.parse(data)
        except (ValueError, TypeError, OverflowError) as e:
            raise CredentialCorrupt(provider_id, str(path), str(e)) from e

        return Credential(
            provider_id=provider_id,
            source_path=str(path),
            access_token=fields.access_token,
            refresh_token=fields.refresh_token,
            expires_at=fields.expires_at,
            loaded=True,
            extra=MappingProxyType(fields.extra),
            signature=signature,
        )

    # Writes

    def replace(self, credential: Credential) -> Credential:
        """Atomically swap the record and notify listeners."""
        self.format_for(credential.provider_id)
        with self._lock:
            self._records[credential.provider_id] = credential
        for listener in list(self._listeners):
            try:
                listener(credential)
            except Exception:
                _logger.exception(f"Credential listener failed for '{credential.provider_id}'")
        return credential

    def invalidate(self, provider_id: str, reason: str | None = None) -> Credential:
        current = self.get(provider_id)
        invalidated = current.invalidate()
        if reason:
            invalidated = dataclasses.replace(invalidated, error=reason)
        _logger.warning(f"Credential for '{provider_id}' invalidated")
        return self.replace(invalidated)

    async def load(self, provider_id: str) -> Credential:
        """Read the provider file off the event loop and swap the record in.

        A failed read replaces the record with a not-loaded one before the
        error propagates, so a deleted or corrupted file never leaves a stale
        valid record behind.
        """
        try:
            credential = await asyncio.to_thread(self.read, provider_id)
        except CredentialError as e:
            signature = await asyncio.to_thread(self.current_signature, provider_id)
            failed = Credential.not_loaded(provider_id, str(self.path_for(provider_id)), e.message)
            if signature is not None:
                failed = dataclasses.replace(failed, signature=signature)
            self.replace(failed)
            raise
        return self.replace(credential)

    async def load_all(self) -> dict[str, Credential]:
        """Load every provider; failures are recorded as not-loaded, never raised."""
        results: dict[str, Credential] = {}
        for provider_id in self.provider_ids:
            try:
                results[provider_id] = await self.load(provider_id)
                _logger.debug(f"Loaded credential for '{provider_id}'")
            except CredentialNotFound:
                _logger.debug(f"No credential file for '{provider_id}'")
                results[provider_id] = self.get(provider_id)
            except CredentialError as e:
                _logger.warning(f"Failed to load credential for '{provider_id}': {e.message}")
                results[provider_id] = self.get(provider_id)
        return results

    async def persist(
        self,
        provider_id: str,
        access_token: str,
        refresh_token: str | None,
        expires_at: datetime | None,
        native_updates: Mapping[str, Any] | None = None,
    ) -> Credential:
        """Write refreshed tokens into the provider file, then swap in memory.

        `native_updates` are written verbatim next to the token fields
        (e.g. a new qwen resource_url). The file is merged (unknown keys
        kept), written to a temporary file with owner-only permissions and
        renamed over the original. The new record is read back from disk so
        memory and disk agree.
        """
        fields = dict(native_updates or {})
        fields.update(self.format_for(provider_id).render(access_token, refresh_token, expires_at))
        credential = await asyncio.to_thread(self._write_fields, provider_id, fields)
        return self.replace(credential)

    def _write_fields(self, provider_id: str, fields: dict[str, Any]) -> Credential:
        path = self.path_for(provider_id)
        try:
            with open(path, encoding="utf-8") as f:
                existing = json.load(f)
            if not isinstance(existing, dict):
                existing = {}
        except FileNotFoundError:
            existing = {}
        except (OSError, json.JSONDecodeError) as e:
            _logger.warning(f"Rewriting unreadable credential file {path}: {e}")
            existing = {}

        existing.update(fields)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_name(f".{path.name}.tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            if hasattr(os, "fchmod"):
                os.fchmod(f.fileno(), CREDENTIAL_FILE_PERMISSIONS)
            json.dump(existing, f, indent=2)
        os.replace(tmp_path, path)
        return self.read(provider_id)


def _stat_signature(fd: int) -> tuple[int, int]:
    stat = os.fstat(fd)
    return stat.st_mtime_ns, stat.st_size
