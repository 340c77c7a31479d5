"""Round-robin pool of Notion browser sessions with health tracking.

Every operation that reads or moves the rotation cursor, or touches the entry
list, runs under a single ``asyncio.Lock``: admin routes and in-flight
failover mutate the same state. Returned entries are copies, so callers never
hold a reference into the pool.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any

from ..errors import ConfigError
from .credentials import (
    CredentialEntry,
    CredentialParseError,
    parse_credential,
    split_credential_blob,
)
from .store import CredentialStore, MemoryStore

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class AddResult:
    success: bool
    reason: str
    identity: str | None = None
    updated: bool = False


class SessionPool:
    def __init__(self, store: CredentialStore | None = None, delimiter: str = "|") -> None:
        self._store = store or MemoryStore()
        self._delimiter = delimiter
        self._entries: list[CredentialEntry] = []
        # Index of the entry last handed out, or None before the first rotation
        self._cursor: int | None = None
        self._lock = asyncio.Lock()
        self.initialized = False

    def __len__(self) -> int:
        return len(self._entries)

    async def initialize(self, raw_blob: str) -> int:
        """Parse the credential blob, merge stored state, and return the entry count."""
        parsed: list[CredentialEntry] = []
        for raw in split_credential_blob(raw_blob, self._delimiter):
            try:
                entry = parse_credential(raw)
            except CredentialParseError as e:
                logger.warning("[SESSION_POOL] Skipping credential: %s", e)
                continue
            if any(existing.identity == entry.identity for existing in parsed):
                logger.warning("[SESSION_POOL] Duplicate credential for %s, keeping the last one", entry.identity)
                parsed = [existing for existing in parsed if existing.identity != entry.identity]
            parsed.append(entry)

        stored = await asyncio.to_thread(self._store.load)

        async with self._lock:
            self._entries = _merge(parsed, stored)
            self._cursor = None
            if not self._entries:
                raise ConfigError("No valid Notion credential could be parsed")
            await self._persist()
            self.initialized = True
            count = len(self._entries)

        logger.info("[SESSION_POOL] Initialized with %d credential(s)", count)
        return count

    async def add_credential(self, raw: str, context: str | None = None) -> AddResult:
        """Add a credential; an identity already in the pool is updated in place."""
        try:
            entry = parse_credential(raw, context)
        except CredentialParseError as e:
            return AddResult(success=False, reason=str(e))

        async with self._lock:
            index = self._index_of(entry.identity)
            if index is None:
                self._entries.append(entry)
                await self._persist()
                logger.info("[SESSION_POOL] Added credential %s", entry.identity)
                return AddResult(success=True, reason="added", identity=entry.identity)

            existing = self._entries[index]
            existing.secret = entry.secret
            existing.tenant = entry.tenant
            existing.valid = True
            if context:
                existing.conversation_context = context
            await self._persist()
            logger.info("[SESSION_POOL] Updated credential %s", entry.identity)
            return AddResult(success=True, reason="updated", identity=entry.identity, updated=True)

    async def get_next(self) -> CredentialEntry | None:
        async with self._lock:
            return self._next_locked()

    async def active(self) -> CredentialEntry | None:
        """The entry under the cursor if it is still eligible, otherwise the next one."""
        async with self._lock:
            if self._cursor is not None and self._entries[self._cursor].eligible:
                return replace(self._entries[self._cursor])
            return self._next_locked()

    async def mark_invalid(self, identity: str) -> bool:
        async with self._lock:
            index = self._index_of(identity)
            if index is None:
                return False
            self._entries[index].valid = False
            await self._persist()
        logger.warning("[SESSION_POOL] Marked credential %s invalid", identity)
        return True

    async def revalidate(self, identity: str) -> bool:
        async with self._lock:
            index = self._index_of(identity)
            if index is None:
                return False
            self._entries[index].valid = True
            await self._persist()
        logger.info("[SESSION_POOL] Revalidated credential %s", identity)
        return True

    async def set_enabled(self, identity: str, enabled: bool) -> bool:
        async with self._lock:
            index = self._index_of(identity)
            if index is None:
                return False
            self._entries[index].enabled = enabled
            await self._persist()
        logger.info("[SESSION_POOL] Credential %s %s", identity, "enabled" if enabled else "disabled")
        return True

    async def set_context(self, identity: str, context: str | None) -> bool:
        async with self._lock:
            index = self._index_of(identity)
            if index is None:
                return False
            self._entries[index].conversation_context = context or None
            await self._persist()
        logger.info("[SESSION_POOL] Set conversation context for %s: %s", identity, context)
        return True

    async def remove(self, identity: str) -> bool:
        async with self._lock:
            index = self._index_of(identity)
            if index is None:
                return False
            del self._entries[index]
            if not self._entries:
                self._cursor = None
            elif self._cursor is not None and index <= self._cursor:
                # Scanning resumes at the entry that slid into the removed slot
                self._cursor = self._cursor - 1 if self._cursor > 0 else None
            await self._persist()
        logger.info("[SESSION_POOL] Removed credential %s", identity)
        return True

    async def status(self) -> list[dict[str, Any]]:
        async with self._lock:
            return [entry.redacted() for entry in self._entries]

    async def eligible_count(self) -> int:
        async with self._lock:
            return sum(1 for entry in self._entries if entry.eligible)

    def _next_locked(self) -> CredentialEntry | None:
        n = len(self._entries)
        if n == 0:
            return None
        start = 0 if self._cursor is None else (self._cursor + 1) % n
        for offset in range(n):
            index = (start + offset) % n
            entry = self._entries[index]
            if entry.eligible:
                entry.last_used_at = datetime.now(timezone.utc)
                self._cursor = index
                return replace(entry)
        return None

    def _index_of(self, identity: str) -> int | None:
        for index, entry in enumerate(self._entries):
            if entry.identity == identity:
                return index
        return None

    async def _persist(self) -> None:
        # Store I/O (file writes, Firestore batches) runs in a worker thread on a snapshot
        snapshot = [replace(entry) for entry in self._entries]
        try:
            await asyncio.to_thread(self._store.save, snapshot)
        except Exception:
            logger.exception("[SESSION_POOL] Failed to persist credentials")


def _merge(parsed: list[CredentialEntry], stored: list[CredentialEntry]) -> list[CredentialEntry]:
    """Restore stored metadata onto parsed entries and keep stored-only entries.

    ``valid`` is not restored: a restart trusts every credential again.
    """
    by_identity = {entry.identity: entry for entry in stored}
    merged: list[CredentialEntry] = []
    for entry in parsed:
        saved = by_identity.pop(entry.identity, None)
        if saved is not None:
            entry.conversation_context = entry.conversation_context or saved.conversation_context
            entry.enabled = saved.enabled
            entry.last_used_at = saved.last_used_at
            logger.info(
                "[SESSION_POOL] Restored stored state for %s (context=%s)",
                entry.identity,
                entry.conversation_context,
            )
        merged.append(entry)
    for entry in stored:
        if entry.identity in by_identity and entry.secret:
            entry.valid = True
            merged.append(entry)
    return merged
