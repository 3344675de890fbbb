"""
Process-wide policy state: the per-user protection scope cache and the
per-session sequence counter for content evaluation calls.

Both sit on an injected KeyValueStore and serialise work per key with an
asyncio.Lock, so concurrent requests for the same user or session cannot
interleave their read-modify-write.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncContextManager, AsyncIterator, Awaitable, Callable, Dict, Generic, Optional, Protocol, TypeVar

logger = logging.getLogger(__name__)

K = TypeVar("K")
V = TypeVar("V")

DEFAULT_MODE = "default"
EVALUATE_INLINE = "evaluateInline"
EVALUATE_OFFLINE = "evaluateOffline"

UPLOAD_TEXT = "uploadText"
DOWNLOAD_TEXT = "downloadText"


class KeyValueStore(Protocol[K, V]):
    async def get(self, key: K) -> Optional[V]: ...

    async def set(self, key: K, value: V) -> None: ...

    def locked(self, key: K) -> AsyncContextManager[None]: ...


@dataclass
class _KeyLock:
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    holders: int = 0


class InMemoryKeyValueStore(Generic[K, V]):
    """
    Dict-backed store; values live for the process lifetime.

    Per-key locks exist only while some task holds or waits on them, so the
    lock table is bounded by the number of in-flight requests.
    """

    def __init__(self) -> None:
        self._data: Dict[K, V] = {}
        self._locks: Dict[K, _KeyLock] = {}

    async def get(self, key: K) -> Optional[V]:
        return self._data.get(key)

    async def set(self, key: K, value: V) -> None:
        self._data[key] = value

    @asynccontextmanager
    async def locked(self, key: K) -> AsyncIterator[None]:
        entry = self._locks.get(key)
        if entry is None:
            entry = self._locks[key] = _KeyLock()
        entry.holders += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.holders -= 1
            if entry.holders == 0:
                del self._locks[key]

    def lock_count(self) -> int:
        return len(self._locks)


@dataclass(frozen=True)
class PolicyScopeEntry:
    etag: str
    activity_execution_map: Dict[str, str] = field(default_factory=dict)

    def mode_for(self, activity: str) -> str:
        return self.activity_execution_map.get(activity) or DEFAULT_MODE

    @property
    def upload_text_mode(self) -> str:
        return self.mode_for(UPLOAD_TEXT)

    @property
    def download_text_mode(self) -> str:
        return self.mode_for(DOWNLOAD_TEXT)


class PolicyScopeCache:
    """Uncached -> Cached per user id; no TTL and no invalidation."""

    def __init__(self, store: KeyValueStore[str, PolicyScopeEntry]):
        self._store = store

    async def peek(self, user_id: str) -> Optional[PolicyScopeEntry]:
        return await self._store.get(user_id)

    async def get_or_fetch(
        self,
        user_id: str,
        fetch: Callable[[], Awaitable[PolicyScopeEntry]],
    ) -> PolicyScopeEntry:
        cached = await self._store.get(user_id)
        if cached is not None:
            logger.info(f"Scope cached for user {user_id}: etag={cached.etag}")
            return cached

        async with self._store.locked(user_id):
            # another request may have filled it while we waited
            cached = await self._store.get(user_id)
            if cached is not None:
                return cached
            entry = await fetch()
            await self._store.set(user_id, entry)
            logger.info(f"Scope fetched for user {user_id}: etag={entry.etag}")
            return entry


class SequenceLease:
    """Sequence numbers reserved by one request for one session."""

    def __init__(self, session_id: str, start: int):
        self.session_id = session_id
        self.start = start
        self.current = start

    def next(self) -> int:
        """Return the number for the next evaluation call and advance past it."""
        value = self.current
        self.current += 1
        return value

    def advance(self, steps: int) -> None:
        if steps < 0:
            raise ValueError("sequence cannot move backwards")
        self.current += steps


class SessionSequenceCounter:
    def __init__(self, store: KeyValueStore[str, int]):
        self._store = store

    async def value(self, session_id: str) -> int:
        return (await self._store.get(session_id)) or 0

    @asynccontextmanager
    async def lease(self, session_id: str) -> AsyncIterator[SequenceLease]:
        """Hold the session's counter for one request; commits on exit, even on failure."""
        async with self._store.locked(session_id):
            lease = SequenceLease(session_id, await self.value(session_id))
            try:
                yield lease
            finally:
                if lease.current > lease.start:
                    await self._store.set(session_id, lease.current)
