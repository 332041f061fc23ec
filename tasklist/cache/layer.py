import asyncio
import time
import weakref
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, NamedTuple, Optional, Sequence

from tasklist.core.errors import NotFoundError, ValidationError
from tasklist.models import TaskRead

import logging

logger = logging.getLogger(__name__)

Snapshot = tuple[TaskRead, ...]


class CacheEntry(NamedTuple):
    captured_at: float
    snapshot: Snapshot


class UserTaskCache:
    """
    Per-user, time-bounded view of each user's task list.

    - One entry per user id, replaced wholesale on every put
    - Validity is checked lazily on read (now - captured_at < ttl); expired
      entries stay in the map until superseded or invalidated
    - Per-user locks serialize "load + put" against "mutate + invalidate"
      for the same user; different users never contend

    get/put/invalidate never await, so each runs atomically on the event loop.
    """

    def __init__(
        self,
        ttl_seconds: float = 30,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}

        # Lock registry for per-user serialization
        # ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
        # • a lock lives as long as some coroutine holds or awaits it
        # • idle locks drop out as soon as the last reference goes away
        # • setdefault() hands every concurrent caller the SAME lock object
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

        self.stats = {"hits": 0, "misses": 0}

    def _is_fresh(self, entry: CacheEntry) -> bool:
        return (self._clock() - entry.captured_at) < self.ttl_seconds

    def get(self, user_id: str) -> Optional[Snapshot]:
        """
        Return the cached snapshot for user_id, or None on a miss.

        Missing and expired entries are both reported as a miss.
        """
        entry = self._entries.get(user_id)
        if entry is not None and self._is_fresh(entry):
            self.stats["hits"] += 1
            logger.debug(f"Cache hit user={user_id}")
            return entry.snapshot

        self.stats["misses"] += 1
        logger.debug(f"Cache miss user={user_id}")
        return None

    def peek(self, user_id: str) -> Optional[Snapshot]:
        """Like get(), without touching the hit/miss counters."""
        entry = self._entries.get(user_id)
        if entry is not None and self._is_fresh(entry):
            return entry.snapshot
        return None

    def put(self, user_id: str, tasks: Sequence[TaskRead]) -> Snapshot:
        snapshot = tuple(tasks)
        self._entries[user_id] = CacheEntry(self._clock(), snapshot)
        return snapshot

    def invalidate(self, user_id: str) -> None:
        if self._entries.pop(user_id, None) is not None:
            logger.debug(f"Invalidated user={user_id}")

    def lock(self, user_id: str) -> asyncio.Lock:
        """Get or create the lock guarding user_id's entry."""
        return self._locks.setdefault(user_id, asyncio.Lock())

    @asynccontextmanager
    async def mutation(self, user_id: str) -> AsyncIterator[None]:
        """
        Hold user_id's lock around a store mutation, then invalidate.

        The entry is dropped once the block exits normally, i.e. after the
        mutation committed. NotFoundError and ValidationError mean nothing was
        written, so they leave the entry alone. Any other failure (timeout,
        storage error, cancellation) may have landed after a commit, so the
        entry is dropped before re-raising.
        """
        async with self.lock(user_id):
            try:
                yield
            except (NotFoundError, ValidationError):
                raise
            except BaseException:
                self.invalidate(user_id)
                raise
            self.invalidate(user_id)

    def __len__(self) -> int:
        return len(self._entries)

    def get_stats(self) -> dict:
        return {
            "cache_hits": self.stats["hits"],
            "cache_misses": self.stats["misses"],
            "cache_size": len(self._entries),
        }
