"""
Keyed cache of in-flight and completed async builds.

The cached value for a key is the ``asyncio.Task`` running the build, not
its result, so callers arriving while a build is still running await the
same task instead of starting another one.

Entries expire a fixed interval after creation (no sliding expiration).
Expiry is an explicit deadline compared against an injectable clock on
every access; nothing depends on event-loop timers firing. A build that
fails or is cancelled is evicted so the next caller retries.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TTL = 60.0


@dataclass
class _Entry(Generic[T]):
    task: "asyncio.Task[T]"
    created_at: float
    expires_at: float

    def expired(self, now: float) -> bool:
        return now >= self.expires_at

    def failed(self) -> bool:
        if not self.task.done():
            return False
        return self.task.cancelled() or self.task.exception() is not None


class KeyedCache(Generic[T]):
    """Per-key memoization of async builds with a fixed time-to-live."""

    def __init__(
        self,
        ttl: float = DEFAULT_TTL,
        *,
        name: str = "cache",
        clock: Callable[[], float] = time.monotonic,
    ):
        if ttl <= 0:
            raise ValueError(f"ttl must be positive, got {ttl}")
        self._ttl = ttl
        self._name = name
        self._clock = clock
        self._entries: dict[str, _Entry[T]] = {}

    @property
    def ttl(self) -> float:
        return self._ttl

    def __contains__(self, key: str) -> bool:
        self.sweep()
        return key in self._entries

    def __len__(self) -> int:
        self.sweep()
        return len(self._entries)

    def sweep(self) -> int:
        """Drop every expired entry. Returns the number removed."""
        now = self._clock()
        expired = [k for k, e in self._entries.items() if e.expired(now)]
        for key in expired:
            del self._entries[key]
            logger.debug("Expired %s entry %s", self._name, key)
        return len(expired)

    def invalidate(self, key: str) -> bool:
        """Remove one entry. Returns True if it existed."""
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def expires_at(self, key: str) -> Optional[float]:
        """Deadline of a live entry on the cache clock, or None."""
        self.sweep()
        entry = self._entries.get(key)
        return entry.expires_at if entry else None

    async def get_or_build(self, key: str, build: Callable[[], Awaitable[T]]) -> T:
        """
        Return the cached value for ``key``, building it on a miss.

        Concurrent callers for the same key share one build. If the build
        raises, every waiting caller sees the exception and the entry is
        removed.
        """
        self.sweep()
        entry = self._entries.get(key)
        if entry is not None and entry.failed():
            self._drop(key, entry)
            entry = None

        if entry is None:
            entry = self._start(key, build)

        # Shield so one cancelled caller doesn't cancel the shared build
        return await asyncio.shield(entry.task)

    def _start(self, key: str, build: Callable[[], Awaitable[T]]) -> _Entry[T]:
        logger.debug("Building %s entry %s", self._name, key)
        task = asyncio.ensure_future(build())
        now = self._clock()
        entry = _Entry(task=task, created_at=now, expires_at=now + self._ttl)
        self._entries[key] = entry

        def on_done(done: "asyncio.Task[Any]") -> None:
            if done.cancelled():
                self._drop(key, entry)
                return
            exc = done.exception()
            if exc is not None:
                logger.warning("Building %s entry %s failed: %s", self._name, key, exc)
                self._drop(key, entry)

        task.add_done_callback(on_done)
        return entry

    def _drop(self, key: str, entry: _Entry[T]) -> None:
        # Only remove the entry we were asked about; a rebuild may have replaced it
        if self._entries.get(key) is entry:
            del self._entries[key]
