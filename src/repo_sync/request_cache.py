"""De-duplication of concurrent identical read requests.

Reads of the same URL issued within a short window share one network call:
the first caller starts the request and every later caller awaits the same
task. Entries expire a fixed time after insertion, whether or not the request
has finished, which bounds both memory use and staleness. Writes are never
cached and nothing here serializes them.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Dict, Tuple, TypeVar


logger = logging.getLogger(__name__)

T = TypeVar("T")

CACHEABLE_METHODS = frozenset({"GET"})


class RequestCache:
    """Coalesces in-flight GET requests keyed by method and full URL."""

    def __init__(self, ttl: float = 5.0):
        """Initialize the cache.

        Args:
            ttl: Seconds an entry lives after insertion
        """
        self.ttl = ttl
        self._entries: Dict[str, Tuple[asyncio.Future, asyncio.TimerHandle]] = {}

    @staticmethod
    def make_key(method: str, url: str) -> str:
        return f"{method.upper()}-{url}"

    @staticmethod
    def is_cacheable(method: str) -> bool:
        return method.upper() in CACHEABLE_METHODS

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    async def fetch(self, method: str, url: str, send: Callable[[], Awaitable[T]]) -> T:
        """Run ``send`` or join an identical request already in flight.

        Args:
            method: HTTP method; only GET requests are shared
            url: Fully-qualified URL including the query string
            send: Zero-argument coroutine function performing the request

        Returns:
            The (possibly shared) outcome of ``send``; exceptions are shared too
        """
        if not self.is_cacheable(method):
            return await send()

        loop = asyncio.get_running_loop()
        key = self.make_key(method, url)
        entry = self._entries.get(key)

        if entry is not None and entry[0].get_loop() is loop:
            logger.debug(f"Using cached request: {key}")
            return await asyncio.shield(entry[0])
        if entry is not None:
            # left over from a closed event loop
            self._drop(key)

        future = asyncio.ensure_future(send())
        handle = loop.call_later(self.ttl, self._expire, key, future)
        self._entries[key] = (future, handle)
        return await asyncio.shield(future)

    def _expire(self, key: str, future: asyncio.Future):
        entry = self._entries.get(key)
        if entry is not None and entry[0] is future:
            del self._entries[key]
        if future.done() and not future.cancelled():
            # mark any exception as retrieved
            future.exception()

    def _drop(self, key: str):
        entry = self._entries.pop(key, None)
        if entry is not None:
            entry[1].cancel()

    def invalidate(self, key: str):
        """Drop ``key`` and any entry for the same URL with a query string.

        Used after a successful write so that the next read observes it.
        """
        for existing in list(self._entries):
            if existing == key or existing.startswith(key + "?"):
                self._drop(existing)

    def clear(self):
        """Drop every entry and cancel pending expiry timers."""
        for key in list(self._entries):
            self._drop(key)
