"""
Fetch Coordination

Keyed single-flight guard for cache refreshes. Concurrent callers asking for
the same key share one in-flight fetch instead of each hitting the upstream.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Hashable


logger = logging.getLogger(__name__)


class FetchCoordinator:
    """
    Coalesces concurrent fetch operations per key.

    The first caller for a key starts the fetch as a task; callers arriving
    while it runs await the same task and receive its result or exception.
    Cancelling a waiting caller does not cancel the shared fetch.
    """

    def __init__(self):
        """Initialize the coordinator with no fetches in flight."""
        self._in_flight: dict[Hashable, asyncio.Future] = {}

    async def execute(self, key: Hashable, fetch_func: Callable[[], Awaitable[Any]]) -> Any:
        """
        Run ``fetch_func`` for ``key`` unless a fetch for it is already running.

        Args:
            key: Identity of the resource being fetched
            fetch_func: Async callable performing the fetch

        Returns:
            Result of the (possibly shared) fetch

        Raises:
            Any exception raised by fetch_func
        """
        future = self._in_flight.get(key)
        if future is not None:
            logger.debug("Fetch for %s already in progress, joining it", key)
            return await asyncio.shield(future)

        future = asyncio.ensure_future(fetch_func())
        self._in_flight[key] = future
        future.add_done_callback(lambda done: self._release(key, done))
        return await asyncio.shield(future)

    def _release(self, key: Hashable, future: asyncio.Future) -> None:
        if self._in_flight.get(key) is future:
            del self._in_flight[key]
        if not future.cancelled() and future.exception() is not None:
            logger.debug("Fetch for %s finished with error: %s", key, future.exception())

    def is_fetching(self, key: Hashable) -> bool:
        """
        Check if a fetch for ``key`` is currently in progress.

        Returns:
            True if fetch is running, False otherwise
        """
        return key in self._in_flight
