"""Periodic expiry of hosts that stopped reporting."""

import asyncio
import logging
import random

from ..errors import DockerCacheError
from ..store import Cache

logger = logging.getLogger(__name__)


class GCLoop:
    """Call ``Cache.clear_expired_hosts`` on a jittered period.

    Each cycle waits ``interval + jitter`` seconds. The jitter keeps the GC
    sweeps of many hosts from lining up against the store.
    """

    def __init__(
        self,
        cache: Cache,
        interval_seconds: float = 120,
        jitter_seconds: float | None = None,
        rng: random.Random | None = None,
    ):
        """Initialize the GC loop.

        Args:
            cache: Cache whose expired hosts are cleared.
            interval_seconds: Base period in seconds.
            jitter_seconds: Fixed jitter added to every period. When None a
                fresh value in ``[0, interval)`` is drawn each cycle.
            rng: Random source for the drawn jitter.
        """
        self._cache = cache
        self._interval = interval_seconds
        self._jitter = jitter_seconds
        self._rng = rng or random.Random()
        self._task: asyncio.Task | None = None
        self._running = False

    def next_delay(self) -> float:
        """Seconds to wait before the next sweep."""
        if self._jitter is not None:
            return self._interval + self._jitter
        return self._interval + self._rng.uniform(0, self._interval)

    async def start(self) -> None:
        """Start the GC loop as a background task."""
        if self._running:
            return

        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info(f"GC loop started (interval={self._interval}s)")

    async def stop(self) -> None:
        """Stop the GC loop."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("GC loop stopped")

    async def run_once(self) -> list[str]:
        """Run one expiry sweep, logging instead of raising.

        Returns:
            Ids of the expired hosts.
        """
        try:
            return await self._cache.clear_expired_hosts()
        except DockerCacheError as e:
            logger.warning(f"Cannot clear expired hosts: {e}")
        except Exception as e:
            logger.error(f"GC sweep failed: {e}", exc_info=True)
        return []

    async def _run_loop(self) -> None:
        while self._running:
            await self.run_once()
            await asyncio.sleep(self.next_delay())
