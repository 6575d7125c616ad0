"""Event-driven and periodic synchronization of one host's containers."""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime

from ..errors import ContainerNotFound, DockerCacheError
from ..runtime import ContainerRuntime, RuntimeEvent
from ..store import Cache

logger = logging.getLogger(__name__)

START_EVENTS = frozenset({"start", "restart"})
DIE_EVENTS = frozenset({"die"})


@dataclass
class SweepResult:
    """Outcome of one full sweep."""

    reported: list[str] = field(default_factory=list)
    vanished: list[str] = field(default_factory=list)
    runtime_version: str | None = None
    error: str | None = None
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def ok(self) -> bool:
        return self.error is None


class SyncLoop:
    """Drive a Cache from runtime events and a periodic full sweep.

    The event path and the sweep run as independent tasks without a shared
    lock. Each path's writes are idempotent, so whichever runs last
    converges the store to the runtime's state.
    """

    def __init__(
        self,
        cache: Cache,
        runtime: ContainerRuntime,
        interval_seconds: float = 120,
        event_retry_seconds: float = 5,
    ):
        """Initialize the sync loop.

        Args:
            cache: Cache to write into.
            runtime: Runtime to read containers and events from.
            interval_seconds: Seconds between full sweeps.
            event_retry_seconds: Delay before re-subscribing to events after
                the stream breaks.
        """
        self._cache = cache
        self._runtime = runtime
        self._interval = interval_seconds
        self._event_retry = event_retry_seconds
        self._sweep_task: asyncio.Task | None = None
        self._events_task: asyncio.Task | None = None
        self._running = False
        self._last_sweep: SweepResult | None = None

    @property
    def last_sweep(self) -> SweepResult | None:
        """Result of the most recent full sweep."""
        return self._last_sweep

    async def start(self) -> None:
        """Start the sweep and event tasks."""
        if self._running:
            return

        self._running = True
        self._events_task = asyncio.create_task(self._follow_events())
        self._sweep_task = asyncio.create_task(self._run_sweeps())
        logger.info(f"Sync loop started (interval={self._interval}s)")

    async def stop(self) -> None:
        """Stop both tasks."""
        self._running = False
        for task in (self._events_task, self._sweep_task):
            if task:
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        self._events_task = None
        self._sweep_task = None
        logger.info("Sync loop stopped")

    async def handle_event(self, event: RuntimeEvent) -> None:
        """Apply one lifecycle event to the cache.

        Failures are logged and the event is dropped; the next full sweep
        reconciles whatever it missed.
        """
        if event.kind in START_EVENTS:
            try:
                container = await self._runtime.inspect_container(event.container_id)
                await self._cache.add_container(container)
            except DockerCacheError as e:
                logger.warning(f"Cannot process event {event.kind} {event.container_id}: {e}")
                return
            logger.info(f"Reported 1 new container to the cache: {event.container_id}")

        elif event.kind in DIE_EVENTS:
            try:
                container = await self._runtime.inspect_container(event.container_id)
            except ContainerNotFound:
                container = event.container_id
            except DockerCacheError as e:
                logger.warning(f"Cannot process event {event.kind} {event.container_id}: {e}")
                return
            try:
                await self._cache.delete_container(container)
            except DockerCacheError as e:
                logger.warning(f"Cannot process event {event.kind} {event.container_id}: {e}")
                return
            logger.info(f"Removed 1 container from the cache: {event.container_id}")

    async def full_sweep(self) -> SweepResult:
        """Re-list every running container and rewrite this host's state.

        Containers that disappear between listing and inspection are left
        out. A failure to list or write aborts the rest of the sweep.
        """
        result = SweepResult()
        self._last_sweep = result

        try:
            summaries = await self._runtime.list_containers()
        except DockerCacheError as e:
            result.error = str(e)
            logger.warning(f"Cannot list Docker containers: {e} (will retry later)")
            return result

        for summary in summaries:
            container_id = summary["Id"]
            try:
                container = await self._runtime.inspect_container(container_id)
            except DockerCacheError:
                # Removed since it was listed
                result.vanished.append(container_id)
                continue
            try:
                await self._cache.set_container_info(container)
            except DockerCacheError as e:
                result.error = str(e)
                logger.warning(f"Cannot write in the cache (set_container_info): {e}")
                return result
            result.reported.append(container_id)

        try:
            await self._cache.set_containers_list(result.reported)
        except DockerCacheError as e:
            result.error = str(e)
            logger.warning(f"Cannot write in the cache (set_containers_list): {e}")
            return result
        logger.info(f"Reported {len(result.reported)} containers to the cache")

        try:
            version = await self._runtime.version()
            result.runtime_version = str(version)
            await self._cache.set_host_param("docker_version", result.runtime_version)
        except DockerCacheError as e:
            result.error = str(e)
            logger.warning(f"Cannot record Docker's version: {e}")

        return result

    async def _run_sweeps(self) -> None:
        while self._running:
            try:
                await self.full_sweep()
            except Exception as e:
                logger.error(f"Full sweep failed: {e}", exc_info=True)

            await asyncio.sleep(self._interval)

    async def _follow_events(self) -> None:
        while self._running:
            try:
                async for event in self._runtime.events():
                    await self.handle_event(event)
                logger.warning("Docker event stream ended")
            except DockerCacheError as e:
                logger.warning(f"Docker event stream failed: {e}")
            except Exception as e:
                logger.error(f"Event handling failed: {e}", exc_info=True)

            await asyncio.sleep(self._event_retry)
