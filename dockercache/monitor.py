"""Supervisor wiring the cache, the runtime and the loops together."""

import asyncio
import logging

from .config import Config
from .runtime import ContainerRuntime, DockerRuntime
from .store import Cache
from .sync import GCLoop, SyncLoop

logger = logging.getLogger(__name__)


class Monitor:
    """Run the sync loop and the GC loop against one shared Cache."""

    def __init__(self, config: Config, cache: Cache, runtime: ContainerRuntime):
        self.config = config
        self.cache = cache
        self.runtime = runtime
        self._stop_event = asyncio.Event()

        self.sync_loop = SyncLoop(
            cache,
            runtime,
            interval_seconds=config.sync.update_interval_seconds,
            event_retry_seconds=config.sync.event_retry_seconds,
        )
        self.gc_loop = GCLoop(
            cache,
            interval_seconds=config.sync.update_interval_seconds,
            jitter_seconds=config.sync.gc_jitter_seconds,
        )

    @classmethod
    async def create(cls, config: Config) -> "Monitor":
        """Connect to the store and build a monitor for the local Docker.

        Raises:
            StoreConnectionError: If the store cannot be reached.
        """
        cache = await Cache.connect(
            config.store.url,
            config.node.id,
            ttl=config.ttl_seconds,
            update_interval=config.sync.update_interval_seconds,
            connect_timeout=config.store.connect_timeout_seconds,
        )
        runtime = DockerRuntime(config.docker.url, timeout=config.docker.timeout_seconds)
        return cls(config, cache, runtime)

    async def start(self) -> None:
        """Start both loops."""
        logger.info(f"Started monitoring Docker events ({self.config.node.id})")
        await self.sync_loop.start()
        await self.gc_loop.start()

    async def stop(self) -> None:
        """Stop both loops and release connections."""
        self._stop_event.set()
        await self.sync_loop.stop()
        await self.gc_loop.stop()
        await self.runtime.close()
        await self.cache.close()

    async def wait(self) -> None:
        """Block until ``stop`` is called."""
        await self._stop_event.wait()


async def run_monitor(config: Config) -> None:
    """Run the monitor, and the query API if enabled, until interrupted.

    Raises:
        StoreConnectionError: If the store cannot be reached at startup.
    """
    monitor = await Monitor.create(config)
    server_task: asyncio.Task | None = None

    try:
        await monitor.start()

        if config.api.enabled:
            import uvicorn

            from .api import create_app

            app = create_app(config, monitor.cache)
            server = uvicorn.Server(
                uvicorn.Config(app, host=config.api.host, port=config.api.port, log_level="warning")
            )
            server_task = asyncio.create_task(server.serve())
            logger.info(f"Query API listening on http://{config.api.host}:{config.api.port}")

        await monitor.wait()
    finally:
        if server_task:
            server_task.cancel()
            try:
                await server_task
            except asyncio.CancelledError:
                pass
        await monitor.stop()
