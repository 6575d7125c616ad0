"""Docker Engine implementation of the runtime collaborator."""

import asyncio
import logging
import threading
from collections.abc import AsyncIterator
from typing import Any

import docker
import docker.errors
import requests.exceptions

from ..errors import ContainerNotFound, RuntimeQueryError
from .base import ContainerRuntime, RuntimeEvent, RuntimeVersion

logger = logging.getLogger(__name__)

DEFAULT_DOCKER_URL = "unix:///var/run/docker.sock"

# Errors the SDK raises when the daemon fails or cannot be reached
_DOCKER_ERRORS = (docker.errors.DockerException, requests.exceptions.RequestException)

_STREAM_END = object()


class DockerRuntime(ContainerRuntime):
    """Runtime backed by the Docker SDK's low-level API client.

    SDK calls block, so they run in worker threads. The event stream is
    read by a daemon thread and handed to the event loop.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_DOCKER_URL,
        timeout: int = 60,
        client: Any = None,
    ):
        """Initialize the runtime.

        Args:
            base_url: Docker daemon URL.
            timeout: Request timeout in seconds.
            client: Pre-built ``docker.DockerClient``; created on first use
                when omitted.
        """
        self.base_url = base_url
        self.timeout = timeout
        self._client = client
        self._lock = threading.Lock()

    @property
    def api(self) -> Any:
        """The low-level ``docker.APIClient``."""
        with self._lock:
            if self._client is None:
                self._client = docker.DockerClient(
                    base_url=self.base_url, version="auto", timeout=self.timeout
                )
        return self._client.api

    async def _call(self, description: str, func: Any, *args: Any, **kwargs: Any) -> Any:
        def run() -> Any:
            return func(self.api, *args, **kwargs)

        try:
            return await asyncio.to_thread(run)
        except docker.errors.NotFound:
            raise
        except _DOCKER_ERRORS as e:
            raise RuntimeQueryError(f"Cannot {description}: {e}") from e

    async def list_containers(self) -> list[dict[str, Any]]:
        return await self._call("list containers", lambda api: api.containers())

    async def inspect_container(self, container_id: str) -> dict[str, Any]:
        try:
            return await self._call(
                f"inspect container {container_id}",
                lambda api: api.inspect_container(container_id),
            )
        except docker.errors.NotFound as e:
            raise ContainerNotFound(container_id) from e

    async def version(self) -> RuntimeVersion:
        info = await self._call("get version", lambda api: api.version())
        return RuntimeVersion(
            version=info.get("Version", ""),
            git_commit=info.get("GitCommit", ""),
            platform=info.get("GoVersion", ""),
        )

    async def events(self) -> AsyncIterator[RuntimeEvent]:
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue[Any] = asyncio.Queue()

        try:
            stream = await asyncio.to_thread(
                lambda: self.api.events(decode=True, filters={"type": "container"})
            )
        except _DOCKER_ERRORS as e:
            raise RuntimeQueryError(f"Cannot subscribe to events: {e}") from e

        def pump() -> None:
            try:
                for raw in stream:
                    loop.call_soon_threadsafe(queue.put_nowait, raw)
            except Exception as e:
                loop.call_soon_threadsafe(queue.put_nowait, e)
            finally:
                loop.call_soon_threadsafe(queue.put_nowait, _STREAM_END)

        thread = threading.Thread(target=pump, name="docker-events", daemon=True)
        thread.start()
        logger.info(f"Subscribed to Docker events at {self.base_url}")

        try:
            while True:
                item = await queue.get()
                if item is _STREAM_END:
                    return
                if isinstance(item, Exception):
                    raise RuntimeQueryError(f"Event stream failed: {item}") from item
                event = RuntimeEvent.from_docker(item)
                if event:
                    yield event
        finally:
            await asyncio.to_thread(stream.close)

    async def close(self) -> None:
        if self._client is not None:
            await asyncio.to_thread(self._client.close)
            self._client = None
