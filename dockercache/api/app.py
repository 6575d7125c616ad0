"""FastAPI application exposing the cache's read projections."""

import logging
from typing import Any

from fastapi import FastAPI, HTTPException

from .. import __version__
from ..config import Config
from ..errors import DockerCacheError
from ..store import Cache

logger = logging.getLogger(__name__)


def create_app(config: Config, cache: Cache) -> FastAPI:
    """Create the query API application.

    Args:
        config: Application configuration.
        cache: Connected cache to read from.

    Returns:
        Configured FastAPI application.
    """
    app = FastAPI(
        title="dockercache",
        description="Containers running across the fleet, as mirrored in the shared store",
        version=__version__,
    )

    app.state.config = config
    app.state.cache = cache

    @app.get("/")
    async def index() -> list[str]:
        """List the available collections."""
        return ["/hosts", "/containers"]

    @app.get("/hosts")
    async def hosts() -> dict[str, dict[str, str]]:
        """Every registered host with its record."""
        try:
            return await cache.list_hosts()
        except DockerCacheError as e:
            logger.error(f"Cannot list hosts: {e}")
            raise HTTPException(status_code=500, detail="Cannot list hosts")

    @app.get("/containers")
    async def containers(host: str | None = None) -> list[dict[str, str]]:
        """Running containers, optionally restricted to one host."""
        try:
            return await cache.list_containers(host)
        except DockerCacheError as e:
            logger.error(f"Cannot list containers: {e}")
            raise HTTPException(status_code=500, detail="Cannot list containers")

    @app.get("/containers/{name:path}")
    async def container(name: str) -> dict[str, Any]:
        """One container's full record, by id or name."""
        try:
            data = await cache.get_container(name)
        except DockerCacheError as e:
            logger.error(f"Cannot get container {name}: {e}")
            raise HTTPException(status_code=500, detail=f"Cannot get container {name}")
        if data is None:
            raise HTTPException(status_code=404, detail=f"No such container: {name}")
        return data

    return app
