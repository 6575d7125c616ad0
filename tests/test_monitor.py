"""Tests for the Monitor supervisor."""

import asyncio

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from dockercache.config import Config, NodeConfig
from dockercache.errors import StoreConnectionError
from dockercache.monitor import Monitor, run_monitor
from dockercache.runtime import ContainerRuntime
from dockercache.store import Cache


@pytest.fixture
def config():
    config = Config(node=NodeConfig(id="h1"))
    config.sync.update_interval_seconds = 10
    config.sync.gc_jitter_seconds = 2
    return config


@pytest.fixture
def mock_cache():
    cache = MagicMock(spec=Cache)
    cache.close = AsyncMock()
    return cache


@pytest.fixture
def mock_runtime():
    runtime = MagicMock(spec=ContainerRuntime)
    runtime.close = AsyncMock()
    return runtime


class TestMonitor:
    """Tests for wiring and lifecycle."""

    def test_loops_share_cache_and_settings(self, config, mock_cache, mock_runtime):
        """Test both loops get the configured interval and the same cache."""
        monitor = Monitor(config, mock_cache, mock_runtime)

        assert monitor.sync_loop._cache is mock_cache
        assert monitor.sync_loop._interval == 10
        assert monitor.gc_loop._cache is mock_cache
        assert monitor.gc_loop.next_delay() == 12

    @pytest.mark.asyncio
    async def test_create_connects_with_derived_ttl(self, config):
        """Test the cache is connected with ttl = 1.5 x interval."""
        with patch("dockercache.monitor.Cache.connect", new=AsyncMock()) as connect:
            monitor = await Monitor.create(config)

        connect.assert_awaited_once_with(
            config.store.url,
            "h1",
            ttl=15.0,
            update_interval=10,
            connect_timeout=30.0,
        )
        assert monitor.runtime.base_url == config.docker.url

    @pytest.mark.asyncio
    async def test_create_propagates_connection_error(self, config):
        """Test an unreachable store is fatal at startup."""
        with patch(
            "dockercache.monitor.Cache.connect",
            new=AsyncMock(side_effect=StoreConnectionError("refused")),
        ):
            with pytest.raises(StoreConnectionError):
                await Monitor.create(config)

    @pytest.mark.asyncio
    async def test_stop_releases_everything(self, config, mock_cache, mock_runtime):
        """Test stop ends the loops and closes both connections."""
        monitor = Monitor(config, mock_cache, mock_runtime)
        monitor.sync_loop.start = AsyncMock()
        monitor.gc_loop.start = AsyncMock()

        await monitor.start()
        await monitor.stop()

        monitor.sync_loop.start.assert_awaited_once()
        monitor.gc_loop.start.assert_awaited_once()
        mock_runtime.close.assert_awaited_once()
        mock_cache.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_run_monitor_stops_on_cancel(self, config, mock_cache, mock_runtime):
        """Test cancelling run_monitor shuts the monitor down."""
        monitor = Monitor(config, mock_cache, mock_runtime)
        monitor.start = AsyncMock()
        monitor.stop = AsyncMock()

        with patch("dockercache.monitor.Monitor.create", new=AsyncMock(return_value=monitor)):
            task = asyncio.create_task(run_monitor(config))
            await asyncio.sleep(0)
            await asyncio.sleep(0)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task

        monitor.start.assert_awaited_once()
        monitor.stop.assert_awaited_once()
