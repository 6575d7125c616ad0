"""Tests for the read-only query API."""

import json

import pytest
from unittest.mock import AsyncMock, MagicMock

pytest.importorskip("fastapi")

from fastapi.testclient import TestClient

from dockercache.api import create_app
from dockercache.config import Config, NodeConfig
from dockercache.errors import TransientStoreError
from dockercache.store import Cache

from conftest import FakeRedis, make_container


@pytest.fixture
def config():
    return Config(node=NodeConfig(id="api-node"))


@pytest.fixture
def populated_redis():
    """A store holding one container on host h1."""
    redis = FakeRedis()
    container = make_container("c1", name="web")
    redis.sets["docker:hosts"] = {"h1"}
    redis.hashes["docker:hosts:h1"] = {"last_update": "100", "containers_running": "1"}
    redis.sets["docker:hosts:h1:containers"] = {"c1"}
    redis.hashes["docker:containers:c1"] = {"id": "c1", "name": "/web"}
    redis.strings["docker:containers:c1:json"] = json.dumps(container)
    return redis


@pytest.fixture
def client(config, populated_redis):
    cache = Cache(populated_redis, "api-node", ttl=15)
    return TestClient(create_app(config, cache))


class TestQueryRoutes:
    """Tests for the query endpoints."""

    def test_index(self, client):
        response = client.get("/")

        assert response.status_code == 200
        assert response.json() == ["/hosts", "/containers"]

    def test_hosts(self, client):
        """Test hosts are listed with their records."""
        response = client.get("/hosts")

        assert response.status_code == 200
        assert response.json() == {"h1": {"last_update": "100", "containers_running": "1"}}

    def test_containers(self, client):
        """Test containers are listed with their host."""
        response = client.get("/containers")

        assert response.status_code == 200
        assert response.json() == [{"id": "c1", "name": "/web", "host": "h1"}]

    def test_containers_filtered_by_host(self, client):
        """Test the host query parameter filters the list."""
        assert client.get("/containers", params={"host": "h2"}).json() == []
        assert len(client.get("/containers", params={"host": "h1"}).json()) == 1

    def test_container_by_name(self, client):
        """Test a container's full record is returned by name."""
        response = client.get("/containers/web")

        assert response.status_code == 200
        assert response.json()["Id"] == "c1"
        assert response.json()["State"]["Running"] is True

    def test_container_by_id(self, client):
        assert client.get("/containers/c1").json()["Name"] == "/web"

    def test_unknown_container(self, client):
        """Test unknown containers return 404."""
        response = client.get("/containers/nope")

        assert response.status_code == 404


class TestQueryErrors:
    """Tests for store failures behind the API."""

    @pytest.fixture
    def failing_client(self, config):
        cache = MagicMock(spec=Cache)
        cache.list_hosts = AsyncMock(side_effect=TransientStoreError("down"))
        cache.list_containers = AsyncMock(side_effect=TransientStoreError("down"))
        cache.get_container = AsyncMock(side_effect=TransientStoreError("down"))
        return TestClient(create_app(config, cache))

    def test_hosts_error(self, failing_client):
        response = failing_client.get("/hosts")

        assert response.status_code == 500
        assert response.json()["detail"] == "Cannot list hosts"

    def test_containers_error(self, failing_client):
        assert failing_client.get("/containers").status_code == 500

    def test_container_error(self, failing_client):
        assert failing_client.get("/containers/web").status_code == 500
