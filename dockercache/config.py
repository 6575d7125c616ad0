"""Configuration loading for dockercache."""

import os
import socket
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml


def _hostname() -> str:
    return socket.gethostname()


@dataclass
class NodeConfig:
    id: str = field(default_factory=_hostname)


@dataclass
class StoreConfig:
    url: str = "redis://localhost:6379"
    connect_timeout_seconds: float = 30.0


@dataclass
class DockerConfig:
    url: str = "unix:///var/run/docker.sock"
    timeout_seconds: int = 60


@dataclass
class SyncConfig:
    """Configuration for the sync and GC loops."""

    update_interval_seconds: int = 120
    ttl_factor: float = 1.5
    gc_jitter_seconds: float | None = None  # None draws a new jitter each cycle
    event_retry_seconds: float = 5.0


@dataclass
class ApiConfig:
    """Configuration for the read-only HTTP query surface."""

    enabled: bool = False
    host: str = "0.0.0.0"
    port: int = 8080


@dataclass
class Config:
    node: NodeConfig = field(default_factory=NodeConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    docker: DockerConfig = field(default_factory=DockerConfig)
    sync: SyncConfig = field(default_factory=SyncConfig)
    api: ApiConfig = field(default_factory=ApiConfig)

    @property
    def ttl_seconds(self) -> float:
        """Expiry of every key this host writes."""
        return self.sync.update_interval_seconds * self.sync.ttl_factor


def _get_env(key: str, default: Any = None) -> Any:
    """Get environment variable with DOCKERCACHE_ prefix."""
    return os.environ.get(f"DOCKERCACHE_{key}", default)


def _apply_env_overrides(config: Config) -> Config:
    """Apply environment variable overrides to config."""
    if node_id := _get_env("NODE_ID"):
        config.node.id = node_id

    if store_url := _get_env("STORE_URL"):
        config.store.url = store_url

    if docker_url := _get_env("DOCKER_URL"):
        config.docker.url = docker_url

    if interval := _get_env("UPDATE_INTERVAL"):
        config.sync.update_interval_seconds = int(interval)
    if jitter := _get_env("GC_JITTER"):
        config.sync.gc_jitter_seconds = float(jitter)

    if api_enabled := _get_env("API_ENABLED"):
        config.api.enabled = api_enabled.lower() in ("true", "1", "yes")
    if api_host := _get_env("API_HOST"):
        config.api.host = api_host
    if api_port := _get_env("API_PORT"):
        config.api.port = int(api_port)

    return config


def load_config(config_path: str | Path | None = None) -> Config:
    """Load configuration from YAML file with environment variable overrides.

    Args:
        config_path: Path to YAML config file. If None, uses default config.

    Returns:
        Loaded and validated Config object.

    Raises:
        ValueError: If the update interval is not positive.
    """
    config = Config()

    if config_path:
        path = Path(config_path)
        if path.exists():
            with open(path) as f:
                data = yaml.safe_load(f) or {}

            if "node" in data:
                config.node = NodeConfig(id=data["node"].get("id", config.node.id))

            if "store" in data:
                store_data = data["store"]
                config.store = StoreConfig(
                    url=store_data.get("url", config.store.url),
                    connect_timeout_seconds=store_data.get(
                        "connect_timeout_seconds", config.store.connect_timeout_seconds
                    ),
                )

            if "docker" in data:
                docker_data = data["docker"]
                config.docker = DockerConfig(
                    url=docker_data.get("url", config.docker.url),
                    timeout_seconds=docker_data.get(
                        "timeout_seconds", config.docker.timeout_seconds
                    ),
                )

            if "sync" in data:
                sync_data = data["sync"]
                config.sync = SyncConfig(
                    update_interval_seconds=sync_data.get(
                        "update_interval_seconds", config.sync.update_interval_seconds
                    ),
                    ttl_factor=sync_data.get("ttl_factor", config.sync.ttl_factor),
                    gc_jitter_seconds=sync_data.get(
                        "gc_jitter_seconds", config.sync.gc_jitter_seconds
                    ),
                    event_retry_seconds=sync_data.get(
                        "event_retry_seconds", config.sync.event_retry_seconds
                    ),
                )

            if "api" in data:
                api_data = data["api"]
                config.api = ApiConfig(
                    enabled=api_data.get("enabled", config.api.enabled),
                    host=api_data.get("host", config.api.host),
                    port=api_data.get("port", config.api.port),
                )

    config = _apply_env_overrides(config)

    if config.sync.update_interval_seconds <= 0:
        raise ValueError(
            f"update_interval_seconds must be positive, got {config.sync.update_interval_seconds}"
        )

    return config
