"""Cache engine: mirrors one host's containers into the shared Redis store.

Key layout (all under ``KEY_PREFIX``)::

    docker:hosts                      set of known host ids
    docker:hosts:<host>               hash, host record
    docker:hosts:<host>:containers    set of container ids on that host
    docker:containers:<id>            hash, flattened container fields
    docker:containers:<id>:json       string, full container blob

Every host writes its own host record and container set. Container records
are shared and last writer wins. All keys carry a TTL so state left behind by
a dead host disappears even if no GC ever runs.
"""

import contextlib
import logging
from collections.abc import Iterable, Iterator, Mapping
from typing import Any
from urllib.parse import urlsplit

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from ..errors import MalformedRecordError, StoreConnectionError, TransientStoreError
from ..records import decode_blob, encode_blob, flatten_container
from .clock import StoreClock

logger = logging.getLogger(__name__)

KEY_PREFIX = "docker"
EVENTS_CHANNEL = "docker_events"

DEFAULT_CONNECT_TIMEOUT = 30.0

# A host that missed this many refresh cycles is considered expired
EXPIRY_MISSED_UPDATES = 2


def hosts_key() -> str:
    return f"{KEY_PREFIX}:hosts"


def host_key(host_id: str) -> str:
    return f"{KEY_PREFIX}:hosts:{host_id}"


def host_containers_key(host_id: str) -> str:
    return f"{KEY_PREFIX}:hosts:{host_id}:containers"


def container_key(container_id: str) -> str:
    return f"{KEY_PREFIX}:containers:{container_id}"


def container_blob_key(container_id: str) -> str:
    return f"{KEY_PREFIX}:containers:{container_id}:json"


def store_location(client: Any) -> str:
    """Describe where a client points, without credentials."""
    kwargs = client.connection_pool.connection_kwargs
    db = kwargs.get("db", 0)
    if "path" in kwargs:
        return f"unix://{kwargs['path']}/{db}"
    return f"{kwargs.get('host', 'localhost')}:{kwargs.get('port', 6379)}/{db}"


def _check_db(client: Any, url: str) -> None:
    # redis-py falls back to db 0 when the path is not an integer
    kwargs = client.connection_pool.connection_kwargs
    if "db" in kwargs or "path" in kwargs:
        return
    db = urlsplit(url).path.strip("/")
    if db:
        raise StoreConnectionError(f"Wrong Redis db: {db!r}")


def _container_id(container: Mapping[str, Any] | str) -> str:
    if isinstance(container, str):
        return container
    container_id = container.get("Id")
    if not container_id:
        raise MalformedRecordError("Container record has no Id")
    return container_id


def _parse_int(raw: Any, field: str) -> int:
    try:
        return int(raw)
    except (TypeError, ValueError) as e:
        raise MalformedRecordError(f"{field}: expected an integer, got {raw!r}") from e


@contextlib.contextmanager
def _store_errors(operation: str) -> Iterator[None]:
    """Translate redis-py failures into TransientStoreError."""
    try:
        yield
    except RedisError as e:
        raise TransientStoreError(f"{operation} failed: {e}") from e


class Cache:
    """Synchronization engine between one host and the shared store.

    The Redis client's connection pool gives each transaction its own
    connection, so the event path and both loops may share one Cache.
    """

    def __init__(
        self,
        client: Any,
        host_id: str,
        ttl: float,
        update_interval: float | None = None,
    ):
        """Initialize the cache.

        Args:
            client: A ``redis.asyncio.Redis`` created with
                ``decode_responses=True``.
            host_id: Identifier of this host in the store.
            ttl: Expiry, in seconds, of every key this host writes.
            update_interval: Seconds between full sweeps, recorded in the
                host record for expiry checks. Defaults to ``ttl``.
        """
        self._client = client
        self.host_id = host_id
        self.ttl = max(1, int(ttl))
        self.update_interval = int(update_interval) if update_interval else self.ttl
        self.clock = StoreClock(client)

    @classmethod
    async def connect(
        cls,
        url: str,
        host_id: str,
        ttl: float,
        update_interval: float | None = None,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        announce: bool = True,
    ) -> "Cache":
        """Connect to the store and announce this host.

        Accepts ``redis://``, ``rediss://`` and ``unix://`` URLs. The
        database is taken from the path or a ``?db=`` query argument, and
        every pooled connection selects it and authenticates. Read-only
        users pass ``announce=False`` to skip the ``new_host`` event.

        Raises:
            StoreConnectionError: If the URL is malformed, names a database
                that is not an integer, the store is unreachable or
                authentication fails.
        """
        try:
            client = aioredis.from_url(
                url,
                socket_connect_timeout=connect_timeout,
                decode_responses=True,
            )
        except ValueError as e:
            raise StoreConnectionError(f"Wrong store URL: {e}") from e
        _check_db(client, url)

        location = store_location(client)
        try:
            await client.ping()
        except (RedisError, OSError) as e:
            await client.aclose()
            raise StoreConnectionError(f"Cannot connect to store at {location}: {e}") from e

        cache = cls(client, host_id, ttl, update_interval)
        logger.info(f"Connected to store at {location} as {host_id}")
        if announce:
            try:
                await cache.publish_event("new_host", host_id)
            except TransientStoreError as e:
                logger.warning(f"Cannot announce new host: {e}")
        return cache

    async def close(self) -> None:
        """Close the store connection pool."""
        await self._client.aclose()

    async def publish_event(self, *parts: str) -> int:
        """Publish ``parts`` joined by ``:`` on the events channel.

        Returns:
            Number of subscribers that received the message.
        """
        message = ":".join(parts)
        with _store_errors("publish"):
            return await self._client.publish(EVENTS_CHANNEL, message)

    async def set_host_param(self, key: str, value: Any) -> None:
        """Set one field of this host's record, visible immediately."""
        with _store_errors(f"set host param {key}"):
            await self._client.hset(host_key(self.host_id), key, str(value))

    async def refresh_heartbeat(self) -> None:
        """Set ``last_update`` to the current sync-point-in-time."""
        timestamp = await self.clock.now()
        await self.set_host_param("last_update", timestamp)

    async def set_containers_list(self, container_ids: Iterable[str]) -> None:
        """Replace this host's container set and refresh the host record.

        Only the set replacement is atomic. The host fields that follow are
        written one by one.
        """
        ids = list(dict.fromkeys(container_ids))
        members_key = host_containers_key(self.host_id)

        with _store_errors("replace container set"):
            async with self._client.pipeline(transaction=True) as pipe:
                pipe.delete(members_key)
                if ids:
                    pipe.sadd(members_key, *ids)
                pipe.expire(members_key, self.ttl)
                await pipe.execute()

        await self.set_host_param("containers_running", len(ids))
        await self.set_host_param("update_interval", self.update_interval)
        await self.refresh_heartbeat()

        with _store_errors("register host"):
            await self._client.expire(host_key(self.host_id), self.ttl)
            await self._client.sadd(hosts_key(), self.host_id)
            await self._client.expire(hosts_key(), self.ttl)

        await self.publish_event("refresh_containers", self.host_id)

    async def set_container_info(self, container: Mapping[str, Any]) -> None:
        """Store a container's flattened fields, then its blob.

        Fields and blob are written in two separate transactions; a reader
        may briefly see one updated and the other stale.
        """
        container_id = _container_id(container)
        fields = flatten_container(container)
        blob = encode_blob(container)

        key = container_key(container_id)
        with _store_errors(f"write container fields {container_id}"):
            async with self._client.pipeline(transaction=True) as pipe:
                pipe.delete(key)
                if fields:
                    pipe.hset(key, mapping=fields)
                pipe.expire(key, self.ttl)
                await pipe.execute()

        key = container_blob_key(container_id)
        with _store_errors(f"write container blob {container_id}"):
            async with self._client.pipeline(transaction=True) as pipe:
                pipe.delete(key)
                pipe.set(key, blob)
                pipe.expire(key, self.ttl)
                await pipe.execute()

    async def add_container(self, container: Mapping[str, Any]) -> None:
        """Record a container that just started on this host.

        A failure leaves earlier steps applied. Every step is idempotent so
        the whole call can simply be repeated.
        """
        container_id = _container_id(container)
        await self.set_container_info(container)

        with _store_errors(f"add container {container_id}"):
            async with self._client.pipeline(transaction=True) as pipe:
                pipe.sadd(host_containers_key(self.host_id), container_id)
                pipe.hincrby(host_key(self.host_id), "containers_running", 1)
                pipe.expire(host_containers_key(self.host_id), self.ttl)
                pipe.expire(host_key(self.host_id), self.ttl)
                await pipe.execute()

        await self.refresh_heartbeat()
        await self.publish_event("new_container", self.host_id, container_id)

    async def delete_container(self, container: Mapping[str, Any] | str) -> None:
        """Forget a container that died on this host."""
        container_id = _container_id(container)

        with _store_errors(f"delete container {container_id}"):
            async with self._client.pipeline(transaction=True) as pipe:
                pipe.delete(container_key(container_id), container_blob_key(container_id))
                pipe.srem(host_containers_key(self.host_id), container_id)
                pipe.hincrby(host_key(self.host_id), "containers_running", -1)
                pipe.expire(host_key(self.host_id), self.ttl)
                await pipe.execute()

        await self.refresh_heartbeat()
        await self.publish_event("delete_container", self.host_id, container_id)

    async def delete_host(self, host_id: str) -> None:
        """Remove a host's record and container set and unregister it.

        Container records are left to expire on their own TTL.
        """
        with _store_errors(f"delete host {host_id}"):
            async with self._client.pipeline(transaction=True) as pipe:
                pipe.srem(hosts_key(), host_id)
                pipe.delete(host_key(host_id), host_containers_key(host_id))
                await pipe.execute()

    async def _read_expiry_fields(self, host_id: str) -> tuple[int, int] | None:
        """Read a host's expiry fields, or None if its record is gone."""
        key = host_key(host_id)
        with _store_errors(f"read host {host_id}"):
            last_update = await self._client.hget(key, "last_update")
            update_interval = await self._client.hget(key, "update_interval")
        if last_update is None and update_interval is None:
            return None
        return (
            _parse_int(last_update, "last_update"),
            _parse_int(update_interval, "update_interval"),
        )

    async def clear_expired_hosts(self) -> list[str]:
        """Delete every other host that missed two refresh cycles.

        A registered host whose record has already lapsed is expired too.
        Hosts whose record cannot be read or parsed are skipped, not
        expired. This host is never expired by its own sweep. A failure to
        delete one host is logged and the pass moves on to the next.

        Returns:
            Ids of the hosts that were expired.
        """
        with _store_errors("list hosts"):
            hosts = await self._client.smembers(hosts_key())

        expired: list[str] = []
        for host_id in sorted(hosts):
            if host_id == self.host_id:
                continue
            try:
                fields = await self._read_expiry_fields(host_id)
            except (TransientStoreError, MalformedRecordError) as e:
                logger.debug(f"Cannot determine expiry of host {host_id}: {e}")
                continue

            if fields is None:
                reason = "host record lapsed"
            else:
                last_update, update_interval = fields
                stale = await self.clock.now() - last_update
                if stale < EXPIRY_MISSED_UPDATES * update_interval:
                    continue
                reason = f"last update {stale}s ago, interval {update_interval}s"

            try:
                await self.delete_host(host_id)
            except TransientStoreError as e:
                logger.warning(f"Cannot expire host {host_id}: {e}")
                continue
            try:
                await self.publish_event("expired_host", host_id)
            except TransientStoreError as e:
                logger.warning(f"Cannot announce expired host {host_id}: {e}")

            logger.info(f"Expired host {host_id} ({reason})")
            expired.append(host_id)

        return expired

    async def list_hosts(self) -> dict[str, dict[str, str]]:
        """Return the record of every registered host that still has one."""
        with _store_errors("list hosts"):
            host_ids = await self._client.smembers(hosts_key())
            hosts: dict[str, dict[str, str]] = {}
            for host_id in sorted(host_ids):
                record = await self._client.hgetall(host_key(host_id))
                if record:
                    hosts[host_id] = record
        return hosts

    async def list_containers(self, host_id: str | None = None) -> list[dict[str, str]]:
        """Return the flattened fields of running containers.

        Args:
            host_id: Only list containers of this host.

        Returns:
            One field map per container, with the reporting host under
            ``host``.
        """
        with _store_errors("list containers"):
            if host_id:
                host_ids = [host_id]
            else:
                host_ids = sorted(await self._client.smembers(hosts_key()))

            containers: list[dict[str, str]] = []
            for host in host_ids:
                members = await self._client.smembers(host_containers_key(host))
                for container_id in sorted(members):
                    fields = await self._client.hgetall(container_key(container_id))
                    if fields:
                        containers.append({**fields, "host": host})
        return containers

    async def get_container(self, id_or_name: str) -> dict[str, Any] | None:
        """Fetch a container's full record by id, or by name.

        Returns:
            The decoded blob, or None if no such container is stored.
        """
        with _store_errors(f"get container {id_or_name}"):
            blob = await self._client.get(container_blob_key(id_or_name))
        if blob is not None:
            return decode_blob(blob)

        name = id_or_name.lstrip("/")
        for fields in await self.list_containers():
            if fields.get("name", "").lstrip("/") == name and fields.get("id"):
                with _store_errors(f"get container {name}"):
                    blob = await self._client.get(container_blob_key(fields["id"]))
                if blob is not None:
                    return decode_blob(blob)
        return None
