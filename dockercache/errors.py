"""Exception hierarchy for dockercache."""


class DockerCacheError(Exception):
    """Base class for all dockercache errors."""


class StoreConnectionError(DockerCacheError, ConnectionError):
    """The store cannot be reached, authenticated against, or addressed.

    Fatal at startup; raised nowhere else.
    """


class TransientStoreError(DockerCacheError):
    """A single store command or batch failed after connecting."""


class RuntimeQueryError(DockerCacheError):
    """Listing, inspecting or versioning the container runtime failed."""


class ContainerNotFound(RuntimeQueryError):
    """The runtime does not know the requested container."""

    def __init__(self, container_id: str):
        super().__init__(f"No such container: {container_id}")
        self.container_id = container_id


class MalformedRecordError(DockerCacheError, ValueError):
    """A stored or supplied record does not have the expected shape."""
