"""Interface of the container runtime consumed by the sync loop."""

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class RuntimeEvent:
    """A container lifecycle notification."""

    kind: str  # "start", "restart", "die", ...
    container_id: str

    @classmethod
    def from_docker(cls, raw: dict[str, Any]) -> "RuntimeEvent | None":
        """Build an event from a decoded Docker event message.

        Returns:
            The event, or None for messages that carry no container id.
        """
        if raw.get("Type", "container") != "container":
            return None
        kind = raw.get("Action") or raw.get("status") or ""
        container_id = raw.get("id") or (raw.get("Actor") or {}).get("ID")
        if not container_id:
            return None
        return cls(kind=kind.lower(), container_id=container_id)


@dataclass(frozen=True)
class RuntimeVersion:
    """Version information reported by the runtime."""

    version: str
    git_commit: str = ""
    platform: str = ""

    def __str__(self) -> str:
        return f"{self.version};git-{self.git_commit};{self.platform}"


class ContainerRuntime(ABC):
    """Abstract source of container state and lifecycle events."""

    @abstractmethod
    async def list_containers(self) -> list[dict[str, Any]]:
        """List running containers.

        Returns:
            Container summaries, each carrying at least ``Id``.

        Raises:
            RuntimeQueryError: If the runtime cannot be queried.
        """
        pass

    @abstractmethod
    async def inspect_container(self, container_id: str) -> dict[str, Any]:
        """Get the full metadata of one container.

        Raises:
            ContainerNotFound: If the container no longer exists.
            RuntimeQueryError: If the runtime cannot be queried.
        """
        pass

    @abstractmethod
    async def version(self) -> RuntimeVersion:
        """Get the runtime's version.

        Raises:
            RuntimeQueryError: If the runtime cannot be queried.
        """
        pass

    @abstractmethod
    def events(self) -> AsyncIterator[RuntimeEvent]:
        """Subscribe to container lifecycle events.

        The iterator ends, or raises RuntimeQueryError, when the
        subscription breaks.
        """
        pass

    async def close(self) -> None:
        """Release runtime resources."""
