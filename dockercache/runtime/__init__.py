"""Container runtime collaborators."""

from .base import ContainerRuntime, RuntimeEvent, RuntimeVersion
from .docker_runtime import DockerRuntime

__all__ = ["ContainerRuntime", "DockerRuntime", "RuntimeEvent", "RuntimeVersion"]
