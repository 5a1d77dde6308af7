"""Container runtime access.

The resolver only needs two operations from a runtime: a label-filtered
listing and an inspect by container ID. Anything that can answer those can
stand in for Docker (tests use an in-memory fake).
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field

import docker
import requests
from docker.errors import DockerException, NotFound

from .errors import ConfigError, ContainerNotFound, RuntimeUnavailable

log = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ContainerSummary:
    """The parts of a container the exporter cares about."""

    id: str
    labels: dict[str, str] = field(default_factory=dict)


class ContainerRuntime(ABC):
    """Abstract container runtime."""

    @abstractmethod
    def list_containers(self, labels: Mapping[str, str]) -> list[ContainerSummary]:
        """Return containers carrying every ``key=value`` pair in *labels*."""
        ...

    @abstractmethod
    def inspect_container(self, container_id: str) -> ContainerSummary:
        """Return the container with *container_id*.

        Raises ContainerNotFound when the runtime does not know the ID.
        """
        ...


class DockerRuntime(ContainerRuntime):
    """Docker Engine API via the docker SDK."""

    def __init__(self, client: docker.DockerClient) -> None:
        self._client = client

    @classmethod
    def connect(cls, base_url: str, timeout: float) -> DockerRuntime:
        """Build a client and negotiate the API version with the daemon."""
        try:
            client = docker.DockerClient(base_url=base_url, version="auto", timeout=timeout)
        except (DockerException, requests.RequestException) as exc:
            raise ConfigError(f"cannot connect to container runtime at {base_url}: {exc}") from exc
        log.info("connected to container runtime", extra={"address": base_url})
        return cls(client)

    def list_containers(self, labels: Mapping[str, str]) -> list[ContainerSummary]:
        filters = {"label": [f"{key}={value}" for key, value in labels.items()]}
        try:
            containers = self._client.containers.list(filters=filters, ignore_removed=True)
        except (DockerException, requests.RequestException) as exc:
            raise RuntimeUnavailable(str(dict(labels)), f"container list failed: {exc}") from exc
        return [ContainerSummary(id=c.id, labels=dict(c.labels)) for c in containers]

    def inspect_container(self, container_id: str) -> ContainerSummary:
        try:
            container = self._client.containers.get(container_id)
        except NotFound as exc:
            raise ContainerNotFound(container_id, f"no container with ID {container_id}") from exc
        except (DockerException, requests.RequestException) as exc:
            raise RuntimeUnavailable(container_id, f"container inspect failed: {exc}") from exc
        return ContainerSummary(id=container.id, labels=dict(container.labels))
