from __future__ import annotations

from collections.abc import Mapping

import pytest

from oomkill_exporter.errors import ContainerNotFound
from oomkill_exporter.runtime import ContainerRuntime, ContainerSummary


class FakeRuntime(ContainerRuntime):
    """In-memory runtime: label filtering and ID/prefix lookup."""

    def __init__(
        self,
        containers: list[ContainerSummary] | None = None,
        error: Exception | None = None,
    ) -> None:
        self.containers = list(containers or [])
        self.error = error
        self.calls: list[tuple[str, object]] = []

    def list_containers(self, labels: Mapping[str, str]) -> list[ContainerSummary]:
        self.calls.append(("list", dict(labels)))
        if self.error is not None:
            raise self.error
        return [
            c for c in self.containers
            if all(c.labels.get(k) == v for k, v in labels.items())
        ]

    def inspect_container(self, container_id: str) -> ContainerSummary:
        self.calls.append(("inspect", container_id))
        if self.error is not None:
            raise self.error
        for c in self.containers:
            if c.id.startswith(container_id):
                return c
        raise ContainerNotFound(container_id, f"no container with ID {container_id}")


@pytest.fixture
def make_runtime():
    return FakeRuntime
