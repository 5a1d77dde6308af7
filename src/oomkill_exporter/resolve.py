"""Turn extracted identifiers into the killed container's labels."""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field

from .errors import AmbiguousContainer, ContainerNotFound
from .extract import Identifiers, PodAndContainer, PodOnly
from .runtime import ContainerRuntime

POD_UID_LABEL = "io.kubernetes.pod.uid"
CONTAINER_TYPE_LABEL = "io.kubernetes.docker.type"


@dataclass(frozen=True, slots=True)
class WorkloadMetadata:
    """Full label set of the container that was OOM killed."""

    container_id: str
    labels: Mapping[str, str] = field(default_factory=dict)

    def get(self, key: str) -> str:
        """Label value for *key*; missing labels read as the empty string."""
        return self.labels.get(key) or ""


def _resolve_by_pod(ids: PodOnly, runtime: ContainerRuntime) -> WorkloadMetadata:
    # Sandbox ("podsandbox") containers share the pod UID label; only the
    # workload container is wanted.
    containers = runtime.list_containers(
        {POD_UID_LABEL: ids.pod_uid, CONTAINER_TYPE_LABEL: "container"}
    )
    if not containers:
        raise ContainerNotFound(ids.pod_uid, f"no container for pod UID {ids.pod_uid}")
    if len(containers) > 1:
        raise AmbiguousContainer(
            ids.pod_uid,
            f"{len(containers)} containers for pod UID {ids.pod_uid}, expected exactly one",
        )
    container = containers[0]
    return WorkloadMetadata(container_id=container.id, labels=dict(container.labels))


def _resolve_by_id(ids: PodAndContainer, runtime: ContainerRuntime) -> WorkloadMetadata:
    container = runtime.inspect_container(ids.container_id)
    return WorkloadMetadata(container_id=container.id, labels=dict(container.labels))


_STRATEGIES: dict[type, Callable[..., WorkloadMetadata]] = {
    PodOnly: _resolve_by_pod,
    PodAndContainer: _resolve_by_id,
}


def resolve(ids: Identifiers, runtime: ContainerRuntime) -> WorkloadMetadata:
    """Look up the container behind *ids*.

    Raises ContainerNotFound, AmbiguousContainer or RuntimeUnavailable; all of
    them are ResolutionError subclasses and only ever drop the one event.
    """
    strategy = _STRATEGIES.get(type(ids))
    if strategy is None:
        raise TypeError(f"no resolution strategy for {type(ids).__name__}")
    return strategy(ids, runtime)
