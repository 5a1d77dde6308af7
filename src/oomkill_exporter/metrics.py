"""OOM kill counters.

All kills land in one counter family whose label names are fixed at startup
by a LabelSchema. The registry is owned here and handed to the HTTP server;
the pipeline is the only writer.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from prometheus_client import CollectorRegistry, Counter, generate_latest

from .errors import ConfigError
from .resolve import WorkloadMetadata

log = logging.getLogger(__name__)

METRIC_NAME = "klog_pod_oomkill"
METRIC_HELP = "Extract metrics for OOMKilled pods from kernel log"
DROPPED_METRIC_NAME = "klog_pod_oomkill_dropped"
DROPPED_METRIC_HELP = "OOM kill lines that matched but could not be counted"

DROP_REASONS = ("not_found", "ambiguous", "runtime_error", "record_error")

_ILLEGAL_LABEL_CHARS_RE = re.compile(r"[^a-zA-Z0-9_]")


def sanitize_label_name(key: str) -> str:
    """Map a runtime label key to a legal metric label name.

    >>> sanitize_label_name("io.kubernetes.pod.uid")
    'io_kubernetes_pod_uid'
    """
    name = _ILLEGAL_LABEL_CHARS_RE.sub("_", key)
    if not name or name[0].isdigit():
        name = "_" + name
    return name


@dataclass(frozen=True, slots=True)
class LabelSchema:
    """Ordered (runtime label key, metric label name) pairs."""

    fields: tuple[tuple[str, str], ...]

    def __post_init__(self) -> None:
        names = [name for _, name in self.fields]
        if len(set(names)) != len(names):
            raise ConfigError(f"duplicate metric label names in schema: {names}")

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, str]) -> LabelSchema:
        return cls(tuple((key, sanitize_label_name(name)) for key, name in mapping.items()))

    @classmethod
    def from_keys(cls, keys: Iterable[str]) -> LabelSchema:
        """Schema whose metric label names are the sanitized runtime keys."""
        return cls(tuple((key, sanitize_label_name(key)) for key in keys))

    @property
    def label_names(self) -> tuple[str, ...]:
        return tuple(name for _, name in self.fields)

    def project(self, metadata: WorkloadMetadata) -> tuple[str, ...]:
        return tuple(metadata.get(key) for key, _ in self.fields)


DEFAULT_SCHEMA = LabelSchema.from_mapping(
    {
        "io.kubernetes.container.name": "container_name",
        "io.kubernetes.pod.namespace": "namespace",
        "io.kubernetes.pod.uid": "pod_uid",
        "io.kubernetes.pod.name": "pod_name",
    }
)


class OomKillMetrics:
    """Owns the registry and the OOM kill counter series."""

    def __init__(
        self,
        schema: LabelSchema = DEFAULT_SCHEMA,
        registry: CollectorRegistry | None = None,
    ) -> None:
        self.schema = schema
        self.registry = registry if registry is not None else CollectorRegistry()
        try:
            self._kills = Counter(
                METRIC_NAME, METRIC_HELP, schema.label_names, registry=self.registry
            )
        except ValueError as exc:
            raise ConfigError(f"invalid metric label schema: {exc}") from exc
        self._dropped = Counter(
            DROPPED_METRIC_NAME, DROPPED_METRIC_HELP, ["reason"], registry=self.registry
        )
        # Export every reason at 0 from the first scrape.
        for reason in DROP_REASONS:
            self._dropped.labels(reason=reason)

    def record(self, metadata: WorkloadMetadata) -> bool:
        """Count one kill for the series *metadata* projects to."""
        values = self.schema.project(metadata)
        log.debug("recording OOM kill", extra={"container_id": metadata.container_id})
        try:
            self._kills.labels(*values).inc()
        except ValueError as exc:
            log.warning(
                "could not record OOM kill",
                extra={"container_id": metadata.container_id, "error": str(exc)},
            )
            self.drop("record_error")
            return False
        return True

    def drop(self, reason: str) -> None:
        self._dropped.labels(reason=reason).inc()

    def value(self, labels: Mapping[str, str]) -> float:
        """Current count for the series with exactly *labels* (0 if unseen)."""
        sample = self.registry.get_sample_value(f"{METRIC_NAME}_total", dict(labels))
        return sample or 0.0

    def dropped(self, reason: str) -> float:
        sample = self.registry.get_sample_value(
            f"{DROPPED_METRIC_NAME}_total", {"reason": reason}
        )
        return sample or 0.0

    def exposition(self) -> bytes:
        return generate_latest(self.registry)
