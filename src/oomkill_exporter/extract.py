"""Pull pod/container identifiers out of kernel OOM log lines.

Two line shapes are handled:

  cgroup v1 memcg OOM (two-stage, pod UID only):
    "Task in /kubepods/burstable/pod6f1d...-.../0b1c... killed as a result of limit of ..."

  oom-kill summary line, kernel >= 4.18 (single-stage, pod UID + container ID):
    "oom-kill:constraint=CONSTRAINT_MEMCG,...,task_memcg=/kubepods.slice/
     kubepods-burstable.slice/kubepods-burstable-pod<uid>.slice/docker-<id>.scope,task=..."
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from .errors import ConfigError

SINGLE_STAGE = "single-stage"
TWO_STAGE = "two-stage"

# Coarse filter applied before a two-stage pattern.
_OOM_LINE_RE = re.compile(r"killed as a result of limit of|oom-kill:")

# Pod UID and container ID from the task_memcg path, for both the systemd
# (kubepods-<qos>-pod<uid>.slice/<runtime>-<id>.scope) and the cgroupfs
# (/kubepods/<qos>/pod<uid>/<id>) cgroup drivers.
DEFAULT_PATTERN = (
    r"task_memcg=\S*pod(?P<pod_uid>[\w\-]+?)(?:\.slice)?/"
    r"(?:[a-z\-]+-)?(?P<container_id>[0-9a-f]+)(?:\.scope)?(?:[,\s]|$)"
)

# Older kernels only print the pod directory; the pod UID is the only usable key.
LEGACY_POD_PATTERN = r"^.+/pod(\w+\-\w+\-\w+\-\w+\-\w+)/.+$"


@dataclass(frozen=True, slots=True)
class PodOnly:
    """Degraded match: only the pod UID is known."""

    pod_uid: str


@dataclass(frozen=True, slots=True)
class PodAndContainer:
    """Full match: the container can be inspected directly."""

    pod_uid: str
    container_id: str


Identifiers = PodOnly | PodAndContainer


@dataclass(frozen=True, slots=True)
class OomPattern:
    """A compiled extraction pattern and the strategy its shape implies."""

    regex: re.Pattern[str]
    strategy: str  # SINGLE_STAGE or TWO_STAGE

    @classmethod
    def compile(cls, expr: str) -> OomPattern:
        try:
            regex = re.compile(expr)
        except re.error as exc:
            raise ConfigError(f"invalid match pattern {expr!r}: {exc}") from exc

        names = set(regex.groupindex)
        if {"pod_uid", "container_id"} <= names:
            return cls(regex=regex, strategy=SINGLE_STAGE)
        if regex.groups == 1:
            return cls(regex=regex, strategy=TWO_STAGE)
        raise ConfigError(
            f"match pattern {expr!r} must either define named groups 'pod_uid' and "
            "'container_id' or have exactly one capture group for the pod UID"
        )

    def extract(self, line: str) -> Identifiers | None:
        return extract(line, self)


def _extract_two_stage(line: str, regex: re.Pattern[str]) -> Identifiers | None:
    if not _OOM_LINE_RE.search(line):
        return None
    m = regex.search(line)
    if m is None or not m.group(1):
        return None
    return PodOnly(pod_uid=m.group(1))


def _extract_single_stage(line: str, regex: re.Pattern[str]) -> Identifiers | None:
    m = regex.search(line)
    if m is None:
        return None
    pod_uid = m.group("pod_uid") or ""
    container_id = m.group("container_id") or ""
    if container_id:
        return PodAndContainer(pod_uid=pod_uid, container_id=container_id)
    if pod_uid:
        return PodOnly(pod_uid=pod_uid)
    return None


def extract(line: str, pattern: OomPattern) -> Identifiers | None:
    """Return the identifiers embedded in *line*, or None when it is not an OOM kill."""
    if pattern.strategy == TWO_STAGE:
        return _extract_two_stage(line, pattern.regex)
    return _extract_single_stage(line, pattern.regex)
