"""Tests for the Extract -> Resolve -> Record loop."""

from __future__ import annotations

import logging
from unittest.mock import patch

import pytest

from oomkill_exporter.errors import RuntimeUnavailable
from oomkill_exporter.extract import DEFAULT_PATTERN, LEGACY_POD_PATTERN, OomPattern
from oomkill_exporter.kmsg import LogLine
from oomkill_exporter.metrics import OomKillMetrics
from oomkill_exporter.pipeline import Pipeline
from oomkill_exporter.resolve import CONTAINER_TYPE_LABEL, POD_UID_LABEL
from oomkill_exporter.runtime import ContainerSummary

KILL_LINE = (
    "oom-kill ... task_memcg=/kubepods.slice/kubepods-burstable.slice/"
    "kubepods-burstable-pod1a2b3c4d_e5f6_7890_abcd_ef1234567890.slice/docker-abc123def456.scope"
)
V1_LINE = (
    "Task in /kubepods/burstable/pod6f1d4a2e-1b2c-4d3e-8f9a-0123456789ab/0b1c2d3e "
    "killed as a result of limit of /kubepods/burstable/pod6f1d4a2e-1b2c-4d3e-8f9a-0123456789ab"
)
APP = ContainerSummary(
    id="abc123def456",
    labels={"io.kubernetes.container.name": "app", "io.kubernetes.pod.namespace": "default"},
)
APP_SERIES = {"container_name": "app", "namespace": "default", "pod_uid": "", "pod_name": ""}


@pytest.fixture
def metrics() -> OomKillMetrics:
    return OomKillMetrics()


def _pipeline(runtime, metrics: OomKillMetrics, pattern: str = DEFAULT_PATTERN) -> Pipeline:
    return Pipeline(OomPattern.compile(pattern), runtime, metrics)


def test_kill_line_counts_container(make_runtime, metrics: OomKillMetrics) -> None:
    runtime = make_runtime([APP])
    assert _pipeline(runtime, metrics).process(KILL_LINE) is True
    assert metrics.value(APP_SERIES) == 1
    assert runtime.calls == [("inspect", "abc123def456")]


def test_non_matching_lines_leave_state_untouched(make_runtime, metrics: OomKillMetrics) -> None:
    runtime = make_runtime([APP])
    before = metrics.exposition()
    pipeline = _pipeline(runtime, metrics)
    for line in ["usb 1-1: new high-speed USB device", "", "Out of memory: Killed process 1 (x)"]:
        assert pipeline.process(line) is False
    assert metrics.exposition() == before
    assert runtime.calls == []


def test_not_found_is_warned_and_dropped(make_runtime, metrics: OomKillMetrics, caplog) -> None:
    caplog.set_level(logging.WARNING)
    assert _pipeline(make_runtime([]), metrics).process(KILL_LINE) is False

    assert metrics.value(APP_SERIES) == 0
    assert metrics.dropped("not_found") == 1
    record = caplog.records[-1]
    assert record.levelno == logging.WARNING
    assert record.reason == "not_found"
    assert record.container_id == "abc123def456"


def test_ambiguous_pod_is_dropped(make_runtime, metrics: OomKillMetrics) -> None:
    pod_uid = "6f1d4a2e-1b2c-4d3e-8f9a-0123456789ab"
    labels = {POD_UID_LABEL: pod_uid, CONTAINER_TYPE_LABEL: "container"}
    runtime = make_runtime([ContainerSummary("c1", labels), ContainerSummary("c2", labels)])

    assert _pipeline(runtime, metrics, LEGACY_POD_PATTERN).process(V1_LINE) is False
    assert metrics.dropped("ambiguous") == 1
    assert "klog_pod_oomkill_total{" not in metrics.exposition().decode()


def test_pod_only_line_resolves_through_labels(make_runtime, metrics: OomKillMetrics) -> None:
    pod_uid = "6f1d4a2e-1b2c-4d3e-8f9a-0123456789ab"
    labels = {
        POD_UID_LABEL: pod_uid,
        CONTAINER_TYPE_LABEL: "container",
        "io.kubernetes.container.name": "worker",
        "io.kubernetes.pod.namespace": "jobs",
        "io.kubernetes.pod.name": "worker-0",
    }
    runtime = make_runtime([ContainerSummary("c1", labels)])

    assert _pipeline(runtime, metrics, LEGACY_POD_PATTERN).process(V1_LINE) is True
    assert metrics.value(
        {"container_name": "worker", "namespace": "jobs", "pod_uid": pod_uid, "pod_name": "worker-0"}
    ) == 1


def test_runtime_error_does_not_stop_the_stream(make_runtime, metrics: OomKillMetrics) -> None:
    class FlakyRuntime(make_runtime):
        def __init__(self) -> None:
            super().__init__([APP])
            self.failures = 1

        def inspect_container(self, container_id: str) -> ContainerSummary:
            if self.failures:
                self.failures -= 1
                raise RuntimeUnavailable(container_id, "connection refused")
            return super().inspect_container(container_id)

    pipeline = _pipeline(FlakyRuntime(), metrics)
    recorded = pipeline.run([LogLine(KILL_LINE), LogLine("noise"), LogLine(KILL_LINE)])

    assert recorded == 1
    assert metrics.value(APP_SERIES) == 1
    assert metrics.dropped("runtime_error") == 1


def test_unexpected_exception_is_isolated(make_runtime, metrics: OomKillMetrics, caplog) -> None:
    runtime = make_runtime(error=KeyError("Config"))
    pipeline = _pipeline(runtime, metrics)

    assert pipeline.run([KILL_LINE, KILL_LINE]) == 0
    assert metrics.dropped("runtime_error") == 2
    assert any(r.exc_info for r in caplog.records)


def test_repeated_kills_accumulate(make_runtime, metrics: OomKillMetrics) -> None:
    pipeline = _pipeline(make_runtime([APP]), metrics)
    assert pipeline.run(KILL_LINE for _ in range(7)) == 7
    assert metrics.value(APP_SERIES) == 7


def test_record_failure_does_not_stop_the_stream(make_runtime, metrics: OomKillMetrics, caplog) -> None:
    caplog.set_level(logging.WARNING)
    real_labels = metrics._kills.labels
    calls: list[tuple[str, ...]] = []

    def flaky_labels(*values: str):
        calls.append(values)
        if len(calls) == 1:
            raise ValueError("incorrect label count")
        return real_labels(*values)

    pipeline = _pipeline(make_runtime([APP]), metrics)
    with patch.object(metrics._kills, "labels", side_effect=flaky_labels):
        recorded = pipeline.run([KILL_LINE, KILL_LINE])

    assert recorded == 1
    assert len(calls) == 2
    assert metrics.dropped("record_error") == 1
    assert metrics.value(APP_SERIES) == 1
    assert any(r.getMessage() == "could not record OOM kill" for r in caplog.records)
