"""
oomkill_exporter

Per-node agent that watches the kernel log for OOM kills, works out which
Kubernetes container was killed and counts it in a Prometheus counter.

  project/distribution name = "oomkill-exporter", import package = "oomkill_exporter".
"""

from __future__ import annotations

from .extract import OomPattern, PodAndContainer, PodOnly, extract
from .metrics import LabelSchema, OomKillMetrics
from .pipeline import Pipeline
from .resolve import WorkloadMetadata, resolve

__all__ = [
    "LabelSchema",
    "OomKillMetrics",
    "OomPattern",
    "Pipeline",
    "PodAndContainer",
    "PodOnly",
    "WorkloadMetadata",
    "__version__",
    "extract",
    "resolve",
]

__version__ = "0.1.0"
