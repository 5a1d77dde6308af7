"""The per-line Extract -> Resolve -> Record loop."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from .errors import ResolutionError
from .extract import OomPattern, PodAndContainer, extract
from .kmsg import LogLine
from .metrics import OomKillMetrics
from .resolve import resolve
from .runtime import ContainerRuntime

log = logging.getLogger(__name__)


class Pipeline:
    """Single consumer of the kernel log.

    Lines are handled one at a time in arrival order. A failure on one line
    is logged and never affects the next one; failed resolutions are not
    retried because the triggering line will not be seen again.
    """

    def __init__(
        self,
        pattern: OomPattern,
        runtime: ContainerRuntime,
        metrics: OomKillMetrics,
    ) -> None:
        self.pattern = pattern
        self.runtime = runtime
        self.metrics = metrics

    def process(self, line: LogLine | str) -> bool:
        """Handle one log line. Returns True when a kill was counted."""
        message = line if isinstance(line, str) else line.message
        ids = extract(message, self.pattern)
        if ids is None:
            return False

        container_id = ids.container_id if isinstance(ids, PodAndContainer) else ""
        extra = {"pod_uid": ids.pod_uid, "container_id": container_id}
        log.info("OOM kill detected", extra=extra)

        try:
            metadata = resolve(ids, self.runtime)
        except ResolutionError as exc:
            log.warning(
                "could not resolve container for OOM kill: %s",
                exc.message,
                extra={**extra, "reason": exc.reason},
            )
            self.metrics.drop(exc.reason)
            return False
        except Exception:
            log.exception("unexpected error resolving OOM kill", extra=extra)
            self.metrics.drop("runtime_error")
            return False

        return self.metrics.record(metadata)

    def run(self, lines: Iterable[LogLine | str]) -> int:
        """Consume *lines* until the source is exhausted; return kills counted."""
        recorded = 0
        for line in lines:
            try:
                if self.process(line):
                    recorded += 1
            except Exception:
                log.exception("unexpected error processing kernel log line")
        log.warning("kernel log source closed, no further OOM kills will be recorded")
        return recorded
