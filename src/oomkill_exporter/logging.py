"""JSON logging for the exporter.

One object per line on stdout; structured fields (pod UID, container ID,
drop reason) are top-level keys.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from datetime import datetime, timezone
from typing import Any, TextIO

_CONFIGURED = False

# Passed through ``extra=`` by the pipeline, runtime and server.
STRUCTURED_FIELDS = ("pod_uid", "container_id", "reason", "address", "source", "error")


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(
                timespec="milliseconds"
            ),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        payload.update(
            (key, getattr(record, key)) for key in STRUCTURED_FIELDS if hasattr(record, key)
        )
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, separators=(",", ":"))


def configure_logging(*, level: str | None = None, stream: TextIO | None = None) -> None:
    """Install the JSON handler on the root logger once.

    *level* wins over $LOG_LEVEL, which wins over INFO.
    """
    global _CONFIGURED
    if _CONFIGURED:
        return

    log_level = (level or os.getenv("LOG_LEVEL") or "INFO").upper()
    handler = logging.StreamHandler(stream=stream or sys.stdout)
    handler.setFormatter(JsonFormatter())

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(log_level)

    _CONFIGURED = True
