"""Kernel log sources.

/dev/kmsg hands out exactly one record per read(2):

    "6,1234,5140900,-;Memory cgroup out of memory: Killed process 42 (java) ...\n"
    " SUBSYSTEM=memory\n"              <- optional continuation (dictionary) lines

The header is ``priority,sequence,usec since boot,flags``. Non-printable bytes
in the message are escaped by the kernel as ``\\xNN``.
"""

from __future__ import annotations

import logging
import os
import re
from collections.abc import Iterator
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TextIO

import psutil

from .errors import LogSourceError

log = logging.getLogger(__name__)

_READ_SIZE = 8192  # larger than the kernel's per-record limit
_ESCAPE_RE = re.compile(r"\\x([0-9a-fA-F]{2})")


@dataclass(frozen=True, slots=True)
class LogLine:
    """A single kernel log message."""

    message: str
    timestamp: datetime | None = None
    sequence: int | None = None


def _unescape(message: str) -> str:
    return _ESCAPE_RE.sub(lambda m: chr(int(m.group(1), 16)), message)


def parse_kmsg_record(raw: str, boot_time: float) -> LogLine | None:
    """Parse one /dev/kmsg record, or return None if it is malformed."""
    header, sep, rest = raw.partition(";")
    if not sep:
        return None
    fields = header.split(",")
    if len(fields) < 4:
        return None
    try:
        sequence = int(fields[1])
        usec = int(fields[2])
    except ValueError:
        return None

    message = _unescape(rest.split("\n", 1)[0])
    timestamp = datetime.fromtimestamp(boot_time + usec / 1_000_000, tz=timezone.utc)
    return LogLine(message=message, timestamp=timestamp, sequence=sequence)


class KmsgSource:
    """Blocking iterator over /dev/kmsg records.

    A read error other than an overrun ends iteration the same way as end of
    file; the caller sees the source as closed.
    """

    def __init__(self, path: str = "/dev/kmsg", *, replay: bool = False) -> None:
        self.path = path
        self.replay = replay
        self._fd: int | None = None

    def _open_fd(self) -> int:
        try:
            fd = os.open(self.path, os.O_RDONLY)
        except OSError as exc:
            raise LogSourceError(f"cannot open kernel log {self.path}: {exc}") from exc
        if not self.replay:
            # Only kills that happen from now on; a restart must not re-count
            # what is still in the ring buffer.
            try:
                os.lseek(fd, 0, os.SEEK_END)
            except OSError as exc:
                os.close(fd)
                raise LogSourceError(f"cannot seek kernel log {self.path}: {exc}") from exc
        self._fd = fd
        log.info("watching kernel log", extra={"source": self.path})
        return fd

    def open(self) -> KmsgSource:
        self._open_fd()
        return self

    def close(self) -> None:
        if self._fd is not None:
            os.close(self._fd)
            self._fd = None

    def __iter__(self) -> Iterator[LogLine]:
        fd = self._fd if self._fd is not None else self._open_fd()
        boot_time = psutil.boot_time()
        try:
            while True:
                try:
                    chunk = os.read(fd, _READ_SIZE)
                except BrokenPipeError:
                    # EPIPE: the ring buffer wrapped past our read position.
                    log.warning(
                        "kernel log messages were overwritten before they could be read",
                        extra={"source": self.path},
                    )
                    continue
                except OSError as exc:
                    log.error(
                        "cannot read kernel log",
                        extra={"source": self.path, "error": str(exc)},
                    )
                    break
                if not chunk:
                    break
                record = parse_kmsg_record(chunk.decode("utf-8", errors="replace"), boot_time)
                if record is not None:
                    yield record
        finally:
            self.close()


class StreamSource:
    """Plain text kernel log lines, e.g. forwarded by syslog on stdin.

    Only streams opened by :meth:`from_path` are closed by :meth:`close`.
    """

    def __init__(self, stream: TextIO, name: str = "<stream>", *, owns_stream: bool = False) -> None:
        self.stream = stream
        self.name = name
        self._owns_stream = owns_stream

    @classmethod
    def from_path(cls, path: str) -> StreamSource:
        try:
            stream = open(path, encoding="utf-8", errors="replace")
        except OSError as exc:
            raise LogSourceError(f"cannot open log file {path}: {exc}") from exc
        return cls(stream, name=path, owns_stream=True)

    def close(self) -> None:
        if self._owns_stream:
            self.stream.close()

    def __enter__(self) -> StreamSource:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def __iter__(self) -> Iterator[LogLine]:
        for raw in self.stream:
            line = raw.rstrip("\n")
            if line:
                yield LogLine(message=line)
