"""Exporter daemon command handler."""

from __future__ import annotations

import argparse
import logging
import signal
import sys
from collections.abc import Iterable
from typing import Any

from ..config import settings
from ..errors import ConfigError, ExporterError
from ..extract import OomPattern
from ..kmsg import KmsgSource, LogLine, StreamSource
from ..metrics import OomKillMetrics
from ..pipeline import Pipeline
from ..runtime import DockerRuntime
from ..server import start_metrics_server

log = logging.getLogger(__name__)


def _signal_handler(signum: int, frame: Any) -> None:
    """Stop immediately; at most the line being handled is lost."""
    sys.stderr.write(f"\n[oomkill-exporter] Received signal {signum}, exiting...\n")
    raise SystemExit(0)


def _open_source(args: argparse.Namespace) -> Iterable[LogLine]:
    if args.log_source == "kmsg":
        return KmsgSource(args.kmsg_path, replay=args.kmsg_replay).open()
    if args.log_source == "stdin":
        return StreamSource(sys.stdin, name="<stdin>")
    raise ConfigError(f"unknown log source {args.log_source!r}")


def cmd_run(args: argparse.Namespace) -> int:
    """Watch the kernel log and count OOM kills per container."""
    signal.signal(signal.SIGINT, _signal_handler)
    signal.signal(signal.SIGTERM, _signal_handler)

    try:
        pattern = OomPattern.compile(args.match_pattern)
        metrics = OomKillMetrics()
        server = start_metrics_server(metrics, args.listen_address)
        source = _open_source(args)
        runtime = DockerRuntime.connect(args.docker_host, args.runtime_timeout)
    except ExporterError as exc:
        log.critical("startup failed: %s", exc, extra={"error": str(exc)})
        return 1

    log.info("matching OOM kills with %s pattern", pattern.strategy)
    Pipeline(pattern, runtime, metrics).run(source)

    # The source is gone but what was counted stays scrapeable.
    if server is not None:
        server.thread.join()
    return 0


def add_run_parser(subparsers: Any) -> None:
    """Register `run` subcommand parser."""
    p_run = subparsers.add_parser(
        "run",
        help="Watch the kernel log and export OOM kill counters",
    )
    p_run.add_argument(
        "--listen-address",
        default=settings.listen_address,
        help=f"The address to listen on for HTTP requests (default: {settings.listen_address})",
    )
    p_run.add_argument(
        "--match-pattern",
        default=settings.match_pattern,
        help="Extraction pattern (default: built-in task_memcg pattern or $MATCH_PATTERN)",
    )
    p_run.add_argument(
        "--log-source",
        choices=["kmsg", "stdin"],
        default=settings.log_source,
        help=f"Where kernel log lines come from (default: {settings.log_source})",
    )
    p_run.add_argument(
        "--kmsg-path",
        default=settings.kmsg_path,
        help=f"Kernel log device (default: {settings.kmsg_path})",
    )
    p_run.add_argument(
        "--kmsg-replay",
        action="store_true",
        default=settings.kmsg_replay,
        help="Also process messages already in the kernel ring buffer",
    )
    p_run.add_argument(
        "--docker-host",
        default=settings.docker_host,
        help=f"Container runtime endpoint (default: {settings.docker_host})",
    )
    p_run.add_argument(
        "--runtime-timeout",
        type=float,
        default=settings.runtime_timeout_seconds,
        help=f"Container runtime timeout in seconds (default: {settings.runtime_timeout_seconds})",
    )
    p_run.set_defaults(func=cmd_run)
