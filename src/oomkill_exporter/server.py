"""Metrics endpoint.

A threaded WSGI server running next to the pipeline. It only ever reads the
registry; the counters do their own locking.
"""

from __future__ import annotations

import logging
import socket
import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from socketserver import ThreadingMixIn
from typing import Any
from wsgiref.simple_server import WSGIRequestHandler, WSGIServer, make_server

from prometheus_client import CONTENT_TYPE_LATEST

from .config import parse_listen_address
from .http import ApiResponse, HttpError, StartResponse, json_error, json_ok
from .metrics import OomKillMetrics

log = logging.getLogger(__name__)

METRICS_PATH = "/metrics"

WsgiApp = Callable[[dict[str, Any], StartResponse], Iterable[bytes]]


class _ThreadingWSGIServer(ThreadingMixIn, WSGIServer):
    daemon_threads = True


class _ThreadingWSGIServerV6(_ThreadingWSGIServer):
    address_family = socket.AF_INET6


class _QuietHandler(WSGIRequestHandler):
    def log_message(self, format: str, *args: Any) -> None:
        log.debug(format, *args)


def _route(method: str, path: str, metrics: OomKillMetrics) -> ApiResponse:
    if method != "GET":
        raise HttpError(status_code=405, code="method_not_allowed", message="Only GET is supported.")

    if path == METRICS_PATH:
        return ApiResponse(
            status_code=200,
            body=metrics.exposition(),
            headers={"content-type": CONTENT_TYPE_LATEST},
        )

    if path == "/healthz":
        return json_ok({"ok": True})

    raise HttpError(status_code=404, code="not_found", message="No route matches the request.")


def make_app(metrics: OomKillMetrics) -> WsgiApp:
    """WSGI application serving *metrics*."""

    def app(environ: dict[str, Any], start_response: StartResponse) -> Iterable[bytes]:
        method = str(environ.get("REQUEST_METHOD", "GET")).upper()
        path = str(environ.get("PATH_INFO") or "/")
        try:
            resp = _route(method, path, metrics)
        except HttpError as e:
            resp = json_error(e.status_code, e.code, e.message)
        except Exception:
            log.exception("unhandled error serving request")
            resp = json_error(500, "internal_error", "Unexpected server error.")
        return resp.to_wsgi(start_response)

    return app


@dataclass
class MetricsServer:
    httpd: WSGIServer
    thread: threading.Thread

    @property
    def port(self) -> int:
        return int(self.httpd.server_address[1])

    def shutdown(self) -> None:
        self.httpd.shutdown()
        self.httpd.server_close()
        self.thread.join()


def start_metrics_server(metrics: OomKillMetrics, address: str) -> MetricsServer | None:
    """Serve *metrics* on *address* from a daemon thread.

    A bind failure is logged and None is returned; the pipeline still runs.
    """
    host, port = parse_listen_address(address)
    server_class = _ThreadingWSGIServerV6 if ":" in host else _ThreadingWSGIServer
    try:
        httpd = make_server(
            host,
            port,
            make_app(metrics),
            server_class=server_class,
            handler_class=_QuietHandler,
        )
    except OSError as exc:
        log.warning(
            "metrics endpoint could not be started",
            extra={"address": address, "error": str(exc)},
        )
        return None

    thread = threading.Thread(target=httpd.serve_forever, name="metrics-server", daemon=True)
    thread.start()
    log.info("serving metrics", extra={"address": address})
    return MetricsServer(httpd=httpd, thread=thread)
