"""HTTP exposition of the metric sink for Prometheus scrapes."""

from __future__ import annotations

import hmac
import logging
import threading
from socketserver import ThreadingMixIn
from typing import Any, Callable, Iterable, List, Optional, Tuple
from wsgiref.simple_server import WSGIRequestHandler, WSGIServer, make_server

from prometheus_client import make_wsgi_app

from .metrics import MetricSink

logger = logging.getLogger(__name__)

METRICS_PATH = "/metrics"

StartResponse = Callable[[str, List[Tuple[str, str]]], Any]


class _ThreadingWSGIServer(ThreadingMixIn, WSGIServer):
    daemon_threads = True


class _LoggingRequestHandler(WSGIRequestHandler):
    def log_message(self, format: str, *args: Any) -> None:
        logger.debug(format, *args)


def _text(start_response: StartResponse, status: str, body: str) -> Iterable[bytes]:
    encoded = body.encode("utf-8")
    start_response(status, [("Content-Type", "text/plain; charset=utf-8"), ("Content-Length", str(len(encoded)))])
    return [encoded]


def make_metrics_app(sink: MetricSink, bearer_token: Optional[str] = None):
    """Build a WSGI app serving ``GET /metrics``.

    When ``bearer_token`` is set, requests without a matching
    ``Authorization: Bearer`` header are rejected before any path or method
    checks.
    """
    expected = f"Bearer {bearer_token}" if bearer_token else None
    exposition = make_wsgi_app(sink.registry)

    def app(environ, start_response: StartResponse) -> Iterable[bytes]:
        if expected is not None:
            provided = environ.get("HTTP_AUTHORIZATION", "")
            if not hmac.compare_digest(provided.encode("utf-8"), expected.encode("utf-8")):
                return _text(start_response, "401 Unauthorized", "Missing or invalid bearer token")

        path = environ.get("PATH_INFO", "")
        if path != METRICS_PATH:
            logger.info("Rejected request for unknown path", extra={"path": path})
            return _text(start_response, "404 Not Found", f"Unknown path. Try {METRICS_PATH}")

        if environ.get("REQUEST_METHOD") != "GET":
            return _text(start_response, "405 Method Not Allowed", "Wrong method. Try using GET")

        try:
            return exposition(environ, start_response)
        except Exception:
            logger.exception("Failed to render metrics")
            return _text(start_response, "500 Internal Server Error", "Error fetching metrics")

    return app


class MetricsServer:
    """Serves the metrics app from a background daemon thread."""

    def __init__(self, sink: MetricSink, host: str, port: int, bearer_token: Optional[str] = None) -> None:
        self._httpd = make_server(
            host,
            port,
            make_metrics_app(sink, bearer_token),
            server_class=_ThreadingWSGIServer,
            handler_class=_LoggingRequestHandler,
        )
        self._thread = threading.Thread(target=self._httpd.serve_forever, name="metrics-server", daemon=True)

    @property
    def address(self) -> Tuple[str, int]:
        host, port = self._httpd.server_address[:2]
        return str(host), int(port)

    def start(self) -> None:
        self._thread.start()
        host, port = self.address
        logger.info("Started metrics server", extra={"host": host, "port": port})

    def stop(self) -> None:
        self._httpd.shutdown()
        self._httpd.server_close()
