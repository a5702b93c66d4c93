"""Health check and metrics endpoints for the operator."""

from __future__ import annotations

import threading
from typing import Any

from prometheus_client import make_wsgi_app
from werkzeug.serving import make_server
from werkzeug.wrappers import Request, Response

# Flipped by the startup/cleanup hooks in main.
_ready = threading.Event()


def set_ready(ready: bool) -> None:
    """Mark the operator as ready (or not) to serve reconciliations."""
    if ready:
        _ready.set()
    else:
        _ready.clear()


def is_ready() -> bool:
    return _ready.is_set()


def health_check_app(environ: dict[str, Any], start_response: Any) -> list[bytes]:
    """WSGI application for the /healthz and /readyz endpoints."""
    request = Request(environ)
    path = request.path

    if path == "/healthz":
        response = Response('{"status":"ok"}', mimetype="application/json", status=200)
    elif path == "/readyz":
        if is_ready():
            response = Response('{"status":"ready"}', mimetype="application/json", status=200)
        else:
            response = Response('{"status":"not ready"}', mimetype="application/json", status=503)
    else:
        response = Response('{"error":"not found"}', mimetype="application/json", status=404)

    return response(environ, start_response)


def create_combined_wsgi_app() -> Any:
    """Create a WSGI app that combines metrics and health check endpoints.

    Returns:
        Combined WSGI application
    """
    metrics_app = make_wsgi_app()

    def combined_app(environ: dict[str, Any], start_response: Any) -> list[bytes]:
        """WSGI app that routes /healthz and /readyz, delegates /metrics to prometheus."""
        path = environ.get("PATH_INFO", "")
        if path in ("/healthz", "/readyz"):
            return health_check_app(environ, start_response)
        return metrics_app(environ, start_response)

    return combined_app


def start_server(port: int) -> Any:
    """Serve the combined app from a daemon thread and return the server."""
    server = make_server("", port, create_combined_wsgi_app(), threaded=True)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    return server
