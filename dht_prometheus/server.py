"""
HTTP endpoints: /metrics, /health and /ready.
"""

import logging
from wsgiref.simple_server import WSGIRequestHandler, WSGIServer, make_server as make_wsgi_server

from prometheus_client import make_wsgi_app
from prometheus_client.exposition import ThreadingWSGIServer

from .log import get_logger
from .registry import SensorRegistry

INDEX_PAGE = b"""<html>
<head><title>DHT Exporter</title></head>
<body>
<h1>DHT Exporter</h1>
<p><a href="/metrics">Metrics</a></p>
</body>
</html>
"""


def make_app(registry: SensorRegistry):
    """Build the WSGI application serving the registry's metrics."""
    # Content negotiation, gzip and name[] filtering come from prometheus_client.
    metrics_app = make_wsgi_app(registry.collector_registry)

    def app(environ, start_response):
        method = environ.get("REQUEST_METHOD", "GET")
        path = environ.get("PATH_INFO", "/")

        if path == "/metrics":
            return metrics_app(environ, start_response)

        if method not in ("GET", "HEAD"):
            start_response("405 Method Not Allowed", [("Allow", "GET, HEAD")])
            return [b""]

        if path in ("/health", "/ready"):
            status, content_type, body = "200 OK", "text/plain; charset=utf-8", b"OK"
        elif path == "/":
            status, content_type, body = "200 OK", "text/html; charset=utf-8", INDEX_PAGE
        else:
            status, content_type, body = "404 Not Found", "text/plain; charset=utf-8", b"Not Found"

        start_response(status, [("Content-Type", content_type), ("Content-Length", str(len(body)))])
        if method == "HEAD":
            return [b""]
        return [body]

    return app


def _handler_for(logger: logging.Logger):
    class LoggingHandler(WSGIRequestHandler):
        """Send request logs to the exporter logger instead of stderr."""

        def log_message(self, format, *args):
            logger.debug(f"{self.address_string()} {format % args}")

    return LoggingHandler


def make_server(
    registry: SensorRegistry,
    address: str = "",
    port: int = 8080,
    logger: logging.Logger | None = None,
) -> WSGIServer:
    """Create a threaded HTTP server; every connection gets its own thread."""
    logger = logger or get_logger("server")
    return make_wsgi_server(
        address,
        port,
        make_app(registry),
        server_class=ThreadingWSGIServer,
        handler_class=_handler_for(logger),
    )
