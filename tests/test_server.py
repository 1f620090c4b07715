"""
Tests for the HTTP endpoints.
"""

import gzip
from wsgiref.util import setup_testing_defaults

import pytest

from dht_prometheus.collector import DHTCollector
from dht_prometheus.registry import SensorRegistry
from dht_prometheus.sensor import SensorReadError
from dht_prometheus.server import make_app, make_server


def request(app, path, method="GET", **extra):
    environ = {"PATH_INFO": path, "REQUEST_METHOD": method, **extra}
    setup_testing_defaults(environ)
    response = {}

    def start_response(status, headers):
        response["status"] = status
        response["headers"] = dict(headers)

    body = b"".join(app(environ, start_response))
    return response["status"], response["headers"], body


@pytest.fixture
def app(make_sensor, silent_logger):
    registry = SensorRegistry(logger=silent_logger)
    registry.register(DHTCollector(make_sensor(name="kitchen", script=[(55.0, 21.0)]), hostname="pi", logger=silent_logger))
    registry.register(DHTCollector(
        make_sensor(name="attic", gpio_pin=17, script=[SensorReadError("timeout")]),
        hostname="pi",
        logger=silent_logger,
    ))
    return make_app(registry)


def test_metrics(app) -> None:
    status, headers, body = request(app, "/metrics")

    assert status == "200 OK"
    assert headers["Content-Type"].startswith("text/plain")
    text = body.decode()
    assert 'dht_temperature_degree{dht_name="kitchen",gpio="GPIO4",hostname="pi",unit="C"} 21.0' in text
    assert 'dht_humidity_percent{dht_name="kitchen",gpio="GPIO4",hostname="pi"} 55.0' in text
    assert "attic" not in text


@pytest.mark.parametrize("path", ["/health", "/ready"])
def test_health_endpoints(app, path) -> None:
    status, _, body = request(app, path)

    assert status == "200 OK"
    assert body == b"OK"


def test_index_links_metrics(app) -> None:
    status, headers, body = request(app, "/")

    assert status == "200 OK"
    assert headers["Content-Type"].startswith("text/html")
    assert b'href="/metrics"' in body


def test_unknown_path(app) -> None:
    status, _, _ = request(app, "/nope")

    assert status == "404 Not Found"


def test_post_not_allowed(app) -> None:
    status, headers, _ = request(app, "/health", method="POST")

    assert status == "405 Method Not Allowed"
    assert headers["Allow"] == "GET, HEAD"


def test_head_has_no_body(app) -> None:
    status, headers, body = request(app, "/health", method="HEAD")

    assert status == "200 OK"
    assert headers["Content-Length"] == "2"
    assert body == b""


def test_make_server_binds(silent_logger) -> None:
    server = make_server(SensorRegistry(logger=silent_logger), "127.0.0.1", 0, logger=silent_logger)
    try:
        assert server.server_address[1] > 0
    finally:
        server.server_close()


def test_metrics_gzip(app) -> None:
    status, headers, body = request(app, "/metrics", HTTP_ACCEPT_ENCODING="gzip")

    assert status == "200 OK"
    assert headers["Content-Encoding"] == "gzip"
    text = gzip.decompress(body).decode()
    assert 'dht_humidity_percent{dht_name="kitchen",gpio="GPIO4",hostname="pi"} 55.0' in text


def test_metrics_uncompressed_by_default(app) -> None:
    _, headers, body = request(app, "/metrics")

    assert "Content-Encoding" not in headers
    assert body.startswith(b"# HELP")
