"""Servidor HTTP con la página de estado y el endpoint /metrics."""

import html
import logging
import threading
from wsgiref.simple_server import WSGIRequestHandler, WSGIServer, make_server

from prometheus_client import CollectorRegistry, make_wsgi_app

from .network import Network

logger = logging.getLogger(__name__)

INDEX_TEMPLATE = """<!doctype html>
<title>MySensors Prometheus Exporter</title>
<h1>MySensors Prometheus Exporter</h1>
<a href="/metrics">Metrics</a>
<pre>{status}</pre>
"""


class _QuietHandler(WSGIRequestHandler):
    def log_message(self, format, *args):
        logger.debug(f"{self.address_string()} - {format % args}")


def make_app(network: Network, registry: CollectorRegistry):
    """Aplicación WSGI: '/' muestra el estado de la red, '/metrics' las métricas."""
    metrics_app = make_wsgi_app(registry)

    def app(environ, start_response):
        path = environ.get("PATH_INFO", "/")
        if path == "/metrics":
            return metrics_app(environ, start_response)
        if path == "/":
            body = INDEX_TEMPLATE.format(status=html.escape(network.status_string()))
            start_response("200 OK", [("Content-Type", "text/html; charset=utf-8")])
            return [body.encode("utf-8")]
        start_response("404 Not Found", [("Content-Type", "text/plain; charset=utf-8")])
        return [b"Not Found"]

    return app


class StatusServer:
    """Sirve la aplicación de estado en un hilo daemon."""

    def __init__(self, network: Network, registry: CollectorRegistry, host: str, port: int):
        self.host = host
        self.port = port
        self.app = make_app(network, registry)
        self._server: WSGIServer | None = None
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        self._server = make_server(
            self.host, self.port, self.app, handler_class=_QuietHandler
        )
        self._thread = threading.Thread(
            target=self._server.serve_forever,
            daemon=True,
            name="status-server",
        )
        self._thread.start()
        logger.info(f"Servidor de estado escuchando en {self.host or '*'}:{self.port}")

    def stop(self) -> None:
        if self._server:
            self._server.shutdown()
            self._server.server_close()
            self._server = None
