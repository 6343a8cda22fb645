"""
Embedded HTTP endpoint serving the metric registry for Prometheus scrapes.

Prometheus is then configured with a job such as::

    - job_name: 'workflow-engine'
      scrape_interval: 10s
      honor_labels: true
      static_configs:
      - targets: ['engine-host:9999']

Keep the scrape interval in line with the collector frequencies and the
engine's metrics reporting interval, otherwise scrapes will mostly see
unchanged values.
"""

from __future__ import annotations

import threading
from wsgiref.simple_server import WSGIServer

import structlog
from prometheus_client import start_http_server

from flow_metrics.metrics.registry import MetricRegistry

log = structlog.get_logger(__name__)


class MetricsExporter:
    """Serve a MetricRegistry over HTTP from a daemon thread."""

    def __init__(self, registry: MetricRegistry, port: int = 9999, addr: str = "0.0.0.0") -> None:
        self.registry = registry
        self.addr = addr
        self._requested_port = port
        self._server: WSGIServer | None = None
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()

    @property
    def port(self) -> int:
        """The bound port (differs from the requested one when 0 was asked for)."""
        if self._server is not None:
            return self._server.server_port
        return self._requested_port

    @property
    def running(self) -> bool:
        return self._server is not None

    def start(self) -> None:
        """Bind the port and start serving. Calling start twice is a no-op."""
        with self._lock:
            if self._server is not None:
                return
            self._server, self._thread = start_http_server(
                self._requested_port, addr=self.addr, registry=self.registry.registry
            )
        log.info("metrics_exporter_started", addr=self.addr, port=self.port)

    def stop(self) -> None:
        """Stop serving and release the port. Idempotent."""
        with self._lock:
            server, thread = self._server, self._thread
            self._server = None
            self._thread = None
        if server is None:
            return
        server.shutdown()
        server.server_close()
        if thread is not None:
            thread.join(timeout=5)
        log.info("metrics_exporter_stopped", port=server.server_port)

    def __enter__(self) -> MetricsExporter:
        self.start()
        return self

    def __exit__(self, *args: object) -> None:
        self.stop()
