"""
Engine plugin wiring the metrics subsystem into a workflow engine's lifecycle.

The host engine drives three phases:

1. ``pre_init``: before the engine configuration is finalized. Loads the
   collector document, starts the metrics endpoint and registers the parse
   and deployment listeners.
2. ``post_init``: after configuration. Applies the engine's own metrics
   reporting interval.
3. ``post_engine_build``: once the engine can be queried. Starts the
   collector scheduler.

A broken collector document aborts ``pre_init`` with a LoadError: partial
metrics are worse than a visible startup failure. Annotation setup errors
only switch annotation reporting off.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import structlog

from flow_metrics.annotations.grafana import DeploymentAnnotationReporter, GrafanaAnnotationClient, read_auth_token
from flow_metrics.config.collectors import CollectorDocument
from flow_metrics.config.loader import load_collector_document, resolve_path
from flow_metrics.config.settings import ExporterSettings
from flow_metrics.engine.scheduler import CollectorScheduler, SchedulerHandle
from flow_metrics.engine.state import EngineState
from flow_metrics.exceptions import AnnotationError, FlowMetricsError
from flow_metrics.metrics.exporter import MetricsExporter
from flow_metrics.metrics.registry import MetricRegistry
from flow_metrics.parsing.duration import DurationTrackingHook

log = structlog.get_logger(__name__)


@dataclass
class EngineConfiguration:
    """The parts of the host engine configuration the plugin touches.

    Attributes:
        parse_listeners: Objects with ``on_element_parsed``, called per BPMN element
        deployment_listeners: Objects with ``on_deployment``, called per deployment
        metrics_reporting_interval: Seconds between the engine's metric flushes
    """

    parse_listeners: list[Any] = field(default_factory=list)
    deployment_listeners: list[Any] = field(default_factory=list)
    metrics_reporting_interval: int | None = None


class MetricsPlugin:
    """Metrics exporter plugin for a workflow engine.

    Attributes:
        settings: Startup settings
        registry: Shared metric registry
        document: Loaded collector document (after ``pre_init``)
        duration_hook: Registered duration hook, if enabled
        annotation_reporter: Registered Grafana reporter, if enabled
        handle: Running scheduler handle (after ``post_engine_build``)
    """

    def __init__(self, settings: ExporterSettings, registry: MetricRegistry | None = None) -> None:
        self.settings = settings
        self.registry = registry or MetricRegistry()
        self.document: CollectorDocument | None = None
        self.exporter: MetricsExporter | None = None
        self.duration_hook: DurationTrackingHook | None = None
        self.annotation_reporter: DeploymentAnnotationReporter | None = None
        self.scheduler: CollectorScheduler | None = None
        self.handle: SchedulerHandle | None = None

    def pre_init(self, engine_config: EngineConfiguration) -> None:
        """Load the collector document, start the endpoint, register listeners.

        Raises:
            LoadError: If the collector document is missing or malformed
        """
        self.document = load_collector_document(self.settings.collector_yml)

        self.exporter = MetricsExporter(self.registry, port=self.settings.port)
        self.exporter.start()

        if self.settings.bpmn_duration_tracking:
            self.duration_hook = DurationTrackingHook(self.registry, self.document.duration_tracking)
            engine_config.parse_listeners.append(self.duration_hook)
            log.info("duration_tracking_active")
        else:
            log.info("duration_tracking_disabled")

        if self.settings.grafana_annotation_reporting:
            self._register_annotation_reporter(engine_config)
        else:
            log.info("grafana_annotation_reporting_disabled")

    def _register_annotation_reporter(self, engine_config: EngineConfiguration) -> None:
        try:
            token = None
            if self.settings.grafana_auth_token_path:
                token = read_auth_token(self.settings.grafana_auth_token_path)
            client = GrafanaAnnotationClient(self.settings.grafana_server, token)
        except AnnotationError as e:
            log.error("grafana_annotation_reporting_unavailable", error=e.message, **e.context)
            return

        self.annotation_reporter = DeploymentAnnotationReporter(client)
        engine_config.deployment_listeners.append(self.annotation_reporter)
        log.info("grafana_annotation_reporting_active", server=client.server_url)

    def post_init(self, engine_config: EngineConfiguration) -> None:
        """Override the engine's metrics reporting interval."""
        log.info("engine_metrics_reporting_interval", seconds=self.settings.reporting_interval)
        engine_config.metrics_reporting_interval = self.settings.reporting_interval

    def post_engine_build(self, engine: EngineState) -> SchedulerHandle:
        """Start system and custom collectors against the built engine."""
        if self.document is None:
            raise FlowMetricsError("post_engine_build called before pre_init")

        base_dir = None
        if self.document.source:
            base_dir = resolve_path(self.document.source).parent
        self.scheduler = CollectorScheduler(self.registry, engine, base_dir=base_dir)
        self.handle = self.scheduler.start(self.document.definitions)
        return self.handle

    def stop(self, wait: bool = True, timeout: float | None = 10.0) -> None:
        """Stop collectors and the metrics endpoint. Idempotent."""
        if self.handle is not None:
            self.handle.stop(wait=wait, timeout=timeout)
        if self.exporter is not None:
            self.exporter.stop()
        if self.annotation_reporter is not None:
            self.annotation_reporter.client.close()
            self.annotation_reporter = None
