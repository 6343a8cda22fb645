"""Metric registry and the embedded Prometheus endpoint."""

from flow_metrics.metrics.exporter import MetricsExporter
from flow_metrics.metrics.registry import MetricRegistry

__all__ = ["MetricRegistry", "MetricsExporter"]
