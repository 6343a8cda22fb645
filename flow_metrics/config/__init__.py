"""Configuration for flow-metrics.

This package holds the two kinds of configuration the exporter reads:

Key Components:
    - ExporterSettings: Plugin-level startup options (port, intervals, paths)
    - CollectorDocument: The YAML collector document, loaded once at startup
    - SystemCollectorDefinition / CustomCollectorDefinition: One collector each
    - DurationTrackingConfig: Per-element override for the duration hook

Example:
    >>> from flow_metrics.config import load_collector_document
    >>> document = load_collector_document("prometheus-metrics.yml")
    >>> [d.name for d in document.enabled_definitions]
    ['jobCount', 'incidentCount']
"""

from flow_metrics.config.collectors import (
    CollectorDefinition,
    CollectorDocument,
    CustomCollectorDefinition,
    DurationTrackingConfig,
    RejectedDefinition,
    SystemCollectorDefinition,
)
from flow_metrics.config.loader import load_collector_document, parse_collector_document
from flow_metrics.config.settings import ExporterSettings

__all__ = [
    "CollectorDefinition",
    "CollectorDocument",
    "CustomCollectorDefinition",
    "DurationTrackingConfig",
    "ExporterSettings",
    "RejectedDefinition",
    "SystemCollectorDefinition",
    "load_collector_document",
    "parse_collector_document",
]
