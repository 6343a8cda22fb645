"""Collector units: built-in system samplers and custom collector resolution."""

from flow_metrics.collectors.custom import resolve_collector
from flow_metrics.collectors.system import ENGINE_METRICS, SYSTEM_SAMPLERS
from flow_metrics.collectors.units import CollectorUnit, CustomCollectorUnit, SystemCollectorUnit, resolve_unit

__all__ = [
    "ENGINE_METRICS",
    "SYSTEM_SAMPLERS",
    "CollectorUnit",
    "CustomCollectorUnit",
    "SystemCollectorUnit",
    "resolve_collector",
    "resolve_unit",
]
