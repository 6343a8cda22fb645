"""Deployment-time hooks invoked while the engine parses process definitions."""

from flow_metrics.parsing.duration import DurationTrackingHook, ElementInstrumentation, ParsedElement

__all__ = ["DurationTrackingHook", "ElementInstrumentation", "ParsedElement"]
