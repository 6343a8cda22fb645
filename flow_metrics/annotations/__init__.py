"""Dashboard annotations for deployment events."""

from flow_metrics.annotations.grafana import (
    AnnotationEvent,
    DeploymentAnnotationReporter,
    GrafanaAnnotationClient,
    read_auth_token,
)

__all__ = [
    "AnnotationEvent",
    "DeploymentAnnotationReporter",
    "GrafanaAnnotationClient",
    "read_auth_token",
]
