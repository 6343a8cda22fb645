"""Custom exception hierarchy for flow-metrics.

This module defines the structured exception hierarchy used by the collector
loader, the scheduler and the deployment annotation reporter. The hierarchy
encodes how far an error is allowed to propagate: document errors abort
startup of the metrics subsystem, definition errors drop a single collector,
and sample errors are contained to a single tick.

Exception Hierarchy:
    FlowMetricsError (base)
    ├── LoadError
    │   ├── MissingResourceError
    │   └── MalformedDocumentError
    ├── ConfigError
    │   ├── UnknownMetricError
    │   ├── UnresolvableCollectorError
    │   └── InstrumentConflictError
    ├── SettingsError
    ├── RuntimeSampleError
    ├── EngineStateError
    └── AnnotationError
        ├── AnnotationUriError
        └── AnnotationIOError

Example Usage:
    >>> from flow_metrics.exceptions import LoadError
    >>> try:
    ...     document = load_collector_document(path)
    ... except LoadError as e:
    ...     log.error("collector_document_invalid", path=e.path, error=e.message)
    ...     raise
"""

from typing import Any


class FlowMetricsError(Exception):
    """Base exception for all flow-metrics errors.

    Attributes:
        message: Human-readable error description
    """

    def __init__(self, message: str) -> None:
        """Initialize exception.

        Args:
            message: Error message
        """
        self.message = message
        super().__init__(message)


# =============================================================================
# Collector document errors
# =============================================================================


class LoadError(FlowMetricsError):
    """The collector document could not be loaded.

    Loading is all-or-nothing, so any LoadError is fatal to startup of the
    metrics subsystem.

    Attributes:
        message: Human-readable error description
        path: The path or URI that was being loaded
    """

    def __init__(self, message: str, path: str | None = None) -> None:
        self.path = path
        full_message = message
        if path and path not in message:
            full_message = f"{message} (path: {path})"
        super().__init__(full_message)
        self.message = message


class MissingResourceError(LoadError):
    """The collector document path does not resolve to a readable file."""

    pass


class MalformedDocumentError(LoadError):
    """The collector document is not structurally valid.

    Examples:
        - Invalid YAML syntax
        - Top level is a list or scalar instead of a mapping
        - ``system`` or ``custom`` is not a list
        - Unknown top-level section
    """

    pass


# =============================================================================
# Definition errors
# =============================================================================


class ConfigError(FlowMetricsError):
    """A single collector definition cannot be scheduled.

    Fatal to that definition only; the remaining definitions proceed.

    Attributes:
        message: Human-readable error description
        definition: Name of the offending definition
    """

    def __init__(self, message: str, definition: str | None = None) -> None:
        self.definition = definition
        full_message = message
        if definition:
            full_message = f"{message} (collector: {definition})"
        super().__init__(full_message)
        self.message = message


class UnknownMetricError(ConfigError):
    """A system collector names a metric that has no built-in sampler."""

    pass


class UnresolvableCollectorError(ConfigError):
    """A custom collector reference cannot be resolved to a callable."""

    pass


class InstrumentConflictError(ConfigError):
    """An instrument name is already registered with another type or labels."""

    pass


class SettingsError(FlowMetricsError):
    """Startup settings could not be read or validated."""

    pass


# =============================================================================
# Runtime errors
# =============================================================================


class RuntimeSampleError(FlowMetricsError):
    """A collector tick failed.

    Raised (or wrapped) per tick. The scheduler logs it and keeps the
    collector's future ticks running.

    Attributes:
        message: Human-readable error description
        collector: Name of the collector whose tick failed
    """

    def __init__(self, message: str, collector: str | None = None) -> None:
        self.collector = collector
        full_message = message
        if collector:
            full_message = f"{message} (collector: {collector})"
        super().__init__(full_message)
        self.message = message


class EngineStateError(FlowMetricsError):
    """Reading state from the workflow engine failed.

    Attributes:
        message: Human-readable error description
        status_code: HTTP status code (if applicable)
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        self.status_code = status_code
        full_message = message
        if status_code:
            full_message = f"{message} (HTTP {status_code})"
        super().__init__(full_message)
        self.message = message


# =============================================================================
# Annotation errors
# =============================================================================


class AnnotationError(FlowMetricsError):
    """Base exception for dashboard annotation errors.

    Annotation errors are logged and never block a deployment.
    """

    def __init__(self, message: str, **context: Any) -> None:
        self.context = context
        super().__init__(message)


class AnnotationUriError(AnnotationError):
    """The annotation server URL is not a usable http(s) URL."""

    pass


class AnnotationIOError(AnnotationError):
    """The auth token could not be read or the server could not be reached."""

    pass
