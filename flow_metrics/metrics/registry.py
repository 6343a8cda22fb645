"""
Shared metric registry.

Every collector publishes into one MetricRegistry, which wraps a
``prometheus_client`` CollectorRegistry. Instruments are created on first
use and reused afterwards: asking for a name that already exists returns
the existing instrument, provided the type and label names match. Nothing
ever unregisters or replaces an instrument.

Value updates (``inc``, ``set``, ``observe``) are thread-safe in
``prometheus_client``; instrument creation is serialized by a lock here.

Example:
    >>> registry = MetricRegistry(CollectorRegistry())
    >>> jobs = registry.gauge("flow_engine_jobs", "Jobs in the engine", ["query"])
    >>> jobs.labels(query="all").set(12)
    >>> registry.sample_value("flow_engine_jobs", {"query": "all"})
    12.0
"""

from __future__ import annotations

import threading
from collections.abc import Sequence
from typing import Any

import structlog
from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge, Histogram, generate_latest
from prometheus_client.metrics import MetricWrapperBase

from flow_metrics.exceptions import InstrumentConflictError

log = structlog.get_logger(__name__)


class MetricRegistry:
    """Process-wide store of named metric instruments.

    Attributes:
        registry: The underlying prometheus_client registry that is scraped.
    """

    def __init__(self, registry: CollectorRegistry | None = None) -> None:
        """Initialize the registry adapter.

        Args:
            registry: prometheus_client registry to publish into. Defaults to
                the library's global ``REGISTRY``.
        """
        self.registry = registry if registry is not None else REGISTRY
        self._instruments: dict[str, MetricWrapperBase] = {}
        self._lock = threading.Lock()

    def counter(self, name: str, documentation: str = "", labelnames: Sequence[str] = ()) -> Counter:
        """Register or get a counter."""
        return self._register_or_get(Counter, name, documentation, labelnames)

    def gauge(self, name: str, documentation: str = "", labelnames: Sequence[str] = ()) -> Gauge:
        """Register or get a gauge."""
        return self._register_or_get(Gauge, name, documentation, labelnames)

    def histogram(
        self,
        name: str,
        documentation: str = "",
        labelnames: Sequence[str] = (),
        buckets: Sequence[float] | None = None,
    ) -> Histogram:
        """Register or get a histogram."""
        kwargs: dict[str, Any] = {}
        if buckets is not None:
            kwargs["buckets"] = tuple(buckets)
        return self._register_or_get(Histogram, name, documentation, labelnames, **kwargs)

    def _register_or_get(
        self,
        kind: type[Any],
        name: str,
        documentation: str,
        labelnames: Sequence[str],
        **kwargs: Any,
    ) -> Any:
        with self._lock:
            existing = self._instruments.get(name)
            if existing is not None:
                if type(existing) is not kind:
                    raise InstrumentConflictError(
                        f"Metric '{name}' is already registered as {type(existing).__name__}, "
                        f"not {kind.__name__}"
                    )
                if tuple(existing._labelnames) != tuple(labelnames):
                    raise InstrumentConflictError(
                        f"Metric '{name}' is already registered with labels {list(existing._labelnames)}"
                    )
                return existing

            try:
                instrument = kind(
                    name,
                    documentation or name,
                    labelnames=tuple(labelnames),
                    registry=self.registry,
                    **kwargs,
                )
            except ValueError as e:
                # Name already taken in the prometheus registry by something we didn't create
                raise InstrumentConflictError(f"Cannot register metric '{name}': {e}") from e

            self._instruments[name] = instrument
            log.debug("metric_registered", metric=name, kind=kind.__name__, labels=list(labelnames))
            return instrument

    def names(self) -> list[str]:
        """Names of the instruments created through this registry."""
        with self._lock:
            return sorted(self._instruments)

    def sample_value(self, name: str, labels: dict[str, str] | None = None) -> float | None:
        """Current value of one sample, or None if it has not been published."""
        return self.registry.get_sample_value(name, labels or {})

    def exposition(self) -> bytes:
        """Registry contents in the Prometheus text format."""
        return generate_latest(self.registry)
