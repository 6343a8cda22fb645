"""
Parse-time duration tracking hook.

The host engine calls ``on_element_parsed`` once for every BPMN element while
it parses a process definition at deployment time. For each tracked element
the hook registers instrumentation keyed by
``(process_definition_id, element_id)``:

- ``flow_bpmn_element_entered_total``: incremented when execution enters the element
- ``flow_bpmn_element_completed_total``: incremented when execution leaves it
- ``flow_bpmn_element_duration_seconds``: time between the two

The hook does not observe execution itself. It returns an
ElementInstrumentation whose ``on_start`` / ``on_end`` methods the engine
attaches as execution listeners. Executions that leave an element without
completing it (interrupting boundary events, cancellation) should call
``on_cancel``; past ``max_in_flight`` open starts the oldest is dropped.

Elements of one process that share a ``label`` override and element type
feed the same series. That is allowed but logged.

Tracking policy per element:
    1. An explicit DurationTrackingConfig passed to the call
    2. Otherwise the ``durationTracking`` entry of the collector document
    3. Otherwise ``default_enabled``

Registering the same key twice (redeploying an identical definition)
returns the existing instrumentation; counters are never doubled.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass

import structlog
from prometheus_client import Counter, Histogram

from flow_metrics.config.collectors import DurationTrackingConfig
from flow_metrics.metrics.registry import MetricRegistry

log = structlog.get_logger(__name__)

LABELS = ("process_definition_id", "element_id", "element_type")

DURATION_BUCKETS = (0.01, 0.05, 0.1, 0.5, 1, 5, 10, 30, 60, 300, 900, 3600, 14400, 86400)

MAX_IN_FLIGHT = 10_000


@dataclass(frozen=True)
class ParsedElement:
    """One element of a parsed process definition, as handed over by the engine."""

    id: str | None
    type: str
    name: str | None = None


class ElementInstrumentation:
    """Counters attached to one element of one process definition.

    Attributes:
        process_definition_id: Process definition the element belongs to
        element_id: BPMN element id
        element_type: BPMN element type (e.g. serviceTask)
        label: Value published in the ``element_id`` label
    """

    def __init__(
        self,
        process_definition_id: str,
        element_id: str,
        element_type: str,
        label: str,
        entered: Counter,
        completed: Counter,
        duration: Histogram,
        clock: Callable[[], float] = time.monotonic,
        max_in_flight: int = MAX_IN_FLIGHT,
    ) -> None:
        self.process_definition_id = process_definition_id
        self.element_id = element_id
        self.element_type = element_type
        self.label = label
        self.entered = entered
        self.completed = completed
        self.duration = duration
        self._clock = clock
        self._starts: dict[str, float] = {}
        self.max_in_flight = max_in_flight
        self._lock = threading.Lock()

    @property
    def key(self) -> tuple[str, str]:
        return (self.process_definition_id, self.element_id)

    @property
    def in_flight(self) -> int:
        """Executions that entered the element and have not completed yet."""
        with self._lock:
            return len(self._starts)

    def on_start(self, execution_id: str | None = None) -> None:
        """Execution listener for the element's start event."""
        self.entered.inc()
        if execution_id is None:
            return
        evicted = None
        with self._lock:
            if execution_id not in self._starts and len(self._starts) >= self.max_in_flight:
                evicted = next(iter(self._starts))
                del self._starts[evicted]
            self._starts[execution_id] = self._clock()
        if evicted is not None:
            log.warning(
                "duration_tracking_start_evicted",
                process_definition_id=self.process_definition_id,
                element_id=self.element_id,
                execution_id=evicted,
                max_in_flight=self.max_in_flight,
            )

    def on_end(self, execution_id: str | None = None) -> None:
        """Execution listener for the element's end event."""
        self.completed.inc()
        if execution_id is None:
            return
        with self._lock:
            started = self._starts.pop(execution_id, None)
        if started is not None:
            self.duration.observe(max(0.0, self._clock() - started))

    def on_cancel(self, execution_id: str) -> None:
        """Forget an execution that left the element without completing it."""
        with self._lock:
            self._starts.pop(execution_id, None)

    def __repr__(self) -> str:
        return f"ElementInstrumentation({self.process_definition_id!r}, {self.element_id!r})"


class DurationTrackingHook:
    """Registers duration instrumentation while process definitions are parsed."""

    def __init__(
        self,
        registry: MetricRegistry,
        tracking: Mapping[str, DurationTrackingConfig] | None = None,
        default_enabled: bool = True,
        clock: Callable[[], float] = time.monotonic,
        max_in_flight: int = MAX_IN_FLIGHT,
    ) -> None:
        """Initialize the hook.

        Args:
            registry: Shared metric registry
            tracking: Per-element overrides keyed by element id
            default_enabled: Whether elements without an override are tracked
            clock: Time source for duration measurement
            max_in_flight: Open starts kept per element before the oldest is dropped
        """
        self.registry = registry
        self.tracking = dict(tracking or {})
        self.default_enabled = default_enabled
        self._clock = clock
        self.max_in_flight = max_in_flight
        self._registrations: dict[tuple[str, str], ElementInstrumentation] = {}
        self._series: dict[tuple[str, str, str], str] = {}
        self._lock = threading.Lock()

        self._entered = registry.counter(
            "flow_bpmn_element_entered_total", "Executions that entered a BPMN element", LABELS
        )
        self._completed = registry.counter(
            "flow_bpmn_element_completed_total", "Executions that completed a BPMN element", LABELS
        )
        self._duration = registry.histogram(
            "flow_bpmn_element_duration_seconds",
            "Time between entering and completing a BPMN element",
            LABELS,
            buckets=DURATION_BUCKETS,
        )

    def is_tracked(self, element_id: str, config: DurationTrackingConfig | None = None) -> bool:
        config = config or self.tracking.get(element_id)
        if config is None:
            return self.default_enabled
        return config.enabled

    def on_element_parsed(
        self,
        process_definition_id: str,
        element_id: str | None,
        element_type: str,
        config: DurationTrackingConfig | None = None,
    ) -> ElementInstrumentation | None:
        """Register instrumentation for one parsed element.

        Args:
            process_definition_id: Id of the process definition being deployed
            element_id: BPMN element id
            element_type: BPMN element type
            config: Override for this element; defaults to the document entry

        Returns:
            The element's instrumentation, or None if the element is not
            tracked or is malformed
        """
        if not element_id or not element_id.strip():
            log.warning(
                "duration_tracking_element_skipped",
                process_definition_id=process_definition_id,
                element_type=element_type,
                reason="missing element id",
            )
            return None
        if not process_definition_id:
            log.warning(
                "duration_tracking_element_skipped",
                element_id=element_id,
                element_type=element_type,
                reason="missing process definition id",
            )
            return None

        config = config or self.tracking.get(element_id)
        if not self.is_tracked(element_id, config):
            log.debug("duration_tracking_disabled", process_definition_id=process_definition_id, element_id=element_id)
            return None

        key = (process_definition_id, element_id)
        with self._lock:
            existing = self._registrations.get(key)
            if existing is not None:
                log.debug("duration_tracking_reused", process_definition_id=process_definition_id, element_id=element_id)
                return existing

            label = config.label if config is not None and config.label else element_id
            labels = {
                "process_definition_id": process_definition_id,
                "element_id": label,
                "element_type": element_type,
            }
            instrumentation = ElementInstrumentation(
                process_definition_id,
                element_id,
                element_type,
                label,
                entered=self._entered.labels(**labels),
                completed=self._completed.labels(**labels),
                duration=self._duration.labels(**labels),
                clock=self._clock,
                max_in_flight=self.max_in_flight,
            )
            self._registrations[key] = instrumentation
            series = (process_definition_id, label, element_type)
            shared_with = self._series.setdefault(series, element_id)

        if shared_with != element_id:
            log.warning(
                "duration_tracking_label_shared",
                process_definition_id=process_definition_id,
                element_id=element_id,
                shared_with=shared_with,
                label=label,
            )

        log.debug(
            "duration_tracking_registered",
            process_definition_id=process_definition_id,
            element_id=element_id,
            element_type=element_type,
            label=label,
        )
        return instrumentation

    def parse_process(
        self, process_definition_id: str, elements: Iterable[ParsedElement]
    ) -> list[ElementInstrumentation]:
        """Run the hook over every element of a process definition.

        Malformed elements are skipped; the rest are still registered.
        """
        registered = []
        for element in elements:
            instrumentation = self.on_element_parsed(process_definition_id, element.id, element.type)
            if instrumentation is not None:
                registered.append(instrumentation)
        log.info(
            "duration_tracking_process_parsed",
            process_definition_id=process_definition_id,
            tracked=len(registered),
        )
        return registered

    def get(self, process_definition_id: str, element_id: str) -> ElementInstrumentation | None:
        with self._lock:
            return self._registrations.get((process_definition_id, element_id))

    @property
    def registrations(self) -> dict[tuple[str, str], ElementInstrumentation]:
        with self._lock:
            return dict(self._registrations)
