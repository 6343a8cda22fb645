"""
Recurring, independently timed collector execution.

This module turns collector definitions into running collectors. Each
enabled definition becomes a CollectorJob driven by its own timer thread:

- The first tick is due ``start_delay`` seconds after the scheduler started,
  then every ``frequency`` seconds until the handle is stopped.
- Ticks of the same job never overlap. A tick that finds the job busy is
  skipped, and due times that pass while a tick is still running are
  skipped rather than queued: after a slow tick the job waits for the next
  slot on its grid, and a tick never starts sooner than ``frequency``
  seconds after the previous one started.
- A tick that raises is logged and counted as a RuntimeSampleError; it does
  not stop that job's future ticks or any other job.
- Jobs share nothing but the metric registry, so a slow collector delays
  only itself.

Architecture:
    CollectorJob: Timing state, busy lock and statistics for one collector.
        ``run_if_due`` is the deterministic core and can be driven by a
        simulated clock.

    SchedulerHandle: Owns the timer threads. ``stop`` cancels future ticks
        and lets in-flight ticks finish.

    CollectorScheduler: Resolves definitions to units, drops the ones that
        fail with a ConfigError, and starts a handle for the rest.

Self-metrics:
    flow_metrics_collector_ticks_total{collector, outcome}
        outcome is one of success, error, skipped
    flow_metrics_collector_tick_duration_seconds{collector}

Example:
    >>> scheduler = CollectorScheduler(registry, engine)
    >>> handle = scheduler.start(document.definitions)
    >>> ...
    >>> handle.stop(wait=True)
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Iterable
from pathlib import Path

import structlog

from flow_metrics.collectors.units import CollectorUnit, resolve_unit
from flow_metrics.config.collectors import CollectorDefinition
from flow_metrics.engine.state import EngineState
from flow_metrics.exceptions import ConfigError, RuntimeSampleError
from flow_metrics.metrics.registry import MetricRegistry

log = structlog.get_logger(__name__)

Clock = Callable[[], float]

TICK_DURATION_BUCKETS = (0.005, 0.01, 0.05, 0.1, 0.5, 1, 2.5, 5, 10, 30, 60)


class SchedulerMetrics:
    """Scheduler self-metrics published into the shared registry."""

    def __init__(self, registry: MetricRegistry) -> None:
        self.ticks = registry.counter(
            "flow_metrics_collector_ticks_total",
            "Collector ticks by outcome",
            ["collector", "outcome"],
        )
        self.duration = registry.histogram(
            "flow_metrics_collector_tick_duration_seconds",
            "Collector tick duration",
            ["collector"],
            buckets=TICK_DURATION_BUCKETS,
        )

    def record(self, collector: str, outcome: str, duration: float | None = None, count: int = 1) -> None:
        self.ticks.labels(collector=collector, outcome=outcome).inc(count)
        if duration is not None:
            self.duration.labels(collector=collector).observe(duration)


class CollectorJob:
    """One scheduled collector.

    Attributes:
        unit: The collector unit invoked on every tick
        next_run: Clock time the next tick is due
        ticks: Number of ticks that ran (successful or failed)
        failures: Number of ticks that raised
        skipped: Number of due times skipped because a tick was still running
        last_error: The most recent RuntimeSampleError, if any
    """

    def __init__(
        self,
        unit: CollectorUnit,
        registry: MetricRegistry,
        engine: EngineState | None = None,
        clock: Clock = time.monotonic,
        started_at: float | None = None,
        metrics: SchedulerMetrics | None = None,
    ) -> None:
        """Initialize the job.

        Args:
            unit: Collector unit to invoke
            registry: Shared metric registry handed to the unit
            engine: Engine state handed to the unit
            clock: Monotonic time source in seconds
            started_at: Scheduler start time; defaults to ``clock()``
            metrics: Optional scheduler self-metrics

        Raises:
            ConfigError: If the definition's frequency or start delay is invalid
        """
        definition = unit.definition
        if definition.frequency <= 0:
            raise ConfigError(f"frequency must be > 0, got {definition.frequency}", definition=unit.name)
        if definition.start_delay < 0:
            raise ConfigError(f"start delay must be >= 0, got {definition.start_delay}", definition=unit.name)

        self.unit = unit
        self.registry = registry
        self.engine = engine
        self.frequency = float(definition.frequency)
        self._clock = clock
        self._metrics = metrics

        start = clock() if started_at is None else started_at
        self.next_run = start + definition.start_delay

        self.ticks = 0
        self.failures = 0
        self.skipped = 0
        self.last_error: RuntimeSampleError | None = None

        self._busy = threading.Lock()
        self._state = threading.Lock()
        self._cancelled = threading.Event()

    @property
    def name(self) -> str:
        return self.unit.name

    @property
    def definition(self) -> CollectorDefinition:
        return self.unit.definition

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        """Prevent any further ticks. An in-flight tick still completes."""
        self._cancelled.set()

    def seconds_until_due(self, now: float | None = None) -> float:
        now = self._clock() if now is None else now
        with self._state:
            return max(0.0, self.next_run - now)

    def run_if_due(self, now: float | None = None) -> bool:
        """Run one tick if it is due.

        Args:
            now: Current clock time; defaults to ``clock()``

        Returns:
            True if the unit was invoked
        """
        now = self._clock() if now is None else now
        if self._cancelled.is_set():
            return False
        with self._state:
            if now < self.next_run:
                return False

        if not self._busy.acquire(blocking=False):
            self._skip(self._advance(now), reason="busy")
            return False

        try:
            if self._cancelled.is_set():
                return False
            # More than one slot elapsed means the timer woke late; count the extras as skipped
            late = self._advance(now) - 1
            if late > 0:
                self._skip(late, reason="late")
            self._not_before(now + self.frequency)
            self._tick()
        finally:
            self._busy.release()

        overrun = self._advance(self._clock())
        if overrun:
            self._skip(overrun, reason="overrun")
        return True

    def _advance(self, now: float) -> int:
        """Move next_run past ``now`` on the job's grid. Returns slots passed."""
        with self._state:
            if now < self.next_run:
                return 0
            slots = int((now - self.next_run) // self.frequency) + 1
            self.next_run += slots * self.frequency
            return slots

    def _not_before(self, due: float) -> None:
        with self._state:
            if self.next_run < due:
                self.next_run = due

    def _skip(self, count: int, reason: str) -> None:
        if count <= 0:
            return
        with self._state:
            self.skipped += count
        log.warning("collector_tick_skipped", collector=self.name, skipped=count, reason=reason)
        if self._metrics is not None:
            self._metrics.record(self.name, "skipped", count=count)

    def _tick(self) -> None:
        started = self._clock()
        outcome = "success"
        try:
            self.unit.invoke(self.registry, self.engine)
        except Exception as e:
            outcome = "error"
            if isinstance(e, RuntimeSampleError):
                error = e
            else:
                error = RuntimeSampleError(f"{type(e).__name__}: {e}", collector=self.name)
                error.__cause__ = e
            with self._state:
                self.failures += 1
                self.last_error = error
            log.error("collector_tick_failed", collector=self.name, error=error.message, exc_info=True)
        finally:
            duration = self._clock() - started
            with self._state:
                self.ticks += 1
            if self._metrics is not None:
                self._metrics.record(self.name, outcome, duration=duration)
        log.debug("collector_tick_completed", collector=self.name, outcome=outcome, duration=duration)

    def __repr__(self) -> str:
        return f"CollectorJob({self.name!r}, frequency={self.frequency}, next_run={self.next_run})"


class SchedulerHandle:
    """Running set of collector jobs.

    ``stop`` is the only cancellation surface. It is cooperative (in-flight
    ticks complete), idempotent and safe to call from any thread, including
    before any tick has fired or when no job was scheduled at all.
    """

    def __init__(self, jobs: Iterable[CollectorJob]) -> None:
        self.jobs: tuple[CollectorJob, ...] = tuple(jobs)
        self._stop_event = threading.Event()
        self._threads: list[threading.Thread] = []
        self._lock = threading.Lock()
        self._started = False

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    @property
    def running(self) -> bool:
        return not self.stopped and any(t.is_alive() for t in self._threads)

    def start(self) -> SchedulerHandle:
        """Start one timer thread per job. Calling start twice is a no-op."""
        with self._lock:
            if self._started or self.stopped:
                return self
            self._started = True
            for job in self.jobs:
                thread = threading.Thread(
                    target=self._run_job,
                    args=(job,),
                    name=f"collector-{job.name}",
                    daemon=True,
                )
                self._threads.append(thread)
                thread.start()
        return self

    def _run_job(self, job: CollectorJob) -> None:
        log.info(
            "collector_started",
            collector=job.name,
            start_delay=job.definition.start_delay,
            frequency=job.definition.frequency,
        )
        while not self._stop_event.is_set():
            job.run_if_due()
            if self._stop_event.wait(job.seconds_until_due()):
                break
        log.info("collector_stopped", collector=job.name, ticks=job.ticks, failures=job.failures)

    def stop(self, wait: bool = False, timeout: float | None = None) -> None:
        """Cancel all pending and future ticks.

        Args:
            wait: Block until timer threads (and in-flight ticks) finish
            timeout: Maximum seconds to wait in total when ``wait`` is set
        """
        with self._lock:
            first = not self._stop_event.is_set()
            self._stop_event.set()
            for job in self.jobs:
                job.cancel()
        if first:
            log.info("collector_scheduler_stopped", jobs=len(self.jobs))
        if wait:
            self.join(timeout)

    def join(self, timeout: float | None = None) -> None:
        """Wait for the timer threads to exit."""
        deadline = None if timeout is None else time.monotonic() + timeout
        for thread in list(self._threads):
            if thread is threading.current_thread():
                continue
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            thread.join(remaining)

    def __enter__(self) -> SchedulerHandle:
        return self

    def __exit__(self, *args: object) -> None:
        self.stop(wait=True)


class CollectorScheduler:
    """Build and start collector jobs from definitions.

    Attributes:
        registry: Shared metric registry
        engine: Engine state handed to collector units
        dropped: Definitions dropped at setup, with the error that dropped them
    """

    def __init__(
        self,
        registry: MetricRegistry,
        engine: EngineState | None = None,
        clock: Clock = time.monotonic,
        base_dir: Path | None = None,
    ) -> None:
        """Initialize the scheduler.

        Args:
            registry: Shared metric registry
            engine: Engine state for system collectors
            clock: Monotonic time source in seconds
            base_dir: Directory relative custom collector files resolve against
        """
        self.registry = registry
        self.engine = engine
        self.clock = clock
        self.base_dir = base_dir
        self.dropped: list[tuple[CollectorDefinition, ConfigError]] = []
        self._metrics = SchedulerMetrics(registry)

    def prepare(self, definitions: Iterable[CollectorDefinition]) -> list[CollectorJob]:
        """Resolve enabled definitions into jobs without starting them.

        Definitions that fail with a ConfigError are logged, recorded in
        ``dropped`` and skipped.
        """
        started_at = self.clock()
        jobs: list[CollectorJob] = []
        for definition in definitions:
            if not definition.enabled:
                log.info("collector_disabled", collector=definition.name)
                continue
            try:
                unit = resolve_unit(definition, self.base_dir)
                job = CollectorJob(
                    unit,
                    self.registry,
                    self.engine,
                    clock=self.clock,
                    started_at=started_at,
                    metrics=self._metrics,
                )
            except ConfigError as e:
                log.error("collector_dropped", collector=definition.name, error=e.message)
                self.dropped.append((definition, e))
                continue
            jobs.append(job)
        return jobs

    def start(self, definitions: Iterable[CollectorDefinition]) -> SchedulerHandle:
        """Schedule every enabled, resolvable definition.

        Returns:
            Handle owning the running jobs
        """
        jobs = self.prepare(definitions)
        handle = SchedulerHandle(jobs).start()
        log.info("collector_scheduler_started", jobs=len(jobs), dropped=len(self.dropped))
        return handle


def start(
    definitions: Iterable[CollectorDefinition],
    registry: MetricRegistry,
    engine: EngineState | None = None,
) -> SchedulerHandle:
    """Schedule definitions with a default CollectorScheduler."""
    return CollectorScheduler(registry, engine).start(definitions)
