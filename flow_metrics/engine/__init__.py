"""Collector scheduling and engine state access.

Key Components:
    - CollectorScheduler: Builds one recurring job per enabled definition
      (``flow_metrics.engine.scheduler``)
    - SchedulerHandle: Running jobs; ``stop()`` cancels future ticks
    - EngineState: Read-only engine queries used by system collectors
    - InMemoryEngineState / RestEngineState: EngineState implementations

Example:
    >>> from flow_metrics.engine.scheduler import CollectorScheduler
    >>> handle = CollectorScheduler(registry, engine).start(document.definitions)
    >>> handle.stop(wait=True)
"""

from flow_metrics.engine.state import EngineState, InMemoryEngineState, RestEngineState

__all__ = [
    "EngineState",
    "InMemoryEngineState",
    "RestEngineState",
]
