"""
Collector units: executable sampling logic resolved from definitions.

``resolve_unit`` dispatches on the definition type:

- SystemCollectorDefinition -> SystemCollectorUnit wrapping a built-in sampler
- CustomCollectorDefinition -> CustomCollectorUnit wrapping a user callable

Resolution happens once, when the scheduler is set up, so a bad definition
fails before any timer starts. ``invoke`` is called on every tick; its only
observable effect is mutation of the shared registry.
"""

from __future__ import annotations

import copy
from abc import ABC, abstractmethod
from pathlib import Path

from flow_metrics.collectors.custom import CustomCollector, resolve_collector
from flow_metrics.collectors.system import SYSTEM_SAMPLERS, Sampler
from flow_metrics.config.collectors import CollectorDefinition, CustomCollectorDefinition, SystemCollectorDefinition
from flow_metrics.engine.state import EngineState
from flow_metrics.exceptions import ConfigError, RuntimeSampleError, UnknownMetricError
from flow_metrics.metrics.registry import MetricRegistry


class CollectorUnit(ABC):
    """Sampling logic bound to one collector definition."""

    def __init__(self, definition: CollectorDefinition) -> None:
        self.definition = definition

    @property
    def name(self) -> str:
        return self.definition.name

    @abstractmethod
    def invoke(self, registry: MetricRegistry, engine: EngineState | None) -> None:
        """Take one sample and publish it into the registry."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"


class SystemCollectorUnit(CollectorUnit):
    """Runs a built-in sampler against the engine."""

    def __init__(self, definition: SystemCollectorDefinition, sampler: Sampler) -> None:
        super().__init__(definition)
        self.sampler = sampler

    def invoke(self, registry: MetricRegistry, engine: EngineState | None) -> None:
        if engine is None:
            raise RuntimeSampleError("System collector needs engine state but none is attached", collector=self.name)
        self.sampler(engine, copy.deepcopy(self.definition.parameters), registry)


class CustomCollectorUnit(CollectorUnit):
    """Runs a user-supplied collector callable."""

    def __init__(self, definition: CustomCollectorDefinition, func: CustomCollector) -> None:
        super().__init__(definition)
        self.func = func

    def invoke(self, registry: MetricRegistry, engine: EngineState | None) -> None:
        # Each tick gets its own copy so a collector can't mutate its definition
        self.func(copy.deepcopy(self.definition.parameters), registry, engine)


def resolve_unit(definition: CollectorDefinition, base_dir: Path | None = None) -> CollectorUnit:
    """Resolve a definition to its collector unit.

    Args:
        definition: System or custom collector definition
        base_dir: Directory relative custom collector files resolve against

    Returns:
        The collector unit

    Raises:
        UnknownMetricError: If a system definition names an unknown metric
        UnresolvableCollectorError: If a custom reference cannot be resolved
        ConfigError: If the definition type is not supported
    """
    if isinstance(definition, SystemCollectorDefinition):
        sampler = SYSTEM_SAMPLERS.get(definition.metric_name)
        if sampler is None:
            known = ", ".join(sorted(SYSTEM_SAMPLERS))
            raise UnknownMetricError(
                f"Unknown system metric '{definition.metric_name}' (known: {known})",
                definition=definition.name,
            )
        return SystemCollectorUnit(definition, sampler)

    if isinstance(definition, CustomCollectorDefinition):
        return CustomCollectorUnit(definition, resolve_collector(definition.collector, base_dir))

    raise ConfigError(f"Unsupported collector definition type: {type(definition).__name__}")
