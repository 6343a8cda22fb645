"""
Collector definitions and the collector document.

The collector document is the YAML file that tells the exporter which
collectors to run. It has three sections::

    system:
      - metricName: jobCount
        enable: true
        startDelay: 0
        frequency: 5
        config:
          query: failing
          filters: {withException: true}
    custom:
      - collector: collectors/open_orders.py
        enable: true
        startDelay: 10
        frequency: 30
        config: {}
    durationTracking:
      ServiceTask_1: {enable: true, label: charge_card}

Definitions are immutable once loaded. The loader builds a CollectorDocument
and hands it to the plugin, which passes the definitions on to the scheduler.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, ClassVar, Literal

from pydantic import BaseModel, ConfigDict, Field


class CollectorDefinition(BaseModel):
    """Fields shared by every collector definition.

    Attributes:
        enabled: Disabled collectors are never scheduled.
        start_delay: Seconds before the first tick.
        frequency: Seconds between ticks. Must be positive.
        parameters: Opaque configuration handed to the collector unit.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="forbid")

    # Field that identifies the collector; set by each definition kind
    name_field: ClassVar[str | None] = None

    enabled: bool = Field(default=True, alias="enable", description="Whether the collector is scheduled")
    start_delay: int = Field(default=0, ge=0, alias="startDelay", description="Seconds before the first tick")
    frequency: int = Field(..., gt=0, description="Seconds between ticks")
    parameters: dict[str, Any] = Field(default_factory=dict, alias="config", description="Collector parameters")

    @property
    def name(self) -> str:
        """Identifier used in logs and self-metrics."""
        if self.name_field is None:
            return type(self).__name__
        return str(getattr(self, self.name_field))


class SystemCollectorDefinition(CollectorDefinition):
    """A collector for one of the built-in engine metrics."""

    kind: Literal["system"] = "system"
    metric_name: str = Field(..., min_length=1, alias="metricName", description="Built-in metric to sample")

    name_field: ClassVar[str | None] = "metric_name"


class CustomCollectorDefinition(CollectorDefinition):
    """A user-supplied collector resolved from a reference.

    The reference is either ``package.module:callable`` or a path (or
    ``file://`` URI) to a Python file, optionally suffixed with
    ``:callable``. File collectors default to their ``collect`` function.
    """

    kind: Literal["custom"] = "custom"
    collector: str = Field(..., min_length=1, description="Collector reference")

    name_field: ClassVar[str | None] = "collector"


class DurationTrackingConfig(BaseModel):
    """Per-element override for the duration tracking hook."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    enabled: bool = Field(default=True, alias="enable")
    label: str | None = Field(default=None, min_length=1, description="Replaces the element id label value")


@dataclass(frozen=True)
class RejectedDefinition:
    """A document entry that failed validation and was skipped."""

    section: str
    index: int
    reason: str
    raw: Any = None


@dataclass(frozen=True)
class CollectorDocument:
    """The loaded collector document.

    Built once by the loader and read-only afterwards. Components that need
    it receive it (or the parts they need) explicitly.
    """

    system: tuple[SystemCollectorDefinition, ...] = ()
    custom: tuple[CustomCollectorDefinition, ...] = ()
    duration_tracking: Mapping[str, DurationTrackingConfig] = field(default_factory=lambda: MappingProxyType({}))
    rejected: tuple[RejectedDefinition, ...] = ()
    source: str | None = None

    @property
    def definitions(self) -> tuple[CollectorDefinition, ...]:
        """System definitions followed by custom definitions."""
        return (*self.system, *self.custom)

    @property
    def enabled_definitions(self) -> tuple[CollectorDefinition, ...]:
        return tuple(d for d in self.definitions if d.enabled)
