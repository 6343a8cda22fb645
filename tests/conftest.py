"""Pytest configuration and shared fixtures."""

from collections.abc import Callable
from pathlib import Path

import pytest
from prometheus_client import CollectorRegistry

from flow_metrics.engine.state import InMemoryEngineState
from flow_metrics.metrics.registry import MetricRegistry


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    """Simulated clock starting at t=0."""
    return FakeClock()


@pytest.fixture
def registry() -> MetricRegistry:
    """MetricRegistry backed by a fresh prometheus registry."""
    return MetricRegistry(CollectorRegistry())


@pytest.fixture
def engine() -> InMemoryEngineState:
    """Engine state with a few counts set."""
    return InMemoryEngineState(jobs=3, incidents=1, process_instances=5, tasks=2)


@pytest.fixture
def write_file(tmp_path: Path) -> Callable[[str, str], Path]:
    """Write a file under tmp_path and return its path."""

    def _write(name: str, content: str) -> Path:
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
        return path

    return _write


@pytest.fixture
def collector_file(write_file: Callable[[str, str], Path]) -> Path:
    """A custom collector file publishing a gauge from its parameters."""
    return write_file(
        "collectors/open_orders.py",
        '''
def collect(parameters, registry, engine):
    gauge = registry.gauge("shop_open_orders", "Open orders", ["region"])
    gauge.labels(region=parameters.get("region", "all")).set(parameters.get("value", 0))


def failing(parameters, registry, engine):
    raise RuntimeError("shop database unavailable")


NOT_CALLABLE = 42
''',
    )


SAMPLE_DOCUMENT = """
system:
  - metricName: jobCount
    enable: true
    startDelay: 0
    frequency: 5
    config:
      query: failing
      filters: {withException: true}
  - metricName: incidentCount
    enable: false
    startDelay: 10
    frequency: 30
custom:
  - collector: collectors/open_orders.py
    enable: true
    startDelay: 2
    frequency: 15
    config:
      region: emea
      value: 4
durationTracking:
  ServiceTask_1:
    enable: true
    label: charge_card
  UserTask_2:
    enable: false
"""


@pytest.fixture
def sample_document_path(write_file: Callable[[str, str], Path], collector_file: Path) -> Path:
    """Collector document next to the sample custom collector."""
    return write_file("prometheus-metrics.yml", SAMPLE_DOCUMENT)
