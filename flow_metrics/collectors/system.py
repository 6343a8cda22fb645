"""
Built-in system collectors.

Each sampler reads one value from the engine and publishes it into the
shared registry. Samplers are looked up by the ``metricName`` of a system
collector definition.

Count samplers publish a gauge labelled by ``query`` so that several
definitions of the same metric with different filters can coexist::

    system:
      - metricName: jobCount
        frequency: 5
        config: {query: failing, filters: {withException: true}}
      - metricName: jobCount
        frequency: 5

produces ``flow_engine_jobs{query="failing"}`` and
``flow_engine_jobs{query="all"}``.

Engine-reported totals publish ``flow_engine_metric{metric="..."}``.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from functools import partial
from typing import Any

from flow_metrics.engine.state import EngineState
from flow_metrics.metrics.registry import MetricRegistry

Sampler = Callable[[EngineState, Mapping[str, Any], MetricRegistry], None]

DEFAULT_QUERY = "all"

ENGINE_METRIC_GAUGE = "flow_engine_metric"

# metricName -> engine metric name
ENGINE_METRICS = {
    "activityInstanceStart": "activity-instance-start",
    "activityInstanceEnd": "activity-instance-end",
    "jobAcquisitionAttempt": "job-acquisition-attempt",
    "jobAcquiredSuccess": "job-acquired-success",
    "jobAcquiredFailure": "job-acquired-failure",
    "jobExecutionRejected": "job-execution-rejected",
    "jobSuccessful": "job-successful",
    "jobFailed": "job-failed",
    "jobLockedExclusive": "job-locked-exclusive",
    "executedDecisionElements": "executed-decision-elements",
    "rootProcessInstanceStart": "root-process-instance-start",
}


def _filters(parameters: Mapping[str, Any]) -> dict[str, Any]:
    filters = parameters.get("filters") or {}
    if not isinstance(filters, Mapping):
        raise TypeError(f"'filters' must be a mapping, got {type(filters).__name__}")
    return dict(filters)


def _publish_count(
    gauge_name: str,
    documentation: str,
    value: int,
    parameters: Mapping[str, Any],
    registry: MetricRegistry,
) -> None:
    query = str(parameters.get("query", DEFAULT_QUERY))
    registry.gauge(gauge_name, documentation, ["query"]).labels(query=query).set(value)


def sample_job_count(engine: EngineState, parameters: Mapping[str, Any], registry: MetricRegistry) -> None:
    """Number of jobs matching the configured filters."""
    value = engine.count_jobs(_filters(parameters))
    _publish_count("flow_engine_jobs", "Jobs in the engine", value, parameters, registry)


def sample_incident_count(engine: EngineState, parameters: Mapping[str, Any], registry: MetricRegistry) -> None:
    """Number of open incidents matching the configured filters."""
    value = engine.count_incidents(_filters(parameters))
    _publish_count("flow_engine_incidents", "Open incidents in the engine", value, parameters, registry)


def sample_process_instance_count(
    engine: EngineState, parameters: Mapping[str, Any], registry: MetricRegistry
) -> None:
    """Number of running process instances matching the configured filters."""
    value = engine.count_process_instances(_filters(parameters))
    _publish_count(
        "flow_engine_process_instances", "Running process instances in the engine", value, parameters, registry
    )


def sample_task_count(engine: EngineState, parameters: Mapping[str, Any], registry: MetricRegistry) -> None:
    """Number of open user tasks matching the configured filters."""
    value = engine.count_tasks(_filters(parameters))
    _publish_count("flow_engine_tasks", "Open user tasks in the engine", value, parameters, registry)


def sample_engine_metric(
    metric: str, engine: EngineState, parameters: Mapping[str, Any], registry: MetricRegistry
) -> None:
    """Total of one engine-reported metric."""
    value = engine.metric_total(metric)
    registry.gauge(ENGINE_METRIC_GAUGE, "Totals reported by the engine's metrics system", ["metric"]).labels(
        metric=metric
    ).set(value)


SYSTEM_SAMPLERS: dict[str, Sampler] = {
    "jobCount": sample_job_count,
    "incidentCount": sample_incident_count,
    "processInstanceCount": sample_process_instance_count,
    "taskCount": sample_task_count,
}
SYSTEM_SAMPLERS.update({name: partial(sample_engine_metric, metric) for name, metric in ENGINE_METRICS.items()})
