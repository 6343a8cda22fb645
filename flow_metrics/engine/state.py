"""
Read-only access to workflow engine state.

System collectors read engine counts through the EngineState protocol. Two
implementations ship with the package:

- InMemoryEngineState: values are pushed in by the host (an embedded engine
  adapter, or a test).
- RestEngineState: queries a Camunda-style ``/engine-rest`` API.

Calls may block; the scheduler runs each collector on its own thread, so a
slow engine read only delays that collector.
"""

from __future__ import annotations

import threading
from collections.abc import Mapping
from typing import Any, Protocol, runtime_checkable

import httpx
import structlog

from flow_metrics.exceptions import EngineStateError

log = structlog.get_logger(__name__)


@runtime_checkable
class EngineState(Protocol):
    """Queries system collectors may run against the engine."""

    def count_jobs(self, filters: Mapping[str, Any] | None = None) -> int: ...

    def count_incidents(self, filters: Mapping[str, Any] | None = None) -> int: ...

    def count_process_instances(self, filters: Mapping[str, Any] | None = None) -> int: ...

    def count_tasks(self, filters: Mapping[str, Any] | None = None) -> int: ...

    def metric_total(self, name: str) -> int: ...


class InMemoryEngineState:
    """Engine state held in memory.

    Counts are keyed by query kind (``jobs``, ``incidents``,
    ``process_instances``, ``tasks``); filters are ignored. Engine-reported
    metric totals are keyed by their engine name, e.g.
    ``activity-instance-start``.

    Example:
        >>> state = InMemoryEngineState(jobs=3)
        >>> state.set_count("jobs", 7)
        >>> state.count_jobs()
        7
    """

    def __init__(self, **counts: int) -> None:
        self._counts: dict[str, int] = dict(counts)
        self._metrics: dict[str, int] = {}
        self._lock = threading.Lock()

    def set_count(self, kind: str, value: int) -> None:
        with self._lock:
            self._counts[kind] = value

    def set_metric(self, name: str, value: int) -> None:
        with self._lock:
            self._metrics[name] = value

    def increment_metric(self, name: str, amount: int = 1) -> None:
        with self._lock:
            self._metrics[name] = self._metrics.get(name, 0) + amount

    def _count(self, kind: str) -> int:
        with self._lock:
            return self._counts.get(kind, 0)

    def count_jobs(self, filters: Mapping[str, Any] | None = None) -> int:
        return self._count("jobs")

    def count_incidents(self, filters: Mapping[str, Any] | None = None) -> int:
        return self._count("incidents")

    def count_process_instances(self, filters: Mapping[str, Any] | None = None) -> int:
        return self._count("process_instances")

    def count_tasks(self, filters: Mapping[str, Any] | None = None) -> int:
        return self._count("tasks")

    def metric_total(self, name: str) -> int:
        with self._lock:
            return self._metrics.get(name, 0)


class RestEngineState:
    """Engine state read from the engine's REST API.

    Uses the count endpoints (``/job/count``, ``/incident/count``,
    ``/process-instance/count``, ``/task/count``) and the metrics sum endpoint
    (``/metrics/{name}/sum``). Filters are sent as query parameters, with
    booleans lowered to ``true``/``false``.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        token: str | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the REST accessor.

        Args:
            base_url: Engine REST base URL (e.g., http://localhost:8080/engine-rest)
            timeout: Request timeout in seconds
            token: Optional bearer token
            transport: Optional httpx transport (used by tests)
        """
        self.base_url = base_url.rstrip("/")
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token.strip()}"
        self._client = httpx.Client(base_url=self.base_url, timeout=timeout, headers=headers, transport=transport)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> RestEngineState:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def _get(self, path: str, params: Mapping[str, Any] | None = None) -> dict[str, Any]:
        query = {key: _query_value(value) for key, value in (params or {}).items()}
        try:
            response = self._client.get(path, params=query)
        except httpx.HTTPError as e:
            raise EngineStateError(f"Engine request failed: {path}: {e}") from e

        if response.status_code != 200:
            raise EngineStateError(f"Engine request failed: {path}", status_code=response.status_code)

        try:
            return response.json()
        except ValueError as e:
            raise EngineStateError(f"Engine returned invalid JSON for {path}") from e

    def _count(self, path: str, filters: Mapping[str, Any] | None) -> int:
        data = self._get(path, filters)
        if "count" not in data:
            raise EngineStateError(f"Engine response for {path} has no 'count' field")
        return int(data["count"])

    def count_jobs(self, filters: Mapping[str, Any] | None = None) -> int:
        return self._count("/job/count", filters)

    def count_incidents(self, filters: Mapping[str, Any] | None = None) -> int:
        return self._count("/incident/count", filters)

    def count_process_instances(self, filters: Mapping[str, Any] | None = None) -> int:
        return self._count("/process-instance/count", filters)

    def count_tasks(self, filters: Mapping[str, Any] | None = None) -> int:
        return self._count("/task/count", filters)

    def metric_total(self, name: str) -> int:
        data = self._get(f"/metrics/{name}/sum")
        if "result" not in data:
            raise EngineStateError(f"Engine response for metric {name} has no 'result' field")
        return int(data["result"])


def _query_value(value: Any) -> Any:
    if isinstance(value, bool):
        return "true" if value else "false"
    return value
