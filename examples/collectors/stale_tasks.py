"""Example custom collector: open user tasks, split by how long they have waited.

Referenced from prometheus-metrics.yml as ``collectors/stale_tasks.py``. The
scheduler calls ``collect`` with the definition's ``config`` mapping, the
shared metric registry and the engine state.
"""

from datetime import datetime, timedelta, timezone


def collect(parameters, registry, engine):
    hours = int(parameters.get("warn_after_hours", 24))
    cutoff = datetime.now(timezone.utc) - timedelta(hours=hours)

    total = engine.count_tasks()
    stale = engine.count_tasks({"createdBefore": cutoff.strftime("%Y-%m-%dT%H:%M:%S.000+0000")})

    gauge = registry.gauge("flow_example_user_tasks", "Open user tasks by age", ["age"])
    gauge.labels(age="fresh").set(max(0, total - stale))
    gauge.labels(age="stale").set(stale)
