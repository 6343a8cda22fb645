"""flow-metrics: Prometheus metrics for BPMN workflow engines.

Collectors defined in a YAML document sample engine state on independent
schedules and publish into a shared prometheus_client registry, which an
embedded HTTP endpoint serves for scraping. A parse-time hook adds
per-element duration counters, and deployments can be annotated in Grafana.
"""

__version__ = "0.3.0"
