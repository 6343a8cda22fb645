"""CLI entry point for flow-metrics."""

import signal
import sys
import threading

import click
import structlog

from flow_metrics.collectors.units import resolve_unit
from flow_metrics.config.loader import load_collector_document, resolve_path
from flow_metrics.config.settings import ExporterSettings
from flow_metrics.engine.state import RestEngineState
from flow_metrics.exceptions import ConfigError, FlowMetricsError, LoadError
from flow_metrics.plugin import EngineConfiguration, MetricsPlugin
from flow_metrics.utils.logging_config import configure_logging

log = structlog.get_logger(__name__)


@click.group()
@click.option("--log-level", default="INFO", help="Logging level")
@click.option("--json-logs/--console-logs", default=True, help="Render logs as JSON lines or for the console")
def cli(log_level: str, json_logs: bool) -> None:
    """flow-metrics: Prometheus metrics for workflow engines."""
    configure_logging(log_level, json_output=json_logs)


@cli.command()
@click.argument("path")
def validate(path: str) -> None:
    """Validate a collector document and list what it defines."""
    try:
        document = load_collector_document(path)
    except LoadError as e:
        click.echo(f"Error: {e.message}", err=True)
        log.debug("validate_error", exc_info=True)
        sys.exit(1)

    click.echo(f"System collectors ({len(document.system)}):")
    for definition in document.system:
        state = "enabled" if definition.enabled else "disabled"
        click.echo(
            f"  {definition.metric_name}: every {definition.frequency}s "
            f"after {definition.start_delay}s ({state})"
        )

    click.echo(f"Custom collectors ({len(document.custom)}):")
    for definition in document.custom:
        state = "enabled" if definition.enabled else "disabled"
        click.echo(
            f"  {definition.collector}: every {definition.frequency}s "
            f"after {definition.start_delay}s ({state})"
        )

    if document.duration_tracking:
        click.echo(f"Duration tracking overrides ({len(document.duration_tracking)}):")
        for element_id, config in document.duration_tracking.items():
            state = "enabled" if config.enabled else "disabled"
            label = f", label={config.label}" if config.label else ""
            click.echo(f"  {element_id}: {state}{label}")

    if document.rejected:
        click.echo(click.style(f"Rejected entries ({len(document.rejected)}):", fg="yellow"))
        for rejected in document.rejected:
            click.echo(f"  {rejected.section}[{rejected.index}]: {rejected.reason}")

    base_dir = resolve_path(document.source).parent if document.source else None
    unresolvable = []
    for definition in document.enabled_definitions:
        try:
            resolve_unit(definition, base_dir)
        except ConfigError as e:
            unresolvable.append((definition.name, e.message))

    if unresolvable:
        click.echo(click.style(f"Unresolvable collectors ({len(unresolvable)}):", fg="red"))
        for name, message in unresolvable:
            click.echo(f"  {name}: {message}")
        sys.exit(1)


@cli.command()
@click.option("--settings", "settings_path", type=click.Path(), help="YAML settings file")
@click.option("--port", type=int, help="Port for the metrics endpoint")
@click.option("--collector-yml", help="Path to the collector document")
@click.option("--engine-url", help="Engine REST API base URL")
def serve(settings_path: str | None, port: int | None, collector_yml: str | None, engine_url: str | None) -> None:
    """Run the exporter standalone against an engine REST API."""
    overrides = {"port": port, "collector_yml": collector_yml, "engine_url": engine_url}
    try:
        if settings_path:
            settings = ExporterSettings.from_yaml(settings_path, **overrides)
        else:
            settings = ExporterSettings(**{key: value for key, value in overrides.items() if value is not None})
    except FlowMetricsError as e:
        click.echo(f"Error: {e.message}", err=True)
        sys.exit(1)
    except ValueError as e:
        click.echo(f"Error: invalid settings: {e}", err=True)
        sys.exit(1)

    plugin = MetricsPlugin(settings)
    engine = RestEngineState(settings.engine_url)
    stop_requested = threading.Event()

    def request_stop(signum: int, frame: object) -> None:
        stop_requested.set()

    signal.signal(signal.SIGTERM, request_stop)

    try:
        engine_config = EngineConfiguration()
        plugin.pre_init(engine_config)
        plugin.post_init(engine_config)
        plugin.post_engine_build(engine)
        click.echo(f"Serving metrics on port {plugin.exporter.port}; press Ctrl+C to stop")
        while not stop_requested.wait(1.0):
            pass
    except FlowMetricsError as e:
        click.echo(f"Error: {e.message}", err=True)
        log.debug("serve_error", exc_info=True)
        sys.exit(1)
    except KeyboardInterrupt:
        click.echo("\nInterrupted by user", err=True)
        sys.exit(130)
    except Exception as e:
        click.echo(f"Unexpected error: {e}", err=True)
        log.error("serve_unexpected", exc_info=True)
        sys.exit(1)
    finally:
        plugin.stop()
        engine.close()


if __name__ == "__main__":
    cli()
