"""Unit tests for the flow_metrics.main CLI module.

This module tests the CLI entry point:
- validate: listing a collector document, reporting load errors and unresolvable collectors
- serve: settings errors, startup failures and shutdown
"""

from unittest.mock import MagicMock, patch

import pytest
from click.testing import CliRunner

from flow_metrics.main import cli
from flow_metrics.plugin import MetricsPlugin


@pytest.fixture
def cli_runner():
    """Create a Click CLI test runner."""
    return CliRunner()


@pytest.fixture(autouse=True)
def no_logging_setup():
    """Keep CLI invocations from reconfiguring structlog for the whole session."""
    with patch("flow_metrics.main.configure_logging") as configure:
        yield configure


@pytest.fixture
def no_signal_handlers(monkeypatch):
    monkeypatch.setattr("flow_metrics.main.signal.signal", MagicMock())


class TestCli:
    """Group options."""

    def test_help(self, cli_runner):
        result = cli_runner.invoke(cli, ["--help"])

        assert result.exit_code == 0
        assert "validate" in result.output
        assert "serve" in result.output

    def test_logging_options(self, cli_runner, no_logging_setup, sample_document_path):
        result = cli_runner.invoke(cli, ["--log-level", "DEBUG", "--console-logs", "validate", str(sample_document_path)])

        assert result.exit_code == 0
        no_logging_setup.assert_called_once_with("DEBUG", json_output=False)


class TestValidate:
    """The validate command."""

    def test_lists_document(self, cli_runner, sample_document_path):
        result = cli_runner.invoke(cli, ["validate", str(sample_document_path)])

        assert result.exit_code == 0
        assert "System collectors (2):" in result.output
        assert "jobCount: every 5s after 0s (enabled)" in result.output
        assert "incidentCount: every 30s after 10s (disabled)" in result.output
        assert "Custom collectors (1):" in result.output
        assert "collectors/open_orders.py: every 15s after 2s (enabled)" in result.output
        assert "ServiceTask_1: enabled, label=charge_card" in result.output
        assert "UserTask_2: disabled" in result.output
        assert "Rejected" not in result.output

    def test_reports_rejected_entries(self, cli_runner, write_file):
        path = write_file("metrics.yml", "system:\n  - metricName: jobCount\n    frequency: 0\n")

        result = cli_runner.invoke(cli, ["validate", str(path)])

        assert result.exit_code == 0
        assert "Rejected entries (1):" in result.output
        assert "system[0]:" in result.output

    def test_reports_unresolvable_collectors(self, cli_runner, write_file):
        """Should resolve each enabled collector and exit 1 listing the failures."""
        path = write_file(
            "metrics.yml",
            "system:\n"
            "  - metricName: jobCont\n"
            "    frequency: 5\n"
            "  - metricName: taskCount\n"
            "    frequency: 5\n"
            "custom:\n"
            "  - collector: collectors/missing.py\n"
            "    frequency: 5\n"
            "  - collector: collectors/also_missing.py\n"
            "    frequency: 5\n"
            "    enable: false\n",
        )

        result = cli_runner.invoke(cli, ["validate", str(path)])

        assert result.exit_code == 1
        assert "Unresolvable collectors (2):" in result.output
        failures = result.output.split("Unresolvable collectors (2):")[1].splitlines()[1:]
        assert [line.split(":")[0].strip() for line in failures] == ["jobCont", "collectors/missing.py"]

    def test_missing_document(self, cli_runner, tmp_path):
        result = cli_runner.invoke(cli, ["validate", str(tmp_path / "missing.yml")])

        assert result.exit_code == 1
        assert "Error:" in result.output

    def test_malformed_document(self, cli_runner, write_file):
        path = write_file("metrics.yml", "- jobCount\n")

        result = cli_runner.invoke(cli, ["validate", str(path)])

        assert result.exit_code == 1
        assert "Error:" in result.output


class TestServe:
    """The serve command."""

    def test_missing_settings_file(self, cli_runner, tmp_path):
        result = cli_runner.invoke(cli, ["serve", "--settings", str(tmp_path / "missing.yml")])

        assert result.exit_code == 1
        assert "Error:" in result.output

    def test_invalid_port(self, cli_runner):
        result = cli_runner.invoke(cli, ["serve", "--port", "70000"])

        assert result.exit_code == 1
        assert "invalid settings" in result.output

    def test_missing_collector_document(self, cli_runner, tmp_path, no_signal_handlers):
        """Should exit 1 when the plugin cannot load its collector document."""
        result = cli_runner.invoke(
            cli, ["serve", "--port", "0", "--collector-yml", str(tmp_path / "missing.yml")]
        )

        assert result.exit_code == 1
        assert "Error:" in result.output

    def test_interrupt_stops_plugin(self, cli_runner, sample_document_path, no_signal_handlers):
        """Should stop the plugin on Ctrl+C."""
        with (
            patch.object(MetricsPlugin, "post_engine_build", side_effect=KeyboardInterrupt),
            patch.object(MetricsPlugin, "stop", autospec=True, side_effect=MetricsPlugin.stop) as stop,
        ):
            result = cli_runner.invoke(
                cli, ["serve", "--port", "0", "--collector-yml", str(sample_document_path)]
            )

        assert result.exit_code == 130
        assert "Interrupted by user" in result.output
        stop.assert_called_once()

    def test_settings_file_with_overrides(self, cli_runner, sample_document_path, write_file, no_signal_handlers):
        settings = write_file("settings.yml", f"port: 9999\ncollector_yml: {sample_document_path}\n")

        with (
            patch.object(MetricsPlugin, "post_engine_build", side_effect=KeyboardInterrupt),
            patch.object(MetricsPlugin, "pre_init") as pre_init,
            patch.object(MetricsPlugin, "stop"),
        ):
            result = cli_runner.invoke(cli, ["serve", "--settings", str(settings), "--port", "0"])

        assert result.exit_code == 130
        pre_init.assert_called_once()
