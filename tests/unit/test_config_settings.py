"""Tests for flow_metrics/config/settings.py."""

import pytest
from pydantic import ValidationError

from flow_metrics.config.settings import ExporterSettings, interpolate_env_vars
from flow_metrics.exceptions import SettingsError


class TestExporterSettings:
    """Defaults, environment variables and validation."""

    def test_defaults(self):
        """Should match the plugin's documented defaults."""
        settings = ExporterSettings()

        assert settings.port == 9999
        assert settings.reporting_interval == 900
        assert settings.collector_yml == "prometheus-metrics.yml"
        assert settings.bpmn_duration_tracking is False
        assert settings.grafana_annotation_reporting is False
        assert settings.grafana_server == "http://localhost:3000"
        assert settings.grafana_auth_token_path is None

    def test_environment_variables(self, monkeypatch):
        """Should read FLOW_METRICS_* variables."""
        monkeypatch.setenv("FLOW_METRICS_PORT", "9100")
        monkeypatch.setenv("FLOW_METRICS_BPMN_DURATION_TRACKING", "true")

        settings = ExporterSettings()

        assert settings.port == 9100
        assert settings.bpmn_duration_tracking is True

    def test_invalid_port(self):
        """Should reject ports outside 0-65535."""
        with pytest.raises(ValidationError):
            ExporterSettings(port=70000)

    def test_reporting_interval_must_be_positive(self):
        """Should reject a zero reporting interval."""
        with pytest.raises(ValidationError):
            ExporterSettings(reporting_interval=0)


class TestExporterSettingsFromYaml:
    """Loading settings files."""

    def test_from_yaml(self, write_file):
        """Should load values from YAML."""
        path = write_file("settings.yml", "port: 9200\ngrafana_annotation_reporting: true\n")

        settings = ExporterSettings.from_yaml(str(path))

        assert settings.port == 9200
        assert settings.grafana_annotation_reporting is True

    def test_overrides_win(self, write_file):
        """Should apply non-None overrides over file values."""
        path = write_file("settings.yml", "port: 9200\ncollector_yml: a.yml\n")

        settings = ExporterSettings.from_yaml(str(path), port=9300, collector_yml=None)

        assert settings.port == 9300
        assert settings.collector_yml == "a.yml"

    def test_missing_file(self, tmp_path):
        """Should raise SettingsError for a missing file."""
        with pytest.raises(SettingsError):
            ExporterSettings.from_yaml(str(tmp_path / "missing.yml"))

    def test_undecodable_file(self, tmp_path):
        """Should raise SettingsError for a file that is not UTF-8."""
        path = tmp_path / "settings.yml"
        path.write_bytes(b"port: \xff\xfe\n")

        with pytest.raises(SettingsError, match="not valid UTF-8"):
            ExporterSettings.from_yaml(str(path))

    def test_invalid_yaml(self, write_file):
        """Should raise SettingsError for broken YAML."""
        path = write_file("settings.yml", "port: [9200\n")

        with pytest.raises(SettingsError):
            ExporterSettings.from_yaml(str(path))

    def test_not_a_mapping(self, write_file):
        """Should raise SettingsError when the file is a list."""
        path = write_file("settings.yml", "- 9200\n")

        with pytest.raises(SettingsError):
            ExporterSettings.from_yaml(str(path))

    def test_unknown_key(self, write_file):
        """Should raise SettingsError for unknown keys."""
        path = write_file("settings.yml", "prot: 9200\n")

        with pytest.raises(SettingsError):
            ExporterSettings.from_yaml(str(path))


class TestInterpolateEnvVars:
    """Environment variable interpolation."""

    def test_required_variable(self, monkeypatch):
        monkeypatch.setenv("GRAFANA_URL", "http://grafana:3000")

        assert interpolate_env_vars("grafana_server: ${GRAFANA_URL}") == "grafana_server: http://grafana:3000"

    def test_default_value(self, monkeypatch):
        monkeypatch.delenv("METRICS_PORT", raising=False)

        assert interpolate_env_vars("port: ${METRICS_PORT:-9999}") == "port: 9999"

    def test_missing_variable_raises(self, monkeypatch):
        monkeypatch.delenv("METRICS_PORT", raising=False)

        with pytest.raises(ValueError, match="METRICS_PORT"):
            interpolate_env_vars("port: ${METRICS_PORT}")

    def test_comments_untouched(self):
        content = "# port: ${METRICS_PORT}"

        assert interpolate_env_vars(content) == content
