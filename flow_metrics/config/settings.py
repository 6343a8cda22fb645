"""
Startup settings for the metrics exporter plugin.

These are the plugin-level options of the host engine integration: the
exposition port, the engine's metrics reporting interval, where the collector
document lives, and whether the duration tracking hook and Grafana
deployment annotations are switched on. Values come from keyword arguments,
``FLOW_METRICS_*`` environment variables or a YAML file.
"""

from __future__ import annotations

import os
import re
from pathlib import Path

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from flow_metrics.exceptions import SettingsError

# Matches ${VAR_NAME} or ${VAR_NAME:-default}
_ENV_PATTERN = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)(?::-([^}]*))?\}")


def interpolate_env_vars(content: str) -> str:
    """Interpolate ${VAR_NAME} placeholders with environment variables.

    Supports two syntaxes:
    - ${VAR_NAME} - Required environment variable (raises if not set)
    - ${VAR_NAME:-default} - Optional with default value

    YAML comment lines (starting with #) are left unchanged.

    Args:
        content: String content with placeholders

    Returns:
        Content with environment variables substituted

    Raises:
        ValueError: If a required environment variable is not set
    """

    def replace_var(match: re.Match[str]) -> str:
        var_name = match.group(1)
        default_value = match.group(2)
        value = os.getenv(var_name)

        if value is not None:
            return value
        elif default_value is not None:
            return default_value
        else:
            raise ValueError(f"Environment variable {var_name} is not set")

    def process_line(line: str) -> str:
        if line.lstrip().startswith("#"):
            return line
        return _ENV_PATTERN.sub(replace_var, line)

    return "\n".join(process_line(line) for line in content.split("\n"))


class ExporterSettings(BaseSettings):
    """Plugin settings.

    Example:
        >>> settings = ExporterSettings(port=9100, bpmn_duration_tracking=True)
        >>> settings.grafana_server
        'http://localhost:3000'
    """

    model_config = SettingsConfigDict(
        env_prefix="FLOW_METRICS_",
        case_sensitive=False,
        extra="forbid",
    )

    port: int = Field(default=9999, ge=0, le=65535, description="Port the metrics endpoint listens on")
    reporting_interval: int = Field(
        default=900, gt=0, description="Seconds between the engine's own metric flushes to its database"
    )
    collector_yml: str = Field(default="prometheus-metrics.yml", description="Path to the collector document")
    bpmn_duration_tracking: bool = Field(default=False, description="Register the duration tracking hook")
    grafana_annotation_reporting: bool = Field(default=False, description="Post deployment annotations")
    grafana_server: str = Field(default="http://localhost:3000", description="Grafana base URL")
    grafana_auth_token_path: str | None = Field(default=None, description="File holding the Grafana API token")
    engine_url: str = Field(
        default="http://localhost:8080/engine-rest", description="Engine REST API base URL (standalone mode)"
    )

    @classmethod
    def from_yaml(cls, config_path: str, **overrides: object) -> ExporterSettings:
        """Load settings from a YAML file with environment variable interpolation.

        Args:
            config_path: Path to YAML settings file
            **overrides: Values that take precedence over the file

        Returns:
            ExporterSettings instance

        Raises:
            SettingsError: If the file is missing, unreadable or invalid
        """
        config_file = Path(config_path)
        if not config_file.exists():
            raise SettingsError(f"Settings file not found: {config_path}")

        try:
            content = config_file.read_text(encoding="utf-8")
        except UnicodeDecodeError as e:
            raise SettingsError(f"Settings file is not valid UTF-8: {config_path}") from e
        except OSError as e:
            raise SettingsError(f"Cannot read settings file: {config_path}") from e

        try:
            content = interpolate_env_vars(content)
        except ValueError as e:
            raise SettingsError(f"Invalid environment variable reference in settings: {e}") from e

        try:
            data = yaml.safe_load(content) or {}
        except yaml.YAMLError as e:
            raise SettingsError(f"Invalid YAML syntax in {config_path}: {e}") from e

        if not isinstance(data, dict):
            raise SettingsError("Settings must be a YAML object, not a list or scalar")

        data.update({key: value for key, value in overrides.items() if value is not None})
        try:
            return cls(**data)
        except Exception as e:
            raise SettingsError(f"Failed to validate settings: {e}") from e
