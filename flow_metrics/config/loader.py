"""
Collector document loader.

Reads the YAML collector document and turns it into a CollectorDocument.
Two failure modes are distinguished:

- Structural problems (missing file, broken YAML, wrong container types,
  unknown sections) raise a LoadError and abort startup of the whole
  metrics subsystem.
- A single entry that fails validation (for example ``frequency: 0``) is
  skipped, logged and listed in ``CollectorDocument.rejected``; the other
  entries still load.

Loading has no side effects beyond reading the file.
"""

from __future__ import annotations

from pathlib import Path
from types import MappingProxyType
from typing import Any, TypeVar
from urllib.parse import unquote, urlparse

import structlog
import yaml
from pydantic import BaseModel, ValidationError

from flow_metrics.config.collectors import (
    CollectorDocument,
    CustomCollectorDefinition,
    DurationTrackingConfig,
    RejectedDefinition,
    SystemCollectorDefinition,
)
from flow_metrics.config.settings import interpolate_env_vars
from flow_metrics.exceptions import MalformedDocumentError, MissingResourceError

log = structlog.get_logger(__name__)

SECTIONS = ("system", "custom", "durationTracking")

M = TypeVar("M", bound=BaseModel)


def resolve_path(path: str | Path) -> Path:
    """Turn a filesystem path or ``file://`` URI into a Path."""
    if isinstance(path, Path):
        return path
    parsed = urlparse(path)
    if parsed.scheme == "file":
        return Path(unquote(parsed.netloc + parsed.path))
    return Path(path)


def load_collector_document(path: str | Path) -> CollectorDocument:
    """Load and validate a collector document.

    Args:
        path: Filesystem path or ``file://`` URI of the YAML document

    Returns:
        The loaded CollectorDocument

    Raises:
        MissingResourceError: If the path does not resolve to a readable file
        MalformedDocumentError: If the document is not structurally valid
    """
    source = str(path)
    file_path = resolve_path(path)
    if not file_path.is_file():
        raise MissingResourceError(f"Collector document not found: {source}", path=source)

    try:
        content = file_path.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise MalformedDocumentError(f"Collector document is not valid UTF-8: {source}", path=source) from e
    except OSError as e:
        raise MissingResourceError(f"Cannot read collector document: {source}", path=source) from e

    document = parse_collector_document(content, source=source)
    log.info(
        "collector_document_loaded",
        path=source,
        system=len(document.system),
        custom=len(document.custom),
        duration_tracking=len(document.duration_tracking),
        rejected=len(document.rejected),
    )
    return document


def parse_collector_document(content: str, source: str | None = None) -> CollectorDocument:
    """Parse collector document text.

    Args:
        content: YAML text
        source: Where the text came from, for error messages

    Returns:
        The parsed CollectorDocument

    Raises:
        MalformedDocumentError: If the document is not structurally valid
    """
    try:
        content = interpolate_env_vars(content)
    except ValueError as e:
        raise MalformedDocumentError(f"Invalid environment variable reference: {e}", path=source) from e

    try:
        data = yaml.safe_load(content)
    except yaml.YAMLError as e:
        raise MalformedDocumentError(f"Invalid YAML syntax: {e}", path=source) from e

    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise MalformedDocumentError("Collector document must be a YAML object, not a list or scalar", path=source)

    unknown = sorted(str(key) for key in data if key not in SECTIONS)
    if unknown:
        raise MalformedDocumentError(f"Unknown section(s) in collector document: {', '.join(unknown)}", path=source)

    rejected: list[RejectedDefinition] = []

    system = _load_section(data, "system", SystemCollectorDefinition, rejected, source)
    custom = _load_section(data, "custom", CustomCollectorDefinition, rejected, source)
    tracking = _load_duration_tracking(data, rejected, source)

    return CollectorDocument(
        system=tuple(system),
        custom=tuple(custom),
        duration_tracking=MappingProxyType(tracking),
        rejected=tuple(rejected),
        source=source,
    )


def _load_section(
    data: dict[str, Any],
    section: str,
    model: type[M],
    rejected: list[RejectedDefinition],
    source: str | None,
) -> list[M]:
    entries = data.get(section)
    if entries is None:
        return []
    if not isinstance(entries, list):
        raise MalformedDocumentError(f"Section '{section}' must be a list", path=source)

    definitions: list[M] = []
    for index, entry in enumerate(entries):
        if not isinstance(entry, dict):
            _reject(rejected, section, index, "entry must be a mapping", entry)
            continue
        try:
            definitions.append(model.model_validate(entry))
        except ValidationError as e:
            _reject(rejected, section, index, _summarize(e), entry)
    return definitions


def _load_duration_tracking(
    data: dict[str, Any],
    rejected: list[RejectedDefinition],
    source: str | None,
) -> dict[str, DurationTrackingConfig]:
    entries = data.get("durationTracking")
    if entries is None:
        return {}
    if not isinstance(entries, dict):
        raise MalformedDocumentError("Section 'durationTracking' must be a mapping of element ids", path=source)

    tracking: dict[str, DurationTrackingConfig] = {}
    for index, (element_id, entry) in enumerate(entries.items()):
        # `ServiceTask_1:` with no body means "use the defaults"
        if entry is None:
            entry = {}
        if not isinstance(entry, dict):
            _reject(rejected, "durationTracking", index, f"entry for '{element_id}' must be a mapping", entry)
            continue
        try:
            tracking[str(element_id)] = DurationTrackingConfig.model_validate(entry)
        except ValidationError as e:
            _reject(rejected, "durationTracking", index, _summarize(e), entry)
    return tracking


def _reject(rejected: list[RejectedDefinition], section: str, index: int, reason: str, raw: Any) -> None:
    log.warning("collector_definition_rejected", section=section, index=index, reason=reason)
    rejected.append(RejectedDefinition(section=section, index=index, reason=reason, raw=raw))


def _summarize(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"]) or "entry"
        parts.append(f"{location}: {item['msg']}")
    return "; ".join(parts)
