"""
Resolution of custom collector references.

A custom collector is any callable with the signature::

    def collect(parameters: dict, registry: MetricRegistry, engine: EngineState | None) -> None

It is referenced from the collector document in one of these forms:

- ``package.module:callable`` (dotted attribute paths are allowed after the colon)
- ``path/to/collector.py`` (uses the module's ``collect`` function)
- ``path/to/collector.py:callable``
- ``file:///abs/path/collector.py`` with an optional ``:callable`` suffix

Relative file paths are resolved against ``base_dir`` (the directory of the
collector document when loaded by the plugin).
"""

from __future__ import annotations

import hashlib
import importlib
import importlib.util
from collections.abc import Callable
from pathlib import Path
from types import ModuleType
from typing import Any

import structlog

from flow_metrics.config.loader import resolve_path
from flow_metrics.exceptions import UnresolvableCollectorError

log = structlog.get_logger(__name__)

DEFAULT_ENTRYPOINT = "collect"

CustomCollector = Callable[..., Any]


def resolve_collector(reference: str, base_dir: Path | None = None) -> CustomCollector:
    """Resolve a collector reference to a callable.

    Args:
        reference: Collector reference from the document
        base_dir: Directory relative file references are resolved against

    Returns:
        The collector callable

    Raises:
        UnresolvableCollectorError: If the reference cannot be resolved
    """
    location, attribute = _split_reference(reference)

    if location.endswith(".py") or location.startswith("file:"):
        module = _load_file_module(reference, location, base_dir)
        attribute = attribute or DEFAULT_ENTRYPOINT
    else:
        if not attribute:
            raise UnresolvableCollectorError(
                "Module references must name a callable as 'module:callable'", definition=reference
            )
        try:
            module = importlib.import_module(location)
        except Exception as e:
            raise UnresolvableCollectorError(f"Cannot import module '{location}': {e}", definition=reference) from e

    target: Any = module
    for part in attribute.split("."):
        try:
            target = getattr(target, part)
        except AttributeError as e:
            raise UnresolvableCollectorError(
                f"'{attribute}' not found in '{location}'", definition=reference
            ) from e

    if not callable(target):
        raise UnresolvableCollectorError(f"'{attribute}' in '{location}' is not callable", definition=reference)

    log.debug("custom_collector_resolved", collector=reference)
    return target


def _split_reference(reference: str) -> tuple[str, str | None]:
    reference = reference.strip()
    # Only split on a colon that comes after the last path separator, so
    # Windows drive letters and "file://" survive
    head, sep, tail = reference.rpartition(":")
    if sep and "/" not in tail and "\\" not in tail and tail and not tail.startswith("//"):
        return head, tail
    return reference, None


def _load_file_module(reference: str, location: str, base_dir: Path | None) -> ModuleType:
    path = resolve_path(location)
    if not path.is_absolute() and base_dir is not None:
        path = base_dir / path
    if not path.is_file():
        raise UnresolvableCollectorError(f"Collector file not found: {path}", definition=reference)

    # Unique module name per file so two collectors named collect.py don't clash
    digest = hashlib.sha1(str(path.resolve()).encode()).hexdigest()[:12]
    module_name = f"flow_metrics_custom_{path.stem}_{digest}"

    spec = importlib.util.spec_from_file_location(module_name, path)
    if spec is None or spec.loader is None:
        raise UnresolvableCollectorError(f"Cannot load collector file: {path}", definition=reference)

    module = importlib.util.module_from_spec(spec)
    try:
        spec.loader.exec_module(module)
    except Exception as e:
        raise UnresolvableCollectorError(f"Collector file failed to load: {e}", definition=reference) from e
    return module
