"""Grafana deployment annotations.

When annotation reporting is switched on, every deployment is posted to
Grafana's annotation API so dashboards can show when process definitions
changed. Reporting is best effort: failures are logged and never block the
deployment.

Grafana has API auth enabled by default, so a token with Editor rights is
usually needed. The token is read from a file; ``Bearer`` is prepended for
you.
"""

from __future__ import annotations

import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from urllib.parse import urlparse

import httpx
import structlog

from flow_metrics.exceptions import AnnotationIOError, AnnotationUriError

log = structlog.get_logger(__name__)

ANNOTATIONS_PATH = "/api/annotations"


def read_auth_token(path: str | Path) -> str:
    """Read a Grafana API token from a file.

    Raises:
        AnnotationIOError: If the file cannot be read or is empty
    """
    try:
        token = Path(path).read_text(encoding="utf-8").strip()
    except UnicodeDecodeError as e:
        raise AnnotationIOError(f"Grafana auth token file is not valid UTF-8: {path}", path=str(path)) from e
    except OSError as e:
        raise AnnotationIOError(f"Cannot read Grafana auth token file: {path}", path=str(path)) from e
    if not token:
        raise AnnotationIOError(f"Grafana auth token file is empty: {path}", path=str(path))
    return token


@dataclass(frozen=True)
class AnnotationEvent:
    """A single Grafana annotation."""

    text: str
    tags: Sequence[str] = ()
    time_ms: int = field(default_factory=lambda: int(time.time() * 1000))

    def to_payload(self) -> dict[str, Any]:
        return {"time": self.time_ms, "tags": list(self.tags), "text": self.text}


class GrafanaAnnotationClient:
    """Posts annotations to a Grafana server."""

    def __init__(
        self,
        server_url: str,
        auth_token: str | None = None,
        timeout: float = 10.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            server_url: Grafana base URL (e.g., http://localhost:3000)
            auth_token: API token, without the ``Bearer`` prefix
            timeout: Request timeout in seconds
            transport: Optional httpx transport (used by tests)

        Raises:
            AnnotationUriError: If server_url is not an http(s) URL with a host
        """
        parsed = urlparse(server_url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise AnnotationUriError(f"Invalid Grafana server URL: {server_url!r}", url=server_url)

        self.server_url = server_url.rstrip("/")
        headers = {"Content-Type": "application/json", "Accept": "application/json"}
        if auth_token:
            headers["Authorization"] = f"Bearer {auth_token.strip()}"
        self._client = httpx.Client(base_url=self.server_url, timeout=timeout, headers=headers, transport=transport)

    def close(self) -> None:
        self._client.close()

    def post_annotation(self, event: AnnotationEvent) -> bool:
        """Post one annotation.

        Returns:
            True if Grafana accepted the annotation
        """
        try:
            response = self._client.post(ANNOTATIONS_PATH, json=event.to_payload())
        except httpx.HTTPError as e:
            log.error("grafana_annotation_failed", server=self.server_url, error=str(e))
            return False

        if response.status_code >= 400:
            log.error(
                "grafana_annotation_rejected",
                server=self.server_url,
                status_code=response.status_code,
                response=response.text[:200],
            )
            return False

        log.info("grafana_annotation_posted", server=self.server_url, tags=list(event.tags))
        return True


class DeploymentAnnotationReporter:
    """Deployment listener that annotates Grafana dashboards."""

    def __init__(self, client: GrafanaAnnotationClient, tags: Sequence[str] = ("deployment",)) -> None:
        self.client = client
        self.tags = tuple(tags)

    def on_deployment(
        self,
        deployment_id: str,
        process_definition_keys: Sequence[str] = (),
        name: str | None = None,
    ) -> bool:
        """Report a deployment. Never raises.

        Args:
            deployment_id: Engine deployment id
            process_definition_keys: Keys of the process definitions deployed
            name: Optional deployment name

        Returns:
            True if the annotation was posted
        """
        label = name or deployment_id
        text = f"Deployment {label}"
        if process_definition_keys:
            text = f"{text}: {', '.join(process_definition_keys)}"
        event = AnnotationEvent(text=text, tags=(*self.tags, *process_definition_keys))

        try:
            return self.client.post_annotation(event)
        except Exception as e:
            log.error("grafana_annotation_unexpected", deployment_id=deployment_id, error=str(e), exc_info=True)
            return False
