"""Pytest fixtures for integration tests.

These tests run the loader, scheduler, collectors and exporter together
against an in-memory engine. No external services are needed.
"""

from __future__ import annotations

import pytest


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "integration: marks tests as integration tests")
    config.addinivalue_line("markers", "slow: marks tests that wait on real timers")
