"""Pytest configuration and fixtures for the up probe tests."""

import pytest
from prometheus_client import CollectorRegistry

from up.metrics import ProbeMetrics, register_metrics


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def registry() -> CollectorRegistry:
    """A fresh registry so metric state never leaks between tests."""
    return CollectorRegistry()


@pytest.fixture
def metrics(registry: CollectorRegistry) -> ProbeMetrics:
    return register_metrics(registry)
