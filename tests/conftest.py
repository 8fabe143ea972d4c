"""
Pytest configuration for the server monitor tests.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator

import pytest

from server_monitor.metrics.store import MetricStore

# Fixed reference time (ms) well away from the epoch
T0 = 1_700_000_000_000


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers",
        "integration: marks tests as integration tests (deselect with '-m \"not integration\"')",
    )


@pytest.fixture(autouse=True)
def _cleanup_loggers() -> Iterator[None]:
    """Drop handlers installed by setup_logging or the update checker."""
    yield
    names = [
        name
        for name in logging.Logger.manager.loggerDict
        if name == "server_monitor" or name.startswith("server_monitor.updates.decisions")
    ]
    for name in names:
        logger = logging.getLogger(name)
        for handler in list(logger.handlers):
            handler.close()
        logger.handlers.clear()


@pytest.fixture
def store() -> MetricStore:
    """An empty store with the default one-hour window."""
    return MetricStore()
