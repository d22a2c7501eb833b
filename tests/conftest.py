"""Shared pytest configuration for credgate tests."""

import pytest

# HTTP mocking, credential file and application fixtures
pytest_plugins = [
    "tests.fixtures.mock_http",
    "tests.fixtures.credentials",
    "tests.fixtures.gateway",
]


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: fast tests with all HTTP mocked")
    config.addinivalue_line("markers", "integration: tests that bind real sockets")


def pytest_collection_modifyitems(config, items):
    """Add markers to tests based on their location."""
    for item in items:
        path = str(item.fspath)
        if "tests/integration/" in path:
            item.add_marker(pytest.mark.integration)
        elif "tests/unit/" in path or "tests/api/" in path:
            item.add_marker(pytest.mark.unit)
