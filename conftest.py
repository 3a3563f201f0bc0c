"""
Pytest configuration for edgestack tests
"""

import pytest

pytest_plugins = ('pytest_asyncio',)


def pytest_configure(config):
    config.addinivalue_line(
        "markers", "asyncio: mark test as an asyncio test."
    )
    config.addinivalue_line(
        "markers", "integration: needs a live Postgres (TEST_POSTGRES_HOST)"
    )
