"""Pytest configuration and shared fixtures.

Usage Guide:
- For scheduler tests: use the ``executor`` fixture (a scripted FakeExecutor)
  and build configs with tests.fakes.fast_config
- For client tests: use ``settings`` together with httpx.MockTransport
"""

from collections.abc import Iterator

import pytest

from versionista_scraper.config import Settings, get_settings
from versionista_scraper.logging import reset_logging
from tests.fakes import TEST_BASE_URL, FakeExecutor, fast_config


@pytest.fixture
def executor() -> FakeExecutor:
    """Scripted HTTP execution primitive answering 200 by default."""
    return FakeExecutor()


@pytest.fixture
def settings() -> Settings:
    """Settings pointing at a fake host with fast scheduler timings."""
    return Settings(
        _env_file=None,
        base_url=TEST_BASE_URL,
        versionista_email="scraper@example.org",
        versionista_password="hunter2",
        scheduler=fast_config(),
    )


@pytest.fixture(autouse=True)
def _clear_settings_cache() -> Iterator[None]:
    """Keep the cached Settings from leaking between tests."""
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def quiet_logging() -> Iterator[None]:
    """Reset loguru handlers around tests that configure logging."""
    reset_logging()
    yield
    reset_logging()
