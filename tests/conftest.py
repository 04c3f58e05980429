"""Pytest configuration and fixtures."""

import os

import pytest

# Set before any engine module builds its loggers or cached settings
os.environ["ANTHROPIC_API_KEY"] = "test-anthropic-key"
os.environ["OPENAI_API_KEY"] = "test-openai-key"
os.environ["ENGINE_ENV"] = "test"
os.environ["EMBEDDINGS_ENABLED"] = "false"


@pytest.fixture(scope="session", autouse=True)
def setup_test_env():
    """Reset cached settings so every test sees the test environment."""
    from consistency_engine.core.config import get_settings

    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings():
    """Fresh settings with fast debounce for controller tests."""
    from consistency_engine.core.config import Settings

    return Settings(SUGGESTION_DEBOUNCE_SECONDS=0.01)
