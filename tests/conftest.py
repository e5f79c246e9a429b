"""Pytest configuration and fixtures."""

import os
from collections.abc import Generator
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from tests.helpers import TEST_SIGNING_KEY_JWK, make_response

# Set test environment variables before importing application modules
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_SECRET_KEY", "test-secret-key")
os.environ["SUPABASE_SIGNING_KEY_JWK"] = TEST_SIGNING_KEY_JWK
os.environ.setdefault("OPENROUTER_API_KEY", "sk-or-test-key")
os.environ.setdefault("LIFECYCLE_RESUME_ON_STARTUP", "false")
os.environ.setdefault("LIFECYCLE_RETRY_BACKOFF_SECONDS", "0")


@pytest.fixture(scope="session")
def test_settings() -> Generator[Any, None, None]:
    """Provide test settings with cleared cache."""
    from sage.core.config import get_settings

    get_settings.cache_clear()
    settings = get_settings()
    yield settings
    get_settings.cache_clear()


@pytest.fixture
def mock_supabase_client() -> Generator[MagicMock, None, None]:
    """Provide a mocked Supabase client for code that reads it from sage.core.supabase."""
    mock_client = MagicMock()
    mock_client.table.return_value.select.return_value.limit.return_value.execute.return_value = (
        make_response([])
    )

    with patch("sage.core.supabase.get_supabase_client", return_value=mock_client):
        yield mock_client


@pytest.fixture
def app_client() -> Generator[Any, None, None]:
    """Provide a test client whose lifecycle dispatcher is a mock.

    Yields:
        tuple: (TestClient, mocked dispatcher)
    """
    from fastapi.testclient import TestClient

    from sage.main import app
    from sage.services.lifecycle_dispatcher import get_lifecycle_dispatcher

    dispatcher = MagicMock()
    dispatcher.is_running = True
    app.dependency_overrides[get_lifecycle_dispatcher] = lambda: dispatcher

    with (
        patch("sage.main.init_lifecycle_dispatcher", new_callable=AsyncMock),
        patch("sage.main.shutdown_lifecycle_dispatcher", new_callable=AsyncMock),
    ):
        with TestClient(app) as client:
            yield client, dispatcher

    app.dependency_overrides.clear()
