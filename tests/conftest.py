"""
Pytest configuration and shared fixtures for VinciUI tests.

This module provides common fixtures used across all test files:
- Environment with a test JWT secret and Gemini key, no database
- Test client bound to in-memory stores
- Mock Sentry SDK
"""

import os
import sys
from unittest.mock import MagicMock, patch

import pytest

# Environment setup before any imports
os.environ["ENVIRONMENT"] = "test"
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["SUPABASE_JWT_SECRET"] = "test-supabase-jwt-secret-for-unit-tests-only"
# Tests mock every Gemini call; the key only satisfies configuration checks
os.environ["GEMINI_API_KEY"] = "test-gemini-key-for-unit-tests-only"
os.environ.pop("DATABASE_URL", None)
os.environ.pop("SENTRY_DSN", None)

# Ensure project root and this directory are in path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))
sys.path.insert(0, os.path.abspath(os.path.dirname(__file__)))


@pytest.fixture
def client():
    """FastAPI test client with the lifespan (in-memory stores) running."""
    from fastapi.testclient import TestClient
    from server import app

    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def mock_sentry():
    """Mock Sentry SDK."""
    with patch("sentry_sdk.capture_exception") as capture_mock, \
         patch("sentry_sdk.get_client") as client_mock:
        mock_client = MagicMock()
        mock_client.is_active.return_value = True
        client_mock.return_value = mock_client
        yield {"capture": capture_mock, "client": client_mock}


# Test environment cleanup
@pytest.fixture(autouse=True)
def reset_environment():
    """Reset environment variables after each test."""
    original_env = os.environ.copy()
    yield
    os.environ.clear()
    os.environ.update(original_env)
