"""
Pytest configuration for portal tests.

Environment variables are set at module level (not in pytest_configure) so
they are in place before any application module is imported during
collection.
"""

import os

os.environ["ENV"] = "TEST"
os.environ["DISABLE_RATE_LIMITS"] = "1"
os.environ["SUPABASE_URL"] = "http://backend.test"
os.environ["SUPABASE_ANON_KEY"] = "test-anon-key"
os.environ["SUPABASE_SERVICE_ROLE_KEY"] = "test-service-role-key"
os.environ["SUPABASE_JWT_SECRET"] = "test-jwt-secret-for-portal-tests-only"
os.environ.pop("DATABASE_URL", None)

import pytest

from firstprinciples.app.services.view_cache import get_view_cache
from firstprinciples.tests.test_helpers import seeded_backend


@pytest.fixture(autouse=True)
def clear_view_cache():
    """Rendered views must not leak between tests."""
    get_view_cache().clear()
    yield
    get_view_cache().clear()


@pytest.fixture
def backend():
    return seeded_backend()
