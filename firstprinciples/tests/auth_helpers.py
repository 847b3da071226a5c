"""
Authentication helpers for route tests.
"""

from firstprinciples.tests.test_helpers import FakeBackend, user_id_for


def bearer_headers(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


def headers_for(backend: FakeBackend, email: str) -> dict:
    """
    Authorization headers for a seeded account.

    The token is registered with the fake backend, so requests the API
    forwards on the user's behalf are recognised.
    """
    return bearer_headers(backend.issue_token(user_id_for(backend, email)))
