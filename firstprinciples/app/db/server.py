"""
Request-scoped backend clients.

These clients use the publishable key, so every table request is evaluated
against the row-level policies for the bearer identity.
"""

from typing import Optional

import requests

from firstprinciples.app.config import get_session_client_config
from firstprinciples.app.db.client import BackendClient


def create_session_client(
    access_token: Optional[str] = None,
    session: Optional[requests.Session] = None,
) -> BackendClient:
    """
    Create a client acting as an end user.

    Args:
        access_token: The user's access token. When omitted the client is
            anonymous until sign_in_with_password() stores a session.
        session: Optional HTTP session (tests inject a fake transport)

    Raises:
        ConfigurationError: If SUPABASE_URL or SUPABASE_ANON_KEY is missing
    """
    url, anon_key = get_session_client_config()
    return BackendClient(
        url,
        anon_key,
        access_token=access_token,
        persist_session=True,
        session=session,
    )
