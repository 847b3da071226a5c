"""
Privileged backend client.

The service-role key bypasses every row-level policy. This factory is only
called from server-side administrative code; no route accepts a key or
returns one, and the client never holds an end-user session.
"""

from typing import Optional

import requests

from firstprinciples.app.config import get_service_role_config
from firstprinciples.app.db.client import BackendClient


def create_service_role_client(session: Optional[requests.Session] = None) -> BackendClient:
    """
    Create a client authorised with the service-role key.

    Configuration is read and validated before the client exists, so a
    missing SUPABASE_URL or SUPABASE_SERVICE_ROLE_KEY fails here, before any
    network call.

    Args:
        session: Optional HTTP session (tests inject a fake transport)

    Returns:
        BackendClient that does not persist sessions

    Raises:
        ConfigurationError: If either configuration value is missing
    """
    url, service_key = get_service_role_config()
    return BackendClient(url, service_key, persist_session=False, session=session)
