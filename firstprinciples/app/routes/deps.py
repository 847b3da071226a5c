"""
Shared route dependencies.

Backend clients are built per request from the verified identity. Tests
replace get_backend_transport() through ``app.dependency_overrides`` to
route every backend call to an in-memory fake.
"""

import uuid
from typing import Any, Dict, Optional

import requests
from fastapi import Depends, HTTPException, status
from slowapi import Limiter
from slowapi.util import get_remote_address

from firstprinciples.app.config import ConfigurationError, rate_limits_disabled
from firstprinciples.app.db.admin import create_service_role_client
from firstprinciples.app.db.client import BackendClient
from firstprinciples.app.db.server import create_session_client
from firstprinciples.app.security.auth import Identity, get_current_identity
from firstprinciples.app.services.admin_actions import (
    ActionResult,
    ActionStatus,
    AdminActions,
    NotificationActions,
)
from firstprinciples.app.services.view_cache import get_view_cache

ACTION_STATUS_CODES = {
    ActionStatus.SUCCESS: status.HTTP_200_OK,
    ActionStatus.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ActionStatus.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ActionStatus.BACKEND_ERROR: status.HTTP_502_BAD_GATEWAY,
    ActionStatus.UNAUTHENTICATED: status.HTTP_401_UNAUTHORIZED,
    ActionStatus.INVALID: status.HTTP_422_UNPROCESSABLE_ENTITY,
}


def get_route_limiter() -> Limiter:
    """Create a rate limiter that is disabled under ENV=TEST or DISABLE_RATE_LIMITS=1."""
    if rate_limits_disabled():
        return Limiter(key_func=lambda: str(uuid.uuid4()), enabled=False)
    return Limiter(key_func=get_remote_address)


def _configuration_error(e: ConfigurationError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={"error": "configuration_error", "message": str(e)},
    )


def get_backend_transport() -> Optional[requests.Session]:
    """HTTP session for backend calls; None means a fresh requests.Session per client."""
    return None


def get_session_client(
    identity: Identity = Depends(get_current_identity),
    transport: Optional[requests.Session] = Depends(get_backend_transport),
) -> BackendClient:
    """Backend client acting as the caller (row-level policies apply)."""
    try:
        return create_session_client(access_token=identity.access_token, session=transport)
    except ConfigurationError as e:
        raise _configuration_error(e)


def get_admin_actions(
    transport: Optional[requests.Session] = Depends(get_backend_transport),
) -> AdminActions:
    try:
        admin_client = create_service_role_client(session=transport)
    except ConfigurationError as e:
        raise _configuration_error(e)
    return AdminActions(admin_client, get_view_cache())


def get_notification_actions(client: BackendClient = Depends(get_session_client)) -> NotificationActions:
    return NotificationActions(client, get_view_cache())


def action_response(result: ActionResult) -> Dict[str, Any]:
    """
    Convert an ActionResult into a response body.

    Raises:
        HTTPException: With the status mapped from a failed result
    """
    if result.ok:
        return {"success": True, **result.data}
    raise HTTPException(
        status_code=ACTION_STATUS_CODES[result.status],
        detail={"error": result.status.value, "message": result.error},
    )
