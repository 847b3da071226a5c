"""
Current-user endpoint.

Resolves the signed-in user's profile and organization, creating the profile
on first sign-in. Every backend call is made with the caller's own access
token, so the profile lookup exercises the same row-level policies the rest
of the portal depends on.

Failure mapping:
- 409 profile_setup_required: no profile and none could be provisioned
- 500 policy_recursion: the backend reported 42P17 for a policy
- 404 organization_not_found: the profile's organization is not visible
- 401 invalid_session: the backend rejected the access token
- 502 backend_error: any other backend failure
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status

from firstprinciples.app.db.client import BackendClient
from firstprinciples.app.db.errors import (
    AuthenticationError,
    BackendError,
    NotFoundError,
    PolicyRecursionError,
)
from firstprinciples.app.models.database import ProfileWithOrg
from firstprinciples.app.routes.deps import get_route_limiter, get_session_client
from firstprinciples.app.security.auth import Identity, get_current_identity
from firstprinciples.app.services.profile import (
    PROFILE_SETUP_REQUIRED,
    ProfileSetupRequired,
    load_profile_context,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1", tags=["profile"])

limiter = get_route_limiter()


def resolve_profile_context(client: BackendClient, identity: Identity) -> ProfileWithOrg:
    """
    Load the caller's profile context, translating failures to HTTP errors.

    Raises:
        HTTPException: As listed in the module docstring
    """
    try:
        user = client.auth.get_user()
        context = load_profile_context(client, user)
    except ProfileSetupRequired as e:
        logger.warning("Profile setup required for %s: %s", identity.sub, e.reason)
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"error": "profile_setup_required", "message": PROFILE_SETUP_REQUIRED},
        )
    except PolicyRecursionError as e:
        logger.error("Row-level policy recursion while loading profile %s: %s", identity.sub, e.message)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "policy_recursion", "message": "Row-level policy recursion detected"},
        )
    except AuthenticationError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"error": "invalid_session", "message": e.message},
            headers={"WWW-Authenticate": "Bearer"},
        )
    except NotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "organization_not_found", "message": "Organization not found"},
        )
    except BackendError as e:
        logger.error("Backend error loading profile %s: code=%s message=%s", identity.sub, e.code, e.message)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={"error": "backend_error", "message": "Backend request failed"},
        )

    return context


@router.get("/me")
@limiter.limit("60/minute")
def read_current_user(
    request: Request,
    identity: Identity = Depends(get_current_identity),
    client: BackendClient = Depends(get_session_client),
):
    """Return the caller's profile with its organization."""
    return resolve_profile_context(client, identity).model_dump(mode="json")
