"""
Server-rendered admin pages.

The user management page is cached per organization and viewer role in the
global ViewCache. Admin actions revalidate ADMIN_USERS_PATH after every
mutation, so the next request renders fresh rows.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import HTMLResponse

from firstprinciples.app.db.client import BackendClient
from firstprinciples.app.db.errors import BackendError
from firstprinciples.app.models.database import UserRole
from firstprinciples.app.routes.deps import get_route_limiter, get_session_client
from firstprinciples.app.routes.me import resolve_profile_context
from firstprinciples.app.security.auth import Identity, get_current_identity
from firstprinciples.app.services.admin_actions import ADMIN_USERS_PATH
from firstprinciples.app.services.status import format_status
from firstprinciples.app.services.view_cache import get_view_cache
from firstprinciples.app.ui.components import render_admin_users_page

logger = logging.getLogger(__name__)

router = APIRouter(tags=["views"])

limiter = get_route_limiter()


def role_options(viewer_role: UserRole):
    """Roles the viewer may assign; org admins never see SYS_ADMIN."""
    roles = [role for role in UserRole if viewer_role == UserRole.SYS_ADMIN or role != UserRole.SYS_ADMIN]
    return [(role.value, format_status(role.value)) for role in roles]


@router.get(ADMIN_USERS_PATH, response_class=HTMLResponse)
@limiter.limit("60/minute")
def admin_users_page(
    request: Request,
    identity: Identity = Depends(get_current_identity),
    client: BackendClient = Depends(get_session_client),
):
    context = resolve_profile_context(client, identity)
    if not context.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={"error": "forbidden", "message": "Admin access required"},
        )

    def render() -> str:
        try:
            result = (
                client.table("profiles")
                .select("id, name, email, role, is_expert_certified, org_id")
                .eq("org_id", context.org_id)
                .order("name")
                .execute()
            )
        except BackendError as e:
            logger.error("Could not list users for org %s: code=%s message=%s", context.org_id, e.code, e.message)
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail={"error": "backend_error", "message": "Backend request failed"},
            )
        return render_admin_users_page(context.organization.name, result.data or [], role_options(context.role))

    cache_key = f"{context.org_id}:{context.role.value}"
    return HTMLResponse(get_view_cache().get_or_render(ADMIN_USERS_PATH, cache_key, render))
