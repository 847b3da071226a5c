"""
Administrative endpoints.

Thin wrappers over AdminActions. The acting user is always the verified
token subject; authorization and organization scoping happen in the action
itself, and its ActionResult is mapped to an HTTP status by
action_response().
"""

from typing import Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from firstprinciples.app.routes.deps import action_response, get_admin_actions, get_route_limiter
from firstprinciples.app.security.auth import Identity, get_current_identity
from firstprinciples.app.services.admin_actions import AdminActions

router = APIRouter(prefix="/v1/admin", tags=["admin"])

limiter = get_route_limiter()


class RoleUpdateRequest(BaseModel):
    role: str


class OrganizationMoveRequest(BaseModel):
    org_id: str


class QuickCreateUserRequest(BaseModel):
    name: str
    role: str
    email: Optional[str] = None


class OrganizationRequest(BaseModel):
    name: str
    type: str = Field(..., description="hospital, private_practice, aco or other")
    region: Optional[str] = None


@router.post("/users/{user_id}/role")
@limiter.limit("30/minute")
def update_user_role(
    request: Request,
    user_id: str,
    body: RoleUpdateRequest,
    identity: Identity = Depends(get_current_identity),
    actions: AdminActions = Depends(get_admin_actions),
):
    return action_response(actions.update_user_role(identity.sub, user_id, body.role))


@router.post("/users/{user_id}/certification")
@limiter.limit("30/minute")
def toggle_expert_certification(
    request: Request,
    user_id: str,
    identity: Identity = Depends(get_current_identity),
    actions: AdminActions = Depends(get_admin_actions),
):
    return action_response(actions.toggle_expert_certification(identity.sub, user_id))


@router.post("/users/{user_id}/organization")
@limiter.limit("30/minute")
def update_user_organization(
    request: Request,
    user_id: str,
    body: OrganizationMoveRequest,
    identity: Identity = Depends(get_current_identity),
    actions: AdminActions = Depends(get_admin_actions),
):
    return action_response(actions.update_user_organization(identity.sub, user_id, body.org_id))


@router.post("/users")
@limiter.limit("10/minute")
def quick_create_user(
    request: Request,
    body: QuickCreateUserRequest,
    identity: Identity = Depends(get_current_identity),
    actions: AdminActions = Depends(get_admin_actions),
):
    """Invite a user into the caller's organization."""
    return action_response(actions.quick_create_user(identity.sub, body.name, body.role, body.email))


@router.post("/orgs")
@limiter.limit("10/minute")
def create_organization(
    request: Request,
    body: OrganizationRequest,
    identity: Identity = Depends(get_current_identity),
    actions: AdminActions = Depends(get_admin_actions),
):
    return action_response(actions.create_organization(identity.sub, body.name, body.type, body.region))


@router.put("/orgs/{org_id}")
@limiter.limit("30/minute")
def update_organization(
    request: Request,
    org_id: str,
    body: OrganizationRequest,
    identity: Identity = Depends(get_current_identity),
    actions: AdminActions = Depends(get_admin_actions),
):
    return action_response(
        actions.update_organization(identity.sub, org_id, body.name, body.type, body.region)
    )
