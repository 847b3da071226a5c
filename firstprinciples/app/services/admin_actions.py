"""
Administrative actions: role changes, certification, provisioning.

Each action follows the same sequence:
1. Load the acting user's profile (by the verified token subject)
2. Check the actor's role and organization scope
3. Load and validate the target
4. Perform exactly one mutation through the privileged client
5. Invalidate cached views that render the changed rows

Notification read-state changes are the exception: NotificationActions
runs as the caller and leaves scoping to row-level policies.

Expected failures are returned as an ActionResult with a status of
not_found, forbidden, backend_error, unauthenticated or invalid. Nothing
here raises for a failed check.

Scope rules:
- ORG_ADMIN acts only on profiles in its own organization, cannot assign
  SYS_ADMIN and cannot modify SYS_ADMIN users
- SYS_ADMIN is not scoped to an organization
- Only SYS_ADMIN manages organizations and cross-organization moves
"""

import logging
import re
import secrets
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from firstprinciples.app.config import get_provisioning_domain, get_site_url
from firstprinciples.app.db.client import BackendClient
from firstprinciples.app.db.errors import BackendError, NotFoundError
from firstprinciples.app.models.database import (
    ADMIN_ROLES,
    OrganizationType,
    UserRole,
)
from firstprinciples.app.services.view_cache import ViewCache, get_view_cache

logger = logging.getLogger(__name__)

ADMIN_USERS_PATH = "/admin/users"
ADMIN_ORGS_PATH = "/admin/orgs"
NOTIFICATIONS_PATH = "/notifications"

_EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


class ActionStatus(str, Enum):
    SUCCESS = "success"
    NOT_FOUND = "not_found"
    FORBIDDEN = "forbidden"
    BACKEND_ERROR = "backend_error"
    UNAUTHENTICATED = "unauthenticated"
    INVALID = "invalid"


class ActionResult(BaseModel):
    """Tagged outcome of an administrative action."""

    status: ActionStatus
    error: Optional[str] = None
    data: Dict[str, Any] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status == ActionStatus.SUCCESS

    @classmethod
    def success(cls, **data: Any) -> "ActionResult":
        return cls(status=ActionStatus.SUCCESS, data=data)

    @classmethod
    def failure(cls, status: ActionStatus, error: str) -> "ActionResult":
        return cls(status=status, error=error)


def slugify_name(name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", ".", name.strip().lower())
    slug = re.sub(r"\.+", ".", slug).strip(".")
    return slug or "user"


def generate_email(name: str, domain: Optional[str] = None) -> str:
    """Generate ``<slug>.<4 hex chars>@<domain>`` for a user without an email."""
    suffix = secrets.token_hex(2)
    return f"{slugify_name(name)}.{suffix}@{domain or get_provisioning_domain()}"


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _backend_failure(action: str, error: BackendError) -> ActionResult:
    logger.error(
        "%s failed: code=%s message=%s details=%s",
        action,
        error.code,
        error.message,
        error.details,
    )
    return ActionResult.failure(ActionStatus.BACKEND_ERROR, error.message)


class AdminActions:
    """
    Administrative command handlers.

    Args:
        admin_client: Privileged client (service-role key)
        view_cache: Cache to invalidate after mutations
    """

    def __init__(self, admin_client: BackendClient, view_cache: Optional[ViewCache] = None):
        self._admin = admin_client
        self._views = view_cache if view_cache is not None else get_view_cache()

    # ------------------------------------------------------------------
    # lookups
    # ------------------------------------------------------------------

    def _load_profile(self, profile_id: str, columns: str = "id, role, org_id") -> Optional[Dict[str, Any]]:
        try:
            return self._admin.table("profiles").select(columns).eq("id", profile_id).single().execute().data
        except NotFoundError:
            return None

    def _organization_exists(self, org_id: str) -> bool:
        try:
            self._admin.table("organizations").select("id").eq("id", org_id).single().execute()
        except NotFoundError:
            return False
        return True

    def _load_actor(self, actor_id: Optional[str]):
        """Return (actor_profile, failure_result)."""
        if not actor_id:
            return None, ActionResult.failure(ActionStatus.UNAUTHENTICATED, "Not authenticated")
        actor = self._load_profile(actor_id)
        if actor is None:
            return None, ActionResult.failure(ActionStatus.FORBIDDEN, "Profile not found")
        return actor, None

    @staticmethod
    def _is_admin(actor: Dict[str, Any]) -> bool:
        return actor.get("role") in {role.value for role in ADMIN_ROLES}

    # ------------------------------------------------------------------
    # user management
    # ------------------------------------------------------------------

    def update_user_role(self, actor_id: Optional[str], user_id: str, new_role: str) -> ActionResult:
        """Change a profile's role."""
        try:
            role = UserRole(new_role)
        except ValueError:
            return ActionResult.failure(ActionStatus.INVALID, f"Unknown role: {new_role}")

        try:
            actor, failure = self._load_actor(actor_id)
            if failure:
                return failure
            if not self._is_admin(actor):
                return ActionResult.failure(ActionStatus.FORBIDDEN, "Not authorized to update user roles")

            target = self._load_profile(user_id)
            if target is None:
                return ActionResult.failure(ActionStatus.NOT_FOUND, "Target user not found")

            if actor["role"] == UserRole.ORG_ADMIN.value:
                if target["org_id"] != actor["org_id"]:
                    return ActionResult.failure(
                        ActionStatus.FORBIDDEN, "Cannot modify users outside your organization"
                    )
                if role == UserRole.SYS_ADMIN:
                    return ActionResult.failure(ActionStatus.FORBIDDEN, "Cannot assign system admin role")
                if target["role"] == UserRole.SYS_ADMIN.value:
                    return ActionResult.failure(ActionStatus.FORBIDDEN, "Cannot modify system admin users")

            self._admin.table("profiles").update({"role": role.value}).eq("id", user_id).execute()
        except BackendError as e:
            return _backend_failure("update_user_role", e)

        logger.info("Role of %s changed to %s by %s", user_id, role.value, actor_id)
        self._views.revalidate_path(ADMIN_USERS_PATH)
        return ActionResult.success(user_id=user_id, role=role.value)

    def toggle_expert_certification(self, actor_id: Optional[str], user_id: str) -> ActionResult:
        """Flip a profile's expert-certification flag."""
        try:
            actor, failure = self._load_actor(actor_id)
            if failure:
                return failure
            if not self._is_admin(actor):
                return ActionResult.failure(
                    ActionStatus.FORBIDDEN, "Not authorized to update certification status"
                )

            target = self._load_profile(user_id, "id, is_expert_certified, org_id")
            if target is None:
                return ActionResult.failure(ActionStatus.NOT_FOUND, "Target user not found")

            if actor["role"] == UserRole.ORG_ADMIN.value and target["org_id"] != actor["org_id"]:
                return ActionResult.failure(
                    ActionStatus.FORBIDDEN, "Cannot modify users outside your organization"
                )

            certified = not bool(target.get("is_expert_certified"))
            self._admin.table("profiles").update({"is_expert_certified": certified}).eq("id", user_id).execute()
        except BackendError as e:
            return _backend_failure("toggle_expert_certification", e)

        logger.info("Certification of %s set to %s by %s", user_id, certified, actor_id)
        self._views.revalidate_path(ADMIN_USERS_PATH)
        return ActionResult.success(user_id=user_id, is_expert_certified=certified)

    def update_user_organization(self, actor_id: Optional[str], user_id: str, new_org_id: str) -> ActionResult:
        """Move a profile to another organization (SYS_ADMIN only)."""
        try:
            actor, failure = self._load_actor(actor_id)
            if failure:
                return failure
            if actor["role"] != UserRole.SYS_ADMIN.value:
                return ActionResult.failure(
                    ActionStatus.FORBIDDEN,
                    "Only system admins can reassign users to different organizations",
                )

            if not self._organization_exists(new_org_id):
                return ActionResult.failure(ActionStatus.NOT_FOUND, "Target organization not found")
            if self._load_profile(user_id) is None:
                return ActionResult.failure(ActionStatus.NOT_FOUND, "Target user not found")

            self._admin.table("profiles").update({"org_id": new_org_id}).eq("id", user_id).execute()
        except BackendError as e:
            return _backend_failure("update_user_organization", e)

        logger.info("User %s moved to organization %s by %s", user_id, new_org_id, actor_id)
        self._views.revalidate_path(ADMIN_USERS_PATH)
        return ActionResult.success(user_id=user_id, org_id=new_org_id)

    def quick_create_user(
        self,
        actor_id: Optional[str],
        name: str,
        role: str,
        email: Optional[str] = None,
    ) -> ActionResult:
        """
        Invite a new user and create their profile in the actor's organization.

        The auth user is invited first; if the profile insert then fails the
        invited auth user is deleted again.
        """
        trimmed_name = (name or "").strip()
        if not trimmed_name:
            return ActionResult.failure(ActionStatus.INVALID, "Name is required")

        provided_email = (email or "").strip()
        if provided_email and not _EMAIL_PATTERN.match(provided_email):
            return ActionResult.failure(ActionStatus.INVALID, "Please enter a valid email address")

        try:
            new_role = UserRole(role)
        except ValueError:
            return ActionResult.failure(ActionStatus.INVALID, f"Unknown role: {role}")

        try:
            actor, failure = self._load_actor(actor_id)
            if failure:
                return failure
            if not actor.get("org_id"):
                return ActionResult.failure(
                    ActionStatus.FORBIDDEN, "Your profile is missing an organization assignment"
                )
            if not self._is_admin(actor):
                return ActionResult.failure(ActionStatus.FORBIDDEN, "Not authorized to create users")
            if actor["role"] == UserRole.ORG_ADMIN.value and new_role == UserRole.SYS_ADMIN:
                return ActionResult.failure(ActionStatus.FORBIDDEN, "Cannot create system admin users")

            target_email = provided_email or generate_email(trimmed_name)
            invited = self._admin.auth.admin.invite_user_by_email(
                target_email,
                data={"name": trimmed_name},
                redirect_to=f"{get_site_url()}/auth/complete-invite",
            )
        except BackendError as e:
            return _backend_failure("quick_create_user", e)

        profile_row = {
            "id": invited.id,
            "org_id": actor["org_id"],
            "email": target_email,
            "name": trimmed_name,
            "role": new_role.value,
            "is_expert_certified": False,
            "specialties": [],
        }
        try:
            self._admin.table("profiles").insert(profile_row).execute()
        except BackendError as e:
            logger.error("Error inserting profile for invited user %s: %s", invited.id, e.message)
            try:
                self._admin.auth.admin.delete_user(invited.id)
            except BackendError as cleanup_error:
                logger.error("Could not delete invited user %s: %s", invited.id, cleanup_error.message)
            return ActionResult.failure(ActionStatus.BACKEND_ERROR, "Failed to persist user profile")

        try:
            self._admin.table("user_provisioning_events").insert(
                {
                    "created_by": actor["id"],
                    "new_user_id": invited.id,
                    "name": trimmed_name,
                    "role": new_role.value,
                    "generated_email": target_email,
                    "password_hint": "Invite",
                }
            ).execute()
        except BackendError as e:
            logger.warning("Provisioning event for %s not recorded: %s", invited.id, e.message)

        self._views.revalidate_path(ADMIN_USERS_PATH)
        return ActionResult.success(user_id=invited.id, email=target_email, invite_sent=True)

    # ------------------------------------------------------------------
    # organization management
    # ------------------------------------------------------------------

    def create_organization(
        self,
        actor_id: Optional[str],
        name: str,
        org_type: str,
        region: Optional[str] = None,
    ) -> ActionResult:
        """Create an organization (SYS_ADMIN only)."""
        if not (name or "").strip():
            return ActionResult.failure(ActionStatus.INVALID, "Organization name is required")
        try:
            parsed_type = OrganizationType(org_type)
        except ValueError:
            return ActionResult.failure(ActionStatus.INVALID, f"Unknown organization type: {org_type}")

        try:
            actor, failure = self._load_actor(actor_id)
            if failure:
                return failure
            if actor["role"] != UserRole.SYS_ADMIN.value:
                return ActionResult.failure(ActionStatus.FORBIDDEN, "Only system admins can create organizations")

            result = (
                self._admin.table("organizations")
                .insert({"name": name.strip(), "type": parsed_type.value, "region": region or None})
                .select("id")
                .single()
                .execute()
            )
        except BackendError as e:
            return _backend_failure("create_organization", e)

        self._views.revalidate_path(ADMIN_ORGS_PATH)
        self._views.revalidate_path(ADMIN_USERS_PATH)
        return ActionResult.success(org_id=(result.data or {}).get("id"))

    def update_organization(
        self,
        actor_id: Optional[str],
        org_id: str,
        name: str,
        org_type: str,
        region: Optional[str] = None,
    ) -> ActionResult:
        """Update an organization's name, type and region (SYS_ADMIN only)."""
        if not (name or "").strip():
            return ActionResult.failure(ActionStatus.INVALID, "Organization name is required")
        try:
            parsed_type = OrganizationType(org_type)
        except ValueError:
            return ActionResult.failure(ActionStatus.INVALID, f"Unknown organization type: {org_type}")

        try:
            actor, failure = self._load_actor(actor_id)
            if failure:
                return failure
            if actor["role"] != UserRole.SYS_ADMIN.value:
                return ActionResult.failure(ActionStatus.FORBIDDEN, "Only system admins can update organizations")
            if not self._organization_exists(org_id):
                return ActionResult.failure(ActionStatus.NOT_FOUND, "Organization not found")

            self._admin.table("organizations").update(
                {"name": name.strip(), "type": parsed_type.value, "region": region or None}
            ).eq("id", org_id).execute()
        except BackendError as e:
            return _backend_failure("update_organization", e)

        self._views.revalidate_path(ADMIN_ORGS_PATH)
        self._views.revalidate_path(ADMIN_USERS_PATH)
        return ActionResult.success(org_id=org_id)


class NotificationActions:
    """
    Read-state changes on the caller's own notifications.

    Runs through the caller's session client, so the notifications_update_own
    policy decides which rows an update can touch.

    Args:
        session_client: Client acting as the signed-in user
        view_cache: Cache to invalidate after mutations
    """

    def __init__(self, session_client: BackendClient, view_cache: Optional[ViewCache] = None):
        self._client = session_client
        self._views = view_cache if view_cache is not None else get_view_cache()

    def mark_notification_as_read(self, actor_id: Optional[str], notification_id: str) -> ActionResult:
        if not actor_id:
            return ActionResult.failure(ActionStatus.UNAUTHENTICATED, "Not authenticated")
        try:
            result = (
                self._client.table("notifications")
                .update({"is_read": True, "read_at": _utc_now()})
                .eq("id", notification_id)
                .eq("user_id", actor_id)
                .select("id")
                .execute()
            )
        except BackendError as e:
            return _backend_failure("mark_notification_as_read", e)

        # rows hidden by policy come back as an empty update
        if not result.data:
            return ActionResult.failure(ActionStatus.NOT_FOUND, "Notification not found")

        self._views.revalidate_path(NOTIFICATIONS_PATH)
        return ActionResult.success(notification_id=notification_id)

    def mark_all_notifications_as_read(self, actor_id: Optional[str]) -> ActionResult:
        """Mark every unread notification of the actor as read."""
        if not actor_id:
            return ActionResult.failure(ActionStatus.UNAUTHENTICATED, "Not authenticated")
        try:
            result = (
                self._client.table("notifications")
                .update({"is_read": True, "read_at": _utc_now()})
                .eq("user_id", actor_id)
                .eq("is_read", False)
                .select("id")
                .execute()
            )
        except BackendError as e:
            return _backend_failure("mark_all_notifications_as_read", e)

        self._views.revalidate_path(NOTIFICATIONS_PATH)
        return ActionResult.success(updated=len(result.data or []))
