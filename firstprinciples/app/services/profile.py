"""
Profile bootstrap for authenticated users.

A profile row is created the first time an authenticated user is seen
without one ("create if missing"). Only a genuine not-found result triggers
creation; a policy failure such as the 42P17 recursion error is raised to
the caller so it is never mistaken for a user who simply has no profile.
"""

import logging
import re
from typing import Any, Dict, Optional

from pydantic import BaseModel

from firstprinciples.app.db.client import AuthUser, BackendClient
from firstprinciples.app.db.errors import (
    BackendError,
    NotFoundError,
    PolicyRecursionError,
    UniqueViolationError,
)
from firstprinciples.app.models.database import (
    Organization,
    Profile,
    ProfileWithOrg,
    UserRole,
)

logger = logging.getLogger(__name__)

ALPHA_SPINE_ORG_ID = "aaaaaaaa-aaaa-aaaa-aaaa-aaaaaaaaaaaa"
BETA_HEALTH_ORG_ID = "bbbbbbbb-bbbb-bbbb-bbbb-bbbbbbbbbbbb"

PROFILE_SETUP_REQUIRED = "Profile Setup Required"

_EXPERT_EMAIL = re.compile(r"^expert\d+@demo\.io$")
_ALPHA_CLINICIAN_EMAIL = re.compile(r"^clinician\d*@alphaspine\.io$")
_BETA_CLINICIAN_EMAIL = re.compile(r"^clinician\d*@betahealth\.io$")


class ProfileSetupRequired(Exception):
    """No profile exists for the user and one could not be provisioned."""

    def __init__(self, reason: str):
        super().__init__(f"{PROFILE_SETUP_REQUIRED}: {reason}")
        self.reason = reason


class ProfileConfig(BaseModel):
    role: UserRole
    org_id: str
    is_expert_certified: bool


def get_profile_config_from_email(email: str) -> ProfileConfig:
    """
    Determine the role and organization for a new profile from its email.

    Matches the demo account conventions; any other address becomes a
    clinician at Alpha Spine.
    """
    lower = email.lower()

    if lower == "sysadmin@demo.io":
        return ProfileConfig(role=UserRole.SYS_ADMIN, org_id=ALPHA_SPINE_ORG_ID, is_expert_certified=False)
    if lower == "admin@alphaspine.io":
        return ProfileConfig(role=UserRole.ORG_ADMIN, org_id=ALPHA_SPINE_ORG_ID, is_expert_certified=False)
    if lower == "admin@betahealth.io":
        return ProfileConfig(role=UserRole.ORG_ADMIN, org_id=BETA_HEALTH_ORG_ID, is_expert_certified=False)
    if _EXPERT_EMAIL.match(lower):
        return ProfileConfig(role=UserRole.EXPERT_REVIEWER, org_id=BETA_HEALTH_ORG_ID, is_expert_certified=True)
    if _ALPHA_CLINICIAN_EMAIL.match(lower):
        return ProfileConfig(role=UserRole.CLINICIAN, org_id=ALPHA_SPINE_ORG_ID, is_expert_certified=False)
    if _BETA_CLINICIAN_EMAIL.match(lower):
        return ProfileConfig(role=UserRole.CLINICIAN, org_id=BETA_HEALTH_ORG_ID, is_expert_certified=False)

    return ProfileConfig(role=UserRole.CLINICIAN, org_id=ALPHA_SPINE_ORG_ID, is_expert_certified=False)


def get_user_display_name(email: str, user_metadata: Optional[Dict[str, Any]] = None) -> str:
    """
    Display name from user metadata, falling back to the email's local part.

    ``jane.doe@example.com`` becomes ``Jane Doe``.
    """
    if user_metadata and user_metadata.get("name"):
        return user_metadata["name"]

    local_part = email.split("@")[0]
    parts = re.split(r"[._-]", local_part)
    if len(parts) > 1:
        return " ".join(part[:1].upper() + part[1:] for part in parts)
    return local_part[:1].upper() + local_part[1:]


def _fetch_own_profile(client: BackendClient, user_id: str) -> Profile:
    result = client.table("profiles").select("*").eq("id", user_id).single().execute()
    return Profile.model_validate(result.data)


def create_profile_if_missing(
    client: BackendClient,
    user_id: str,
    email: str,
    user_metadata: Optional[Dict[str, Any]] = None,
) -> Profile:
    """
    Return the user's profile, creating it if the lookup finds no row.

    Args:
        client: Client acting as the user (row-level policies apply)
        user_id: Auth subject id; becomes the profile id
        email: User's email, used for role/org defaults and display name
        user_metadata: Auth metadata (``name`` overrides the derived name)

    Returns:
        Existing or newly created Profile

    Raises:
        PolicyRecursionError: If a row-level policy on profiles recurses
        ProfileSetupRequired: If no row exists and the insert is rejected
        BackendError: For any other lookup failure
    """
    try:
        return _fetch_own_profile(client, user_id)
    except NotFoundError:
        logger.info("No profile for user %s, creating one", user_id)

    return insert_profile(client, user_id, email, user_metadata)


def insert_profile(
    client: BackendClient,
    user_id: str,
    email: str,
    user_metadata: Optional[Dict[str, Any]] = None,
) -> Profile:
    """
    Insert the profile for a user already known to have none.

    A unique violation means the row was created concurrently and is
    answered with the existing row.

    Raises:
        PolicyRecursionError: If a row-level policy on profiles recurses
        ProfileSetupRequired: If the insert is rejected
    """
    config = get_profile_config_from_email(email)
    row = {
        "id": user_id,
        "org_id": config.org_id,
        "email": email,
        "name": get_user_display_name(email, user_metadata),
        "role": config.role.value,
        "is_expert_certified": config.is_expert_certified,
        "specialties": [],
    }

    try:
        result = client.table("profiles").insert(row).select("*").single().execute()
    except UniqueViolationError:
        # created concurrently since the lookup
        return _fetch_own_profile(client, user_id)
    except PolicyRecursionError:
        raise
    except BackendError as e:
        logger.error(
            "Failed to create profile: code=%s message=%s details=%s hint=%s",
            e.code,
            e.message,
            e.details,
            e.hint,
        )
        raise ProfileSetupRequired(e.message) from e

    if not result.data:
        raise ProfileSetupRequired("profile creation returned no data")

    return Profile.model_validate(result.data)


def load_profile_context(client: BackendClient, user: AuthUser) -> ProfileWithOrg:
    """
    Load (or provision) the user's profile and the organization it belongs to.

    Raises:
        ProfileSetupRequired: If the user has no email or provisioning fails
        NotFoundError: If the profile's organization is not visible
        BackendError: For policy or transport failures
    """
    if not user.email:
        raise ProfileSetupRequired("user has no email address")

    profile = create_profile_if_missing(client, user.id, user.email, user.user_metadata)

    result = client.table("organizations").select("*").eq("id", profile.org_id).single().execute()
    organization = Organization.model_validate(result.data)

    return ProfileWithOrg(**profile.model_dump(), organization=organization)
