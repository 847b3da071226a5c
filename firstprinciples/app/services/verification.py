"""
Login verification protocol.

Runs the same sequence the portal performs when a user signs in, and records
the outcome of each step:

1. sign_in      password sign-in with the publishable key
2. session_user current user for the new session
3. profile      single-row lookup of the user's own profile
4. create       create-if-missing, only when step 3 found no row
5. organization lookup of the profile's organization

A 42P17 at any step means a row-level policy recursed. That is reported as
``recursion_detected`` and never treated as a missing profile.
"""

import logging
from typing import List, Optional

from pydantic import BaseModel, Field

from firstprinciples.app.db.client import BackendClient
from firstprinciples.app.db.errors import (
    POLICY_RECURSION_CODE,
    BackendError,
    NotFoundError,
)
from firstprinciples.app.models.database import Organization, Profile, UserRole
from firstprinciples.app.services.profile import (
    PROFILE_SETUP_REQUIRED,
    ProfileSetupRequired,
    insert_profile,
)

logger = logging.getLogger(__name__)


class StepResult(BaseModel):
    name: str
    ok: bool
    detail: str = ""
    error_code: Optional[str] = None


class VerificationReport(BaseModel):
    """Outcome of one run of the login protocol."""

    email: str
    steps: List[StepResult] = Field(default_factory=list)
    profile: Optional[Profile] = None
    organization: Optional[Organization] = None

    @property
    def ok(self) -> bool:
        return bool(self.steps) and all(step.ok for step in self.steps)

    @property
    def recursion_detected(self) -> bool:
        return any(step.error_code == POLICY_RECURSION_CODE for step in self.steps)

    @property
    def profile_setup_required(self) -> bool:
        """True when the user would land on the "Profile Setup Required" screen."""
        return not self.ok and self.profile is None and any(
            step.name in ("profile", "create") and not step.ok for step in self.steps
        )

    def failed_step(self) -> Optional[StepResult]:
        for step in self.steps:
            if not step.ok:
                return step
        return None

    def summary(self) -> str:
        if self.ok:
            org_name = self.organization.name if self.organization else "unknown organization"
            return f"Login verified for {self.email} ({org_name})"
        if self.recursion_detected:
            return (
                f"Infinite recursion detected in row-level policy ({POLICY_RECURSION_CODE}); "
                f"{self.email} would see '{PROFILE_SETUP_REQUIRED}'"
            )
        if self.profile_setup_required:
            return f"{self.email} would see '{PROFILE_SETUP_REQUIRED}'"
        failed = self.failed_step()
        return f"Login failed at step '{failed.name}': {failed.detail}" if failed else "No steps ran"


def _failure(name: str, error: BackendError) -> StepResult:
    return StepResult(name=name, ok=False, detail=error.message, error_code=error.code)


def run_login_flow(
    client: BackendClient,
    email: str,
    password: str,
    *,
    expected_role: Optional[UserRole] = None,
    create_if_missing: bool = True,
) -> VerificationReport:
    """
    Execute the login protocol against a live backend.

    Args:
        client: Client built with the publishable key (session persisted)
        email: Account email
        password: Account password
        expected_role: If given, the profile's role must match
        create_if_missing: Provision a profile when none exists

    Returns:
        VerificationReport; steps stop at the first failure
    """
    report = VerificationReport(email=email)

    try:
        session = client.auth.sign_in_with_password(email, password)
    except BackendError as e:
        report.steps.append(_failure("sign_in", e))
        return report
    report.steps.append(StepResult(name="sign_in", ok=True, detail=f"user id {session.user.id}"))

    try:
        user = client.auth.get_user()
    except BackendError as e:
        report.steps.append(_failure("session_user", e))
        return report
    report.steps.append(StepResult(name="session_user", ok=True, detail=user.email or user.id))

    profile: Optional[Profile] = None
    try:
        result = client.table("profiles").select("*").eq("id", user.id).single().execute()
        profile = Profile.model_validate(result.data)
        report.steps.append(StepResult(name="profile", ok=True, detail=profile.email))
    except NotFoundError as e:
        if not create_if_missing:
            report.steps.append(_failure("profile", e))
            return report
        report.steps.append(StepResult(name="profile", ok=True, detail="no profile row", error_code=e.code))
    except BackendError as e:
        if e.code == POLICY_RECURSION_CODE:
            logger.error("Profile lookup hit policy recursion for %s: %s", email, e.message)
        report.steps.append(_failure("profile", e))
        return report

    if profile is None:
        try:
            profile = insert_profile(client, user.id, email, user.user_metadata)
        except ProfileSetupRequired as e:
            report.steps.append(StepResult(name="create", ok=False, detail=e.reason))
            return report
        except BackendError as e:
            report.steps.append(_failure("create", e))
            return report
        report.steps.append(StepResult(name="create", ok=True, detail=f"created profile {profile.id}"))

    report.profile = profile

    if expected_role is not None and profile.role != expected_role:
        report.steps.append(
            StepResult(
                name="role",
                ok=False,
                detail=f"expected {expected_role.value}, got {profile.role.value}",
            )
        )
        return report

    try:
        result = client.table("organizations").select("*").eq("id", profile.org_id).single().execute()
    except BackendError as e:
        report.steps.append(_failure("organization", e))
        return report
    report.organization = Organization.model_validate(result.data)
    report.steps.append(StepResult(name="organization", ok=True, detail=report.organization.name))

    return report


__all__ = [
    "StepResult",
    "VerificationReport",
    "run_login_flow",
]
