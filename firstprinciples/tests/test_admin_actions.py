"""
Tests for administrative actions (role, certification, org moves,
provisioning, organizations).

Actions run against FakeBackend through the service-role client, so scope
checks are the ones AdminActions performs itself, not row-level policies.
"""

import re

import pytest

from firstprinciples.app.db.admin import create_service_role_client
from firstprinciples.app.services.admin_actions import (
    ADMIN_USERS_PATH,
    ActionStatus,
    AdminActions,
    generate_email,
    slugify_name,
)
from firstprinciples.app.services.view_cache import ViewCache
from firstprinciples.tests.test_helpers import ALPHA_ORG_ID, BETA_ORG_ID, user_id_for


@pytest.fixture
def views():
    return ViewCache()


@pytest.fixture
def actions(backend, views):
    return AdminActions(create_service_role_client(session=backend), view_cache=views)


def _ids(backend):
    return {email: user_id_for(backend, email) for email in (
        "sysadmin@demo.io",
        "admin@alphaspine.io",
        "admin@betahealth.io",
        "clinician1@alphaspine.io",
        "expert1@demo.io",
    )}


# ---------------------------------------------------------------------------
# role changes
# ---------------------------------------------------------------------------


def test_org_admin_changes_role_in_own_org(backend, actions, views):
    ids = _ids(backend)
    views.get_or_render(ADMIN_USERS_PATH, ALPHA_ORG_ID, lambda: "<old>")

    result = actions.update_user_role(ids["admin@alphaspine.io"], ids["clinician1@alphaspine.io"], "EXPERT_REVIEWER")

    assert result.ok
    assert result.data == {"user_id": ids["clinician1@alphaspine.io"], "role": "EXPERT_REVIEWER"}
    assert backend.profile(ids["clinician1@alphaspine.io"])["role"] == "EXPERT_REVIEWER"
    assert not views.is_cached(ADMIN_USERS_PATH, ALPHA_ORG_ID)


def test_org_admin_cannot_change_role_in_other_org(backend, actions):
    ids = _ids(backend)

    result = actions.update_user_role(ids["admin@alphaspine.io"], ids["expert1@demo.io"], "CLINICIAN")

    assert result.status == ActionStatus.FORBIDDEN
    assert result.error == "Cannot modify users outside your organization"
    assert backend.profile(ids["expert1@demo.io"])["role"] == "EXPERT_REVIEWER"


def test_org_admin_cannot_assign_sys_admin(backend, actions):
    ids = _ids(backend)

    result = actions.update_user_role(ids["admin@alphaspine.io"], ids["clinician1@alphaspine.io"], "SYS_ADMIN")

    assert result.status == ActionStatus.FORBIDDEN
    assert backend.profile(ids["clinician1@alphaspine.io"])["role"] == "CLINICIAN"


def test_org_admin_cannot_demote_sys_admin(backend, actions):
    ids = _ids(backend)

    result = actions.update_user_role(ids["admin@alphaspine.io"], ids["sysadmin@demo.io"], "CLINICIAN")

    assert result.status == ActionStatus.FORBIDDEN
    assert result.error == "Cannot modify system admin users"


def test_sys_admin_changes_role_across_orgs(backend, actions):
    ids = _ids(backend)

    result = actions.update_user_role(ids["sysadmin@demo.io"], ids["admin@betahealth.io"], "SYS_ADMIN")

    assert result.ok
    assert backend.profile(ids["admin@betahealth.io"])["role"] == "SYS_ADMIN"


def test_clinician_cannot_change_roles(backend, actions):
    ids = _ids(backend)

    result = actions.update_user_role(ids["clinician1@alphaspine.io"], ids["clinician1@alphaspine.io"], "ORG_ADMIN")

    assert result.status == ActionStatus.FORBIDDEN
    assert backend.profile(ids["clinician1@alphaspine.io"])["role"] == "CLINICIAN"


def test_unknown_role_is_invalid_without_backend_calls(backend, actions):
    ids = _ids(backend)

    result = actions.update_user_role(ids["sysadmin@demo.io"], ids["clinician1@alphaspine.io"], "SUPERUSER")

    assert result.status == ActionStatus.INVALID
    assert backend.calls == []


def test_missing_target_is_not_found(backend, actions):
    result = actions.update_user_role(_ids(backend)["sysadmin@demo.io"], "no-such-user", "CLINICIAN")

    assert result.status == ActionStatus.NOT_FOUND


def test_missing_actor_is_unauthenticated(actions):
    result = actions.update_user_role(None, "someone", "CLINICIAN")

    assert result.status == ActionStatus.UNAUTHENTICATED


def test_actor_without_profile_is_forbidden(backend, actions):
    orphan = backend.add_user("orphan@alphaspine.io")

    result = actions.update_user_role(orphan, _ids(backend)["clinician1@alphaspine.io"], "ORG_ADMIN")

    assert result.status == ActionStatus.FORBIDDEN
    assert result.error == "Profile not found"


def test_backend_failure_is_reported(backend, actions, views):
    ids = _ids(backend)
    views.get_or_render(ADMIN_USERS_PATH, ALPHA_ORG_ID, lambda: "<old>")
    backend.unavailable = True

    result = actions.update_user_role(ids["sysadmin@demo.io"], ids["clinician1@alphaspine.io"], "ORG_ADMIN")

    assert result.status == ActionStatus.BACKEND_ERROR
    assert views.is_cached(ADMIN_USERS_PATH, ALPHA_ORG_ID)


# ---------------------------------------------------------------------------
# certification and organization moves
# ---------------------------------------------------------------------------


def test_toggle_certification_flips_flag(backend, actions):
    ids = _ids(backend)
    target = ids["clinician1@alphaspine.io"]

    first = actions.toggle_expert_certification(ids["admin@alphaspine.io"], target)
    second = actions.toggle_expert_certification(ids["admin@alphaspine.io"], target)

    assert first.data["is_expert_certified"] is True
    assert second.data["is_expert_certified"] is False
    assert backend.profile(target)["is_expert_certified"] is False


def test_toggle_certification_scoped_to_org(backend, actions):
    ids = _ids(backend)

    result = actions.toggle_expert_certification(ids["admin@betahealth.io"], ids["clinician1@alphaspine.io"])

    assert result.status == ActionStatus.FORBIDDEN


def test_only_sys_admin_moves_users_between_orgs(backend, actions):
    ids = _ids(backend)
    target = ids["clinician1@alphaspine.io"]

    denied = actions.update_user_organization(ids["admin@alphaspine.io"], target, BETA_ORG_ID)
    moved = actions.update_user_organization(ids["sysadmin@demo.io"], target, BETA_ORG_ID)

    assert denied.status == ActionStatus.FORBIDDEN
    assert moved.ok
    assert backend.profile(target)["org_id"] == BETA_ORG_ID


def test_move_to_unknown_org_is_not_found(backend, actions):
    ids = _ids(backend)

    result = actions.update_user_organization(
        ids["sysadmin@demo.io"], ids["clinician1@alphaspine.io"], "cccccccc-cccc-cccc-cccc-cccccccccccc"
    )

    assert result.status == ActionStatus.NOT_FOUND
    assert result.error == "Target organization not found"


# ---------------------------------------------------------------------------
# provisioning
# ---------------------------------------------------------------------------


def test_slugify_and_generated_email():
    assert slugify_name("  Dr. Jane  O'Neil ") == "dr.jane.o.neil"
    assert slugify_name("!!!") == "user"
    assert re.match(r"^jane\.roe\.[0-9a-f]{4}@example\.org$", generate_email("Jane Roe", "example.org"))


def test_quick_create_user_invites_and_creates_profile(backend, actions, views):
    ids = _ids(backend)
    views.get_or_render(ADMIN_USERS_PATH, ALPHA_ORG_ID, lambda: "<old>")

    result = actions.quick_create_user(ids["admin@alphaspine.io"], "  New Clinician ", "CLINICIAN", "new@alphaspine.io")

    assert result.ok
    assert result.data["email"] == "new@alphaspine.io"
    assert result.data["invite_sent"] is True
    profile = backend.profile(result.data["user_id"])
    assert profile["org_id"] == ALPHA_ORG_ID
    assert profile["name"] == "New Clinician"
    assert profile["role"] == "CLINICIAN"
    event = backend.tables["user_provisioning_events"][-1]
    assert event["created_by"] == ids["admin@alphaspine.io"]
    assert event["generated_email"] == "new@alphaspine.io"
    assert not views.is_cached(ADMIN_USERS_PATH, ALPHA_ORG_ID)


def test_quick_create_user_generates_email(backend, actions):
    result = actions.quick_create_user(_ids(backend)["sysadmin@demo.io"], "Pat Smith", "EXPERT_REVIEWER")

    assert result.ok
    assert re.match(r"^pat\.smith\.[0-9a-f]{4}@firstprinciples\.local$", result.data["email"])


@pytest.mark.parametrize(
    "name,email,error",
    [
        ("   ", None, "Name is required"),
        ("Pat", "not-an-email", "Please enter a valid email address"),
    ],
)
def test_quick_create_user_validates_input(backend, actions, name, email, error):
    result = actions.quick_create_user(_ids(backend)["sysadmin@demo.io"], name, "CLINICIAN", email)

    assert result.status == ActionStatus.INVALID
    assert result.error == error
    assert backend.calls == []


def test_org_admin_cannot_create_sys_admin(backend, actions):
    result = actions.quick_create_user(_ids(backend)["admin@alphaspine.io"], "Root", "SYS_ADMIN", "root@alphaspine.io")

    assert result.status == ActionStatus.FORBIDDEN
    assert not any(call["path"] == "/auth/v1/invite" for call in backend.calls)


def test_quick_create_user_removes_invite_when_profile_insert_fails(backend, actions, monkeypatch):
    users_before = set(backend.users)
    backend.fail_tables["profiles"] = (403, {"code": "42501", "message": "permission denied for table profiles"})
    # actor lookup goes through profiles too, so fail only inserts
    actor = backend.profile(_ids(backend)["admin@alphaspine.io"])
    monkeypatch.setattr(actions, "_load_profile", lambda profile_id, columns="id, role, org_id": actor)

    result = actions.quick_create_user(actor["id"], "Sam Lee", "CLINICIAN", "sam@alphaspine.io")

    assert result.status == ActionStatus.BACKEND_ERROR
    assert result.error == "Failed to persist user profile"
    assert set(backend.users) == users_before
    assert any(call["method"] == "DELETE" for call in backend.calls)


def test_quick_create_user_with_existing_email_fails(backend, actions):
    result = actions.quick_create_user(
        _ids(backend)["admin@alphaspine.io"], "Dup", "CLINICIAN", "clinician1@alphaspine.io"
    )

    assert result.status == ActionStatus.BACKEND_ERROR


# ---------------------------------------------------------------------------
# organizations
# ---------------------------------------------------------------------------


def test_sys_admin_creates_and_updates_organization(backend, actions):
    sysadmin = _ids(backend)["sysadmin@demo.io"]

    created = actions.create_organization(sysadmin, " Gamma Clinic ", "private_practice", "West")
    assert created.ok
    org_id = created.data["org_id"]
    row = next(r for r in backend.tables["organizations"] if r["id"] == org_id)
    assert row["name"] == "Gamma Clinic"
    assert row["type"] == "private_practice"

    updated = actions.update_organization(sysadmin, org_id, "Gamma Spine Clinic", "hospital")
    assert updated.ok
    assert row["name"] == "Gamma Spine Clinic"
    assert row["region"] is None


def test_org_admin_cannot_manage_organizations(backend, actions):
    admin = _ids(backend)["admin@alphaspine.io"]

    assert actions.create_organization(admin, "Gamma", "hospital").status == ActionStatus.FORBIDDEN
    assert actions.update_organization(admin, ALPHA_ORG_ID, "Renamed", "hospital").status == ActionStatus.FORBIDDEN


def test_organization_type_is_validated(backend, actions):
    result = actions.create_organization(_ids(backend)["sysadmin@demo.io"], "Gamma", "castle")

    assert result.status == ActionStatus.INVALID


def test_update_unknown_organization_is_not_found(backend, actions):
    result = actions.update_organization(
        _ids(backend)["sysadmin@demo.io"], "cccccccc-cccc-cccc-cccc-cccccccccccc", "Gamma", "hospital"
    )

    assert result.status == ActionStatus.NOT_FOUND
