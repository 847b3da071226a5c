"""Baseline: portal schema with row-level policies

Revision ID: b7c2e91f4a10
Revises:
Create Date: 2026-10-17 00:00:00.000000

Creates the portal schema:
- organizations, profiles (one per auth user, org_id required)
- cases, reviews, case_results
- notifications, audit_logs, user_provisioning_events

On PostgreSQL this also creates the enum types, the SECURITY DEFINER helper
functions and the row-level policies from firstprinciples.app.db.policies.
The policy set is checked for recursion before any statement is emitted.
On SQLite enum and array columns are stored as text and JSON, and no
policies are created.
"""

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from firstprinciples.app.db.policies import (
    ALL_POLICIES,
    HELPER_FUNCTIONS,
    render_drop_policy_sql,
    render_policies_sql,
)
from firstprinciples.app.models.database import (
    BINARY_QUESTION_KEYS,
    AnatomyRegion,
    CaseStatus,
    FinalClass,
    NotificationType,
    OrganizationType,
    PreferredApproach,
    ReviewStatus,
    UserRole,
)

# revision identifiers, used by Alembic.
revision = "b7c2e91f4a10"
down_revision = None
branch_labels = None
depends_on = None

ENUM_TYPES = {
    "organization_type": OrganizationType,
    "user_role": UserRole,
    "case_status": CaseStatus,
    "anatomy_region": AnatomyRegion,
    "preferred_approach": PreferredApproach,
    "review_status": ReviewStatus,
    "final_class": FinalClass,
    "notification_type": NotificationType,
}

TABLES = [
    "user_provisioning_events",
    "audit_logs",
    "notifications",
    "case_results",
    "reviews",
    "cases",
    "profiles",
    "organizations",
]


def _is_postgres() -> bool:
    return op.get_bind().dialect.name == "postgresql"


def _enum(name: str):
    if _is_postgres():
        return postgresql.ENUM(name=name, create_type=False)
    return sa.Text


def _uuid():
    return postgresql.UUID(as_uuid=False) if _is_postgres() else sa.Text


def _text_array():
    return postgresql.ARRAY(sa.Text) if _is_postgres() else sa.JSON


def _json():
    return postgresql.JSONB if _is_postgres() else sa.JSON


def _id_column() -> sa.Column:
    default = sa.text("gen_random_uuid()") if _is_postgres() else None
    return sa.Column("id", _uuid(), primary_key=True, server_default=default)


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    postgres = _is_postgres()

    if postgres:
        for type_name, enum_cls in ENUM_TYPES.items():
            values = ", ".join(f"'{member.value}'" for member in enum_cls)
            op.execute(f"CREATE TYPE public.{type_name} AS ENUM ({values})")

    # ========================================================================
    # ORGANIZATIONS AND PROFILES
    # ========================================================================

    op.create_table(
        "organizations",
        _id_column(),
        sa.Column("name", sa.Text, nullable=False),
        sa.Column("type", _enum("organization_type"), nullable=False),
        sa.Column("region", sa.Text, nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "profiles",
        sa.Column("id", _uuid(), primary_key=True),
        sa.Column("org_id", _uuid(), sa.ForeignKey("organizations.id"), nullable=False),
        sa.Column("email", sa.Text, nullable=False, unique=True),
        sa.Column("name", sa.Text, nullable=False),
        sa.Column("role", _enum("user_role"), nullable=False),
        sa.Column("npi_number", sa.Text, nullable=True),
        sa.Column("specialties", _text_array(), nullable=True),
        sa.Column("is_expert_certified", sa.Boolean, nullable=False, server_default=sa.false()),
        *_timestamps(),
    )
    op.create_index("idx_profiles_org", "profiles", ["org_id"])

    # ========================================================================
    # CASES AND REVIEWS
    # ========================================================================

    op.create_table(
        "cases",
        _id_column(),
        sa.Column("org_id", _uuid(), sa.ForeignKey("organizations.id"), nullable=False),
        sa.Column("submitter_id", _uuid(), sa.ForeignKey("profiles.id"), nullable=False),
        sa.Column("status", _enum("case_status"), nullable=False, server_default="DRAFT"),
        sa.Column("patient_pseudo_id", sa.Text, nullable=False),
        sa.Column("anatomy_region", _enum("anatomy_region"), nullable=False),
        sa.Column("diagnosis_codes", _text_array(), nullable=True),
        sa.Column("proposed_procedure_codes", _text_array(), nullable=True),
        sa.Column("prior_surgery", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("free_text_summary", sa.Text, nullable=True),
        sa.Column("clinical_data", _json(), nullable=True),
        sa.Column("imaging_paths", _text_array(), nullable=True),
        sa.Column("submitted_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("idx_cases_org", "cases", ["org_id"])
    op.create_index("idx_cases_submitter", "cases", ["submitter_id"])

    op.create_table(
        "reviews",
        _id_column(),
        sa.Column("case_id", _uuid(), sa.ForeignKey("cases.id"), nullable=False),
        sa.Column("reviewer_id", _uuid(), sa.ForeignKey("profiles.id"), nullable=False),
        sa.Column("status", _enum("review_status"), nullable=False, server_default="ASSIGNED"),
        sa.Column("surgery_indicated", sa.Boolean, nullable=True),
        sa.Column("fusion_indicated", sa.Boolean, nullable=True),
        sa.Column("preferred_approach", _enum("preferred_approach"), nullable=True),
        sa.Column("appropriateness_score", sa.Integer, nullable=True),
        sa.Column("necessity_score", sa.Integer, nullable=True),
        sa.Column("comments", sa.Text, nullable=True),
        sa.Column("info_deficiencies", sa.Text, nullable=True),
        *[sa.Column(question, sa.Boolean, nullable=True) for question in BINARY_QUESTION_KEYS],
        *_timestamps(),
        sa.UniqueConstraint("case_id", "reviewer_id", name="uq_reviews_case_reviewer"),
    )
    op.create_index("idx_reviews_reviewer", "reviews", ["reviewer_id"])

    op.create_table(
        "case_results",
        _id_column(),
        sa.Column("case_id", _uuid(), sa.ForeignKey("cases.id"), nullable=False, unique=True),
        sa.Column("final_class", _enum("final_class"), nullable=False),
        sa.Column("mean_score", sa.Float, nullable=True),
        sa.Column("score_std_dev", sa.Float, nullable=True),
        sa.Column("num_reviews", sa.Integer, nullable=True),
        sa.Column("percent_agreed_with_proposed", sa.Float, nullable=True),
        sa.Column("percent_recommended_alternative", sa.Float, nullable=True),
        sa.Column("generated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    # ========================================================================
    # NOTIFICATIONS AND AUDIT
    # ========================================================================

    op.create_table(
        "notifications",
        _id_column(),
        sa.Column("user_id", _uuid(), sa.ForeignKey("profiles.id"), nullable=False),
        sa.Column("type", _enum("notification_type"), nullable=False),
        sa.Column("payload", _json(), nullable=True),
        sa.Column("is_read", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("read_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("idx_notifications_user_unread", "notifications", ["user_id", "is_read"])

    op.create_table(
        "audit_logs",
        _id_column(),
        sa.Column("actor_user_id", _uuid(), nullable=True),
        sa.Column("org_id", _uuid(), nullable=True),
        sa.Column("action_type", sa.Text, nullable=False),
        sa.Column("target_type", sa.Text, nullable=False),
        sa.Column("target_id", sa.Text, nullable=False),
        sa.Column("metadata", _json(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )
    op.create_index("idx_audit_logs_org", "audit_logs", ["org_id"])

    op.create_table(
        "user_provisioning_events",
        _id_column(),
        sa.Column("created_by", _uuid(), sa.ForeignKey("profiles.id"), nullable=False),
        sa.Column("new_user_id", _uuid(), nullable=False),
        sa.Column("name", sa.Text, nullable=False),
        sa.Column("role", _enum("user_role"), nullable=False),
        sa.Column("generated_email", sa.Text, nullable=False),
        sa.Column("password_hint", sa.Text, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    )

    # ========================================================================
    # ROW-LEVEL POLICIES (PostgreSQL only)
    # ========================================================================

    if postgres:
        for statement in render_policies_sql():
            op.execute(statement)


def downgrade() -> None:
    postgres = _is_postgres()

    if postgres:
        for policy in ALL_POLICIES:
            op.execute(render_drop_policy_sql(policy))
        for fn in HELPER_FUNCTIONS:
            op.execute(f"DROP FUNCTION IF EXISTS {fn.name}()")

    for table in TABLES:
        op.drop_table(table)

    if postgres:
        for type_name in ENUM_TYPES:
            op.execute(f"DROP TYPE IF EXISTS public.{type_name}")
