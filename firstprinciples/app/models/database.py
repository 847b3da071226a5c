"""
Row models mirroring the hosted backend schema.

The backend is authoritative for these shapes; the migration in
alembic/versions creates the same tables and enum types. Extra columns
returned by the backend are ignored when parsing.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class OrganizationType(str, Enum):
    HOSPITAL = "hospital"
    PRIVATE_PRACTICE = "private_practice"
    ACO = "aco"
    OTHER = "other"


class UserRole(str, Enum):
    CLINICIAN = "CLINICIAN"
    EXPERT_REVIEWER = "EXPERT_REVIEWER"
    ORG_ADMIN = "ORG_ADMIN"
    SYS_ADMIN = "SYS_ADMIN"


class CaseStatus(str, Enum):
    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    UNDER_REVIEW = "UNDER_REVIEW"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    SCORED_FINAL = "SCORED_FINAL"


class AnatomyRegion(str, Enum):
    LUMBAR = "LUMBAR"
    CERVICAL = "CERVICAL"
    THORACIC = "THORACIC"
    OTHER = "OTHER"


class PreferredApproach(str, Enum):
    DECOMPRESSION_ONLY = "DECOMPRESSION_ONLY"
    PLF = "PLF"
    TLIF = "TLIF"
    ALIF = "ALIF"
    OTHER = "OTHER"


class ReviewStatus(str, Enum):
    ASSIGNED = "ASSIGNED"
    IN_PROGRESS = "IN_PROGRESS"
    SUBMITTED = "SUBMITTED"
    EXPIRED = "EXPIRED"
    STOPPED_INSUFFICIENT_DATA = "STOPPED_INSUFFICIENT_DATA"


class FinalClass(str, Enum):
    APPROPRIATE = "APPROPRIATE"
    UNCERTAIN = "UNCERTAIN"
    INAPPROPRIATE = "INAPPROPRIATE"


class NotificationType(str, Enum):
    CASE_ASSIGNED = "CASE_ASSIGNED"
    CASE_RESULT_READY = "CASE_RESULT_READY"
    REVIEW_REMINDER = "REVIEW_REMINDER"
    SYSTEM_MESSAGE = "SYSTEM_MESSAGE"
    REVIEW_CLARIFICATION = "REVIEW_CLARIFICATION"
    CLARIFICATION_REQUEST = "CLARIFICATION_REQUEST"


class AggregationStatus(str, Enum):
    AWAITING_REVIEWS = "AWAITING_REVIEWS"
    NEEDS_MORE_INFO = "NEEDS_MORE_INFO"
    SCORED_PRIMARY = "SCORED_PRIMARY"
    SECONDARY_REVIEW_REQUIRED = "SECONDARY_REVIEW_REQUIRED"


class ConcordanceTier(str, Enum):
    HIGH = "HIGH"
    INTERMEDIATE = "INTERMEDIATE"
    LOW = "LOW"


ADMIN_ROLES = frozenset({UserRole.ORG_ADMIN, UserRole.SYS_ADMIN})

# Agree/disagree answers a reviewer gives on a case, in form order.
BINARY_QUESTION_KEYS = (
    "agree_justification",
    "agree_overall_plan_acceptable",
    "would_personally_prescribe",
    "agree_need_any_surgery_now",
    "benefit_from_more_nonsurgical_first",
    "agree_decompression_plan_acceptable",
    "agree_need_any_decompression_now",
    "agree_fusion_plan_acceptable",
    "agree_need_any_fusion_now",
)


class BackendRow(BaseModel):
    """Base for rows read from the backend."""

    model_config = ConfigDict(extra="ignore", use_enum_values=False)


def _null_to_empty_list(value: Any) -> Any:
    return [] if value is None else value


class Organization(BackendRow):
    id: str
    name: str
    type: OrganizationType = Field(default=OrganizationType.OTHER)
    region: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class Profile(BackendRow):
    """
    One profile per authenticated user.

    ``id`` equals the auth subject's id and ``org_id`` must reference an
    existing Organization.
    """

    id: str
    org_id: str
    email: str
    name: str
    role: UserRole
    npi_number: Optional[str] = None
    specialties: List[str] = Field(default_factory=list)
    is_expert_certified: bool = False
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    _specialties_list = field_validator("specialties", mode="before")(_null_to_empty_list)

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES


class ProfileWithOrg(Profile):
    organization: Organization


class Case(BackendRow):
    id: str
    org_id: str
    submitter_id: str
    status: CaseStatus
    patient_pseudo_id: str
    anatomy_region: AnatomyRegion
    diagnosis_codes: List[str] = Field(default_factory=list)
    proposed_procedure_codes: List[str] = Field(default_factory=list)
    prior_surgery: bool = False
    free_text_summary: Optional[str] = None
    clinical_data: Optional[Dict[str, Any]] = None
    imaging_paths: List[str] = Field(default_factory=list)
    submitted_at: Optional[str] = None
    completed_at: Optional[str] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None

    _array_lists = field_validator(
        "diagnosis_codes", "proposed_procedure_codes", "imaging_paths", mode="before"
    )(_null_to_empty_list)


class Review(BackendRow):
    id: str
    case_id: str
    reviewer_id: str
    status: ReviewStatus
    surgery_indicated: Optional[bool] = None
    fusion_indicated: Optional[bool] = None
    preferred_approach: Optional[PreferredApproach] = None
    appropriateness_score: Optional[int] = None
    necessity_score: Optional[int] = None
    comments: Optional[str] = None
    info_deficiencies: Optional[str] = None
    agree_justification: Optional[bool] = None
    agree_overall_plan_acceptable: Optional[bool] = None
    would_personally_prescribe: Optional[bool] = None
    agree_need_any_surgery_now: Optional[bool] = None
    benefit_from_more_nonsurgical_first: Optional[bool] = None
    agree_decompression_plan_acceptable: Optional[bool] = None
    agree_need_any_decompression_now: Optional[bool] = None
    agree_fusion_plan_acceptable: Optional[bool] = None
    agree_need_any_fusion_now: Optional[bool] = None
    created_at: Optional[str] = None
    updated_at: Optional[str] = None


class CaseResult(BackendRow):
    id: str
    case_id: str
    final_class: FinalClass
    mean_score: Optional[float] = None
    score_std_dev: Optional[float] = None
    num_reviews: Optional[int] = None
    percent_agreed_with_proposed: Optional[float] = None
    percent_recommended_alternative: Optional[float] = None
    generated_at: Optional[str] = None


class Notification(BackendRow):
    id: str
    user_id: str
    type: NotificationType
    payload: Dict[str, Any] = Field(default_factory=dict)
    is_read: bool = False
    created_at: Optional[str] = None
    read_at: Optional[str] = None


class AuditLog(BackendRow):
    id: str
    actor_user_id: Optional[str] = None
    org_id: Optional[str] = None
    action_type: str
    target_type: str
    target_id: str
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: Optional[str] = None
