"""
Pydantic models for the First Principles portal.
"""

from firstprinciples.app.models.database import (
    AggregationStatus,
    AnatomyRegion,
    CaseStatus,
    ConcordanceTier,
    FinalClass,
    NotificationType,
    Organization,
    OrganizationType,
    PreferredApproach,
    Profile,
    ProfileWithOrg,
    ReviewStatus,
    UserRole,
)
from firstprinciples.app.models.imaging import DecodeConfig, ImageLoaderConfig

__all__ = [
    "AggregationStatus",
    "AnatomyRegion",
    "CaseStatus",
    "ConcordanceTier",
    "DecodeConfig",
    "FinalClass",
    "ImageLoaderConfig",
    "NotificationType",
    "Organization",
    "OrganizationType",
    "PreferredApproach",
    "Profile",
    "ProfileWithOrg",
    "ReviewStatus",
    "UserRole",
]
