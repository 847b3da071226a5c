"""
Status formatting for badges.

Maps case status, review status and final classification values to a badge
variant and a display label. The mapping is total over every enum member;
the check at the bottom of this module refuses to import if a member is
added without a variant.
"""

import re
from enum import Enum
from typing import Any, Dict, Tuple, Union

from firstprinciples.app.models.database import CaseStatus, FinalClass, ReviewStatus


class BadgeVariant(str, Enum):
    DEFAULT = "default"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"
    INFO = "info"
    PURPLE = "purple"
    TEAL = "teal"


StatusValue = Union[str, Enum]

CASE_STATUS_VARIANTS: Dict[CaseStatus, BadgeVariant] = {
    CaseStatus.DRAFT: BadgeVariant.DEFAULT,
    CaseStatus.SUBMITTED: BadgeVariant.INFO,
    CaseStatus.UNDER_REVIEW: BadgeVariant.WARNING,
    CaseStatus.COMPLETED: BadgeVariant.SUCCESS,
    CaseStatus.FAILED: BadgeVariant.ERROR,
    CaseStatus.SCORED_FINAL: BadgeVariant.TEAL,
}

REVIEW_STATUS_VARIANTS: Dict[ReviewStatus, BadgeVariant] = {
    ReviewStatus.ASSIGNED: BadgeVariant.INFO,
    ReviewStatus.IN_PROGRESS: BadgeVariant.WARNING,
    ReviewStatus.SUBMITTED: BadgeVariant.INFO,
    ReviewStatus.EXPIRED: BadgeVariant.ERROR,
    ReviewStatus.STOPPED_INSUFFICIENT_DATA: BadgeVariant.PURPLE,
}

FINAL_CLASS_VARIANTS: Dict[FinalClass, BadgeVariant] = {
    FinalClass.APPROPRIATE: BadgeVariant.SUCCESS,
    FinalClass.UNCERTAIN: BadgeVariant.WARNING,
    FinalClass.INAPPROPRIATE: BadgeVariant.ERROR,
}

# Case and review statuses share the SUBMITTED literal; both map to INFO.
_STATUS_BY_VALUE: Dict[str, BadgeVariant] = {
    **{status.value: variant for status, variant in CASE_STATUS_VARIANTS.items()},
    **{status.value: variant for status, variant in REVIEW_STATUS_VARIANTS.items()},
}
_RESULT_BY_VALUE: Dict[str, BadgeVariant] = {
    final_class.value: variant for final_class, variant in FINAL_CLASS_VARIANTS.items()
}


def _raw(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, Enum):
        return str(value.value)
    return str(value)


def get_status_badge_variant(status: StatusValue) -> BadgeVariant:
    """Badge variant for a case or review status. Unknown values get DEFAULT."""
    return _STATUS_BY_VALUE.get(_raw(status), BadgeVariant.DEFAULT)


def get_result_badge_variant(final_class: StatusValue) -> BadgeVariant:
    """Badge variant for a final classification. Unknown values get DEFAULT."""
    return _RESULT_BY_VALUE.get(_raw(final_class), BadgeVariant.DEFAULT)


def format_status(status: StatusValue) -> str:
    """
    Format a status for display.

    >>> format_status("UNDER_REVIEW")
    'Under Review'
    """
    text = _raw(status).replace("_", " ").lower()
    return re.sub(r"\b\w", lambda m: m.group(0).upper(), text)


def format_final_class(final_class: StatusValue) -> str:
    """
    Format a final classification for display.

    >>> format_final_class("APPROPRIATE")
    'Appropriate'
    """
    text = _raw(final_class)
    if not text:
        return ""
    return text[0].upper() + text[1:].lower()


def describe_status(value: StatusValue) -> Tuple[BadgeVariant, str]:
    """
    Return (variant, label) for any status or classification value.

    Final classifications use the result mapping; everything else uses the
    status mapping.
    """
    raw = _raw(value)
    if raw in _RESULT_BY_VALUE:
        return _RESULT_BY_VALUE[raw], format_final_class(raw)
    return get_status_badge_variant(raw), format_status(raw)


def _check_mappings_total() -> None:
    for enum_cls, mapping in (
        (CaseStatus, CASE_STATUS_VARIANTS),
        (ReviewStatus, REVIEW_STATUS_VARIANTS),
        (FinalClass, FINAL_CLASS_VARIANTS),
    ):
        missing = [member.value for member in enum_cls if member not in mapping]
        if missing:
            raise RuntimeError(f"No badge variant for {enum_cls.__name__} values: {missing}")


_check_mappings_total()
