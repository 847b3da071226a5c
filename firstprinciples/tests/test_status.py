"""
Tests for status badge mapping and display formatting.
"""

import pytest

from firstprinciples.app.models.database import CaseStatus, FinalClass, ReviewStatus
from firstprinciples.app.services.status import (
    BadgeVariant,
    describe_status,
    format_final_class,
    format_status,
    get_result_badge_variant,
    get_status_badge_variant,
)


@pytest.mark.parametrize(
    "status,variant",
    [
        ("DRAFT", BadgeVariant.DEFAULT),
        ("SUBMITTED", BadgeVariant.INFO),
        ("UNDER_REVIEW", BadgeVariant.WARNING),
        ("COMPLETED", BadgeVariant.SUCCESS),
        ("FAILED", BadgeVariant.ERROR),
        ("ASSIGNED", BadgeVariant.INFO),
        ("IN_PROGRESS", BadgeVariant.WARNING),
        ("EXPIRED", BadgeVariant.ERROR),
    ],
)
def test_status_variants(status, variant):
    assert get_status_badge_variant(status) == variant


def test_supplementary_statuses_have_variants():
    assert get_status_badge_variant(CaseStatus.SCORED_FINAL) == BadgeVariant.TEAL
    assert get_status_badge_variant(ReviewStatus.STOPPED_INSUFFICIENT_DATA) == BadgeVariant.PURPLE


def test_every_enum_member_is_mapped():
    for member in list(CaseStatus) + list(ReviewStatus):
        assert isinstance(get_status_badge_variant(member), BadgeVariant)
    for member in FinalClass:
        assert get_result_badge_variant(member) != BadgeVariant.DEFAULT


def test_unknown_values_fall_back_to_default():
    assert get_status_badge_variant("SOMETHING_NEW") == BadgeVariant.DEFAULT
    assert get_status_badge_variant("") == BadgeVariant.DEFAULT
    assert get_result_badge_variant("MAYBE") == BadgeVariant.DEFAULT


def test_result_variants():
    assert get_result_badge_variant("APPROPRIATE") == BadgeVariant.SUCCESS
    assert get_result_badge_variant("UNCERTAIN") == BadgeVariant.WARNING
    assert get_result_badge_variant("INAPPROPRIATE") == BadgeVariant.ERROR


def test_format_status():
    assert format_status("UNDER_REVIEW") == "Under Review"
    assert format_status("DRAFT") == "Draft"
    assert format_status(ReviewStatus.STOPPED_INSUFFICIENT_DATA) == "Stopped Insufficient Data"


def test_format_final_class():
    assert format_final_class("APPROPRIATE") == "Appropriate"
    assert format_final_class("INAPPROPRIATE") == "Inappropriate"
    assert format_final_class("") == ""


def test_describe_status_uses_result_mapping_for_final_classes():
    assert describe_status("UNCERTAIN") == (BadgeVariant.WARNING, "Uncertain")
    assert describe_status("UNDER_REVIEW") == (BadgeVariant.WARNING, "Under Review")


def test_describe_status_label_never_empty_for_members():
    for member in list(CaseStatus) + list(ReviewStatus) + list(FinalClass):
        _, label = describe_status(member)
        assert label


def test_non_string_values_are_stringified():
    assert format_status(5) == "5"
    assert format_final_class(None) == ""
    assert get_status_badge_variant(None) == BadgeVariant.DEFAULT
    assert get_result_badge_variant(0) == BadgeVariant.DEFAULT
