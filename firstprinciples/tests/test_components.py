"""
Tests for server-rendered UI components.
"""

import re

import pytest

from firstprinciples.app.services.status import BadgeVariant
from firstprinciples.app.ui.components import (
    Accordion,
    AccordionItem,
    Badge,
    Select,
    TextInput,
    render_admin_users_page,
    status_badge,
)


def test_badge_renders_variant_and_size_classes():
    html = Badge("Completed", BadgeVariant.SUCCESS, size="md").render()
    assert "bg-green-50" in html
    assert "px-2.5 py-1 text-sm" in html
    assert 'data-variant="success"' in html
    assert ">Completed</span>" in html


def test_badge_defaults():
    badge = Badge("Draft")
    assert badge.variant == BadgeVariant.DEFAULT
    assert badge.size == "sm"


def test_badge_rejects_unknown_size():
    with pytest.raises(ValueError):
        Badge("x", size="xl")


def test_badge_escapes_label():
    html = Badge("<script>alert(1)</script>").render()
    assert "<script>" not in html
    assert "&lt;script&gt;" in html


def test_status_badge_uses_status_mapping():
    badge = status_badge("UNDER_REVIEW")
    assert badge.variant == BadgeVariant.WARNING
    assert badge.label == "Under Review"


def test_text_input_shows_error_not_hint():
    html = TextInput("email", label="Email", error="Please enter a valid email address", hint="Work email").render()
    assert "Please enter a valid email address" in html
    assert "Work email" not in html
    assert 'aria-invalid="true"' in html
    assert 'for="email"' in html


def test_text_input_shows_hint_without_error():
    html = TextInput("email", hint="Work email").render()
    assert "Work email" in html
    assert "<label" not in html
    assert "aria-invalid" not in html


def test_text_input_does_not_validate():
    field = TextInput("email", value="not-an-email")
    html = field.render()
    assert 'value="not-an-email"' in html
    assert "text-red-600" not in html


def test_select_renders_one_option_per_pair_in_order():
    options = [("CLINICIAN", "Clinician"), ("ORG_ADMIN", "Org Admin"), ("EXPERT_REVIEWER", "Expert Reviewer")]
    html = Select("role", options, label="Role", selected="ORG_ADMIN").render()

    values = re.findall(r'<option value="([^"]+)"', html)
    assert values == ["CLINICIAN", "ORG_ADMIN", "EXPERT_REVIEWER"]
    assert html.count("<option") == 3
    assert '<option value="ORG_ADMIN" selected>' in html


def test_select_without_options_renders_empty_select():
    html = Select("role", []).render()
    assert "<option" not in html


def test_accordion_item_toggle_is_independent():
    first = AccordionItem("What is a PLF?", "Posterolateral fusion")
    second = AccordionItem("What is a TLIF?", "Transforaminal interbody fusion", default_open=True)

    assert first.toggle() is True
    assert first.is_open
    assert second.is_open

    second.toggle()
    assert first.is_open
    assert not second.is_open


def test_accordion_renders_only_open_bodies():
    items = [
        AccordionItem("Open", "visible body", default_open=True),
        AccordionItem("Closed", "hidden body"),
    ]
    html = Accordion(items).render()
    assert "visible body" in html
    assert "hidden body" not in html
    assert html.count('aria-expanded="true"') == 1


def test_admin_users_page_lists_users_with_role_select():
    rows = [
        {"id": "u1", "name": "Alice", "email": "alice@alphaspine.io", "role": "CLINICIAN", "is_expert_certified": False},
        {"id": "u2", "name": "Bob", "email": "bob@alphaspine.io", "role": "ORG_ADMIN", "is_expert_certified": True},
    ]
    html = render_admin_users_page("Alpha Spine", rows, [("CLINICIAN", "Clinician"), ("ORG_ADMIN", "Org Admin")])

    assert "Alpha Spine" in html
    assert 'data-user-id="u1"' in html
    assert 'id="role-u2"' in html
    assert "Certified" in html


def test_admin_users_page_empty_state():
    html = render_admin_users_page("Beta Health", [], [])
    assert "No users in this organization." in html
