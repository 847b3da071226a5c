"""
Server-rendered UI components.

Each component is a small object whose render() fills a Jinja2 template
from firstprinciples/app/ui/templates. Autoescaping is on for every
template, so labels, errors and option text are always HTML-escaped.

Components only display what they are given: TextInput shows a
caller-supplied error but performs no validation of its own.
"""

from pathlib import Path
from typing import List, Optional, Sequence, Tuple, Union

from jinja2 import Environment, FileSystemLoader, select_autoescape
from markupsafe import Markup

from firstprinciples.app.services.status import BadgeVariant, describe_status

TEMPLATE_DIR = Path(__file__).parent / "templates"

VARIANT_CLASSES = {
    BadgeVariant.DEFAULT: "bg-slate-100 text-slate-700 border-slate-200",
    BadgeVariant.SUCCESS: "bg-green-50 text-green-700 border-green-200",
    BadgeVariant.WARNING: "bg-amber-50 text-amber-700 border-amber-200",
    BadgeVariant.ERROR: "bg-red-50 text-red-700 border-red-200",
    BadgeVariant.INFO: "bg-blue-50 text-blue-700 border-blue-200",
    BadgeVariant.PURPLE: "bg-purple-50 text-purple-700 border-purple-200",
    BadgeVariant.TEAL: "bg-teal-50 text-teal-700 border-teal-200",
}

SIZE_CLASSES = {
    "sm": "px-2 py-0.5 text-xs",
    "md": "px-2.5 py-1 text-sm",
}

_env = Environment(
    loader=FileSystemLoader(str(TEMPLATE_DIR)),
    autoescape=select_autoescape(["html", "xml"]),
    trim_blocks=True,
    lstrip_blocks=True,
)


def _render(template_name: str, **context) -> Markup:
    # Markup so a rendered fragment is not escaped again when nested.
    return Markup(_env.get_template(template_name).render(**context))


class Badge:
    def __init__(self, label: str, variant: Union[BadgeVariant, str] = BadgeVariant.DEFAULT, size: str = "sm"):
        if size not in SIZE_CLASSES:
            raise ValueError(f"Unknown badge size: {size}")
        self.label = label
        self.variant = BadgeVariant(variant)
        self.size = size

    @property
    def css_class(self) -> str:
        return " ".join(
            [
                "inline-flex items-center font-medium rounded-full border",
                VARIANT_CLASSES[self.variant],
                SIZE_CLASSES[self.size],
            ]
        )

    def render(self) -> Markup:
        return _render("badge.html", badge=self)


def status_badge(value: str, size: str = "sm") -> Badge:
    """Badge for a case, review or result status value."""
    variant, label = describe_status(value)
    return Badge(label, variant, size)


class TextInput:
    """
    Labelled text input.

    Args:
        name: Input name; also the element id unless input_id is given
        label: Optional label text
        error: Error text to display under the input
        hint: Hint text, shown only when there is no error
        value: Initial value
    """

    def __init__(
        self,
        name: str,
        label: Optional[str] = None,
        error: Optional[str] = None,
        hint: Optional[str] = None,
        value: Optional[str] = None,
        input_type: str = "text",
        placeholder: Optional[str] = None,
        required: bool = False,
        input_id: Optional[str] = None,
    ):
        self.name = name
        self.label = label
        self.error = error
        self.hint = hint
        self.value = value
        self.input_type = input_type
        self.placeholder = placeholder
        self.required = required
        self.input_id = input_id or name

    @property
    def show_hint(self) -> bool:
        return bool(self.hint) and not self.error

    def render(self) -> Markup:
        return _render("text_input.html", field=self)


class Select:
    """Labelled select with one option per (value, label) pair, in order."""

    def __init__(
        self,
        name: str,
        options: Sequence[Tuple[str, str]],
        label: Optional[str] = None,
        error: Optional[str] = None,
        selected: Optional[str] = None,
        select_id: Optional[str] = None,
    ):
        self.name = name
        self.options: List[Tuple[str, str]] = [(str(value), str(text)) for value, text in options]
        self.label = label
        self.error = error
        self.selected = selected
        self.select_id = select_id or name

    def render(self) -> Markup:
        return _render("select.html", field=self)


class AccordionItem:
    """Collapsible section. Each item keeps its own open state."""

    def __init__(self, title: str, body: str, default_open: bool = False):
        self.title = title
        self.body = body
        self.is_open = default_open

    def toggle(self) -> bool:
        self.is_open = not self.is_open
        return self.is_open

    def render(self) -> Markup:
        return _render("accordion_item.html", item=self)


class Accordion:
    def __init__(self, items: Sequence[AccordionItem]):
        self.items = list(items)

    def render(self) -> Markup:
        return _render("accordion.html", items=self.items)


def render_admin_users_page(organization_name: str, rows: Sequence[dict], role_options: Sequence[Tuple[str, str]]) -> str:
    """
    Render the organization user management table.

    Each row dict carries ``id``, ``name``, ``email``, ``role`` and
    ``is_expert_certified``.
    """
    users = []
    for row in rows:
        users.append(
            {
                **row,
                "role_badge": Badge(row["role"].replace("_", " ").title(), BadgeVariant.INFO),
                "role_select": Select(
                    name="role",
                    options=role_options,
                    selected=row["role"],
                    select_id=f"role-{row['id']}",
                ),
                "certified_badge": Badge(
                    "Certified" if row.get("is_expert_certified") else "Not certified",
                    BadgeVariant.SUCCESS if row.get("is_expert_certified") else BadgeVariant.DEFAULT,
                ),
            }
        )
    return _env.get_template("admin_users.html").render(organization_name=organization_name, users=users)
