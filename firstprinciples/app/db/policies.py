"""
Row-level access policies for the backend schema.

Policies are declared as data so the same definitions feed the Alembic
migration and the recursion check.

Profile visibility rules:
- A user reads, inserts and updates only the row whose ``id`` equals
  ``auth.uid()``; no profile policy reads the profiles table.
- Organization-scoped admin visibility goes through SECURITY DEFINER helper
  functions. They run as the table owner, outside row-level security, so
  evaluating them does not re-enter the profiles policies.

A policy that selects from its own table (directly, through a chain of other
tables' policies, or through a non-definer function) makes the backend fail
every matching query with 42P17 "infinite recursion detected in policy".
check_policy_recursion() rejects such a set before it is applied.
"""

import re
from typing import Dict, Iterable, List, Literal, Optional, Set

from pydantic import BaseModel, Field

from firstprinciples.app.db.errors import POLICY_RECURSION_CODE

_TABLE_REFERENCE = re.compile(r"\b(?:from|join)\s+((?:\w+\.)?\w+)", re.IGNORECASE)
_FUNCTION_CALL = re.compile(r"\b((?:\w+\.)?\w+)\s*\(")


class Policy(BaseModel):
    """One CREATE POLICY statement."""

    table: str
    name: str
    command: Literal["SELECT", "INSERT", "UPDATE", "DELETE", "ALL"]
    using: Optional[str] = None
    with_check: Optional[str] = None
    roles: List[str] = Field(default_factory=lambda: ["authenticated"])


class HelperFunction(BaseModel):
    """SQL function callable from policy expressions."""

    name: str
    returns: str
    body: str
    reads: List[str] = Field(default_factory=list)
    security_definer: bool = True


class PolicyDefinitionError(ValueError):
    """A policy set would make the backend recurse while evaluating it."""

    code = POLICY_RECURSION_CODE

    def __init__(self, message: str, cycle: List[str]):
        super().__init__(message)
        self.cycle = cycle


def _bare_name(name: str) -> str:
    return name.split(".")[-1].lower()


def referenced_tables(expression: Optional[str]) -> Set[str]:
    """Tables an expression selects from (schema stripped, lowercased)."""
    if not expression:
        return set()
    return {_bare_name(match) for match in _TABLE_REFERENCE.findall(expression)}


def called_functions(expression: Optional[str]) -> Set[str]:
    if not expression:
        return set()
    return {_bare_name(match) for match in _FUNCTION_CALL.findall(expression)}


# ============================================================================
# Helper functions
# ============================================================================

HELPER_FUNCTIONS: List[HelperFunction] = [
    HelperFunction(
        name="public.current_user_org_id",
        returns="uuid",
        body="SELECT org_id FROM public.profiles WHERE id = auth.uid()",
        reads=["profiles"],
    ),
    HelperFunction(
        name="public.current_user_role",
        returns="public.user_role",
        body="SELECT role FROM public.profiles WHERE id = auth.uid()",
        reads=["profiles"],
    ),
    HelperFunction(
        name="public.current_user_is_expert_certified",
        returns="boolean",
        body="SELECT COALESCE(is_expert_certified, false) FROM public.profiles WHERE id = auth.uid()",
        reads=["profiles"],
    ),
]

# ============================================================================
# Policies
# ============================================================================

PROFILE_POLICIES: List[Policy] = [
    Policy(
        table="profiles",
        name="profiles_select_own",
        command="SELECT",
        using="id = auth.uid()",
    ),
    Policy(
        table="profiles",
        name="profiles_select_admin_scope",
        command="SELECT",
        using=(
            "public.current_user_role() = 'SYS_ADMIN' "
            "OR (public.current_user_role() = 'ORG_ADMIN' AND org_id = public.current_user_org_id())"
        ),
    ),
    Policy(
        table="profiles",
        name="profiles_insert_own",
        command="INSERT",
        with_check="id = auth.uid()",
    ),
    Policy(
        table="profiles",
        name="profiles_update_own",
        command="UPDATE",
        using="id = auth.uid()",
        with_check=(
            "id = auth.uid() "
            "AND role = public.current_user_role() "
            "AND org_id = public.current_user_org_id() "
            "AND is_expert_certified = public.current_user_is_expert_certified()"
        ),
    ),
]

ORGANIZATION_POLICIES: List[Policy] = [
    Policy(
        table="organizations",
        name="organizations_select_member",
        command="SELECT",
        using="id = public.current_user_org_id() OR public.current_user_role() = 'SYS_ADMIN'",
    ),
]

CASE_POLICIES: List[Policy] = [
    Policy(
        table="cases",
        name="cases_select_visible",
        command="SELECT",
        using=(
            "submitter_id = auth.uid() "
            "OR (public.current_user_role() = 'ORG_ADMIN' AND org_id = public.current_user_org_id()) "
            "OR public.current_user_role() = 'SYS_ADMIN' "
            "OR EXISTS (SELECT 1 FROM public.reviews r WHERE r.case_id = cases.id AND r.reviewer_id = auth.uid())"
        ),
    ),
    Policy(
        table="cases",
        name="cases_insert_own",
        command="INSERT",
        with_check="submitter_id = auth.uid() AND org_id = public.current_user_org_id()",
    ),
    Policy(
        table="cases",
        name="cases_update_own_draft",
        command="UPDATE",
        using="submitter_id = auth.uid() AND status = 'DRAFT'",
    ),
]

REVIEW_POLICIES: List[Policy] = [
    Policy(
        table="reviews",
        name="reviews_select_own",
        command="SELECT",
        using="reviewer_id = auth.uid() OR public.current_user_role() = 'SYS_ADMIN'",
    ),
    Policy(
        table="reviews",
        name="reviews_update_own",
        command="UPDATE",
        using="reviewer_id = auth.uid() AND status IN ('ASSIGNED', 'IN_PROGRESS')",
    ),
]

NOTIFICATION_POLICIES: List[Policy] = [
    Policy(
        table="notifications",
        name="notifications_select_own",
        command="SELECT",
        using="user_id = auth.uid()",
    ),
    Policy(
        table="notifications",
        name="notifications_update_own",
        command="UPDATE",
        using="user_id = auth.uid()",
        with_check="user_id = auth.uid()",
    ),
]

ALL_POLICIES: List[Policy] = (
    PROFILE_POLICIES
    + ORGANIZATION_POLICIES
    + CASE_POLICIES
    + REVIEW_POLICIES
    + NOTIFICATION_POLICIES
)

RLS_TABLES: List[str] = ["organizations", "profiles", "cases", "reviews", "notifications"]


# ============================================================================
# Recursion check
# ============================================================================


def policy_dependencies(
    policies: Iterable[Policy],
    functions: Iterable[HelperFunction] = HELPER_FUNCTIONS,
) -> Dict[str, Set[str]]:
    """
    Map each protected table to the tables its policies read under RLS.

    Tables read inside a SECURITY DEFINER function are not included: the
    function bypasses row-level security, so no policy is evaluated for them.
    For any other function both the tables its body selects from and its
    declared ``reads`` count.
    """
    by_name = {_bare_name(fn.name): fn for fn in functions}
    graph: Dict[str, Set[str]] = {}

    for policy in policies:
        table = policy.table.lower()
        edges = graph.setdefault(table, set())
        for expression in (policy.using, policy.with_check):
            edges |= referenced_tables(expression)
            for fn_name in called_functions(expression):
                fn = by_name.get(fn_name)
                if fn is not None and not fn.security_definer:
                    edges |= referenced_tables(fn.body) | {_bare_name(t) for t in fn.reads}
    return graph


def _find_cycle(graph: Dict[str, Set[str]]) -> Optional[List[str]]:
    visiting: List[str] = []
    done: Set[str] = set()

    def visit(node: str) -> Optional[List[str]]:
        if node in visiting:
            return visiting[visiting.index(node):] + [node]
        if node in done or node not in graph:
            return None
        visiting.append(node)
        for neighbour in sorted(graph[node]):
            cycle = visit(neighbour)
            if cycle:
                return cycle
        visiting.pop()
        done.add(node)
        return None

    for start in sorted(graph):
        cycle = visit(start)
        if cycle:
            return cycle
    return None


def check_policy_recursion(
    policies: Iterable[Policy],
    functions: Iterable[HelperFunction] = HELPER_FUNCTIONS,
) -> None:
    """
    Reject a policy set whose evaluation would re-enter a protected table.

    Raises:
        PolicyDefinitionError: With the offending table cycle, e.g.
            ``["profiles", "profiles"]`` for a profiles policy that selects
            from profiles
    """
    cycle = _find_cycle(policy_dependencies(policies, functions))
    if cycle:
        path = " -> ".join(cycle)
        raise PolicyDefinitionError(
            f"infinite recursion in row-level policies ({POLICY_RECURSION_CODE}): {path}",
            cycle,
        )


# ============================================================================
# SQL rendering
# ============================================================================


def render_function_sql(fn: HelperFunction) -> str:
    security = "SECURITY DEFINER" if fn.security_definer else "SECURITY INVOKER"
    return (
        f"CREATE OR REPLACE FUNCTION {fn.name}()\n"
        f"RETURNS {fn.returns}\n"
        "LANGUAGE sql\n"
        "STABLE\n"
        f"{security}\n"
        "SET search_path = public\n"
        f"AS $$ {fn.body} $$;"
    )


def render_policy_sql(policy: Policy) -> str:
    lines = [
        f'CREATE POLICY "{policy.name}" ON public.{policy.table}',
        f"  FOR {policy.command}",
        f"  TO {', '.join(policy.roles)}",
    ]
    if policy.using:
        lines.append(f"  USING ({policy.using})")
    if policy.with_check:
        lines.append(f"  WITH CHECK ({policy.with_check})")
    return "\n".join(lines) + ";"


def render_drop_policy_sql(policy: Policy) -> str:
    return f'DROP POLICY IF EXISTS "{policy.name}" ON public.{policy.table};'


def render_policies_sql(
    policies: List[Policy] = ALL_POLICIES,
    functions: List[HelperFunction] = HELPER_FUNCTIONS,
    tables: List[str] = RLS_TABLES,
) -> List[str]:
    """
    Statements that install the policy set, in execution order.

    The set is checked for recursion first; nothing is rendered for a set
    that would fail at query time.
    """
    check_policy_recursion(policies, functions)
    statements = [render_function_sql(fn) for fn in functions]
    statements += [f"ALTER TABLE public.{table} ENABLE ROW LEVEL SECURITY;" for table in tables]
    statements += [render_policy_sql(policy) for policy in policies]
    return statements
