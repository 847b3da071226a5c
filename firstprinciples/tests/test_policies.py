"""
Tests for the row-level policy set and its recursion check.

A profiles policy that selects from profiles makes every profile lookup
fail with 42P17, which the portal used to surface as "Profile Setup
Required". These tests pin the shipped policy set and the check that
rejects recursive ones.
"""

import pytest

from firstprinciples.app.db.policies import (
    ALL_POLICIES,
    HELPER_FUNCTIONS,
    PROFILE_POLICIES,
    HelperFunction,
    Policy,
    PolicyDefinitionError,
    called_functions,
    check_policy_recursion,
    policy_dependencies,
    referenced_tables,
    render_function_sql,
    render_policies_sql,
    render_policy_sql,
)

RECURSIVE_PROFILE_POLICY = Policy(
    table="profiles",
    name="profiles_select_same_org",
    command="SELECT",
    using="org_id IN (SELECT org_id FROM public.profiles WHERE id = auth.uid())",
)


def test_shipped_policy_set_has_no_cycles():
    check_policy_recursion(ALL_POLICIES)


def test_profile_policies_do_not_select_from_any_table():
    for policy in PROFILE_POLICIES:
        assert referenced_tables(policy.using) == set()
        assert referenced_tables(policy.with_check) == set()


def test_own_profile_policy_is_uid_equality():
    select_own = next(p for p in PROFILE_POLICIES if p.name == "profiles_select_own")
    assert select_own.using == "id = auth.uid()"


def test_every_helper_is_security_definer():
    assert all(fn.security_definer for fn in HELPER_FUNCTIONS)


def test_expression_parsing():
    expression = "EXISTS (SELECT 1 FROM public.reviews r JOIN cases c ON c.id = r.case_id) AND public.current_user_role() = 'X'"

    assert referenced_tables(expression) == {"reviews", "cases"}
    assert {"current_user_role", "exists"} <= called_functions(expression)
    assert referenced_tables(None) == set()


def test_dependencies_exclude_reads_inside_definer_functions():
    graph = policy_dependencies(ALL_POLICIES)

    assert graph["profiles"] == set()
    assert graph["organizations"] == set()
    assert graph["cases"] == {"reviews"}


def test_self_referencing_policy_is_rejected():
    with pytest.raises(PolicyDefinitionError) as exc_info:
        check_policy_recursion(PROFILE_POLICIES + [RECURSIVE_PROFILE_POLICY])

    assert exc_info.value.cycle == ["profiles", "profiles"]
    assert exc_info.value.code == "42P17"
    assert "profiles -> profiles" in str(exc_info.value)


def test_non_definer_helper_is_rejected():
    invoker_helpers = [
        fn.model_copy(update={"security_definer": False}) if fn.name == "public.current_user_role" else fn
        for fn in HELPER_FUNCTIONS
    ]

    with pytest.raises(PolicyDefinitionError) as exc_info:
        check_policy_recursion(PROFILE_POLICIES, invoker_helpers)

    assert exc_info.value.cycle == ["profiles", "profiles"]


def test_non_definer_helper_body_is_parsed_for_reads():
    org_lookup = HelperFunction(
        name="public.my_org_id",
        returns="uuid",
        body="SELECT org_id FROM public.profiles WHERE id = auth.uid()",
        security_definer=False,
    )
    same_org = Policy(
        table="profiles",
        name="profiles_select_same_org",
        command="SELECT",
        using="org_id = public.my_org_id()",
    )

    assert policy_dependencies([same_org], [org_lookup]) == {"profiles": {"profiles"}}
    with pytest.raises(PolicyDefinitionError) as exc_info:
        check_policy_recursion(PROFILE_POLICIES + [same_org], HELPER_FUNCTIONS + [org_lookup])

    assert exc_info.value.cycle == ["profiles", "profiles"]


def test_unknown_function_reads_are_ignored():
    helpers = HELPER_FUNCTIONS + [
        HelperFunction(name="public.unused", returns="uuid", body="SELECT 1", reads=["profiles"], security_definer=False)
    ]

    check_policy_recursion(PROFILE_POLICIES, helpers)


def test_cross_table_cycle_is_rejected():
    reviews_via_cases = Policy(
        table="reviews",
        name="reviews_select_case_org",
        command="SELECT",
        using="EXISTS (SELECT 1 FROM public.cases c WHERE c.id = reviews.case_id)",
    )

    with pytest.raises(PolicyDefinitionError) as exc_info:
        check_policy_recursion(ALL_POLICIES + [reviews_via_cases])

    assert exc_info.value.cycle == ["cases", "reviews", "cases"]


def test_render_policy_sql():
    update_own = next(p for p in PROFILE_POLICIES if p.name == "profiles_update_own")

    sql = render_policy_sql(update_own)

    assert sql.startswith('CREATE POLICY "profiles_update_own" ON public.profiles')
    assert "FOR UPDATE" in sql
    assert "TO authenticated" in sql
    assert "USING (id = auth.uid())" in sql
    assert "WITH CHECK (id = auth.uid() AND role = public.current_user_role()" in sql
    assert sql.endswith(";")


def test_render_function_sql():
    sql = render_function_sql(HELPER_FUNCTIONS[0])

    assert "CREATE OR REPLACE FUNCTION public.current_user_org_id()" in sql
    assert "SECURITY DEFINER" in sql
    assert "SET search_path = public" in sql


def test_render_policies_sql_order():
    statements = render_policies_sql()

    first_policy = next(i for i, s in enumerate(statements) if s.startswith("CREATE POLICY"))
    last_function = max(i for i, s in enumerate(statements) if s.startswith("CREATE OR REPLACE FUNCTION"))
    rls = [s for s in statements if "ENABLE ROW LEVEL SECURITY" in s]

    assert last_function < first_policy
    assert "ALTER TABLE public.profiles ENABLE ROW LEVEL SECURITY;" in rls
    assert len(statements) == len(HELPER_FUNCTIONS) + len(rls) + len(ALL_POLICIES)


def test_render_policies_sql_refuses_recursive_set():
    with pytest.raises(PolicyDefinitionError):
        render_policies_sql(PROFILE_POLICIES + [RECURSIVE_PROFILE_POLICY])
