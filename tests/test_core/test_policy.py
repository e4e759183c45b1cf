"""Tests for layering mandatory access constraints onto caller queries."""
from __future__ import annotations

from datetime import datetime

from access_layer.core.context import TimeAccess
from access_layer.core.normalizer import normalize
from access_layer.core.policy import AccessPolicyEngine, PolicyConfig, RoleFilterTemplate
from access_layer.core.query import ConstraintSource, FilterClause, Operator
from access_layer.models.registry import DOCUMENTS, PROJECTS, ROLES, USERS

from conftest import make_context


def _clauses(effective, source):
    return [(c.field, c.op, c.value) for c in effective.injected if c.source is source]


def test_tenant_isolation_is_always_injected(policy):
    effective = policy.apply(normalize({}, DOCUMENTS), make_context(roles=("admin",)), DOCUMENTS)

    assert not effective.denied
    assert _clauses(effective, ConstraintSource.TENANT) == [("workspace_id", Operator.EQ, "ws-acme")]
    assert effective.tenant_id == "ws-acme"


def test_admin_gets_no_restrictive_constraints_beyond_tenant(policy):
    ctx = make_context(roles=("admin",), accessible_ids=(), department_id="1")
    effective = policy.apply(normalize({}, DOCUMENTS), ctx, DOCUMENTS)

    assert not effective.denied
    assert [c.source for c in effective.injected] == [ConstraintSource.TENANT]


def test_caller_cannot_override_tenant_constraint(policy):
    query = normalize({"filter": {"workspace_id": "ws-globex"}}, DOCUMENTS)
    effective = policy.apply(query, make_context(roles=("admin",)), DOCUMENTS)

    assert FilterClause("workspace_id", Operator.EQ, "ws-globex") in effective.filters
    assert FilterClause("workspace_id", Operator.EQ, "ws-acme", ConstraintSource.TENANT) in effective.filters


def test_empty_allow_list_denies(policy):
    effective = policy.apply(normalize({"include": "owner"}, DOCUMENTS), make_context(accessible_ids=()), DOCUMENTS)

    assert effective.denied
    assert effective.denial_reason == "empty allow-list"
    assert effective.query.include == ()


def test_allow_list_short_circuits_ownership_and_roles(policy):
    ctx = make_context(user_id="2", roles=("manager",), accessible_ids=("1", "2", "x"), role_access={"team_ids": (1,)})
    effective = policy.apply(normalize({}, DOCUMENTS), ctx, DOCUMENTS)

    assert _clauses(effective, ConstraintSource.ALLOW_LIST) == [("id", Operator.IN, (1, 2))]
    assert _clauses(effective, ConstraintSource.OWNERSHIP) == []
    assert _clauses(effective, ConstraintSource.ROLE) == []


def test_ownership_applies_without_allow_list(policy):
    effective = policy.apply(normalize({}, DOCUMENTS), make_context(user_id="5"), DOCUMENTS)
    assert _clauses(effective, ConstraintSource.OWNERSHIP) == [("owner_id", Operator.EQ, 5)]


def test_read_only_entities_skip_ownership():
    engine = AccessPolicyEngine(PolicyConfig(read_only_entities=["Projects"]))
    effective = engine.apply(normalize({}, PROJECTS), make_context(user_id="5"), PROJECTS)

    assert _clauses(effective, ConstraintSource.OWNERSHIP) == []
    assert _clauses(effective, ConstraintSource.TENANT) == [("workspace_id", Operator.EQ, "ws-acme")]


def test_viewer_role_narrows_caller_status_filter(policy):
    query = normalize({"filter": {"status": "active"}}, DOCUMENTS)
    effective = policy.apply(query, make_context(user_id="3", roles=("viewer",)), DOCUMENTS)

    filters = [(c.field, c.value) for c in effective.filters]
    assert ("status", "active") in filters
    assert ("status", "published") in filters
    assert ("is_public", True) in filters


def test_role_templates_compose_and_missing_parameters_match_nothing(policy):
    ctx = make_context(user_id="2", roles=("manager", "supervisor"), role_access={"team_ids": (1, 2)})
    effective = policy.apply(normalize({}, DOCUMENTS), ctx, DOCUMENTS)

    assert sorted(_clauses(effective, ConstraintSource.ROLE)) == [
        ("created_by", Operator.IN, ()),
        ("team_id", Operator.IN, (1, 2)),
    ]


def test_role_templates_skip_entities_without_the_field(policy):
    effective = policy.apply(normalize({}, USERS), make_context(roles=("viewer",)), USERS)
    assert _clauses(effective, ConstraintSource.ROLE) == []


def test_department_scoping(policy):
    effective = policy.apply(normalize({}, DOCUMENTS), make_context(user_id="5", department_id="1"), DOCUMENTS)
    assert _clauses(effective, ConstraintSource.DEPARTMENT) == [("department_id", Operator.EQ, 1)]


def test_temporal_window_and_lifecycle(policy):
    window = TimeAccess(start=datetime(2025, 1, 1), end=datetime(2025, 6, 30))
    effective = policy.apply(normalize({}, DOCUMENTS), make_context(time_access=window), DOCUMENTS)

    assert _clauses(effective, ConstraintSource.TEMPORAL) == [
        ("created_at", Operator.GTE, datetime(2025, 1, 1)),
        ("created_at", Operator.LTE, datetime(2025, 6, 30)),
        ("is_active", Operator.EQ, True),
        ("deleted_at", Operator.EQ, None),
    ]


def test_anonymous_caller_is_denied_by_default(policy):
    effective = policy.apply(normalize({}, DOCUMENTS), make_context(user_id=None), DOCUMENTS)
    assert effective.denied


def test_anonymous_caller_allowed_when_configured():
    engine = AccessPolicyEngine(PolicyConfig(deny_anonymous=False))
    effective = engine.apply(normalize({}, ROLES), make_context(user_id=None, tenant_id=None), ROLES)
    assert not effective.denied
    assert effective.injected == ()


def test_uncoercible_owner_identity_denies():
    engine = AccessPolicyEngine(PolicyConfig())
    effective = engine.apply(normalize({}, DOCUMENTS), make_context(user_id="not-a-number"), DOCUMENTS)
    assert effective.denied


def test_literal_role_template_values_are_coerced():
    config = PolicyConfig(role_filters={"auditor": [RoleFilterTemplate(field="is_public", value="false")]})
    effective = AccessPolicyEngine(config).apply(normalize({}, DOCUMENTS), make_context(roles=("auditor",)), DOCUMENTS)
    assert ("is_public", Operator.EQ, False) in _clauses(effective, ConstraintSource.ROLE)


def test_every_injected_clause_reaches_the_effective_filters(policy):
    ctx = make_context(user_id="2", roles=("manager", "viewer"), department_id="1", role_access={"team_ids": (1,)})
    effective = policy.apply(normalize({"filter": {"status": "x"}}, DOCUMENTS), ctx, DOCUMENTS)

    for clause in effective.injected:
        assert clause in effective.filters


def test_contains_role_template_on_non_string_field_denies():
    config = PolicyConfig(role_filters={"auditor": [RoleFilterTemplate(field="id", op=Operator.CONTAINS, value="1")]})
    effective = AccessPolicyEngine(config).apply(normalize({}, DOCUMENTS), make_context(roles=("auditor",)), DOCUMENTS)

    assert effective.denied
    assert effective.denial_reason == "role filter not applicable to its field"


def test_included_types_get_their_own_policy_scope(policy):
    ctx = make_context(user_id="2", roles=("manager",), role_access={"team_ids": (1,)}, accessible_ids=("1",))
    effective = policy.apply(normalize({"include": "documents,owner"}, PROJECTS), ctx, PROJECTS)

    documents = [(c.field, c.op, c.value) for c in effective.include_scopes["documents"]]
    assert documents == [
        ("workspace_id", Operator.EQ, "ws-acme"),
        ("owner_id", Operator.EQ, 2),
        ("team_id", Operator.IN, (1,)),
        ("is_active", Operator.EQ, True),
        ("deleted_at", Operator.EQ, None),
    ]
    users = [(c.field, c.value) for c in effective.include_scopes["users"]]
    assert users == [("workspace_id", "ws-acme"), ("is_active", True)]


def test_admin_included_rows_are_scoped_to_tenant_only(policy):
    effective = policy.apply(normalize({"include": "project.documents"}, DOCUMENTS), make_context(roles=("admin",)), DOCUMENTS)

    assert effective.include_scopes["projects"] == (
        FilterClause("workspace_id", Operator.EQ, "ws-acme", ConstraintSource.TENANT),
    )
    assert effective.include_scopes["documents"] == effective.injected


def test_included_type_that_cannot_be_scoped_is_hidden():
    engine = AccessPolicyEngine(PolicyConfig(read_only_entities=["documents"]))
    ctx = make_context(user_id="not-a-number")
    effective = engine.apply(normalize({"include": "project"}, DOCUMENTS), ctx, DOCUMENTS)

    assert not effective.denied
    assert effective.include_scopes == {"projects": None}
