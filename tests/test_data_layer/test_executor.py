"""
Tests for compiling effective queries into SQL and running them.

Uses the seeded fixture: in-memory SQLite, rolled back after each test.
"""
from __future__ import annotations

from datetime import datetime
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from access_layer.core.errors import ExecutionError
from access_layer.core.normalizer import normalize
from access_layer.core.policy import AccessPolicyEngine, PolicyConfig
from access_layer.core.query import ConstraintSource, EffectiveQuery, FilterClause, Operator
from access_layer.db.executor import QueryExecutor, compile_clause
from access_layer.models.registry import DOCUMENTS, PROJECTS

from conftest import make_context


def _ids(rows):
    return [row.id for row in rows]


def _run(db, raw, ctx, policy, schema=DOCUMENTS):
    effective = policy.apply(normalize(raw, schema), ctx, schema)
    return QueryExecutor(db).execute(effective, schema)


def test_admin_sees_every_row_of_own_tenant_only(seeded, policy):
    rows, total = _run(seeded, {}, make_context(roles=("admin",)), policy)
    assert _ids(rows) == [1, 2, 3, 4]
    assert total == 4

    rows, total = _run(seeded, {}, make_context(user_id="6", tenant_id="ws-globex", roles=("admin",)), policy)
    assert _ids(rows) == [5]
    assert total == 1


def test_allow_list_with_pagination_counts_all_matches(seeded, policy):
    ctx = make_context(user_id="4", accessible_ids=("1", "2", "3"))
    rows, total = _run(seeded, {"page": {"size": "2"}}, ctx, policy)

    assert _ids(rows) == [1, 2]
    assert total == 3


def test_denied_query_never_touches_the_store(policy):
    db = MagicMock()
    effective = policy.apply(normalize({}, DOCUMENTS), make_context(accessible_ids=()), DOCUMENTS)

    assert QueryExecutor(db).execute(effective, DOCUMENTS) == ([], 0)
    db.scalar.assert_not_called()
    db.scalars.assert_not_called()
    db.execute.assert_not_called()


def test_manager_sees_own_team_documents(seeded, policy):
    ctx = make_context(user_id="2", roles=("manager",), role_access={"team_ids": (1,)})
    rows, total = _run(seeded, {}, ctx, policy)
    assert _ids(rows) == [1, 2]
    assert total == 2


def test_department_member_sees_department_documents(seeded, policy):
    rows, _ = _run(seeded, {}, make_context(user_id="5", department_id="1"), policy)
    assert _ids(rows) == [4]


def test_viewer_filter_cannot_widen_policy(seeded, policy):
    ctx = make_context(user_id="3", roles=("viewer",))

    rows, _ = _run(seeded, {}, ctx, policy)
    assert _ids(rows) == [3]

    rows, total = _run(seeded, {"filter": {"status": "active"}}, ctx, policy)
    assert rows == []
    assert total == 0


def test_tenant_filter_from_caller_cannot_escape_tenant(seeded, policy):
    rows, total = _run(seeded, {"filter": {"workspace_id": "ws-globex"}}, make_context(roles=("admin",)), policy)
    assert rows == []
    assert total == 0


def test_inactive_and_deleted_rows_hidden_for_non_admins(seeded, policy):
    doc = seeded.get(DOCUMENTS.model, 1)
    doc.is_active = False
    seeded.flush()

    rows, _ = _run(seeded, {}, make_context(user_id="2", roles=("manager",), role_access={"team_ids": (1,)}), policy)
    assert _ids(rows) == [2]


def test_operators_compile_to_sql(seeded, policy):
    admin = make_context(roles=("admin",))

    rows, _ = _run(seeded, {"filter": {"title": {"like": "plan"}}}, admin, policy)
    assert _ids(rows) == [1, 2]

    rows, _ = _run(seeded, {"filter": {"id": {"in": "2,4"}}}, admin, policy)
    assert _ids(rows) == [2, 4]

    rows, _ = _run(seeded, {"filter": {"department_id": "null"}}, admin, policy)
    assert _ids(rows) == [3]

    rows, _ = _run(seeded, {"filter": {"status": {"ne": "draft"}, "id": {"gt": "1", "lte": "3"}}}, admin, policy)
    assert _ids(rows) == [3]


def test_contains_escapes_wildcards(seeded, policy):
    rows, _ = _run(seeded, {"filter": {"title": {"contains": "%"}}}, make_context(roles=("admin",)), policy)
    assert rows == []


def test_sort_breaks_ties_on_primary_key(seeded, policy):
    admin = make_context(roles=("admin",))

    rows, _ = _run(seeded, {"sort": "-status"}, admin, policy)
    assert _ids(rows) == [1, 3, 4, 2]

    rows, _ = _run(seeded, {"sort": "status,-id"}, admin, policy)
    assert _ids(rows) == [2, 4, 3, 1]


def test_page_past_the_end_is_empty_with_total(seeded, policy):
    rows, total = _run(seeded, {"page": {"number": "5", "size": "2"}}, make_context(roles=("admin",)), policy)
    assert rows == []
    assert total == 4


def test_included_rows_are_held_to_the_tenant(seeded, policy):
    # A cross-tenant link that the tenant filter on the primary rows alone would leak.
    doc = seeded.get(DOCUMENTS.model, 3)
    doc.project_id = 2
    seeded.flush()

    rows, _ = _run(seeded, {"include": "project", "filter": {"id": "3"}}, make_context(roles=("admin",)), policy)
    assert _ids(rows) == [3]
    assert rows[0].project is None


def test_included_rows_follow_lifecycle_and_role_rules(seeded, policy):
    doc = seeded.get(DOCUMENTS.model, 2)
    doc.deleted_at = datetime(2026, 1, 1)
    doc.is_active = False
    seeded.flush()
    ctx = make_context(user_id="2", roles=("manager",), role_access={"team_ids": (1,)})

    rows, _ = _run(seeded, {}, ctx, policy)
    assert _ids(rows) == [1]

    rows, _ = _run(seeded, {"include": "documents"}, ctx, policy, schema=PROJECTS)
    assert _ids(rows) == [1]
    assert _ids(rows[0].documents) == [1]


def test_included_rows_hidden_when_their_scope_cannot_be_built(seeded):
    engine = AccessPolicyEngine(PolicyConfig(read_only_entities=["documents"]))
    rows, _ = _run(seeded, {"include": "project", "filter": {"id": "1"}}, make_context(user_id="x"), engine)

    assert _ids(rows) == [1]
    assert rows[0].project is None


def test_store_errors_become_execution_errors(policy):
    db = MagicMock()
    db.scalar.side_effect = OperationalError("SELECT 1", {}, Exception("database is locked"))
    effective = policy.apply(normalize({}, DOCUMENTS), make_context(roles=("admin",)), DOCUMENTS)

    with pytest.raises(ExecutionError) as exc_info:
        QueryExecutor(db).execute(effective, DOCUMENTS)
    assert isinstance(exc_info.value.__cause__, OperationalError)


def test_unknown_operator_is_rejected():
    with pytest.raises(ValueError):
        compile_clause(DOCUMENTS.model.id, FilterClause("id", "between", (1, 2)))


def test_effective_query_exposes_injected_clauses():
    query = normalize({}, DOCUMENTS)
    clause = FilterClause("workspace_id", Operator.EQ, "ws-acme", ConstraintSource.TENANT)
    effective = EffectiveQuery(query=query.with_filters(clause), injected=(clause,))
    assert effective.filters == (clause,)
