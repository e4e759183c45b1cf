"""
Access policy engine and its YAML configuration.

`AccessPolicyEngine.apply` layers mandatory constraints on top of a caller's
normalized query, in a fixed order:

    1. tenant isolation
    2. admin short-circuit (tenant isolation still holds)
    3. explicit allow-list of primary keys (empty list -> denied)
    4. ownership (only without an allow-list)
    5. role templates and department scoping (only without an allow-list)
    6. temporal / lifecycle rules

Every policy clause is appended to the caller's clauses. The store receives the
conjunction of all of them, so a caller filter can only narrow a policy
constraint, never replace or widen it.

Rows reached through `include` are scoped by the same rules for their own
entity type (see `EffectiveQuery.include_scopes`).
"""

from __future__ import annotations

from dataclasses import replace
import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

from .context import SecurityContext
from .query import ConstraintSource, EffectiveQuery, FilterClause, Operator, QueryDescription
from .schema import EntitySchema, FieldKind

logger = logging.getLogger(__name__)


class RoleFilterTemplate(BaseModel):
    field: str
    op: Operator = Operator.EQ
    value: Any = None
    context_param: str | None = None


class TemporalRule(BaseModel):
    timestamp_field: str = "created_at"
    active_field: str | None = "is_active"
    deleted_field: str | None = "deleted_at"
    only_active: bool = False


class PolicyConfig(BaseModel):
    admin_role: str = "admin"
    deny_anonymous: bool = True
    read_only_entities: list[str] = Field(default_factory=lambda: ["role", "permission", "resourcetype"])
    role_filters: dict[str, list[RoleFilterTemplate]] = Field(default_factory=dict)
    department_scoping: bool = True
    temporal: TemporalRule = Field(default_factory=TemporalRule)

    def is_read_only(self, entity_type: str) -> bool:
        return entity_type.lower() in {e.lower() for e in self.read_only_entities}


def load_policy_config(path: Path) -> PolicyConfig:
    raw_text = path.read_text(encoding="utf-8")
    raw: dict[str, Any] = yaml.safe_load(raw_text) or {}

    if "policy" not in raw:
        raise ValueError(f"Missing top-level 'policy' key in config: {path}")

    return PolicyConfig.model_validate(raw["policy"] or {})


class AccessPolicyEngine:
    def __init__(self, config: PolicyConfig):
        self.config = config

    def apply(self, query: QueryDescription, context: SecurityContext, schema: EntitySchema) -> EffectiveQuery:
        if context.is_anonymous and self.config.deny_anonymous:
            return self._deny(query, "anonymous caller")

        builder = self._constrain(schema, context, use_allow_list=True)
        if builder.denial_reason is not None:
            return self._deny(query, builder.denial_reason)

        return self._effective(query, builder, self._include_scopes(query, context, schema, builder))

    def _constrain(self, schema: EntitySchema, context: SecurityContext, *, use_allow_list: bool) -> "_ConstraintBuilder":
        builder = _ConstraintBuilder(schema)

        # 1) tenant isolation
        tenant_field = schema.tenant_field()
        if tenant_field and context.tenant_id is not None:
            builder.tenant_value = builder.add(tenant_field, Operator.EQ, context.tenant_id, ConstraintSource.TENANT)
            if builder.failed:
                return builder.deny("tenant id not comparable to tenant field")

        # 2) admin short-circuit
        if context.has_role(self.config.admin_role):
            logger.debug("Admin access for %s within tenant %s", schema.type_name, context.tenant_id)
            return builder

        # 3) explicit allow-list (ids of the requested type only)
        allow_list = context.accessible_ids if use_allow_list else None
        if allow_list is not None:
            if not allow_list:
                return builder.deny("empty allow-list")
            builder.add_allow_list(allow_list)
        else:
            # 4) ownership
            owner_field = schema.owner_field()
            if owner_field and context.identity and not self.config.is_read_only(schema.type_name):
                builder.add(owner_field, Operator.EQ, context.identity.id, ConstraintSource.OWNERSHIP)
                if builder.failed:
                    return builder.deny("identity not comparable to owner field")

            # 5) role templates + department
            self._apply_role_filters(builder, context)
            if builder.failed:
                return builder.deny("role filter not applicable to its field")
            department_field = schema.department_field()
            if self.config.department_scoping and department_field and context.department_id is not None:
                builder.add(department_field, Operator.EQ, context.department_id, ConstraintSource.DEPARTMENT)
                if builder.failed:
                    return builder.deny("department id not comparable to department field")

        # 6) temporal / lifecycle
        self._apply_temporal(builder, context)
        if builder.failed:
            return builder.deny("time window not comparable to timestamp field")

        return builder

    def _include_scopes(
        self,
        query: QueryDescription,
        context: SecurityContext,
        schema: EntitySchema,
        primary: "_ConstraintBuilder",
    ) -> dict[str, tuple[FilterClause, ...] | None]:
        """
        Policy clauses for every entity type reachable through `include`.

        Included rows get the same rules as a direct listing of their type,
        except the allow-list, which names ids of the requested type only.
        The requested type itself reuses the primary clauses. `None` hides
        every included row of that type.
        """

        scopes: dict[str, tuple[FilterClause, ...] | None] = {}
        for path in query.include:
            current = schema
            for segment in path:
                current = current.relationships()[segment]
                if current.type_name in scopes:
                    continue
                if current.type_name == schema.type_name:
                    scopes[current.type_name] = tuple(primary.clauses)
                    continue
                builder = self._constrain(current, context, use_allow_list=False)
                if builder.denial_reason is not None:
                    logger.info("Hiding included %s: %s", current.type_name, builder.denial_reason)
                    scopes[current.type_name] = None
                else:
                    scopes[current.type_name] = tuple(builder.clauses)
        return scopes

    # ---- steps ---------------------------------------------------------------------

    def _apply_role_filters(self, builder: "_ConstraintBuilder", context: SecurityContext) -> None:
        for role in sorted(context.roles):
            for template in self.config.role_filters.get(role, ()):
                if not builder.schema.field_exists(template.field):
                    continue
                if template.context_param is not None:
                    # A missing parameter yields an empty set: the role then matches nothing.
                    value: Any = tuple(context.role_access.get(template.context_param, ()))
                else:
                    value = template.value
                builder.add(template.field, template.op, value, ConstraintSource.ROLE)

    def _apply_temporal(self, builder: "_ConstraintBuilder", context: SecurityContext) -> None:
        rule = self.config.temporal
        schema = builder.schema
        window = context.time_access

        if window is not None and schema.field_exists(rule.timestamp_field):
            if window.start is not None:
                builder.add(rule.timestamp_field, Operator.GTE, window.start, ConstraintSource.TEMPORAL)
            if window.end is not None:
                builder.add(rule.timestamp_field, Operator.LTE, window.end, ConstraintSource.TEMPORAL)

        only_active = rule.only_active or (window is not None and window.only_active)
        if only_active:
            if rule.active_field and schema.field_exists(rule.active_field):
                builder.add(rule.active_field, Operator.EQ, True, ConstraintSource.TEMPORAL)
            if rule.deleted_field and schema.field_exists(rule.deleted_field):
                builder.add(rule.deleted_field, Operator.EQ, None, ConstraintSource.TEMPORAL)

    # ---- results -------------------------------------------------------------------

    def _effective(
        self,
        query: QueryDescription,
        builder: "_ConstraintBuilder",
        include_scopes: dict[str, tuple[FilterClause, ...] | None],
    ) -> EffectiveQuery:
        injected = tuple(builder.clauses)
        for clause in injected:
            logger.debug("Injected %s constraint on %s.%s", clause.source.value, query.entity_type, clause.field)
        return EffectiveQuery(
            query=query.with_filters(*injected),
            injected=injected,
            tenant_id=builder.tenant_value,
            include_scopes=include_scopes,
        )

    def _deny(self, query: QueryDescription, reason: str) -> EffectiveQuery:
        logger.info("Access denied for %s: %s", query.entity_type, reason)
        return EffectiveQuery(query=replace(query, include=()), denied=True, denial_reason=reason)


class _ConstraintBuilder:
    """Collects policy clauses, coercing values to the schema's field kinds."""

    def __init__(self, schema: EntitySchema):
        self.schema = schema
        self.clauses: list[FilterClause] = []
        self.failed = False
        self.denial_reason: str | None = None
        self.tenant_value: Any = None

    def deny(self, reason: str) -> "_ConstraintBuilder":
        self.denial_reason = reason
        return self

    def add(self, field_name: str, op: Operator, value: Any, source: ConstraintSource) -> Any:
        spec = self.schema.field_spec(field_name)
        try:
            if op is Operator.IN:
                coerced = tuple(spec.coerce(v) for v in value)
            elif op is Operator.CONTAINS:
                if spec.kind is not FieldKind.STRING:
                    raise ValueError(f"'contains' needs a string field, {field_name} is {spec.kind.value}")
                coerced = str(value)
            else:
                coerced = spec.coerce(value)
        except (TypeError, ValueError):
            logger.warning("Policy value for %s.%s could not be coerced", self.schema.type_name, field_name)
            self.failed = True
            return None
        self.clauses.append(FilterClause(field_name, op, coerced, source))
        return coerced

    def add_allow_list(self, ids: tuple[str, ...]) -> None:
        spec = self.schema.field_spec(self.schema.primary_key_field())
        coerced = []
        for raw_id in ids:
            try:
                coerced.append(spec.coerce(raw_id))
            except (TypeError, ValueError):
                logger.warning("Dropping allow-list id %r for %s (wrong key type)", raw_id, self.schema.type_name)
        self.clauses.append(
            FilterClause(self.schema.primary_key_field(), Operator.IN, tuple(coerced), ConstraintSource.ALLOW_LIST)
        )
