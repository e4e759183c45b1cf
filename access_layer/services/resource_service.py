from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any, Mapping

from sqlalchemy.orm import Session

from access_layer.core.context import SecurityContext
from access_layer.core.errors import ResourceNotFoundError
from access_layer.core.normalizer import normalize
from access_layer.core.policy import AccessPolicyEngine
from access_layer.core.query import EffectiveQuery, FilterClause, Operator, Page
from access_layer.core.schema import SchemaRegistry
from access_layer.db.executor import QueryExecutor
from access_layer.schemas.document import ResourceDocument
from access_layer.services.renderer import ResourceRenderer

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger("access_layer.audit")


class ResourceAccessService:
    """
    Read-side pipeline: normalize -> apply policy -> execute -> render.

    Holds only startup-time collaborators (schema registry, policy engine,
    page limits); everything request-scoped is passed in.
    """

    def __init__(
        self,
        registry: SchemaRegistry,
        policy: AccessPolicyEngine,
        *,
        default_page_size: int = 10,
        max_page_size: int = 100,
        audit_logging: bool = True,
        renderer: ResourceRenderer | None = None,
    ):
        self.registry = registry
        self.policy = policy
        self.default_page_size = default_page_size
        self.max_page_size = max_page_size
        self.audit_logging = audit_logging
        self.renderer = renderer or ResourceRenderer()

    def get_all(
        self,
        db: Session,
        entity_type: str,
        raw_query: Mapping[str, Any] | None,
        context: SecurityContext,
    ) -> ResourceDocument:
        schema = self.registry.get(entity_type)
        query = normalize(
            raw_query,
            schema,
            default_page_size=self.default_page_size,
            max_page_size=self.max_page_size,
        )
        effective = self.policy.apply(query, context, schema)
        self._audit("getAll", effective, context)

        rows, total = QueryExecutor(db).execute(effective, schema)
        return self.renderer.render(rows, total, effective.query, schema)

    def get_one(
        self,
        db: Session,
        entity_type: str,
        resource_id: str,
        raw_query: Mapping[str, Any] | None,
        context: SecurityContext,
    ) -> ResourceDocument:
        schema = self.registry.get(entity_type)
        pk = schema.primary_key_field()
        try:
            key = schema.field_spec(pk).coerce(resource_id)
        except ValueError as exc:
            raise ResourceNotFoundError(f"{entity_type} not found") from exc

        query = normalize({"include": (raw_query or {}).get("include")}, schema)
        query = replace(query.with_filters(FilterClause(pk, Operator.EQ, key)), page=Page(number=1, size=1))

        effective = self.policy.apply(query, context, schema)
        self._audit("getOne", effective, context, resource_id=resource_id)

        rows, _total = QueryExecutor(db).execute(effective, schema)
        if not rows:
            # Missing and not-visible rows look the same to the caller.
            raise ResourceNotFoundError(f"{entity_type} not found")
        return self.renderer.render(rows, 1, effective.query, schema, single=True)

    def _audit(self, operation: str, effective: EffectiveQuery, context: SecurityContext, **extra: Any) -> None:
        if not self.audit_logging:
            return
        record = {"operation": operation, **context.to_dict(), **effective.audit_summary(), **extra}
        audit_logger.info("access %s", record)
