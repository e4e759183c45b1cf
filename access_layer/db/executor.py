from __future__ import annotations

import logging
from typing import Any

from sqlalchemy import ColumnElement, and_, false, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, selectinload, with_loader_criteria

from access_layer.core.errors import ExecutionError
from access_layer.core.query import Direction, EffectiveQuery, FilterClause, Operator
from access_layer.core.schema import EntitySchema

logger = logging.getLogger(__name__)


class QueryExecutor:
    """
    Compiles an `EffectiveQuery` into SQLAlchemy statements and runs them.

    This is the only stage that touches the store. A denied query returns
    `([], 0)` without issuing any statement.
    """

    def __init__(self, db: Session):
        self.db = db

    def execute(self, effective: EffectiveQuery, schema: EntitySchema) -> tuple[list[Any], int]:
        if effective.denied:
            logger.debug("Skipping store access for denied %s query", schema.type_name)
            return [], 0

        model = schema.model
        predicates = [compile_clause(getattr(model, c.field), c) for c in effective.filters]

        count_stmt = select(func.count()).select_from(model).where(*predicates)
        page_stmt = (
            select(model)
            .where(*predicates)
            .order_by(*_ordering(effective, schema))
            .offset(effective.page.offset)
            .limit(effective.page.size)
            .options(*_include_options(effective, schema))
            .execution_options(populate_existing=True)
        )
        logger.debug("Executing %s page query: %s", schema.type_name, page_stmt)

        try:
            total = self.db.scalar(count_stmt) or 0
            rows = list(self.db.scalars(page_stmt).all())
        except SQLAlchemyError as exc:
            logger.error("Store error while querying %s: %s", schema.type_name, exc.__class__.__name__)
            raise ExecutionError(f"Query for '{schema.type_name}' failed") from exc

        return rows, int(total)


def compile_clause(column: Any, clause: FilterClause) -> ColumnElement[bool]:
    value = clause.value
    match clause.op:
        case Operator.EQ:
            return column.is_(None) if value is None else column == value
        case Operator.NE:
            return column.is_not(None) if value is None else column != value
        case Operator.IN:
            return column.in_(list(value))
        case Operator.GT:
            return column > value
        case Operator.LT:
            return column < value
        case Operator.GTE:
            return column >= value
        case Operator.LTE:
            return column <= value
        case Operator.CONTAINS:
            return column.contains(value, autoescape=True)
    raise ValueError(f"Unsupported operator: {clause.op!r}")


def _ordering(effective: EffectiveQuery, schema: EntitySchema) -> list[Any]:
    model = schema.model
    pk = schema.primary_key_field()

    order: list[Any] = []
    for key in effective.query.sort:
        column = getattr(model, key.field)
        order.append(column.desc() if key.direction is Direction.DESC else column.asc())

    # Ties always break on the primary key so pages are stable.
    if pk not in {key.field for key in effective.query.sort}:
        order.append(getattr(model, pk).asc())
    return order


def _include_options(effective: EffectiveQuery, schema: EntitySchema) -> list[Any]:
    """Eager loads for include paths, with included rows held to their policy scope."""

    options: list[Any] = []
    scoped: set[str] = set()

    for path in effective.query.include:
        current = schema
        loader = None
        for segment in path:
            rel = current.relationship(segment)
            target = current.relationships()[segment]
            attr = getattr(current.model, rel.model_attribute)
            loader = selectinload(attr) if loader is None else loader.selectinload(attr)
            current = target

            if target.type_name in scoped:
                continue
            scoped.add(target.type_name)
            criteria = _scope_criteria(target, effective.include_scopes.get(target.type_name, ()))
            if criteria is not None:
                options.append(with_loader_criteria(target.model, criteria, include_aliases=True))
        if loader is not None:
            options.append(loader)

    return options


def _scope_criteria(target: EntitySchema, clauses: tuple[FilterClause, ...] | None) -> ColumnElement[bool] | None:
    if clauses is None:
        logger.debug("Included %s hidden by policy", target.type_name)
        return false()
    if not clauses:
        return None
    return and_(*(compile_clause(getattr(target.model, c.field), c) for c in clauses))
