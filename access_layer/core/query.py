"""Query value types passed between pipeline stages. All are immutable."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Mapping


class Operator(str, Enum):
    EQ = "eq"
    NE = "ne"
    IN = "in"
    GT = "gt"
    LT = "lt"
    GTE = "gte"
    LTE = "lte"
    CONTAINS = "contains"

    @classmethod
    def parse(cls, raw: str) -> "Operator":
        """Accept `eq`, `$eq`, ... plus `like`/`$like` as an alias of contains."""
        name = raw.strip().lower().lstrip("$")
        if name == "like":
            return cls.CONTAINS
        return cls(name)


class Direction(str, Enum):
    ASC = "asc"
    DESC = "desc"


class ConstraintSource(str, Enum):
    CALLER = "caller"
    TENANT = "tenant"
    ALLOW_LIST = "allow_list"
    OWNERSHIP = "ownership"
    ROLE = "role"
    DEPARTMENT = "department"
    TEMPORAL = "temporal"


@dataclass(frozen=True)
class FilterClause:
    field: str
    op: Operator
    value: Any
    source: ConstraintSource = ConstraintSource.CALLER

    def to_dict(self) -> dict[str, object]:
        value = list(self.value) if isinstance(self.value, tuple) else self.value
        return {"field": self.field, "op": self.op.value, "value": value, "source": self.source.value}


@dataclass(frozen=True)
class SortKey:
    field: str
    direction: Direction = Direction.ASC


@dataclass(frozen=True)
class Page:
    number: int = 1
    size: int = 10

    @property
    def offset(self) -> int:
        return (self.number - 1) * self.size


@dataclass(frozen=True)
class QueryDescription:
    """
    Normalized caller query.

    Filters form a conjunction; several clauses may target the same field.
    Include paths are tuples of relationship names (`("owner", "workspace")`).
    """

    entity_type: str
    filters: tuple[FilterClause, ...] = ()
    sort: tuple[SortKey, ...] = ()
    page: Page = Page()
    include: tuple[tuple[str, ...], ...] = ()

    def with_filters(self, *clauses: FilterClause) -> "QueryDescription":
        return replace(self, filters=self.filters + tuple(clauses))


@dataclass(frozen=True)
class EffectiveQuery:
    """
    Query actually sent to the store.

    `query.filters` holds caller clauses followed by every clause in
    `injected`. When `denied` is set the executor must not run.

    `include_scopes` maps each entity type reachable through `include` to the
    policy clauses its included rows must satisfy; `None` hides them all.
    """

    query: QueryDescription
    injected: tuple[FilterClause, ...] = ()
    denied: bool = False
    denial_reason: str | None = None
    tenant_id: Any = None
    include_scopes: Mapping[str, tuple[FilterClause, ...] | None] = field(default_factory=dict)

    @property
    def page(self) -> Page:
        return self.query.page

    @property
    def filters(self) -> tuple[FilterClause, ...]:
        return self.query.filters

    def audit_summary(self) -> dict[str, object]:
        return {
            "entity": self.query.entity_type,
            "denied": self.denied,
            "denial_reason": self.denial_reason,
            "injected": [c.to_dict() for c in self.injected],
        }
