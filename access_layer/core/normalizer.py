"""
Query normalizer.

Turns a raw, caller-supplied query mapping into a `QueryDescription`:

    {
        "page": {"number": "2", "size": "25"},
        "filter": {"status": "active", "rating": {"gte": "3"}},
        "sort": "-created_at,title",          # or a list of strings
        "include": "owner,owner.workspace",  # or a list of strings
    }

Structural problems (non-numeric page, empty sort segment, unknown operator,
uncoercible value) raise `InvalidQueryError`. References to fields or
relationships the entity does not expose are dropped with a warning and never
reported back to the caller.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping

from .errors import InvalidQueryError, SchemaMismatchWarning
from .query import Direction, FilterClause, Operator, Page, QueryDescription, SortKey
from .schema import EntitySchema, FieldKind

logger = logging.getLogger(__name__)


DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100
# Largest row offset a store can address (signed 64-bit).
MAX_OFFSET = 2**63 - 1


def normalize(
    raw: Mapping[str, Any] | None,
    schema: EntitySchema,
    *,
    default_page_size: int = DEFAULT_PAGE_SIZE,
    max_page_size: int = MAX_PAGE_SIZE,
) -> QueryDescription:
    raw = raw or {}
    if not isinstance(raw, Mapping):
        raise InvalidQueryError("Query must be a mapping")

    return QueryDescription(
        entity_type=schema.type_name,
        filters=tuple(_normalize_filters(raw.get("filter"), schema)),
        sort=tuple(_normalize_sort(raw.get("sort"), schema)),
        page=_normalize_page(raw.get("page"), default_page_size, max_page_size),
        include=tuple(_normalize_include(raw.get("include"), schema)),
    )


# ---- pagination ----------------------------------------------------------------------


def _normalize_page(raw: Any, default_size: int, max_size: int) -> Page:
    if raw is None:
        return Page(number=1, size=min(default_size, max_size))
    if not isinstance(raw, Mapping):
        raise InvalidQueryError("page must be an object with 'number' and/or 'size'")

    number = _parse_positive_int(raw.get("number"), "page[number]", default=1)
    size = _parse_positive_int(raw.get("size"), "page[size]", default=default_size)
    if size > max_size:
        logger.debug("Clamping page size %s to maximum %s", size, max_size)
        size = max_size
    if (number - 1) * size > MAX_OFFSET:
        raise InvalidQueryError("page[number] is out of range")
    return Page(number=number, size=size)


def _parse_positive_int(raw: Any, label: str, default: int) -> int:
    if raw is None or raw == "":
        return default
    if isinstance(raw, bool):
        raise InvalidQueryError(f"{label} must be an integer")
    try:
        value = int(raw)
    except (TypeError, ValueError) as exc:
        raise InvalidQueryError(f"{label} must be an integer") from exc
    if value < 1:
        raise InvalidQueryError(f"{label} must be >= 1")
    return value


# ---- filters -------------------------------------------------------------------------


def _normalize_filters(raw: Any, schema: EntitySchema) -> Iterable[FilterClause]:
    if raw is None:
        return
    if not isinstance(raw, Mapping):
        raise InvalidQueryError("filter must be an object of field -> value")

    for field_name, spec in raw.items():
        if not schema.is_filterable(field_name):
            _drop(schema, "filter field", field_name)
            continue

        if isinstance(spec, Mapping):
            if not spec:
                raise InvalidQueryError(f"Empty operator set for filter '{field_name}'")
            for raw_op, operand in spec.items():
                op = _parse_operator(raw_op, field_name)
                yield FilterClause(field_name, op, _coerce_operand(schema, field_name, op, operand))
        else:
            yield FilterClause(field_name, Operator.EQ, _coerce_operand(schema, field_name, Operator.EQ, spec))


def _parse_operator(raw_op: Any, field_name: str) -> Operator:
    try:
        return Operator.parse(str(raw_op))
    except ValueError as exc:
        raise InvalidQueryError(f"Unknown operator '{raw_op}' for filter '{field_name}'") from exc


def _coerce_operand(schema: EntitySchema, field_name: str, op: Operator, operand: Any) -> Any:
    spec = schema.field_spec(field_name)
    try:
        if op is Operator.IN:
            items = operand.split(",") if isinstance(operand, str) else operand
            if not isinstance(items, (list, tuple, set, frozenset)):
                raise InvalidQueryError(f"Filter '{field_name}' with 'in' expects a list")
            return tuple(spec.coerce(item.strip() if isinstance(item, str) else item) for item in items)
        if op is Operator.CONTAINS:
            if spec.kind is not FieldKind.STRING:
                raise InvalidQueryError(f"Filter '{field_name}' does not support 'contains'")
            return str(operand)
        if isinstance(operand, (list, tuple, dict)):
            raise InvalidQueryError(f"Filter '{field_name}' with '{op.value}' expects a single value")
        if isinstance(operand, str) and operand.lower() == "null" and op in (Operator.EQ, Operator.NE):
            return None
        return spec.coerce(operand)
    except ValueError as exc:
        raise InvalidQueryError(f"Invalid value for filter '{field_name}'") from exc


# ---- sort ----------------------------------------------------------------------------


def _split_csv(raw: Any, label: str) -> list[str]:
    if raw is None or raw == "":
        return []
    if isinstance(raw, str):
        parts = raw.split(",")
    elif isinstance(raw, (list, tuple)):
        parts = []
        for item in raw:
            if not isinstance(item, str):
                raise InvalidQueryError(f"{label} entries must be strings")
            parts.extend(item.split(","))
    else:
        raise InvalidQueryError(f"{label} must be a string or list of strings")
    return [p.strip() for p in parts]


def _normalize_sort(raw: Any, schema: EntitySchema) -> Iterable[SortKey]:
    seen: set[str] = set()
    for token in _split_csv(raw, "sort"):
        direction = Direction.ASC
        name = token
        if name.startswith("-"):
            direction = Direction.DESC
            name = name[1:]
        elif name.startswith("+"):
            name = name[1:]
        if not name or name[0] in "+-":
            raise InvalidQueryError(f"Malformed sort key '{token}'")

        if not schema.is_sortable(name):
            _drop(schema, "sort field", name)
            continue
        if name in seen:
            continue
        seen.add(name)
        yield SortKey(name, direction)


# ---- include -------------------------------------------------------------------------


def _normalize_include(raw: Any, schema: EntitySchema) -> Iterable[tuple[str, ...]]:
    seen: set[tuple[str, ...]] = set()
    for token in _split_csv(raw, "include"):
        if not token:
            continue
        path = tuple(part for part in token.split(".") if part)
        if not path or path in seen:
            continue

        current = schema
        valid = True
        for segment in path:
            if current.relationship(segment) is None:
                valid = False
                break
            current = current.relationships()[segment]
        if not valid:
            _drop(schema, "include", token)
            continue

        seen.add(path)
        yield path


def _drop(schema: EntitySchema, kind: str, name: str) -> None:
    logger.warning("%s", SchemaMismatchWarning(schema.type_name, kind, name))
