from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from access_layer.core.query import QueryDescription
from access_layer.core.schema import EntitySchema
from access_layer.schemas.document import (
    PageMeta,
    RelationshipLinkage,
    ResourceDocument,
    ResourceIdentifier,
    ResourceObject,
)


class ResourceRenderer:
    """
    Maps store rows into a `ResourceDocument`.

    Related rows for every include path are collected into `included`,
    deduplicated by (type, id) in first-seen order. Page meta comes from the
    total count and the requested window, never from the number of rows.
    """

    def render(
        self,
        rows: Sequence[Any],
        total_count: int,
        query: QueryDescription,
        schema: EntitySchema,
        *,
        single: bool = False,
    ) -> ResourceDocument:
        links = _linked_relationships(schema, query.include)
        primary = [self._resource(row, schema, links) for row in rows]

        included: dict[tuple[str, str], ResourceObject] = {}
        primary_keys = {r.key for r in primary}
        for row in rows:
            for path in query.include:
                self._collect(row, schema, path, links, included, primary_keys)

        if single:
            return ResourceDocument(data=primary[0] if primary else None, included=list(included.values()))

        return ResourceDocument(
            data=primary,
            included=list(included.values()),
            meta=PageMeta(page_number=query.page.number, page_size=query.page.size, total_items=total_count),
        )

    def _collect(
        self,
        obj: Any,
        schema: EntitySchema,
        path: tuple[str, ...],
        links: dict[str, set[str]],
        included: dict[tuple[str, str], ResourceObject],
        primary_keys: set[tuple[str, str]],
    ) -> None:
        name, rest = path[0], path[1:]
        rel = schema.relationship(name)
        if rel is None:
            return
        target = schema.relationships()[name]

        for item in _related_items(obj, rel.model_attribute):
            resource = self._resource(item, target, links)
            if resource.key not in included and resource.key not in primary_keys:
                included[resource.key] = resource
            if rest:
                self._collect(item, target, rest, links, included, primary_keys)

    def _resource(self, obj: Any, schema: EntitySchema, links: dict[str, set[str]]) -> ResourceObject:
        attributes = {name: getattr(obj, name, None) for name in schema.attribute_names()}

        relationships: dict[str, RelationshipLinkage] | None = None
        names = links.get(schema.type_name)
        if names:
            relationships = {}
            for name in sorted(names):
                rel = schema.relationship(name)
                if rel is None:
                    continue
                target = schema.relationships()[name]
                identifiers = [_identifier(item, target) for item in _related_items(obj, rel.model_attribute)]
                if rel.many:
                    relationships[name] = RelationshipLinkage(data=identifiers)
                else:
                    relationships[name] = RelationshipLinkage(data=identifiers[0] if identifiers else None)

        return ResourceObject(
            type=schema.type_name,
            id=str(getattr(obj, schema.primary_key_field())),
            attributes=attributes,
            relationships=relationships,
        )


def _identifier(obj: Any, schema: EntitySchema) -> ResourceIdentifier:
    return ResourceIdentifier(type=schema.type_name, id=str(getattr(obj, schema.primary_key_field())))


def _related_items(obj: Any, attribute: str) -> list[Any]:
    value = getattr(obj, attribute, None)
    if value is None:
        return []
    if isinstance(value, (list, tuple, set)):
        return [v for v in value if v is not None]
    return [value]


def _linked_relationships(schema: EntitySchema, include: tuple[tuple[str, ...], ...]) -> dict[str, set[str]]:
    """Entity type -> relationship names whose linkage should be rendered."""

    links: dict[str, set[str]] = {}
    for path in include:
        current = schema
        for segment in path:
            links.setdefault(current.type_name, set()).add(segment)
            current = current.relationships()[segment]
    return links
