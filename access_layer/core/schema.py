"""
Statically declared entity descriptors.

Each entity type exposed through the access layer is described once, at
startup, by an `EntitySchema`: its fields (with value kinds used to coerce
query-string input), primary key, access-relevant fields (tenant, owner,
department) and relationships. Descriptors are read-only after
registration and shared by every request.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Iterable, Mapping

from .errors import UnknownResourceTypeError


class FieldKind(str, Enum):
    STRING = "string"
    INTEGER = "integer"
    FLOAT = "float"
    BOOLEAN = "boolean"
    DATETIME = "datetime"


_TRUE = {"true", "1", "yes"}
_FALSE = {"false", "0", "no"}


@dataclass(frozen=True)
class FieldSpec:
    name: str
    kind: FieldKind = FieldKind.STRING
    filterable: bool = True
    sortable: bool = True

    def coerce(self, value: Any) -> Any:
        """
        Convert a raw (usually string) value to this field's Python type.

        `None` passes through so that null checks stay expressible.
        Raises ValueError when the value cannot be converted.
        """

        if value is None:
            return None

        if self.kind is FieldKind.STRING:
            return str(value)
        if self.kind is FieldKind.INTEGER:
            if isinstance(value, bool):
                raise ValueError(f"Expected integer for '{self.name}'")
            return int(value)
        if self.kind is FieldKind.FLOAT:
            return float(value)
        if self.kind is FieldKind.BOOLEAN:
            if isinstance(value, bool):
                return value
            lowered = str(value).strip().lower()
            if lowered in _TRUE:
                return True
            if lowered in _FALSE:
                return False
            raise ValueError(f"Expected boolean for '{self.name}'")
        if self.kind is FieldKind.DATETIME:
            if isinstance(value, datetime):
                return value
            return datetime.fromisoformat(str(value))

        raise ValueError(f"Unsupported field kind: {self.kind}")


@dataclass(frozen=True)
class RelationshipSpec:
    name: str
    target: str
    many: bool = False
    attribute: str | None = None

    @property
    def model_attribute(self) -> str:
        return self.attribute or self.name


@dataclass
class EntitySchema:
    """
    Descriptor for one entity type.

    `model` is the mapped class the executor queries; the core pipeline
    itself never touches it.
    """

    type_name: str
    model: Any
    fields: tuple[FieldSpec, ...]
    primary_key: str = "id"
    relationship_specs: tuple[RelationshipSpec, ...] = ()
    tenant: str | None = None
    owner: str | None = None
    department: str | None = None
    _registry: "SchemaRegistry | None" = field(default=None, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        self._by_name: dict[str, FieldSpec] = {f.name: f for f in self.fields}
        if self.primary_key not in self._by_name:
            raise ValueError(f"Primary key '{self.primary_key}' is not a declared field of '{self.type_name}'")
        for name in (self.tenant, self.owner, self.department):
            if name is not None and name not in self._by_name:
                raise ValueError(f"Access field '{name}' is not a declared field of '{self.type_name}'")

    # ---- collaborator interface ----------------------------------------------------

    def field_exists(self, name: str) -> bool:
        return name in self._by_name

    def primary_key_field(self) -> str:
        return self.primary_key

    def tenant_field(self) -> str | None:
        return self.tenant

    def owner_field(self) -> str | None:
        return self.owner

    def department_field(self) -> str | None:
        return self.department

    def relationships(self) -> Mapping[str, "EntitySchema"]:
        """Relationship name -> target schema (requires registration)."""
        if self._registry is None:
            raise RuntimeError(f"Schema '{self.type_name}' is not registered")
        return {rel.name: self._registry.get(rel.target) for rel in self.relationship_specs}

    # ---- helpers -------------------------------------------------------------------

    def field_spec(self, name: str) -> FieldSpec:
        return self._by_name[name]

    def is_filterable(self, name: str) -> bool:
        spec = self._by_name.get(name)
        return spec is not None and spec.filterable

    def is_sortable(self, name: str) -> bool:
        spec = self._by_name.get(name)
        return spec is not None and spec.sortable

    def relationship(self, name: str) -> RelationshipSpec | None:
        for rel in self.relationship_specs:
            if rel.name == name:
                return rel
        return None

    def attribute_names(self) -> list[str]:
        return [f.name for f in self.fields if f.name != self.primary_key]


class SchemaRegistry:
    """Entity type name -> schema. Populated at startup, read-only afterwards."""

    def __init__(self, schemas: Iterable[EntitySchema] = ()):
        self._schemas: dict[str, EntitySchema] = {}
        for schema in schemas:
            self.register(schema)

    def register(self, schema: EntitySchema) -> None:
        if schema.type_name in self._schemas:
            raise ValueError(f"Duplicate entity schema: {schema.type_name}")
        schema._registry = self
        self._schemas[schema.type_name] = schema

    def get(self, type_name: str) -> EntitySchema:
        try:
            return self._schemas[type_name]
        except KeyError as exc:
            raise UnknownResourceTypeError(f"Unknown resource type: {type_name}") from exc

    def __contains__(self, type_name: object) -> bool:
        return type_name in self._schemas

    def __iter__(self):
        return iter(self._schemas.values())
