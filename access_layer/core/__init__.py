"""
Framework-free core of the resource access layer.

Resolve a `SecurityContext`, `normalize` a raw query against an
`EntitySchema`, then let `AccessPolicyEngine.apply` produce the
`EffectiveQuery` that is safe to hand to a store. Nothing here imports
FastAPI or SQLAlchemy.
"""

from .context import Identity, RequestMetadata, SecurityContext, TimeAccess
from .errors import (
    AccessLayerError,
    ExecutionError,
    InvalidQueryError,
    ResourceNotFoundError,
    SchemaMismatchWarning,
    UnknownResourceTypeError,
)
from .normalizer import normalize
from .policy import AccessPolicyEngine, PolicyConfig, load_policy_config
from .query import ConstraintSource, Direction, EffectiveQuery, FilterClause, Operator, Page, QueryDescription, SortKey
from .resolver import ContextResolver, InboundRequest, anonymous_context
from .schema import EntitySchema, FieldKind, FieldSpec, RelationshipSpec, SchemaRegistry

__all__ = [
    "AccessLayerError",
    "AccessPolicyEngine",
    "ConstraintSource",
    "ContextResolver",
    "Direction",
    "EffectiveQuery",
    "EntitySchema",
    "ExecutionError",
    "FieldKind",
    "FieldSpec",
    "FilterClause",
    "Identity",
    "InboundRequest",
    "InvalidQueryError",
    "Operator",
    "Page",
    "PolicyConfig",
    "QueryDescription",
    "RelationshipSpec",
    "RequestMetadata",
    "ResourceNotFoundError",
    "SchemaMismatchWarning",
    "SchemaRegistry",
    "SecurityContext",
    "SortKey",
    "TimeAccess",
    "UnknownResourceTypeError",
    "anonymous_context",
    "load_policy_config",
    "normalize",
]
