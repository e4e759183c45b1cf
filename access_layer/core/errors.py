"""Error taxonomy for the resource access pipeline."""

from __future__ import annotations


class AccessLayerError(Exception):
    """Base class for errors raised by the access layer."""


class InvalidQueryError(AccessLayerError):
    """Raised for structurally malformed query input (user-correctable)."""


class ExecutionError(AccessLayerError):
    """Raised when the store fails while executing an effective query."""


class ResourceNotFoundError(AccessLayerError):
    """Raised when a single resource is missing or not visible to the caller."""


class UnknownResourceTypeError(AccessLayerError):
    """Raised when no entity schema is registered for a resource type."""


class SchemaMismatchWarning(UserWarning):
    """
    A filter, sort or include entry referenced something the entity does not have.

    Never raised. Instances are built for the log line and the entry is dropped.
    """

    def __init__(self, entity_type: str, kind: str, name: str):
        self.entity_type = entity_type
        self.kind = kind
        self.name = name
        super().__init__(f"Dropped unknown {kind} '{name}' for entity '{entity_type}'")
