"""Per-request security context threaded through the query pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping


@dataclass(frozen=True)
class Identity:
    """Resolved caller identity."""

    id: str
    email: str | None = None
    permissions: frozenset[str] = frozenset()


@dataclass(frozen=True)
class TimeAccess:
    """Time window and lifecycle restrictions granted to the caller."""

    start: datetime | None = None
    end: datetime | None = None
    only_active: bool = False


@dataclass(frozen=True)
class RequestMetadata:
    request_id: str
    timestamp: datetime
    origin: str | None = None
    client_address: str | None = None
    user_agent: str | None = None
    api_version: str = "1.0"
    endpoint: str | None = None
    method: str | None = None


@dataclass(frozen=True)
class SecurityContext:
    """
    Immutable security context, one per request.

    `accessible_ids` distinguishes "no allow-list" (None) from an allow-list
    that is present but empty (an empty tuple), which denies all access.
    """

    identity: Identity | None
    tenant_id: str | None
    roles: frozenset[str]
    metadata: RequestMetadata
    accessible_ids: tuple[str, ...] | None = None
    department_id: str | None = None
    role_access: Mapping[str, tuple[Any, ...]] = field(default_factory=dict)
    time_access: TimeAccess | None = None
    feature_flags: frozenset[str] = frozenset()

    @property
    def is_anonymous(self) -> bool:
        return self.identity is None

    def has_role(self, role: str) -> bool:
        return role in self.roles

    def to_dict(self) -> dict[str, object]:
        """Return a JSON-serializable summary (used for audit records)."""
        return {
            "user_id": self.identity.id if self.identity else None,
            "tenant_id": self.tenant_id,
            "roles": sorted(self.roles),
            "request_id": self.metadata.request_id,
            "origin": self.metadata.origin,
            "client_address": self.metadata.client_address,
        }
