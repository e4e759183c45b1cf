"""
Context resolver.

Builds a `SecurityContext` from an inbound request description. The request
is handed in explicitly (no ambient request state): a plain `InboundRequest`
carrying the already-authenticated caller identity, headers and connection
metadata.

Resolution never raises. If extraction fails, a minimal anonymous context is
returned and the policy engine decides what an anonymous caller may see.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
import logging
import time
from typing import Any, Mapping

from .context import Identity, RequestMetadata, SecurityContext, TimeAccess

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InboundRequest:
    """
    What the resolver is allowed to see of a request.

    `user` is the identity object produced by an upstream authenticator:
        id, workspace_id, roles, permissions, email,
        accessible_ids, department_id, role_access, time_access
    (all optional). Header names are matched case-insensitively.
    """

    user: Mapping[str, Any] | None = None
    headers: Mapping[str, str] = field(default_factory=dict)
    client_host: str | None = None
    method: str | None = None
    path: str | None = None


ContextStrategy = Callable[[InboundRequest], SecurityContext]


class ContextResolver:
    def __init__(self, *, trust_tenant_header: bool = False):
        self.trust_tenant_header = trust_tenant_header

    def resolve(self, request: InboundRequest, override: ContextStrategy | None = None) -> SecurityContext:
        try:
            if override is not None:
                logger.debug("Resolving security context with override strategy")
                return override(request)
            return self.extract_default(request)
        except Exception:
            logger.exception("Security context resolution failed; using anonymous context")
            return anonymous_context(request)

    def extract_default(self, request: InboundRequest) -> SecurityContext:
        headers = _lower_keys(request.headers)
        user = request.user

        identity: Identity | None = None
        roles: frozenset[str] = frozenset()
        accessible_ids: tuple[str, ...] | None = None
        department_id: str | None = None
        role_access: dict[str, tuple[Any, ...]] = {}
        time_access: TimeAccess | None = None
        workspace_id: str | None = None

        if user and user.get("id") is not None:
            identity = Identity(
                id=str(user["id"]),
                email=user.get("email"),
                permissions=frozenset(user.get("permissions") or ()),
            )
            roles = frozenset(user.get("roles") or ())
            workspace_id = _str_or_none(user.get("workspace_id"))
            department_id = _str_or_none(user.get("department_id"))

            raw_ids = user.get("accessible_ids")
            if raw_ids is not None:
                accessible_ids = tuple(str(i) for i in raw_ids)

            for key, values in (user.get("role_access") or {}).items():
                role_access[key] = tuple(values or ())

            raw_time = user.get("time_access")
            if raw_time:
                time_access = TimeAccess(
                    start=_parse_datetime(raw_time.get("start")),
                    end=_parse_datetime(raw_time.get("end")),
                    only_active=bool(raw_time.get("only_active", False)),
                )

        header_tenant = headers.get("x-tenant-id")
        if header_tenant and (self.trust_tenant_header or workspace_id is None):
            tenant_id = header_tenant
        else:
            tenant_id = workspace_id

        flags = set()
        if "admin" in roles:
            flags.add("advanced_search")
        if "beta-tester" in roles:
            flags.add("beta_features")

        return SecurityContext(
            identity=identity,
            tenant_id=tenant_id,
            roles=roles,
            metadata=_metadata(request, headers),
            accessible_ids=accessible_ids,
            department_id=department_id,
            role_access=role_access,
            time_access=time_access,
            feature_flags=frozenset(flags),
        )


def anonymous_context(request: InboundRequest | None = None) -> SecurityContext:
    """Minimal context used when nothing could be resolved."""
    try:
        metadata = _metadata(request, _lower_keys(request.headers)) if request is not None else None
    except Exception:
        logger.exception("Could not read request metadata for anonymous context")
        metadata = None
    return SecurityContext(
        identity=None,
        tenant_id=None,
        roles=frozenset(),
        metadata=metadata or RequestMetadata(request_id=_generated_request_id(), timestamp=_now()),
    )


def _metadata(request: InboundRequest, headers: Mapping[str, str]) -> RequestMetadata:
    return RequestMetadata(
        request_id=headers.get("x-request-id") or _generated_request_id(),
        timestamp=_now(),
        origin=headers.get("origin"),
        client_address=request.client_host,
        user_agent=headers.get("user-agent"),
        api_version=headers.get("api-version") or "1.0",
        endpoint=request.path,
        method=request.method.upper() if request.method else None,
    )


def _lower_keys(headers: Mapping[str, str]) -> dict[str, str]:
    return {str(k).lower(): v for k, v in (headers or {}).items()}


def _str_or_none(value: Any) -> str | None:
    return None if value is None else str(value)


def _parse_datetime(value: Any) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


def _generated_request_id() -> str:
    return f"req-{int(time.time() * 1000)}"


def _now() -> datetime:
    return datetime.now(timezone.utc)
