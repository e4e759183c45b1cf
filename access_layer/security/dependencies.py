from __future__ import annotations

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from access_layer.core.context import SecurityContext
from access_layer.core.resolver import ContextResolver, InboundRequest
from access_layer.db.session import get_db
from access_layer.security.auth import extract_user_id, identity_for, load_user
from access_layer.services.resource_service import ResourceAccessService


def get_access_service(request: Request) -> ResourceAccessService:
    service = getattr(request.app.state, "access_service", None)
    if service is None:
        raise RuntimeError("Access service not configured. Did app startup run?")
    return service


def get_context_resolver(request: Request) -> ContextResolver:
    resolver = getattr(request.app.state, "context_resolver", None)
    if resolver is None:
        raise RuntimeError("Context resolver not configured. Did app startup run?")
    return resolver


def get_inbound_request(request: Request, db: Session = Depends(get_db)) -> InboundRequest:
    """
    Snapshot of the request for context resolution.

    Upstream authentication may already have set `request.state.user`; otherwise
    the demo bearer-token loader supplies the identity.
    """

    user = getattr(request.state, "user", None)
    if user is None:
        user_id = extract_user_id(request)
        if user_id is not None:
            entity_type = request.path_params.get("resource_type")
            user = identity_for(db, load_user(db, user_id), entity_type)

    return InboundRequest(
        user=user,
        headers=dict(request.headers),
        client_host=request.client.host if request.client else None,
        method=request.method,
        path=request.url.path,
    )


def get_security_context(
    request: Request,
    inbound: InboundRequest = Depends(get_inbound_request),
    resolver: ContextResolver = Depends(get_context_resolver),
) -> SecurityContext:
    override = getattr(request.app.state, "context_strategy", None)
    return resolver.resolve(inbound, override)
