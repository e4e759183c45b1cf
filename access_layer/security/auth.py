from __future__ import annotations

import logging
from typing import Any

from fastapi import HTTPException, Request, status
from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from access_layer.models.security import AccessGrant, User

logger = logging.getLogger(__name__)

AUTHORIZATION_HEADER = "Authorization"
BEARER_PREFIX = "Bearer"


def extract_user_id(request: Request) -> int | None:
    """
    Demo auth: extract bearer token and treat it as a user_id.

    - Input: `Authorization: Bearer <token>`
    - Demo behavior: `<token>` must be an integer user id
    - No header: anonymous caller (the policy engine decides what that means)
    """

    raw = request.headers.get(AUTHORIZATION_HEADER)
    if not raw:
        logger.info("No Authorization header path=%s method=%s", request.url.path, request.method)
        return None

    prefix = f"{BEARER_PREFIX} "
    if not raw.startswith(prefix):
        logger.warning("Invalid Authorization header format path=%s method=%s", request.url.path, request.method)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid {AUTHORIZATION_HEADER}. Expected '{BEARER_PREFIX} <token>'.",
        )

    token = raw[len(prefix) :].strip()
    try:
        return int(token)
    except ValueError as exc:
        logger.warning("Bearer token not an int (demo expects user_id) path=%s method=%s", request.url.path, request.method)
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid bearer token for demo (expected integer user id).",
        ) from exc


def load_user(db: Session, user_id: int) -> User:
    user = db.execute(
        select(User)
        .where(User.id == user_id)
        .options(
            selectinload(User.roles),
            selectinload(User.teams),
        )
    ).scalar_one_or_none()

    if user is None or not user.is_active:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid or inactive user")

    return user


def identity_for(db: Session, user: User, entity_type: str | None) -> dict[str, Any]:
    """
    Identity object handed to the context resolver.

    Allow-lists are only attached for `grants_only` users; for them an empty
    grant set for `entity_type` means no access at all.
    """

    direct_reports = db.scalars(select(User.id).where(User.manager_id == user.id).order_by(User.id)).all()

    accessible_ids: list[str] | None = None
    if user.grants_only:
        accessible_ids = list(
            db.scalars(
                select(AccessGrant.entity_id)
                .where(AccessGrant.user_id == user.id, AccessGrant.entity_type == (entity_type or ""))
                .order_by(AccessGrant.id)
            ).all()
        )

    return {
        "id": user.id,
        "email": user.email,
        "workspace_id": user.workspace_id,
        "department_id": user.department_id,
        "roles": sorted(r.name for r in user.roles),
        "permissions": [],
        "accessible_ids": accessible_ids,
        "role_access": {
            "team_ids": sorted(t.id for t in user.teams),
            "direct_report_ids": list(direct_reports),
        },
    }
