from __future__ import annotations

import re
from collections.abc import Iterable
from typing import Any

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from access_layer.core.context import SecurityContext
from access_layer.db.session import get_db
from access_layer.schemas.document import ResourceDocument
from access_layer.security.dependencies import get_access_service, get_security_context
from access_layer.services.resource_service import ResourceAccessService

router = APIRouter(prefix="/resources", tags=["resources"])

# "filter[rating][gte]" -> ("filter", "[rating][gte]")
_PARAM_RE = re.compile(r"^([A-Za-z_]+)((?:\[[^\[\]]*\])*)$")
_SEGMENT_RE = re.compile(r"\[([^\[\]]*)\]")


def parse_query_params(items: Iterable[tuple[str, str]]) -> dict[str, Any]:
    """
    Fold bracketed query parameters into the nested mapping the normalizer takes.

        page[number]=2&filter[status]=active&filter[rating][gte]=3&sort=-title
        -> {"page": {"number": "2"}, "filter": {"status": "active", "rating": {"gte": "3"}}, "sort": "-title"}

    Repeated keys collect into a list. A plain value next to operator keys on the
    same field becomes its `eq` operand. Unrecognised parameter names are ignored.
    """

    raw: dict[str, Any] = {}
    for key, value in items:
        match = _PARAM_RE.match(key)
        if match is None:
            continue
        path = [match.group(1), *_SEGMENT_RE.findall(match.group(2))]

        node = raw
        for segment in path[:-1]:
            child = node.get(segment)
            if not isinstance(child, dict):
                child = {} if child is None else {"eq": child}
                node[segment] = child
            node = child

        leaf = path[-1]
        if isinstance(node.get(leaf), dict):
            node, leaf = node[leaf], "eq"
        _put(node, leaf, value)
    return raw


def _put(node: dict[str, Any], key: str, value: str) -> None:
    if key not in node:
        node[key] = value
    elif isinstance(node[key], list):
        node[key].append(value)
    else:
        node[key] = [node[key], value]


@router.get("/{resource_type}", response_model=ResourceDocument)
def list_resources(
    resource_type: str,
    request: Request,
    db: Session = Depends(get_db),
    context: SecurityContext = Depends(get_security_context),
    service: ResourceAccessService = Depends(get_access_service),
) -> ResourceDocument:
    raw_query = parse_query_params(request.query_params.multi_items())
    return service.get_all(db, resource_type, raw_query, context)


@router.get("/{resource_type}/{resource_id}", response_model=ResourceDocument)
def get_resource(
    resource_type: str,
    resource_id: str,
    request: Request,
    db: Session = Depends(get_db),
    context: SecurityContext = Depends(get_security_context),
    service: ResourceAccessService = Depends(get_access_service),
) -> ResourceDocument:
    raw_query = parse_query_params(request.query_params.multi_items())
    return service.get_one(db, resource_type, resource_id, raw_query, context)
