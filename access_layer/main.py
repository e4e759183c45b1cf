from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from access_layer.core.errors import (
    ExecutionError,
    InvalidQueryError,
    ResourceNotFoundError,
    UnknownResourceTypeError,
)
from access_layer.core.policy import AccessPolicyEngine, PolicyConfig, load_policy_config
from access_layer.core.resolver import ContextResolver, ContextStrategy
from access_layer.core.schema import SchemaRegistry
from access_layer.db.init_db import init_db
from access_layer.logging_config import configure_app_logging
from access_layer.models.registry import REGISTRY
from access_layer.routers import health, resources
from access_layer.services.resource_service import ResourceAccessService
from access_layer.settings import Settings, get_settings

logger = logging.getLogger(__name__)


def configure_state(
    app: FastAPI,
    policy_config: PolicyConfig,
    settings: Settings,
    registry: SchemaRegistry = REGISTRY,
    context_strategy: ContextStrategy | None = None,
) -> None:
    """Attach the startup-time collaborators the request dependencies read."""

    app.state.policy_config = policy_config
    app.state.context_resolver = ContextResolver(trust_tenant_header=settings.trust_tenant_header)
    app.state.context_strategy = context_strategy
    app.state.access_service = ResourceAccessService(
        registry,
        AccessPolicyEngine(policy_config),
        default_page_size=settings.default_page_size,
        max_page_size=settings.max_page_size,
        audit_logging=settings.audit_logging,
    )


def _error_response(status_code: int, title: str, detail: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"errors": [{"status": str(status_code), "title": title, "detail": detail}]},
    )


def install_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(InvalidQueryError)
    async def _invalid_query(_request: Request, exc: InvalidQueryError) -> JSONResponse:
        return _error_response(status.HTTP_400_BAD_REQUEST, "Invalid query", str(exc))

    @app.exception_handler(ResourceNotFoundError)
    async def _not_found(_request: Request, exc: ResourceNotFoundError) -> JSONResponse:
        return _error_response(status.HTTP_404_NOT_FOUND, "Not found", str(exc))

    @app.exception_handler(UnknownResourceTypeError)
    async def _unknown_type(_request: Request, exc: UnknownResourceTypeError) -> JSONResponse:
        return _error_response(status.HTTP_404_NOT_FOUND, "Not found", str(exc))

    @app.exception_handler(ExecutionError)
    async def _execution(_request: Request, exc: ExecutionError) -> JSONResponse:
        logger.error("Execution error: %s", exc)
        return _error_response(status.HTTP_500_INTERNAL_SERVER_ERROR, "Store error", "The query could not be executed.")


def create_app() -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        settings = get_settings()
        configure_app_logging(settings.log_level)
        logger.info("App startup beginning")

        policy_path = settings.resolved_policy_config_path()
        configure_state(app, load_policy_config(policy_path), settings)
        logger.info("Loaded policy config: %s", policy_path)

        init_db()
        logger.info("Database initialized (tables ensured + seed if needed)")

        yield

    app = FastAPI(lifespan=lifespan)
    install_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(resources.router)

    return app


app = create_app()
