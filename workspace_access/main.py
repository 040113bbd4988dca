from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy import Engine

from workspace_access.access.errors import AccessError
from workspace_access.db.init_db import init_db
from workspace_access.logging_config import configure_app_logging
from workspace_access.routers import auth, health, invitations, members, platform, roles, tenants
from workspace_access.security.config import AccessPolicy, load_access_policy
from workspace_access.security.dependencies import enforce_security
from workspace_access.settings import get_settings

logger = logging.getLogger(__name__)


def create_app(
    policy: AccessPolicy | None = None,
    *,
    bind: Engine | None = None,
    initialize_database: bool = True,
) -> FastAPI:
    """
    Build the application.

    ``policy`` defaults to the YAML file named by the settings. Tests pass a
    policy and skip database initialization, providing their own session
    through a ``get_db`` override.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        settings = get_settings()
        configure_app_logging(settings.log_level)
        logger.info("App startup beginning")

        if policy is None:
            app.state.access_policy = load_access_policy(settings.resolved_policy_path())
            logger.info("Loaded access policy: %s", settings.resolved_policy_path())
        else:
            app.state.access_policy = policy

        if initialize_database:
            init_db(app.state.access_policy, bind=bind)
            logger.info("Database initialized (tables ensured + system roles seeded)")

        yield
        # Shutdown (nothing to clean up)

    # Global dependency: every route goes through the access policy.
    app = FastAPI(title="workspace-access", dependencies=[Depends(enforce_security)], lifespan=lifespan)

    @app.exception_handler(AccessError)
    async def access_error_handler(request: Request, exc: AccessError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=exc.to_response())

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
        return JSONResponse(
            status_code=422,
            content={"error": {"code": "INVALID_REQUEST", "message": str(exc), "details": {}}},
        )

    app.include_router(health.router)
    app.include_router(auth.router)
    app.include_router(tenants.router)
    app.include_router(roles.router)
    app.include_router(members.router)
    app.include_router(invitations.router)
    app.include_router(platform.router)

    return app


app = create_app()
