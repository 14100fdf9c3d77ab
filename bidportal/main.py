from __future__ import annotations

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from bidportal.authz import CorruptHierarchy, HierarchyCache, InvalidScopeBinding, NotFound, StoreUnavailable
from bidportal.authz.policy import load_scope_policy
from bidportal.db.init_db import init_db
from bidportal.db.session import SessionLocal
from bidportal.db.stores import SqlOrganizationRepository
from bidportal.logging_config import configure_app_logging
from bidportal.routers import authz, bids, health, organizations, role_assignments
from bidportal.settings import get_settings

logger = logging.getLogger(__name__)


def register_exception_handlers(app: FastAPI) -> None:
    """Map core failures to status codes. Denials never reach these handlers."""

    @app.exception_handler(NotFound)
    async def _not_found(request: Request, exc: NotFound) -> JSONResponse:
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})

    @app.exception_handler(InvalidScopeBinding)
    async def _invalid_binding(request: Request, exc: InvalidScopeBinding) -> JSONResponse:
        return JSONResponse(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, content={"detail": str(exc)})

    @app.exception_handler(StoreUnavailable)
    async def _store_unavailable(request: Request, exc: StoreUnavailable) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"detail": "Authorization data temporarily unavailable"},
            headers={"Retry-After": "5"},
        )

    @app.exception_handler(CorruptHierarchy)
    async def _corrupt_hierarchy(request: Request, exc: CorruptHierarchy) -> JSONResponse:
        # Logged at CRITICAL where it is detected.
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Organization hierarchy is corrupt; operator action required"},
        )


def create_app() -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        settings = get_settings()
        configure_app_logging(settings.log_level, settings.audit_log_level)
        logger.info("App startup beginning")

        policy = load_scope_policy(settings.resolved_policy_path())
        app.state.scope_policy = policy
        logger.info("Loaded scope policy: %s", settings.resolved_policy_path())

        init_db(policy, seed=settings.seed_demo_data)
        logger.info("Database initialized (tables ensured + seed if needed)")

        with SessionLocal() as db:
            app.state.hierarchy = HierarchyCache(SqlOrganizationRepository(db).list_all())
        logger.info("Organization hierarchy loaded organizations=%d", len(app.state.hierarchy.snapshot()))

        yield
        # Shutdown (nothing to clean up)

    app = FastAPI(title="bidportal", lifespan=lifespan)
    register_exception_handlers(app)

    app.include_router(health.router)
    app.include_router(organizations.router)
    app.include_router(bids.router)
    app.include_router(role_assignments.router)
    app.include_router(authz.router)

    return app


app = create_app()
